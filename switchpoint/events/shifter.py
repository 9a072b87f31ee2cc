# Copyright (C) 2024 Collimator, Inc.
# SPDX-License-Identifier: AGPL-3.0-only
#
# This program is free software: you can redistribute it and/or modify it under
# the terms of the GNU Affero General Public License as published by the Free
# Software Foundation, version 3. This program is distributed in the hope that it
# will be useful, but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the GNU Affero General
# Public License for more details.  You should have received a copy of the GNU
# Affero General Public License along with this program. If not, see
# <https://www.gnu.org/licenses/>.

from __future__ import annotations

from typing import TYPE_CHECKING

from .action import Action
from .detector import EventDetector
from .handlers import EventHandler

if TYPE_CHECKING:
    from ..propagation.state import TrajectoryState

__all__ = ["EventShifter"]


class _ShifterHandler(EventHandler):
    def event_occurred(self, state, detector: EventShifter, increasing) -> Action:
        detector._last_increasing = increasing
        raw = detector.detector
        return raw.handler.event_occurred(
            detector._handler_state(state, increasing), raw, increasing
        )

    def reset_state(self, detector: EventShifter, old_state):
        raw = detector.detector
        return raw.handler.reset_state(
            raw, detector._handler_state(old_state, detector._last_increasing)
        )


class EventShifter(EventDetector):
    """Report the events of a detector earlier or later than they occur.

    Increasing and decreasing events are shifted independently. A positive
    shift delays the event, a negative one anticipates it.  The shifted
    function is built from the raw function evaluated at shifted states, using
    `TrajectoryState.shifted_by`, so large shifts are only as accurate as this
    extrapolation.

    Args:
        detector: Detector whose events are shifted.
        increasing_shift: Shift applied to increasing events.
        decreasing_shift: Shift applied to decreasing events.
        use_shifted_states: If True the raw handler receives the state at the
            shifted event time, otherwise the state at the raw event time.
        **kwargs: Detector settings, by default those of the raw detector.
    """

    def __init__(
        self,
        detector: EventDetector,
        increasing_shift: float,
        decreasing_shift: float,
        use_shifted_states: bool = True,
        **kwargs,
    ):
        kwargs.setdefault("max_check", detector.max_check_interval)
        kwargs.setdefault("threshold", detector.threshold)
        kwargs.setdefault("max_iter", detector.max_iteration_count)
        kwargs.setdefault("handler", _ShifterHandler())
        super().__init__(**kwargs)
        self.detector = detector
        self.use_shifted_states = use_shifted_states
        self._increasing_offset = -float(increasing_shift)
        self._decreasing_offset = -float(decreasing_shift)
        self._last_increasing = True

    @property
    def increasing_shift(self) -> float:
        return -self._increasing_offset

    @property
    def decreasing_shift(self) -> float:
        return -self._decreasing_offset

    def _handler_state(self, state: TrajectoryState, increasing: bool):
        if self.use_shifted_states:
            return state
        offset = self._increasing_offset if increasing else self._decreasing_offset
        return state.shifted_by(offset)

    def init(self, initial_state: TrajectoryState, target: float):
        super().init(initial_state, target)
        self.detector.init(initial_state, target)

    def finish(self, final_state: TrajectoryState):
        super().finish(final_state)
        self.detector.finish(final_state)

    def g(self, state: TrajectoryState) -> float:
        inc_g = self.detector.g(state.shifted_by(self._increasing_offset))
        dec_g = self.detector.g(state.shifted_by(self._decreasing_offset))
        if self._increasing_offset >= self._decreasing_offset:
            return max(inc_g, dec_g)
        return min(inc_g, dec_g)
