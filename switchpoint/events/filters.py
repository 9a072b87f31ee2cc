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

import enum
from typing import TYPE_CHECKING

from .action import Action
from .detector import EventDetector
from .handlers import EventHandler
from .transformer import HISTORY_SIZE, Transformer, TransformerHistory

if TYPE_CHECKING:
    from ..propagation.state import TrajectoryState

__all__ = ["FilterType", "EventFilter"]


T = Transformer

# Transitions used when the propagation direction and the kept polarity agree,
# i.e. the roots to keep are those where g increases along the propagation.
# Each entry maps the current transformer to a predicate on g and the next one.
_KEEP_RISING = {
    T.PLUS: (lambda g: g <= 0.0, T.MAX),
    T.MAX: (lambda g: g >= 0.0, T.MINUS),
    T.MINUS: (lambda g: g <= 0.0, T.MIN),
    T.MIN: (lambda g: g >= 0.0, T.PLUS),
}

# Transitions used when the roots to keep are those where g decreases along the
# propagation.
_KEEP_FALLING = {
    T.PLUS: (lambda g: g >= 0.0, T.MIN),
    T.MINUS: (lambda g: g >= 0.0, T.MAX),
    T.MIN: (lambda g: g <= 0.0, T.MINUS),
    T.MAX: (lambda g: g <= 0.0, T.PLUS),
}


class FilterType(enum.Enum):
    ONLY_INCREASING = "only_increasing"
    ONLY_DECREASING = "only_decreasing"

    @property
    def triggered_increasing(self) -> bool:
        return self is FilterType.ONLY_INCREASING

    def select_transformer(
        self, previous: Transformer, g: float, forward: bool
    ) -> Transformer:
        """Transformer to use after observing the raw value `g`."""
        keep_rising = self.triggered_increasing == forward
        if previous is T.UNINITIALIZED:
            # Initialize as if the previous root was a triggered event when it
            # has the kept polarity, an ignored one otherwise
            if g > 0.0:
                return T.PLUS if keep_rising else T.MAX
            if g < 0.0:
                return T.MAX if keep_rising else T.PLUS
            # Exactly at a root, the polarity is unknown
            return T.UNINITIALIZED

        table = _KEEP_RISING if keep_rising else _KEEP_FALLING
        crossed, following = table[previous]
        return following if crossed(g) else previous


class _FilterHandler(EventHandler):
    def event_occurred(self, state, detector: EventFilter, increasing) -> Action:
        raw = detector.raw_detector
        return raw.handler.event_occurred(
            state, raw, detector.filter_type.triggered_increasing
        )

    def reset_state(self, detector: EventFilter, old_state):
        raw = detector.raw_detector
        return raw.handler.reset_state(raw, old_state)


class EventFilter(EventDetector):
    """Keep only the increasing or only the decreasing events of a detector.

    The filtered switching function changes sign only at the roots of the raw
    function with the selected polarity.  The raw detector's handler is called
    for these events, always with the selected polarity.

    The filter remembers the last `history_size` transformer switches.  After a
    long propagation, evaluating the filtered function far in the past (in the
    propagation direction) may give a wrong sign.

    Args:
        raw_detector: Detector to filter.
        filter_type: Polarity of the events to keep.
        history_size: Number of transformer switches remembered.
        **kwargs: Detector settings, by default those of the raw detector.
    """

    def __init__(
        self,
        raw_detector: EventDetector,
        filter_type: FilterType,
        history_size: int = HISTORY_SIZE,
        **kwargs,
    ):
        kwargs.setdefault("max_check", raw_detector.max_check_interval)
        kwargs.setdefault("threshold", raw_detector.threshold)
        kwargs.setdefault("max_iter", raw_detector.max_iteration_count)
        kwargs.setdefault("handler", _FilterHandler())
        super().__init__(**kwargs)
        self.raw_detector = raw_detector
        self.filter_type = filter_type
        self._history = TransformerHistory(history_size)

    def _after_copy(self):
        self._history = self._history.copy()

    def init(self, initial_state: TrajectoryState, target: float):
        super().init(initial_state, target)
        self.raw_detector.init(initial_state, target)
        self._history.reset(forward=target >= initial_state.time)

    def finish(self, final_state: TrajectoryState):
        super().finish(final_state)
        self.raw_detector.finish(final_state)

    def g(self, state: TrajectoryState) -> float:
        raw_g = self.raw_detector.g(state)
        history = self._history

        if history.is_beyond_extreme(state.time):
            # Leading end of the history, check if a root has been crossed
            following = self.filter_type.select_transformer(
                history.latest, raw_g, history.forward
            )
            history.advance(state.time, following)
            return following.transformed(raw_g)

        return history.lookup(state.time).transformed(raw_g)
