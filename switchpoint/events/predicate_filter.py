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

import math
from typing import TYPE_CHECKING, Callable

from .action import Action
from .detector import EventDetector
from .handlers import EventHandler
from .transformer import HISTORY_SIZE, Transformer, TransformerHistory

if TYPE_CHECKING:
    from ..propagation.state import TrajectoryState

__all__ = ["EnablingPredicate", "EventEnablingPredicateFilter"]


# predicate(state, raw_detector, raw_g) -> whether events are enabled at state
EnablingPredicate = Callable[["TrajectoryState", EventDetector, float], bool]


def _select_transformer(
    previous: Transformer, previous_g: float, enabled: bool
) -> Transformer:
    # The transformer is only switched where the filtered function does not
    # jump: either keep the sign of g, or keep the sign of the last value.
    T = Transformer
    if enabled:
        # With no history any choice is continuous: PLUS keeps g as is, and
        # MAX below gives a constant sign, which never counts as a crossing.
        if previous in (T.UNINITIALIZED, T.PLUS):
            return T.PLUS
        if previous is T.MINUS:
            return T.MINUS
        if previous is T.MIN:
            return T.MINUS if previous_g >= 0.0 else T.PLUS
        return T.PLUS if previous_g >= 0.0 else T.MINUS

    if previous in (T.UNINITIALIZED, T.MAX):
        return T.MAX
    if previous is T.MIN:
        return T.MIN
    if previous is T.PLUS:
        return T.MAX if previous_g >= 0.0 else T.MIN
    return T.MIN if previous_g >= 0.0 else T.MAX


class _PredicateFilterHandler(EventHandler):
    def event_occurred(
        self, state, detector: EventEnablingPredicateFilter, increasing
    ) -> Action:
        raw = detector.raw_detector
        if detector._history.latest is Transformer.MINUS:
            increasing = not increasing
        return raw.handler.event_occurred(state, raw, increasing)

    def reset_state(self, detector: EventEnablingPredicateFilter, old_state):
        raw = detector.raw_detector
        return raw.handler.reset_state(raw, old_state)


class EventEnablingPredicateFilter(EventDetector):
    """Gate the events of a detector with an enabling predicate.

    Events of the raw detector are reported only where `predicate(state,
    raw_detector, raw_g)` is true.  Where it is false the filtered switching
    function is replaced by a function of constant sign, chosen so that the
    filtered function stays continuous at enabling status changes.  The raw
    handler receives the polarity of the raw function.

    Like `EventFilter`, only the last `history_size` enabling status changes
    are remembered.

    Args:
        raw_detector: Detector to gate.
        predicate: Enabling predicate.
        history_size: Number of status changes remembered.
        **kwargs: Detector settings, by default those of the raw detector.
    """

    def __init__(
        self,
        raw_detector: EventDetector,
        predicate: EnablingPredicate,
        history_size: int = HISTORY_SIZE,
        **kwargs,
    ):
        kwargs.setdefault("max_check", raw_detector.max_check_interval)
        kwargs.setdefault("threshold", raw_detector.threshold)
        kwargs.setdefault("max_iter", raw_detector.max_iteration_count)
        kwargs.setdefault("handler", _PredicateFilterHandler())
        super().__init__(**kwargs)
        self.raw_detector = raw_detector
        self.predicate = predicate
        self._history = TransformerHistory(history_size)
        self._extreme_g = math.nan

    def _after_copy(self):
        self._history = self._history.copy()
        self._extreme_g = math.nan

    def init(self, initial_state: TrajectoryState, target: float):
        super().init(initial_state, target)
        self.raw_detector.init(initial_state, target)
        self._history.reset(forward=target >= initial_state.time)
        self._extreme_g = math.nan

    def finish(self, final_state: TrajectoryState):
        super().finish(final_state)
        self.raw_detector.finish(final_state)

    def g(self, state: TrajectoryState) -> float:
        raw_g = self.raw_detector.g(state)
        enabled = bool(self.predicate(state, self.raw_detector, raw_g))
        if math.isnan(self._extreme_g):
            self._extreme_g = raw_g if enabled else -raw_g

        history = self._history
        if history.is_beyond_extreme(state.time):
            following = _select_transformer(history.latest, self._extreme_g, enabled)
            history.advance(state.time, following)
            self._extreme_g = raw_g
            return following.transformed(raw_g)

        return history.lookup(state.time).transformed(raw_g)
