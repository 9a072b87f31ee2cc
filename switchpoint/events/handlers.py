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

"""Handlers deciding what happens when an event is confirmed.

A handler is attached to a detector and called by the events manager with the
interpolated state at the event time.  It returns an `Action` telling the
propagator whether to continue, stop, or rewrite the state.
"""

from __future__ import annotations

import abc
from typing import TYPE_CHECKING, NamedTuple

from .action import Action

if TYPE_CHECKING:
    from ..propagation.state import TrajectoryState
    from .detector import EventDetector

__all__ = [
    "EventHandler",
    "ContinueOnEvent",
    "StopOnEvent",
    "StopOnIncreasing",
    "StopOnDecreasing",
    "ResetDerivativesOnEvent",
    "RecordedEvent",
    "RecordAndContinue",
    "CountAndContinue",
    "EventMultipleHandler",
]


class EventHandler(metaclass=abc.ABCMeta):
    """Decision logic invoked when an event is confirmed."""

    def init(
        self,
        initial_state: TrajectoryState,
        target: float,
        detector: EventDetector,
    ):
        """Called once at the start of each propagation leg, before any event.

        Args:
            initial_state: State at the start of the leg.
            target: Target time of the leg.
            detector: The detector this handler is attached to.
        """
        pass

    @abc.abstractmethod
    def event_occurred(
        self,
        state: TrajectoryState,
        detector: EventDetector,
        increasing: bool,
    ) -> Action:
        """Handle an event and choose what to do next.

        Args:
            state: State at the event time.
            detector: The detector that triggered the event.
            increasing: True if g crossed zero from negative to positive in
                physical time, regardless of the propagation direction.

        Returns:
            Action: What the propagator should do next.
        """

    def reset_state(
        self, detector: EventDetector, old_state: TrajectoryState
    ) -> TrajectoryState:
        """Produce the replacement state after a RESET_STATE action.

        The default implementation leaves the state unchanged.
        """
        return old_state

    def finish(self, final_state: TrajectoryState, detector: EventDetector):
        """Called once at the end of each propagation leg."""
        pass


class ContinueOnEvent(EventHandler):
    def event_occurred(self, state, detector, increasing) -> Action:
        return Action.CONTINUE


class StopOnEvent(EventHandler):
    def event_occurred(self, state, detector, increasing) -> Action:
        return Action.STOP


class StopOnIncreasing(EventHandler):
    """Stop on increasing events, ignore decreasing ones."""

    def event_occurred(self, state, detector, increasing) -> Action:
        return Action.STOP if increasing else Action.CONTINUE


class StopOnDecreasing(EventHandler):
    """Stop on decreasing events, ignore increasing ones."""

    def event_occurred(self, state, detector, increasing) -> Action:
        return Action.CONTINUE if increasing else Action.STOP


class ResetDerivativesOnEvent(EventHandler):
    def event_occurred(self, state, detector, increasing) -> Action:
        return Action.RESET_DERIVATIVES


class RecordedEvent(NamedTuple):
    detector: EventDetector
    state: TrajectoryState
    increasing: bool

    @property
    def time(self) -> float:
        return self.state.time


class RecordAndContinue(EventHandler):
    """Record every event and keep propagating.

    Args:
        events: Optional list to append the events to. Sharing a single list
            between several handlers gives the global order in which the
            events were processed.
    """

    def __init__(self, events: list[RecordedEvent] = None):
        self.events = events if events is not None else []

    def event_occurred(self, state, detector, increasing) -> Action:
        self.events.append(RecordedEvent(detector, state, increasing))
        return Action.CONTINUE

    def clear(self):
        self.events.clear()


class CountAndContinue(EventHandler):
    def __init__(self, count: int = 0):
        self.count = count

    def event_occurred(self, state, detector, increasing) -> Action:
        self.count += 1
        return Action.CONTINUE


class EventMultipleHandler(EventHandler):
    """Attach several handlers to a single detector.

    Every handler is called for each event.  The most restrictive action wins,
    with STOP > RESET_STATE > RESET_DERIVATIVES > RESET_EVENTS > CONTINUE.  On
    RESET_STATE the state is passed through `reset_state` of every handler that
    asked for it, in the order they were added.
    """

    def __init__(self, *handlers: EventHandler):
        self.handlers = list(handlers)
        self._reset_requests: list[EventHandler] = []

    def add_handler(self, handler: EventHandler) -> EventMultipleHandler:
        self.handlers.append(handler)
        return self

    def init(self, initial_state, target, detector):
        for handler in self.handlers:
            handler.init(initial_state, target, detector)

    def event_occurred(self, state, detector, increasing) -> Action:
        actions = [h.event_occurred(state, detector, increasing) for h in self.handlers]
        self._reset_requests = [
            h for h, a in zip(self.handlers, actions) if a == Action.RESET_STATE
        ]
        return max(actions, default=Action.CONTINUE)

    def reset_state(self, detector, old_state):
        new_state = old_state
        for handler in self._reset_requests:
            new_state = handler.reset_state(detector, new_state)
        return new_state

    def finish(self, final_state, detector):
        for handler in self.handlers:
            handler.finish(final_state, detector)
