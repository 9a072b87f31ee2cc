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

"""Step acceptance: chronological handling of all events within one step.

For each step produced by the propagator, the manager asks every event state
for its first event, then repeatedly:

1. picks the earliest pending event (ties broken by registration order),
2. lets every other event state advance to that time, which may reveal an
   earlier event to handle first,
3. calls the handler of the event and acts on the returned `Action`:
   CONTINUE rescans the remainder of the step for the detector that fired,
   RESET_EVENTS rescans it for every detector, STOP and the RESET_* actions
   truncate the step and hand control back to the propagator.

Once no pending event remains, every event state advances to the end of the
step.  A new sign change at that point (e.g. a handler changed another
detector's g function) restarts the loop.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, NamedTuple, Optional

from ..error import TooManyEventResetsError
from ..logging import logger
from .action import Action
from .event_state import EventEpoch, EventState
from .root_solver import NonConvergencePolicy

if TYPE_CHECKING:
    from ..propagation.interpolator import StepInterpolator
    from ..propagation.state import TrajectoryState
    from .detector import EventDetector

__all__ = ["AppliedEvent", "StepOutcome", "EventsManager"]


DEFAULT_MAX_EVENT_RESETS = 100


class AppliedEvent(NamedTuple):
    """One event handled during a step, in processing order."""

    detector: EventDetector
    state: TrajectoryState
    increasing: bool
    action: Action

    @property
    def time(self) -> float:
        return self.state.time


class StepOutcome(NamedTuple):
    # State at which the accepted part of the step ends. On RESET_STATE this is
    # the replacement state returned by the handler.
    state: TrajectoryState

    # Action that ended the step early, None if the whole step was accepted
    action: Optional[Action]

    # Events handled during the step, in processing order
    events: list[AppliedEvent]

    # Interpolator restricted to the last part of the step not yet passed to a
    # step handler. None if the step was truncated.
    remaining: Optional[StepInterpolator] = None


class EventsManager:
    """Owns the event states of all registered detectors.

    Args:
        max_event_resets: Maximum number of RESET_EVENTS rescans within a
            single step.
        non_convergence_policy: Root solver behavior when a detector's
            iteration budget is exhausted.
    """

    def __init__(
        self,
        max_event_resets: int = DEFAULT_MAX_EVENT_RESETS,
        non_convergence_policy: NonConvergencePolicy = NonConvergencePolicy.WARN,
    ):
        self.max_event_resets = max_event_resets
        self.non_convergence_policy = non_convergence_policy
        self.epoch = EventEpoch()
        self._event_states: list[EventState] = []
        self._states_initialized = False

    @property
    def event_states(self) -> tuple[EventState, ...]:
        return tuple(self._event_states)

    @property
    def detectors(self) -> tuple[EventDetector, ...]:
        return tuple(es.detector for es in self._event_states)

    def add_detector(self, detector: EventDetector) -> EventState:
        event_state = EventState(
            detector,
            epoch=self.epoch,
            non_convergence_policy=self.non_convergence_policy,
        )
        self._event_states.append(event_state)
        return event_state

    def clear(self):
        self._event_states.clear()

    def init(self, initial_state: TrajectoryState, target: float):
        """Start a propagation leg. The search is set up on the first step."""
        for es in self._event_states:
            es.init(initial_state, target)
        self._states_initialized = False

    def finish(self, final_state: TrajectoryState):
        for es in self._event_states:
            es.finish(final_state)

    def _poll(self, occurring: list[EventState], forward: bool) -> EventState:
        # Earliest event in the propagation direction, then registration order
        sign = 1.0 if forward else -1.0
        first = min(
            occurring,
            key=lambda es: (sign * es.event_time, self._event_states.index(es)),
        )
        occurring.remove(first)
        return first

    @staticmethod
    def _push(occurring: list[EventState], event_state: EventState):
        if event_state not in occurring:
            occurring.append(event_state)

    def accept_step(
        self,
        interpolator: StepInterpolator,
        step_handler: Callable[[StepInterpolator, bool], None] = None,
    ) -> StepOutcome:
        """Handle all events within the step covered by `interpolator`.

        Args:
            interpolator: Dense interpolator over the step to accept.
            step_handler: Optional callback `(interpolator, is_last)` called
                for each part of the step ending at a handled event.  The last
                part of a fully accepted step is returned in the outcome
                instead, since only the propagator knows whether it ends the
                leg.

        Returns:
            StepOutcome: Where the accepted part of the step ends and why.
        """
        forward = interpolator.is_forward
        previous = interpolator.previous_state
        current = interpolator.current_state
        events: list[AppliedEvent] = []

        if not self._states_initialized:
            for es in self._event_states:
                es.reinitialize_begin(interpolator)
            self._states_initialized = True

        occurring = [es for es in self._event_states if es.evaluate_step(interpolator)]

        restricted = interpolator
        resets = 0
        while True:
            while occurring:
                current_event = self._poll(occurring, forward)
                event_state = restricted.state_at(current_event.event_time)

                earlier = None
                for es in self._event_states:
                    if es is not current_event and es.try_advance(
                        event_state, interpolator
                    ):
                        earlier = es
                        break
                if earlier is not None:
                    # Another detector has an event to handle first
                    self._push(occurring, current_event)
                    self._push(occurring, earlier)
                    continue

                occurrence = current_event.do_event(event_state)
                self.epoch.bump()
                action = occurrence.action
                events.append(
                    AppliedEvent(
                        current_event.detector,
                        event_state,
                        occurrence.increasing,
                        action,
                    )
                )

                if action == Action.STOP:
                    # End just past the root, so that a later propagation
                    # restarting from here does not see this event again
                    stop_state = interpolator.state_at(occurrence.stop_time)
                    restricted = restricted.restrict_to(previous, stop_state)
                    if step_handler is not None:
                        step_handler(restricted, True)
                    return StepOutcome(stop_state, action, events)

                restricted = restricted.restrict_to(previous, event_state)
                if step_handler is not None:
                    step_handler(restricted, False)

                if action in (Action.RESET_STATE, Action.RESET_DERIVATIVES):
                    return StepOutcome(occurrence.new_state, action, events)

                previous = event_state
                restricted = interpolator.restrict_to(event_state, current)

                if action == Action.RESET_EVENTS:
                    resets += 1
                    if resets > self.max_event_resets:
                        raise TooManyEventResetsError(
                            self.max_event_resets,
                            detector=current_event.detector,
                            time=event_state.time,
                        )
                    logger.debug(
                        "Rescanning all detectors from t=%r after event reset",
                        event_state.time,
                    )
                    for es in self._event_states:
                        if es in occurring:
                            occurring.remove(es)
                        if es.evaluate_step(restricted):
                            occurring.append(es)
                elif current_event.evaluate_step(restricted):
                    occurring.append(current_event)

            # Last part of the step, after the last event. A handler may have
            # changed the g function of another detector.
            for es in self._event_states:
                if es.try_advance(current, interpolator):
                    occurring.append(es)

            if not occurring:
                break

        return StepOutcome(current, None, events, restricted)
