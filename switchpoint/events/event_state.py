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

"""Per-detector root search bookkeeping.

An `EventState` tracks the sign of one detector's switching function along the
propagation, looks for sign changes within each accepted step and localizes
them with the bracketing root solver.  It is driven by the `EventsManager`,
which coordinates several event states so that events are handled in
chronological order.

Times are plain floats.  Whenever a time has to be moved by "the smallest
amount", the next representable float in the propagation direction is used.
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, NamedTuple

import numpy as np

from ..error import EventsInternalError, PropagationError, ResetStateError
from ..logging import logger
from .action import Action
from .root_solver import BracketingSolver, NonConvergencePolicy, NoBracketingError

if TYPE_CHECKING:
    from ..propagation.interpolator import StepInterpolator
    from ..propagation.state import TrajectoryState
    from .detector import EventDetector

__all__ = ["EventEpoch", "EventOccurrence", "EventState"]


class EventEpoch:
    """Counter bumped every time an event is accepted.

    Handlers may change the definition of any switching function when they are
    called, so cached values of g are only valid for the epoch in which they
    were computed.
    """

    def __init__(self):
        self.value = 0

    def bump(self) -> int:
        self.value += 1
        return self.value


class EventOccurrence(NamedTuple):
    """Outcome of handling one event."""

    action: Action
    # State to continue from, replaced by the handler on RESET_STATE
    new_state: TrajectoryState
    # Time at which propagation must end on STOP, just past the root
    stop_time: float
    # Direction of the crossing with respect to physical time
    increasing: bool


class EventState:
    """Root search state of one event detector over a propagation leg.

    Args:
        detector: The monitored event detector.
        epoch: Shared counter invalidating cached g values, owned by the
            events manager.
        non_convergence_policy: What the root solver does when the iteration
            budget of the detector is exhausted.
    """

    def __init__(
        self,
        detector: EventDetector,
        epoch: EventEpoch = None,
        non_convergence_policy: NonConvergencePolicy = NonConvergencePolicy.WARN,
    ):
        self.detector = detector
        self.epoch = epoch if epoch is not None else EventEpoch()
        self.non_convergence_policy = non_convergence_policy

        # Cache of the last evaluated value of g
        self._last_t = -math.inf
        self._last_epoch = -1
        self._last_g = math.nan

        # Start of the search interval and sign of g there
        self.t0: float = None
        self.g0 = math.nan
        self.g0_positive = True

        self.pending_event = False
        self.pending_event_time: float = None
        self.stop_time: float = None

        # Time and value of g just after the last handled event
        self.after_event: float = None
        self.after_g = math.nan

        # Events earlier than this time are already handled
        self.earliest_time_considered: float = None

        self.forward = True
        # Direction of the last crossing, with respect to the propagation direction
        self.increasing = True

    def __repr__(self):
        return (
            f"{type(self).__name__}(detector={self.detector!r}, t0={self.t0!r}, "
            f"pending_event_time={self.pending_event_time!r})"
        )

    @property
    def event_time(self) -> float:
        """Time of the pending event, or None if there is none."""
        return self.pending_event_time

    def init(self, initial_state: TrajectoryState, target: float):
        """Prepare for a new propagation leg."""
        self.detector.init(initial_state, target)
        self._last_t = -math.inf
        self._last_epoch = -1
        self._last_g = math.nan
        self.pending_event = False
        self.pending_event_time = None
        self.earliest_time_considered = None

    def finish(self, final_state: TrajectoryState):
        self.detector.finish(final_state)

    def _g(self, state: TrajectoryState) -> float:
        if state.time != self._last_t or self.epoch.value != self._last_epoch:
            self._last_t = state.time
            self._last_epoch = self.epoch.value
            self._last_g = float(self.detector.g(state))
        return self._last_g

    def reinitialize_begin(self, interpolator: StepInterpolator):
        """Initialize the search at the start of the first step of a leg."""
        self.forward = interpolator.is_forward
        s0 = interpolator.previous_state
        self.t0 = s0.time
        self.g0 = self._g(s0)
        while self.g0 == 0.0:
            # Zero exactly at the start: look slightly further to get the sign
            # the function takes after this root, so that it is not reported
            dt = self.detector.threshold * (0.5 if self.forward else -0.5)
            start = self.t0 + dt
            if start == self.t0:
                start = self._next_after(start)
            self.t0 = start
            self.g0 = self._g(interpolator.state_at(self.t0))
        self.g0_positive = self.g0 > 0.0
        self.increasing = self.g0_positive

    def evaluate_step(self, interpolator: StepInterpolator) -> bool:
        """Look for the first event in the step covered by `interpolator`.

        Returns:
            bool: True if an event occurs in the step, `event_time` then holds
            its time.
        """
        self.forward = interpolator.is_forward
        s0 = interpolator.previous_state
        s1 = interpolator.current_state
        dt = s1.time - self.t0
        if abs(dt) < self.detector.threshold:
            # Nothing can be resolved on such a small step
            self.pending_event = False
            self.pending_event_time = None
            return False

        ta, ga = self.t0, self.g0
        sb = self._next_check(s0, s1, interpolator)
        while sb is not None:
            tb = sb.time
            gb = self._g(sb)

            if gb == 0.0 or (self.g0_positive != (gb > 0.0)):
                if self._find_root(interpolator, ta, ga, tb, gb):
                    return True
            else:
                ta, ga = tb, gb

            sb = self._next_check(sb, s1, interpolator)

        self.pending_event = False
        self.pending_event_time = None
        return False

    def _next_check(self, done, target, interpolator):
        if done is target:
            return None
        dt = target.time - done.time
        max_check = self.detector.max_check_interval.current_interval(
            done, self.forward
        )
        n = max(1, math.ceil(abs(dt) / max_check))
        if n == 1:
            return target
        return interpolator.state_at(done.time + dt / n)

    def _find_root(
        self,
        interpolator: StepInterpolator,
        ta: float,
        ga: float,
        tb: float,
        gb: float,
    ) -> bool:
        """Localize the first root in [ta, tb], a bracket with a sign change.

        Returns:
            bool: True if a genuine crossing was found.  Roots where g touches
            zero without changing sign are skipped.
        """
        self._check(
            ga == 0.0 or gb == 0.0 or (ga > 0.0 and gb < 0.0) or (ga < 0.0 and gb > 0.0)
        )

        convergence = self.detector.threshold
        max_iterations = self.detector.max_iteration_count
        solver = BracketingSolver(convergence, policy=self.non_convergence_policy)

        loop_t, loop_g = ta, ga
        # Event time, just at or before the actual root
        before_root_t, before_root_g = None, math.nan
        # Time on the other side of the root, initialized so that the loop
        # below runs at least once
        after_root_t, after_root_g = ta, 0.0

        # Conditions the root solver cannot handle
        if ta == tb:
            # Both non-zero but times are identical, this follows a reset
            before_root_t, before_root_g = ta, ga
            after_root_t = self._shifted_by(before_root_t, convergence)
            after_root_g = self._g(interpolator.state_at(after_root_t))
        elif ga != 0.0 and gb == 0.0:
            # Look past tb by up to one convergence threshold for the next sign
            before_root_t, before_root_g = tb, gb
            after_root_t = self._shifted_by(before_root_t, convergence)
            after_root_g = self._g(interpolator.state_at(after_root_t))
        elif ga != 0.0:
            new_ga = self._g(interpolator.state_at(ta))
            if (ga > 0.0) != (new_ga > 0.0):
                # The sign changed at ta since g0 was computed, typically
                # because an event handler reset the state or changed g
                next_t = self._min_time(self._shifted_by(ta, convergence), tb)
                next_g = self._g(interpolator.state_at(next_t))
                if (next_g > 0.0) == self.g0_positive:
                    # The root moved less than one threshold later, keep
                    # searching [next_t, tb] for another root
                    loop_t, loop_g = next_t, next_g
                else:
                    before_root_t, before_root_g = ta, new_ga
                    after_root_t, after_root_g = next_t, next_g

        # Skip "fake" roots, where g touches zero without changing sign
        while (
            after_root_g == 0.0 or (after_root_g > 0.0) == self.g0_positive
        ) and self._strictly_before(after_root_t, tb):
            if loop_g == 0.0:
                # Handle the root at loop_t first
                before_root_t, before_root_g = loop_t, loop_g
                after_root_t = self._min_time(
                    self._shifted_by(before_root_t, convergence), tb
                )
                after_root_g = self._g(interpolator.state_at(after_root_t))
            else:
                (
                    before_root_t,
                    before_root_g,
                    after_root_t,
                    after_root_g,
                ) = self._solve(solver, interpolator, loop_t, tb, max_iterations)

            if before_root_t == after_root_t:
                # Bracket narrower than one ulp
                after_root_t = self._next_after(after_root_t)
                after_root_g = self._g(interpolator.state_at(after_root_t))

            # The loop must make progress
            self._check(
                (self.forward and after_root_t > before_root_t)
                or (not self.forward and after_root_t < before_root_t)
            )

            loop_t, loop_g = after_root_t, after_root_g

        if after_root_g == 0.0 or (after_root_g > 0.0) == self.g0_positive:
            # No genuine crossing within this step
            return False

        self._check(before_root_t is not None and not math.isnan(before_root_g))
        self.increasing = not self.g0_positive
        self.pending_event_time = before_root_t
        self.stop_time = before_root_t if before_root_g == 0.0 else after_root_t
        self.pending_event = True
        self.after_event = after_root_t
        self.after_g = after_root_g

        self._check((self.after_g > 0.0) == self.increasing)
        self._check(self.increasing == (gb >= ga))
        return True

    def _solve(self, solver, interpolator, loop_t, tb, max_iterations):
        def f(t):
            return self._g(interpolator.state_at(t))

        try:
            if self.forward:
                interval = solver.solve_interval(f, loop_t, tb, max_iterations)
                return (
                    interval.left_abscissa,
                    interval.left_value,
                    interval.right_abscissa,
                    interval.right_value,
                )
            interval = solver.solve_interval(f, tb, loop_t, max_iterations)
            return (
                interval.right_abscissa,
                interval.right_value,
                interval.left_abscissa,
                interval.left_value,
            )
        except NoBracketingError as exc:
            raise PropagationError(
                "Unable to bracket the root of the switching function, g is not "
                "stable over the step",
                detector=self.detector,
                time=loop_t,
            ) from exc

    def try_advance(
        self, state: TrajectoryState, interpolator: StepInterpolator
    ) -> bool:
        """Try to move the start of the search to `state`.

        This is called when another detector is about to handle an event at
        `state.time`.  A sign change not seen before means this detector has
        an earlier event that must be handled first.

        Returns:
            bool: True if this detector has an event before `state.time`.
        """
        t = state.time
        self._check(
            not self.pending_event or not self._strictly_before(self.pending_event_time, t)
        )

        if self._strictly_before(t, self.earliest_time_considered):
            # An event was just handled, nothing to look for before this time
            me_first = False
        else:
            g = self._g(state)
            if (g > 0.0) == self.g0_positive:
                self.g0 = g
                me_first = False
            else:
                old_pending_event_time = self.pending_event_time
                found_root = self._find_root(interpolator, self.t0, self.g0, t, g)
                me_first = found_root and self.pending_event_time != old_pending_event_time

        if not me_first:
            # Events occurring before t can no longer be found
            self.t0 = t

        return me_first

    def do_event(self, state: TrajectoryState) -> EventOccurrence:
        """Call the handler for the pending event and set up the next search."""
        self._check(self.pending_event)
        self._check(state.time == self.pending_event_time)

        increasing = self.increasing == self.forward
        handler = self.detector.handler
        action = Action(handler.event_occurred(state, self.detector, increasing))

        if action == Action.RESET_STATE:
            new_state = handler.reset_state(self.detector, state)
            if new_state is None:
                raise ResetStateError(detector=self.detector, time=state.time)
        else:
            new_state = state

        logger.debug(
            "Event at t=%r (%s) from %s: %s",
            state.time,
            "increasing" if increasing else "decreasing",
            type(self.detector).__name__,
            action.name,
        )

        self.pending_event = False
        self.pending_event_time = None

        self.earliest_time_considered = self.after_event
        self.t0 = self.after_event
        self.g0 = self.after_g
        self.g0_positive = self.increasing
        self._check(self.g0 == 0.0 or self.g0_positive == (self.g0 > 0.0))

        return EventOccurrence(action, new_state, self.stop_time, increasing)

    def _shifted_by(self, t: float, delta: float) -> float:
        # Shift by at most `delta` in the propagation direction
        if self.forward:
            ret = t + delta
            if ret - t > delta:
                ret = float(np.nextafter(ret, -np.inf))
        else:
            ret = t - delta
            if t - ret > delta:
                ret = float(np.nextafter(ret, np.inf))
        return ret

    def _next_after(self, t: float) -> float:
        return float(np.nextafter(t, np.inf if self.forward else -np.inf))

    def _min_time(self, a: float, b: float) -> float:
        # Earliest of two times in the propagation direction
        if self.forward:
            return a if a <= b else b
        return a if a >= b else b

    def _strictly_before(self, t1: float, t2: float) -> bool:
        if t1 is None or t2 is None:
            return False
        return t1 < t2 if self.forward else t2 < t1

    def _check(self, condition: bool):
        if not condition:
            raise EventsInternalError(detector=self.detector)
