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

"""Propagation loop shared by the propagators.

A propagation leg goes from the current state to a target time, one step at a
time.  Each step is handed to the `EventsManager`, which handles the events it
contains and tells the loop whether to continue, stop or restart from a reset
state.  Subclasses only provide the steps themselves.
"""

from __future__ import annotations

import abc
import math
from typing import TYPE_CHECKING

import numpy as np

from ..error import PropagationError
from ..events.action import Action
from ..events.manager import EventsManager
from ..logging import logger
from .types import PropagatorOptions

if TYPE_CHECKING:
    from ..events.detector import EventDetector
    from .interpolator import StepInterpolator
    from .state import TrajectoryState
    from .types import StepHandler

__all__ = ["AbstractPropagator"]


class AbstractPropagator(metaclass=abc.ABCMeta):
    """Base class for propagators with event detection.

    Args:
        initial_state: State to start the first propagation leg from.
        options: Propagator options.
    """

    def __init__(self, initial_state: TrajectoryState, options: PropagatorOptions = None):
        if options is None:
            options = PropagatorOptions()
        self.options = options
        self._state = initial_state
        self.events_manager = EventsManager(
            max_event_resets=options.max_event_resets,
            non_convergence_policy=options.non_convergence_policy,
        )
        self.step_handler: StepHandler = None
        self._stop_time: float = None

    @property
    def state(self) -> TrajectoryState:
        """State at the end of the last propagation leg."""
        return self._state

    def reset_initial_state(self, state: TrajectoryState):
        self._state = state
        self._reset_dynamics(state, derivatives_only=False)

    def register_detector(self, detector: EventDetector):
        """Monitor `detector` during the following propagation legs."""
        self.events_manager.add_detector(detector)

    @property
    def event_detectors(self) -> tuple[EventDetector, ...]:
        return self.events_manager.detectors

    def remove_all_detectors(self):
        self.events_manager.clear()

    def request_reset(
        self,
        time: float,
        new_state: TrajectoryState,
        derivatives_changed: bool = False,
    ):
        """Restart propagation from `new_state`, discarding the rest of the step.

        Args:
            time: Time of the event causing the reset.
            new_state: State to restart from, at `time`.
            derivatives_changed: True if only the dynamics changed and the
                state itself is unchanged.
        """
        if new_state.time != time:
            raise PropagationError(
                f"Reset state at t={new_state.time!r} does not match the event "
                f"time",
                time=time,
            )
        logger.debug(
            "Resetting %s at t=%r",
            "derivatives" if derivatives_changed else "state",
            time,
        )
        self._state = new_state
        self._reset_dynamics(new_state, derivatives_only=derivatives_changed)

    def request_stop(self, time: float):
        """End the current leg once the step ending at `time` is accepted."""
        self._stop_time = time

    def propagate(self, start_or_target: float, target: float = None) -> TrajectoryState:
        """Propagate to `target`, handling events along the way.

        Call as `propagate(target)`, or `propagate(start, target)` to first move
        to `start` without event detection.

        Returns:
            TrajectoryState: The state at `target`, or at the event time if a
            handler stopped the propagation.  Propagation can be resumed by
            calling `propagate` again.
        """
        if target is None:
            start, target = None, start_or_target
        else:
            start = start_or_target

        for t in (start, target):
            if t is not None and not math.isfinite(t):
                raise PropagationError(f"Invalid propagation time {t!r}")

        if start is not None and start != self._state.time:
            self._state = self._basic_propagate(float(start))
            self._reset_dynamics(self._state, derivatives_only=False)

        return self._propagate_leg(float(target))

    def _propagate_leg(self, target: float) -> TrajectoryState:
        state = self._state
        dt = target - state.time
        epsilon = np.spacing(abs(dt))
        forward = dt >= 0
        logger.debug("Propagating from t=%r to t=%r", state.time, target)

        self.events_manager.init(state, target)
        if self.step_handler is not None:
            self.step_handler.init(state, target)
        self._start_leg(state, target)
        self._stop_time = None

        is_last = False
        while not is_last:
            interpolator = self._step(state, target, forward)
            outcome = self.events_manager.accept_step(
                interpolator, step_handler=self._handle_step
            )
            state = outcome.state

            if outcome.action == Action.STOP:
                self.request_stop(state.time)
            elif outcome.action in (Action.RESET_STATE, Action.RESET_DERIVATIVES):
                self.request_reset(
                    state.time,
                    state,
                    derivatives_changed=outcome.action == Action.RESET_DERIVATIVES,
                )
            else:
                remaining = target - state.time
                is_last = remaining < epsilon if forward else remaining > -epsilon
                self._handle_step(outcome.remaining, is_last)

            is_last = is_last or self._stop_time is not None
            self._state = state

        self.events_manager.finish(state)
        logger.debug("Propagation leg ended at t=%r", state.time)
        return state

    def _handle_step(self, interpolator: StepInterpolator, is_last: bool):
        if self.step_handler is not None:
            self.step_handler.handle_step(interpolator, is_last)

    def _start_leg(self, state: TrajectoryState, target: float):
        """Prepare the step generation for a leg starting at `state`."""
        pass

    @abc.abstractmethod
    def _step(
        self, state: TrajectoryState, target: float, forward: bool
    ) -> StepInterpolator:
        """Produce the next step, starting at `state` and not beyond `target`."""

    @abc.abstractmethod
    def _reset_dynamics(self, state: TrajectoryState, derivatives_only: bool):
        """Restart the step generation from `state`."""

    @abc.abstractmethod
    def _basic_propagate(self, t: float) -> TrajectoryState:
        """State at time `t`, without event detection."""
