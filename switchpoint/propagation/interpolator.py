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

import abc
import copy
from typing import TYPE_CHECKING, Callable

from .state import TrajectoryState

if TYPE_CHECKING:
    from scipy.integrate import DenseOutput

__all__ = [
    "StepInterpolator",
    "ModelStepInterpolator",
    "DenseStepInterpolator",
]


class StepInterpolator(metaclass=abc.ABCMeta):
    """Dense interpolation over one accepted propagation step.

    The step goes from `previous_state` to `current_state`.  The interpolator
    may be restricted to a part of the step with `restrict_to`, in which case
    it keeps interpolating with the model of the whole step.
    """

    def __init__(
        self,
        forward: bool,
        previous_state: TrajectoryState,
        current_state: TrajectoryState,
    ):
        self._forward = forward
        self._previous_state = previous_state
        self._current_state = current_state

    @property
    def is_forward(self) -> bool:
        return self._forward

    @property
    def previous_state(self) -> TrajectoryState:
        return self._previous_state

    @property
    def current_state(self) -> TrajectoryState:
        return self._current_state

    def state_at(self, t: float) -> TrajectoryState:
        """Interpolated state at time `t`, usually within the step."""
        if t == self._previous_state.time:
            return self._previous_state
        if t == self._current_state.time:
            return self._current_state
        return self._interpolate(t)

    @abc.abstractmethod
    def _interpolate(self, t: float) -> TrajectoryState:
        pass

    def restrict_to(
        self, previous_state: TrajectoryState, current_state: TrajectoryState
    ) -> StepInterpolator:
        """Copy of the interpolator covering only part of the step."""
        restricted = copy.copy(self)
        restricted._previous_state = previous_state
        restricted._current_state = current_state
        return restricted


class ModelStepInterpolator(StepInterpolator):
    """Interpolator evaluating a closed-form model `model(t) -> state`."""

    def __init__(self, forward, previous_state, current_state, model: Callable):
        super().__init__(forward, previous_state, current_state)
        self.model = model

    def _interpolate(self, t):
        return self.model(t)


class DenseStepInterpolator(StepInterpolator):
    """Interpolator over a step of a scipy ODE solver.

    Args:
        dense_output: Solver dense output over the step.
        unravel: Rebuild the state pytree from a flat array.
        rhs: Flat right hand side `rhs(t, y)`, used for the state derivative.
    """

    def __init__(
        self,
        forward,
        previous_state,
        current_state,
        dense_output: DenseOutput,
        unravel: Callable,
        rhs: Callable,
    ):
        super().__init__(forward, previous_state, current_state)
        self.dense_output = dense_output
        self.unravel = unravel
        self.rhs = rhs

    def _interpolate(self, t):
        y = self.dense_output(t)
        return TrajectoryState(t, self.unravel(y), self.unravel(self.rhs(t, y)))
