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

import functools
import math
from typing import TYPE_CHECKING, Callable

from ..logging import logger
from .base import AbstractPropagator
from .interpolator import ModelStepInterpolator

if TYPE_CHECKING:
    from .state import TrajectoryState
    from .types import PropagatorOptions

__all__ = ["AnalyticalPropagator"]


class AnalyticalPropagator(AbstractPropagator):
    """Propagator for trajectories known in closed form.

    Args:
        model: Function `model(reference_state, t) -> TrajectoryState` giving
            the state at time `t` of the trajectory passing through
            `reference_state`.
        initial_state: State at the start of propagation, also the first
            reference state of the model.
        options: Propagator options. Only `step_size` is used, see
            `PropagatorOptions`.

    After a state reset the model is evaluated from the new state, so handlers
    can implement impulsive changes by returning a modified state.
    """

    def __init__(
        self,
        model: Callable[[TrajectoryState, float], TrajectoryState],
        initial_state: TrajectoryState,
        options: PropagatorOptions = None,
    ):
        super().__init__(initial_state, options)
        self.model = model
        self._reference = initial_state

    @property
    def reference_state(self) -> TrajectoryState:
        return self._reference

    def _evaluate(self, t: float) -> TrajectoryState:
        return self.model(self._reference, t)

    def _step(self, state, target, forward):
        step_size = self.options.step_size
        if step_size is None:
            t = target
        else:
            t = state.time + math.copysign(step_size, target - state.time)
            dt = target - state.time
            if dt == 0.0 or (forward != (t <= target)):
                # Last step of the leg
                t = target

        current = self._evaluate(t)
        logger.debug("Analytical step from t=%r to t=%r", state.time, t)
        return ModelStepInterpolator(
            forward,
            state,
            current,
            functools.partial(self.model, self._reference),
        )

    def _reset_dynamics(self, state, derivatives_only):
        self._reference = state

    def _basic_propagate(self, t):
        return self._evaluate(t)
