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

"""Propagation of ODEs with the SciPy integrators.

The solver takes one adaptive step at a time, and each step is passed to the
events manager along with the dense output of the solver, so that switching
functions are evaluated on the continuous extension of the solution.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable

import numpy as np
import scipy.integrate

from ..error import PropagationError
from ..logging import logger
from .base import AbstractPropagator
from .interpolator import DenseStepInterpolator, ModelStepInterpolator
from .state import TrajectoryState, make_ravel

if TYPE_CHECKING:
    from .types import PropagatorOptions

__all__ = ["NumericalPropagator"]


class NumericalPropagator(AbstractPropagator):
    """Propagator integrating `dy/dt = rhs(t, y)`.

    Args:
        rhs: Time derivative `rhs(t, y)`, where `y` is an array or a pytree of
            arrays. Must return a pytree with the same structure as `y`.
        initial_state: State at the start of propagation.
        options: Propagator options. The ODE solver options are used, see
            `PropagatorOptions`.

    Raises:
        ValueError: If the ODE solver method is not supported.
    """

    supported_methods = {
        "auto": "RK45",
        "non-stiff": "RK45",
        "stiff": "BDF",
        "RK45": "RK45",
        "RK23": "RK23",
        "DOP853": "DOP853",
        "Radau": "Radau",
        "BDF": "BDF",
        "LSODA": "LSODA",
    }

    def __init__(
        self,
        rhs: Callable[[float, Any], Any],
        initial_state: TrajectoryState,
        options: PropagatorOptions = None,
    ):
        super().__init__(initial_state, options)
        self.rhs = rhs

        try:
            self.method = self.supported_methods[self.options.ode_solver_method]
        except KeyError:
            raise ValueError(
                f"Invalid method '{self.options.ode_solver_method}' for SciPy ODE "
                f"solver. Must be one of {list(self.supported_methods.keys())}"
            )

        _, self._ravel, self._unravel = make_ravel(initial_state.y)
        self._solver = None
        self._state = self._with_derivative(initial_state)

    @property
    def solver_options(self) -> dict:
        opts = {
            "rtol": self.options.rtol,
            "atol": self.options.atol,
            "max_step": self.options.max_step_size or np.inf,
        }
        if self.method == "LSODA":
            opts["min_step"] = self.options.min_step_size or 0.0
        return opts

    def flat_rhs(self, t: float, y: np.ndarray) -> np.ndarray:
        return self._ravel(self.rhs(t, self._unravel(y)))

    def _with_derivative(self, state: TrajectoryState) -> TrajectoryState:
        y = self._ravel(state.y)
        return TrajectoryState(
            state.time, self._unravel(y), self._unravel(self.flat_rhs(state.time, y))
        )

    def _start_leg(self, state, target):
        self._build_solver(state, target)

    def _build_solver(self, state: TrajectoryState, target: float):
        if state.time == target:
            self._solver = None
            return
        solver_cls = getattr(scipy.integrate, self.method)
        self._solver = solver_cls(
            self.flat_rhs,
            state.time,
            self._ravel(state.y),
            t_bound=target,
            **self.solver_options,
        )

    def _step(self, state, target, forward):
        if self._solver is None:
            self._build_solver(state, target)
        if self._solver is None:
            # Zero-length leg, extrapolated so that g can be sampled past the start
            return ModelStepInterpolator(
                forward, state, state, lambda t: state.shifted_by(t - state.time)
            )

        message = self._solver.step()
        if self._solver.status == "failed":
            raise PropagationError(
                f"ODE solver {self.method} failed: {message}", time=state.time
            )

        t, y = self._solver.t, self._solver.y
        current = TrajectoryState(
            t, self._unravel(y), self._unravel(self.flat_rhs(t, y))
        )
        logger.debug("%s step from t=%r to t=%r", self.method, state.time, t)
        return DenseStepInterpolator(
            forward,
            state,
            current,
            self._solver.dense_output(),
            self._unravel,
            self.flat_rhs,
        )

    def _reset_dynamics(self, state, derivatives_only):
        # Rebuilt from the reset state on the next step
        self._solver = None

    def _basic_propagate(self, t):
        state = self._state
        if t == state.time:
            return state
        sol = scipy.integrate.solve_ivp(
            self.flat_rhs,
            (state.time, t),
            self._ravel(state.y),
            method=self.method,
            **self.solver_options,
        )
        if not sol.success:
            raise PropagationError(
                f"ODE solver {self.method} failed: {sol.message}", time=state.time
            )
        return self._with_derivative(TrajectoryState(t, self._unravel(sol.y[:, -1])))
