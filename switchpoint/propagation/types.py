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
import dataclasses
from typing import TYPE_CHECKING

from dataclasses_json import dataclass_json

from ..events.manager import DEFAULT_MAX_EVENT_RESETS
from ..events.root_solver import NonConvergencePolicy

if TYPE_CHECKING:
    from .interpolator import StepInterpolator
    from .state import TrajectoryState

__all__ = [
    "PropagatorOptions",
    "StepHandler",
]


# Container for options related to the propagator classes.
@dataclass_json
@dataclasses.dataclass
class PropagatorOptions:
    """Options for the propagators.

    The ODE solver options are only used by `NumericalPropagator`.
    """

    # Fixed step of the analytical propagator. If None, each leg is a single
    # step, which is fine as long as the detectors' max check intervals are
    # small enough to sample their switching functions.
    step_size: float = None

    # ODE solver options
    ode_solver_method: str = "auto"  # RK45
    rtol: float = 1e-6  # Relative tolerance for adaptive solvers
    atol: float = 1e-8  # Absolute tolerance for adaptive solvers
    min_step_size: float = None  # Only used by LSODA
    max_step_size: float = None

    # Event handling options
    max_event_resets: int = DEFAULT_MAX_EVENT_RESETS  # RESET_EVENTS rescans per step
    non_convergence_policy: NonConvergencePolicy = NonConvergencePolicy.WARN

    def __repr__(self) -> str:
        return (
            f"PropagatorOptions("
            f"step_size={self.step_size}, "
            f"ode_solver_method={self.ode_solver_method}, "
            f"rtol={self.rtol}, "
            f"atol={self.atol}, "
            f"min_step_size={self.min_step_size}, "
            f"max_step_size={self.max_step_size}, "
            f"max_event_resets={self.max_event_resets}, "
            f"non_convergence_policy={self.non_convergence_policy.value}"
            f")"
        )


class StepHandler(metaclass=abc.ABCMeta):
    """Callback receiving every accepted part of a propagation leg."""

    def init(self, initial_state: TrajectoryState, target: float):
        pass

    @abc.abstractmethod
    def handle_step(self, interpolator: StepInterpolator, is_last: bool):
        pass
