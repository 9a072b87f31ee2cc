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

import dataclasses
from typing import Any, Callable

import numpy as np
from jax import tree_util

__all__ = ["TrajectoryState", "make_ravel"]


@dataclasses.dataclass(frozen=True)
class TrajectoryState:
    """Point of a trajectory.

    Attributes:
        time: Time of the state.
        y: State value, an array or any pytree of arrays.
        ydot: Time derivative of `y` with the same structure, if known.
    """

    time: float
    y: Any = None
    ydot: Any = None

    def shifted_by(self, dt: float) -> TrajectoryState:
        """First order extrapolation of the state by `dt`.

        Without a known derivative only the time is changed.
        """
        if self.ydot is None:
            return dataclasses.replace(self, time=self.time + dt)
        y = tree_util.tree_map(lambda x, xdot: x + dt * xdot, self.y, self.ydot)
        return TrajectoryState(self.time + dt, y, self.ydot)


def make_ravel(pytree) -> tuple[np.ndarray, Callable, Callable]:
    """Flatten a pytree of arrays into a 1D float64 array.

    Returns:
        The flattened value, a function flattening pytrees with the same
        structure, and the inverse function.
    """
    leaves, treedef = tree_util.tree_flatten(pytree)
    shapes = [np.shape(leaf) for leaf in leaves]
    splits = np.cumsum([int(np.prod(shape)) for shape in shapes])[:-1]

    def ravel(tree) -> np.ndarray:
        flat = [np.ravel(np.asarray(x, dtype=np.float64)) for x in tree_util.tree_leaves(tree)]
        if not flat:
            return np.zeros(0)
        return np.concatenate(flat)

    def unravel(x: np.ndarray):
        parts = np.split(np.asarray(x), splits)
        return tree_util.tree_unflatten(
            treedef, [part.reshape(shape) for part, shape in zip(parts, shapes)]
        )

    return ravel(pytree), ravel, unravel
