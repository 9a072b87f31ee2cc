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

"""Bracketing root solver used to localize zero crossings of switching functions.

The solver works on a bracket `[lo, hi]` known to contain a sign change and
shrinks it with regula falsi steps (Illinois variant), falling back on bisection
whenever the secant estimate falls outside the bracket or fails to shrink it
fast enough.  It returns the final bracket rather than a single abscissa, so the
caller knows the function value on each side of the root.
"""

from __future__ import annotations

import dataclasses
import enum
from typing import Callable

import numpy as np

from ..error import RootNotConvergedError
from ..logging import logger

__all__ = [
    "Interval",
    "NonConvergencePolicy",
    "BracketingSolver",
    "NoBracketingError",
]


class NonConvergencePolicy(enum.Enum):
    """What to do when the iteration budget runs out before convergence.

    In every case except RAISE the best bracket found so far is returned.
    """

    ACCEPT = "accept"
    WARN = "warn"
    RAISE = "raise"


@dataclasses.dataclass(frozen=True)
class Interval:
    """Bracket around a root, with the function values at both ends."""

    left_abscissa: float
    left_value: float
    right_abscissa: float
    right_value: float

    @property
    def width(self) -> float:
        return self.right_abscissa - self.left_abscissa


class NoBracketingError(ValueError):
    """The function has the same strict sign at both ends of the interval."""

    def __init__(self, lo, f_lo, hi, f_hi):
        super().__init__(
            f"Function values at the interval endpoints have the same sign: "
            f"f({lo!r})={f_lo!r}, f({hi!r})={f_hi!r}"
        )
        self.lo = lo
        self.hi = hi
        self.f_lo = f_lo
        self.f_hi = f_hi


def _adjacent(a: float, b: float) -> bool:
    # No floating point number strictly between a and b
    return np.nextafter(a, np.inf) >= b


@dataclasses.dataclass
class BracketingSolver:
    """Bisection hybridized with the Illinois regula falsi method.

    Attributes:
        absolute_accuracy: Maximum width of the returned bracket.
        policy: Behavior when `max_iterations` is exhausted first.
    """

    absolute_accuracy: float
    policy: NonConvergencePolicy = NonConvergencePolicy.WARN

    # Number of consecutive iterations that may fail to halve the bracket before
    # a bisection step is forced.
    max_slow_iterations: int = 2

    def solve_interval(
        self,
        func: Callable[[float], float],
        lo: float,
        hi: float,
        max_iterations: int,
    ) -> Interval:
        """Find a bracket of width at most `absolute_accuracy` around a root.

        Args:
            func: Scalar function to find a root of.
            lo: Lower end of the search interval.
            hi: Upper end of the search interval, `hi >= lo`.
            max_iterations: Maximum number of refinement iterations.

        Returns:
            Interval: The final bracket. When the function evaluates exactly to
            zero the bracket collapses to that single abscissa. When the
            interval becomes narrower than the floating point resolution the
            two adjacent representable abscissae are returned.

        Raises:
            NoBracketingError: If the function does not change sign on [lo, hi].
            RootNotConvergedError: If the iteration budget is exhausted and the
                policy is `NonConvergencePolicy.RAISE`.
        """
        f_lo = func(lo)
        if f_lo == 0.0:
            return Interval(lo, f_lo, lo, f_lo)
        f_hi = func(hi)
        if f_hi == 0.0:
            return Interval(hi, f_hi, hi, f_hi)
        if (f_lo > 0.0) == (f_hi > 0.0):
            raise NoBracketingError(lo, f_lo, hi, f_hi)

        a, fa = lo, f_lo
        b, fb = hi, f_hi
        # Illinois weights, the true function values are kept in fa and fb
        wa, wb = fa, fb
        retained = 0
        slow = 0

        for _ in range(max_iterations):
            if b - a <= self.absolute_accuracy or _adjacent(a, b):
                return Interval(a, fa, b, fb)

            width = b - a
            if slow >= self.max_slow_iterations:
                x = a + 0.5 * width
                slow = 0
            else:
                x = b - wb * (b - a) / (wb - wa)
                if not a < x < b:
                    x = a + 0.5 * width

            fx = func(x)
            if fx == 0.0:
                return Interval(x, fx, x, fx)

            if (fx > 0.0) == (fa > 0.0):
                a, fa, wa = x, fx, fx
                if retained == 1:
                    wb *= 0.5
                retained = 1
            else:
                b, fb, wb = x, fx, fx
                if retained == -1:
                    wa *= 0.5
                retained = -1

            slow = slow + 1 if b - a > 0.5 * width else 0

        interval = Interval(a, fa, b, fb)
        if b - a <= self.absolute_accuracy or _adjacent(a, b):
            return interval
        return self._not_converged(interval, max_iterations)

    def _not_converged(self, interval: Interval, max_iterations: int) -> Interval:
        if self.policy == NonConvergencePolicy.RAISE:
            raise RootNotConvergedError(
                f"Root solver did not converge to {self.absolute_accuracy} "
                f"in {max_iterations} iterations",
                interval=interval,
            )
        if self.policy == NonConvergencePolicy.WARN:
            logger.warning(
                "Root solver did not converge to %s in %d iterations, accepting "
                "bracket [%r, %r]",
                self.absolute_accuracy,
                max_iterations,
                interval.left_abscissa,
                interval.right_abscissa,
            )
        return interval
