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

"""Logical combinations of detectors.

A detector is "true" where its switching function is positive.  The combined
switching function is the minimum (AND) or the maximum (OR) of the operands.
Only comparisons are involved, so the combined value is always one of the
operand values: rounding noise in an operand close to zero cannot change the
sign of a combination decided by another operand.
"""

from __future__ import annotations

import dataclasses
from typing import TYPE_CHECKING, Callable, Sequence

from .detector import AdaptableInterval, EventDetector, NegateDetector
from .handlers import EventHandler

if TYPE_CHECKING:
    from ..propagation.state import TrajectoryState

__all__ = ["BooleanDetector", "MinimumInterval"]


@dataclasses.dataclass(frozen=True)
class MinimumInterval(AdaptableInterval):
    """Smallest of several maximum checking intervals."""

    intervals: tuple[AdaptableInterval, ...]

    def current_interval(self, state, is_forward=True) -> float:
        return min(i.current_interval(state, is_forward) for i in self.intervals)


class BooleanDetector(EventDetector):
    """Detector whose switching function combines those of other detectors.

    Use `and_combine`, `or_combine` and `not_combine` rather than the
    constructor.  The handlers of the operands are never called; events are
    reported to the handler of the combined detector.

    The default settings are the most demanding ones of the operands: smallest
    checking interval, smallest threshold and largest iteration budget.
    """

    def __init__(
        self,
        detectors: Sequence[EventDetector],
        operator: Callable[..., float],
        handler: EventHandler = None,
        **kwargs,
    ):
        if len(detectors) == 0:
            raise ValueError("BooleanDetector requires at least one detector")
        kwargs.setdefault(
            "max_check",
            MinimumInterval(tuple(d.max_check_interval for d in detectors)),
        )
        kwargs.setdefault("threshold", min(d.threshold for d in detectors))
        kwargs.setdefault("max_iter", max(d.max_iteration_count for d in detectors))
        super().__init__(handler=handler, **kwargs)
        self.detectors = tuple(detectors)
        self.operator = operator

    @classmethod
    def and_combine(cls, *detectors: EventDetector, **kwargs) -> BooleanDetector:
        """Positive where every operand is positive."""
        return cls(_flatten(detectors), min, **kwargs)

    @classmethod
    def or_combine(cls, *detectors: EventDetector, **kwargs) -> BooleanDetector:
        """Positive where at least one operand is positive."""
        return cls(_flatten(detectors), max, **kwargs)

    @staticmethod
    def not_combine(detector: EventDetector, **kwargs) -> NegateDetector:
        """Positive where the operand is negative."""
        return NegateDetector(detector, **kwargs)

    def init(self, initial_state: TrajectoryState, target: float):
        super().init(initial_state, target)
        for detector in self.detectors:
            detector.init(initial_state, target)

    def finish(self, final_state: TrajectoryState):
        super().finish(final_state)
        for detector in self.detectors:
            detector.finish(final_state)

    def g(self, state: TrajectoryState) -> float:
        return self.operator(d.g(state) for d in self.detectors)


def _flatten(detectors) -> tuple[EventDetector, ...]:
    # Accept both and_combine(a, b) and and_combine([a, b])
    if len(detectors) == 1 and not isinstance(detectors[0], EventDetector):
        return tuple(detectors[0])
    return tuple(detectors)
