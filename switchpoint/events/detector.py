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

"""Event detectors: switching functions with their search settings.

A detector pairs a scalar switching function `g(state)` with the parameters
controlling how its zero crossings are searched for:

- `max_check_interval`: largest time interval between two evaluations of g.
  Sign changes occurring twice within this interval may be missed.
- `threshold`: convergence threshold on the event time.
- `max_iteration_count`: iteration budget of the root solver.

Detectors are reconfigured by copy with the `with_*` methods, e.g.

    detector = FunctionalDetector(g).with_threshold(1e-9).with_handler(handler)
"""

from __future__ import annotations

import abc
import copy
import dataclasses
from typing import TYPE_CHECKING, Callable, Union

from dataclasses_json import dataclass_json

from .handlers import EventHandler, StopOnEvent

if TYPE_CHECKING:
    from ..propagation.state import TrajectoryState

__all__ = [
    "DEFAULT_MAX_CHECK",
    "DEFAULT_THRESHOLD",
    "DEFAULT_MAX_ITER",
    "AdaptableInterval",
    "ConstantInterval",
    "FunctionInterval",
    "as_interval",
    "DetectorSettings",
    "EventDetector",
    "FunctionalDetector",
    "NegateDetector",
]


DEFAULT_MAX_CHECK = 600.0
DEFAULT_THRESHOLD = 1.0e-6
DEFAULT_MAX_ITER = 100


class AdaptableInterval(metaclass=abc.ABCMeta):
    """Maximum checking interval, possibly depending on the current state."""

    @abc.abstractmethod
    def current_interval(self, state: TrajectoryState, is_forward: bool) -> float:
        """Largest time step allowed between two evaluations of g from `state`."""


@dataclasses.dataclass(frozen=True)
class ConstantInterval(AdaptableInterval):
    value: float

    def current_interval(self, state, is_forward=True) -> float:
        return self.value


@dataclasses.dataclass(frozen=True)
class FunctionInterval(AdaptableInterval):
    func: Callable[[TrajectoryState, bool], float]

    def current_interval(self, state, is_forward=True) -> float:
        return self.func(state, is_forward)


def as_interval(
    max_check: Union[float, AdaptableInterval, Callable]
) -> AdaptableInterval:
    """Convert a float or a callable `(state, is_forward) -> float` to an interval."""
    if isinstance(max_check, AdaptableInterval):
        return max_check
    if callable(max_check):
        return FunctionInterval(max_check)
    max_check = float(max_check)
    if not max_check > 0.0:
        raise ValueError(f"max_check must be strictly positive, got {max_check}")
    return ConstantInterval(max_check)


@dataclass_json
@dataclasses.dataclass(frozen=True)
class DetectorSettings:
    """Serializable search settings shared by several detectors."""

    max_check: float = DEFAULT_MAX_CHECK
    threshold: float = DEFAULT_THRESHOLD
    max_iter: int = DEFAULT_MAX_ITER


class EventDetector(metaclass=abc.ABCMeta):
    """Base class for all event detectors.

    Subclasses implement `g`.  The sign convention is free: an event is a sign
    change of g in either direction, reported to the handler as increasing or
    decreasing with respect to physical time.

    Args:
        max_check: Maximum checking interval, a positive float, an
            `AdaptableInterval` or a callable `(state, is_forward) -> float`.
        threshold: Convergence threshold on the event time.
        max_iter: Maximum number of root solver iterations.
        handler: Event handler, `StopOnEvent` if not given.
    """

    def __init__(
        self,
        max_check=DEFAULT_MAX_CHECK,
        threshold: float = DEFAULT_THRESHOLD,
        max_iter: int = DEFAULT_MAX_ITER,
        handler: EventHandler = None,
    ):
        threshold = float(threshold)
        if not threshold > 0.0:
            raise ValueError(f"threshold must be strictly positive, got {threshold}")
        max_iter = int(max_iter)
        if max_iter < 1:
            raise ValueError(f"max_iter must be at least 1, got {max_iter}")

        self._max_check = as_interval(max_check)
        self._threshold = threshold
        self._max_iter = max_iter
        self._handler = handler if handler is not None else StopOnEvent()

    @property
    def max_check_interval(self) -> AdaptableInterval:
        return self._max_check

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def max_iteration_count(self) -> int:
        return self._max_iter

    @property
    def handler(self) -> EventHandler:
        return self._handler

    @property
    def settings(self) -> DetectorSettings:
        """Current settings, when the checking interval is constant."""
        if not isinstance(self._max_check, ConstantInterval):
            raise TypeError("Detector settings require a constant max_check interval")
        return DetectorSettings(
            max_check=self._max_check.value,
            threshold=self._threshold,
            max_iter=self._max_iter,
        )

    def init(self, initial_state: TrajectoryState, target: float):
        """Prepare for a propagation leg from `initial_state` to `target`."""
        self._handler.init(initial_state, target, self)

    @abc.abstractmethod
    def g(self, state: TrajectoryState) -> float:
        """Switching function, whose sign changes define the events."""

    def finish(self, final_state: TrajectoryState):
        """Called once at the end of a propagation leg."""
        self._handler.finish(final_state, self)

    def with_max_check(self, max_check) -> EventDetector:
        return self._replace(_max_check=as_interval(max_check))

    def with_threshold(self, threshold: float) -> EventDetector:
        if not threshold > 0.0:
            raise ValueError(f"threshold must be strictly positive, got {threshold}")
        return self._replace(_threshold=float(threshold))

    def with_max_iter(self, max_iter: int) -> EventDetector:
        if max_iter < 1:
            raise ValueError(f"max_iter must be at least 1, got {max_iter}")
        return self._replace(_max_iter=int(max_iter))

    def with_handler(self, handler: EventHandler) -> EventDetector:
        return self._replace(_handler=handler)

    def with_settings(self, settings: DetectorSettings) -> EventDetector:
        return (
            self.with_max_check(settings.max_check)
            .with_threshold(settings.threshold)
            .with_max_iter(settings.max_iter)
        )

    def _replace(self, **attributes) -> EventDetector:
        new = copy.copy(self)
        for name, value in attributes.items():
            setattr(new, name, value)
        new._after_copy()
        return new

    def _after_copy(self):
        """Hook for subclasses owning mutable state that must not be shared
        between a detector and its reconfigured copies."""
        pass


class FunctionalDetector(EventDetector):
    """Detector wrapping a plain function `g(state) -> float`."""

    def __init__(self, function: Callable[[TrajectoryState], float], **kwargs):
        super().__init__(**kwargs)
        self.function = function

    def g(self, state):
        return self.function(state)

    def with_function(self, function) -> FunctionalDetector:
        return self._replace(function=function)


class NegateDetector(EventDetector):
    """Reverse the sign of another detector's switching function.

    The settings default to those of the negated detector.  Increasing events of
    the original become decreasing events of the negated one.
    """

    def __init__(self, original: EventDetector, handler: EventHandler = None, **kwargs):
        kwargs.setdefault("max_check", original.max_check_interval)
        kwargs.setdefault("threshold", original.threshold)
        kwargs.setdefault("max_iter", original.max_iteration_count)
        super().__init__(handler=handler, **kwargs)
        self.original = original

    def init(self, initial_state, target):
        super().init(initial_state, target)
        self.original.init(initial_state, target)

    def finish(self, final_state):
        super().finish(final_state)
        self.original.finish(final_state)

    def g(self, state):
        return -self.original.g(state)
