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

"""Sign transformers applied to a raw switching function by filtering detectors.

A filtering detector replaces g by `transformer.transformed(g)` and switches
transformer right at the roots it wants to hide, so that the filtered function
keeps its sign there.  The switches are recorded in a bounded history, which
lets the filtered function be evaluated again at earlier times, as the root
solver does when it refines a bracket.
"""

from __future__ import annotations

import enum
import math
import sys

__all__ = ["Transformer", "TransformerHistory", "HISTORY_SIZE"]


# Number of transformer switches remembered by filtering detectors
HISTORY_SIZE = 100

_SAFE_MIN = sys.float_info.min


class Transformer(enum.Enum):
    UNINITIALIZED = enum.auto()
    PLUS = enum.auto()
    MINUS = enum.auto()
    MIN = enum.auto()
    MAX = enum.auto()

    def transformed(self, g: float) -> float:
        if self is Transformer.PLUS:
            return g
        if self is Transformer.MINUS:
            return -g
        if self is Transformer.MIN:
            return min(-_SAFE_MIN, -abs(g))
        if self is Transformer.MAX:
            return max(_SAFE_MIN, abs(g))
        return 0.0


class TransformerHistory:
    """Fixed-size history of transformer switches.

    Queries at times older than the oldest remembered switch reuse the oldest
    remembered transformer, which may not be the one that was in effect then.
    This is a documented limitation: the memory used by a filtering detector
    does not grow with the propagation length.
    """

    def __init__(self, size: int = HISTORY_SIZE):
        self.size = size
        self.reset(forward=True)

    def reset(self, forward: bool):
        self.forward = forward
        self.extreme_t = -math.inf if forward else math.inf
        self.transformers = [Transformer.UNINITIALIZED] * self.size
        self.updates = [self.extreme_t] * self.size

    def copy(self) -> TransformerHistory:
        new = TransformerHistory(self.size)
        new.reset(self.forward)
        return new

    def is_beyond_extreme(self, t: float) -> bool:
        """True if `t` is past the latest time seen in the propagation direction."""
        return self.extreme_t < t if self.forward else t < self.extreme_t

    @property
    def latest(self) -> Transformer:
        return self.transformers[-1] if self.forward else self.transformers[0]

    def advance(self, t: float, transformer: Transformer):
        """Move the extreme time to `t`, switching to `transformer` if needed.

        A switch is recorded at the previous extreme time: the new transformer
        is valid on both sides of the root that caused it, and using it from
        the previous extreme keeps the old one away from the root.
        """
        if transformer is not self.latest:
            if self.forward:
                del self.transformers[0]
                del self.updates[0]
                self.transformers.append(transformer)
                self.updates.append(self.extreme_t)
            else:
                self.transformers.pop()
                self.updates.pop()
                self.transformers.insert(0, transformer)
                self.updates.insert(0, self.extreme_t)
        self.extreme_t = t

    def lookup(self, t: float) -> Transformer:
        """Transformer in effect at a time already covered by the history."""
        if self.forward:
            for i in range(self.size - 1, 0, -1):
                if self.updates[i] <= t:
                    return self.transformers[i]
            return self.transformers[0]
        for i in range(self.size - 1):
            if t <= self.updates[i]:
                return self.transformers[i]
        return self.transformers[-1]
