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

import bisect
from typing import TYPE_CHECKING, NamedTuple

from .detector import EventDetector

if TYPE_CHECKING:
    from ..propagation.state import TrajectoryState

__all__ = ["EventDate", "DateDetector"]


DEFAULT_MIN_GAP = 1.0


class EventDate(NamedTuple):
    time: float
    # Whether g increases through this date
    increasing: bool


class DateDetector(EventDetector):
    """Detector triggering events at a list of dates.

    The switching function is built from the closest event date: it is the
    signed time distance to that date, with alternating polarity from one date
    to the next, which keeps it continuous midway between dates.  Dates can
    be added during propagation (typically by another detector's handler), but
    only before the first or after the last known date.

    Args:
        *dates: Initial event dates.
        min_gap: Minimum time between two event dates.
        **kwargs: Detector settings. The default maximum checking interval is
            half the minimum gap.
    """

    def __init__(self, *dates: float, min_gap: float = DEFAULT_MIN_GAP, **kwargs):
        kwargs.setdefault("max_check", 0.5 * min_gap)
        super().__init__(**kwargs)
        self.min_gap = min_gap
        self._dates: list[EventDate] = []
        for t in dates:
            self.add_event_date(t)

    def _after_copy(self):
        self._dates = list(self._dates)

    @property
    def dates(self) -> list[float]:
        return [d.time for d in self._dates]

    def add_event_date(self, t: float):
        """Add an event date before the first or after the last known date.

        Raises:
            ValueError: If the date is between known dates or closer than
                `min_gap` to the first or last one.
        """
        t = float(t)
        if not self._dates:
            self._dates.append(EventDate(t, True))
            return

        first, last = self._dates[0], self._dates[-1]
        if t >= last.time + self.min_gap:
            self._dates.append(EventDate(t, not last.increasing))
        elif t <= first.time - self.min_gap:
            self._dates.insert(0, EventDate(t, not first.increasing))
        else:
            raise ValueError(
                f"Event date {t} is too close to known dates or between them "
                f"(range [{first.time}, {last.time}], minimum gap {self.min_gap})"
            )

    def _closest(self, t: float) -> EventDate:
        times = [d.time for d in self._dates]
        i = bisect.bisect_left(times, t)
        if i == 0:
            return self._dates[0]
        if i == len(times):
            return self._dates[-1]
        before, after = self._dates[i - 1], self._dates[i]
        return before if t - before.time <= after.time - t else after

    def g(self, state: TrajectoryState) -> float:
        if not self._dates:
            return -1.0
        event = self._closest(state.time)
        if event.increasing:
            return state.time - event.time
        return event.time - state.time
