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

from typing import TYPE_CHECKING, NamedTuple

from ..logging import logdata, logger
from .action import Action
from .detector import EventDetector
from .handlers import EventHandler

if TYPE_CHECKING:
    from ..propagation.state import TrajectoryState

__all__ = ["LoggedEvent", "EventsLogger"]


class LoggedEvent(NamedTuple):
    detector: EventDetector
    state: TrajectoryState
    increasing: bool

    @property
    def time(self) -> float:
        return self.state.time


class _LoggingHandler(EventHandler):
    def event_occurred(self, state, detector: _LoggingWrapper, increasing) -> Action:
        monitored = detector.monitored
        detector.events_logger.log_event(monitored, state, increasing)
        return monitored.handler.event_occurred(state, monitored, increasing)

    def reset_state(self, detector: _LoggingWrapper, old_state):
        monitored = detector.monitored
        return monitored.handler.reset_state(monitored, old_state)


class _LoggingWrapper(EventDetector):
    def __init__(self, events_logger: EventsLogger, monitored: EventDetector):
        super().__init__(
            max_check=monitored.max_check_interval,
            threshold=monitored.threshold,
            max_iter=monitored.max_iteration_count,
            handler=_LoggingHandler(),
        )
        self.events_logger = events_logger
        self.monitored = monitored

    def init(self, initial_state, target):
        super().init(initial_state, target)
        self.monitored.init(initial_state, target)

    def finish(self, final_state):
        super().finish(final_state)
        self.monitored.finish(final_state)

    def g(self, state):
        return self.monitored.g(state)


class EventsLogger:
    """Record the events of monitored detectors.

    Wrap each detector with `monitor_detector` before registering it with a
    propagator.  Events are recorded in the order they are handled, before the
    monitored handler runs, so events ending with a STOP or reset are logged
    too.

    A single logger can monitor several detectors, which gives the global
    order in which their events were handled.
    """

    def __init__(self):
        self._logged_events: list[LoggedEvent] = []

    def monitor_detector(self, detector: EventDetector) -> EventDetector:
        """Wrap `detector` so that its events are recorded by this logger."""
        return _LoggingWrapper(self, detector)

    def log_event(self, detector: EventDetector, state, increasing: bool):
        logger.debug(
            "Logged %s event at t=%r",
            "increasing" if increasing else "decreasing",
            state.time,
            **logdata(detector=detector),
        )
        self._logged_events.append(LoggedEvent(detector, state, increasing))

    @property
    def logged_events(self) -> list[LoggedEvent]:
        """Copy of the events recorded so far."""
        return list(self._logged_events)

    def clear_logged_events(self):
        self._logged_events.clear()
