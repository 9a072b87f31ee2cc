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

from .action import Action
from .boolean import BooleanDetector
from .date import DateDetector, EventDate
from .detector import (
    AdaptableInterval,
    ConstantInterval,
    DetectorSettings,
    EventDetector,
    FunctionalDetector,
    FunctionInterval,
    NegateDetector,
)
from .event_state import EventEpoch, EventOccurrence, EventState
from .filters import EventFilter, FilterType
from .handlers import (
    ContinueOnEvent,
    CountAndContinue,
    EventHandler,
    EventMultipleHandler,
    RecordAndContinue,
    RecordedEvent,
    ResetDerivativesOnEvent,
    StopOnDecreasing,
    StopOnEvent,
    StopOnIncreasing,
)
from .logger import EventsLogger, LoggedEvent
from .manager import AppliedEvent, EventsManager, StepOutcome
from .predicate_filter import EnablingPredicate, EventEnablingPredicateFilter
from .root_solver import BracketingSolver, Interval, NonConvergencePolicy
from .shifter import EventShifter

__all__ = [
    "Action",
    "AdaptableInterval",
    "AppliedEvent",
    "BooleanDetector",
    "BracketingSolver",
    "ConstantInterval",
    "ContinueOnEvent",
    "CountAndContinue",
    "DateDetector",
    "DetectorSettings",
    "EnablingPredicate",
    "EventDate",
    "EventDetector",
    "EventEnablingPredicateFilter",
    "EventEpoch",
    "EventFilter",
    "EventHandler",
    "EventMultipleHandler",
    "EventOccurrence",
    "EventShifter",
    "EventState",
    "EventsLogger",
    "EventsManager",
    "FilterType",
    "FunctionalDetector",
    "FunctionInterval",
    "Interval",
    "LoggedEvent",
    "NegateDetector",
    "NonConvergencePolicy",
    "RecordAndContinue",
    "RecordedEvent",
    "ResetDerivativesOnEvent",
    "StepOutcome",
    "StopOnDecreasing",
    "StopOnEvent",
    "StopOnIncreasing",
]
