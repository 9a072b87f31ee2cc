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


import numpy as np
import pytest

from switchpoint.events import (
    Action,
    ContinueOnEvent,
    CountAndContinue,
    EventMultipleHandler,
    RecordAndContinue,
    ResetDerivativesOnEvent,
    StopOnDecreasing,
    StopOnEvent,
    StopOnIncreasing,
)
from switchpoint.propagation import TrajectoryState
from switchpoint.testing import (
    ContinuousDetector,
    RecordAndReturn,
    TimeDetector,
    time_propagator,
)

pytestmark = pytest.mark.minimal


@pytest.mark.parametrize(
    "handler, increasing, expected",
    [
        (ContinueOnEvent(), True, Action.CONTINUE),
        (StopOnEvent(), False, Action.STOP),
        (StopOnIncreasing(), True, Action.STOP),
        (StopOnIncreasing(), False, Action.CONTINUE),
        (StopOnDecreasing(), True, Action.CONTINUE),
        (StopOnDecreasing(), False, Action.STOP),
        (ResetDerivativesOnEvent(), True, Action.RESET_DERIVATIVES),
    ],
)
def test_fixed_actions(handler, increasing, expected):
    state = TrajectoryState(1.0)
    assert handler.event_occurred(state, None, increasing) == expected
    assert handler.reset_state(None, state) is state


def test_default_handler_stops():
    detector = TimeDetector(5.0, max_check=1.0)
    assert isinstance(detector.handler, StopOnEvent)
    propagator = time_propagator(detectors=[detector], step_size=10.0)

    final_state = propagator.propagate(20.0)

    assert final_state.time == pytest.approx(5.0, abs=1e-9)


def test_stop_on_decreasing():
    detector = ContinuousDetector(10.0, 30.0, handler=StopOnDecreasing())
    propagator = time_propagator(detectors=[detector], step_size=10.0)

    final_state = propagator.propagate(50.0)

    assert final_state.time == pytest.approx(30.0, abs=1e-9)


def test_count_and_continue():
    handler = CountAndContinue()
    detector = TimeDetector(1.0, 2.0, 3.0, max_check=0.5, handler=handler)
    propagator = time_propagator(detectors=[detector], step_size=10.0)

    propagator.propagate(10.0)

    assert handler.count == 3


def test_multiple_handler_most_restrictive_action():
    record = RecordAndContinue()
    handler = EventMultipleHandler(record).add_handler(
        RecordAndReturn(action=Action.RESET_DERIVATIVES)
    )
    assert handler.event_occurred(TrajectoryState(0.0), None, True) == (
        Action.RESET_DERIVATIVES
    )
    handler.add_handler(StopOnEvent())
    assert handler.event_occurred(TrajectoryState(0.0), None, True) == Action.STOP
    assert len(record.events) == 2

    assert EventMultipleHandler().event_occurred(None, None, True) == Action.CONTINUE


def test_multiple_handler_chains_resets():
    def add(value):
        def new_state(state):
            return TrajectoryState(state.time, state.y + value, state.ydot)

        return new_state

    first = RecordAndReturn(action=Action.RESET_STATE, new_state=add(100.0))
    second = RecordAndReturn(action=Action.RESET_STATE, new_state=add(10.0))
    ignored = RecordAndReturn(action=Action.CONTINUE, new_state=add(1.0))
    handler = EventMultipleHandler(first, ignored, second)
    detector = TimeDetector(5.0, max_check=1.0, handler=handler)
    propagator = time_propagator(detectors=[detector], step_size=10.0)

    final_state = propagator.propagate(10.0)

    # y = 5 at the event, then 115 and 5 more units of time
    assert final_state.y == pytest.approx(120.0)
    for h in (first, second, ignored):
        assert len(h.events) == 1


def test_init_and_finish_called_once_per_leg():
    calls = []

    class Tracking(ContinueOnEvent):
        def init(self, initial_state, target, detector):
            calls.append(("init", initial_state.time, target))

        def finish(self, final_state, detector):
            calls.append(("finish", final_state.time))

    detector = TimeDetector(5.0, max_check=1.0, handler=Tracking())
    propagator = time_propagator(detectors=[detector], step_size=4.0)

    propagator.propagate(10.0)
    propagator.propagate(12.0)

    assert calls == [
        ("init", 0.0, 10.0),
        ("finish", 10.0),
        ("init", 10.0, 12.0),
        ("finish", 12.0),
    ]


def test_recorded_events_keep_state():
    handler = RecordAndContinue()
    detector = TimeDetector(5.0, max_check=1.0, handler=handler)
    propagator = time_propagator(detectors=[detector], step_size=10.0)

    propagator.propagate(10.0)

    (event,) = handler.events
    assert event.detector is detector
    assert event.increasing
    assert np.isclose(event.state.y, event.time)

    handler.clear()
    assert handler.events == []
