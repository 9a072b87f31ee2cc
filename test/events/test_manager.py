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


import pytest

from switchpoint.error import ResetStateError, TooManyEventResetsError
from switchpoint.events import (
    Action,
    EventsManager,
    FunctionalDetector,
    RecordAndContinue,
    StopOnEvent,
)
from switchpoint.propagation import ModelStepInterpolator, StepHandler, TrajectoryState
from switchpoint.testing import RecordAndReturn, TimeDetector, time_propagator

pytestmark = pytest.mark.minimal


class RecordingStepHandler(StepHandler):
    def __init__(self):
        self.parts = []
        self.legs = []

    def init(self, initial_state, target):
        self.legs.append((initial_state.time, target))

    def handle_step(self, interpolator, is_last):
        self.parts.append(
            (interpolator.previous_state.time, interpolator.current_state.time, is_last)
        )


def time_step(t0, t1):
    return ModelStepInterpolator(
        t1 >= t0, TrajectoryState(t0), TrajectoryState(t1), TrajectoryState
    )


def test_accept_step_reports_events_in_order():
    manager = EventsManager()
    late = TimeDetector(7.0, max_check=1.0, handler=RecordAndContinue())
    early = TimeDetector(3.0, max_check=1.0, handler=RecordAndContinue())
    manager.add_detector(late)
    manager.add_detector(early)
    manager.init(TrajectoryState(0.0), 10.0)

    outcome = manager.accept_step(time_step(0.0, 10.0))

    assert outcome.action is None
    assert outcome.state.time == 10.0
    assert [e.detector for e in outcome.events] == [early, late]
    assert [e.time for e in outcome.events] == pytest.approx([3.0, 7.0])
    assert all(e.action == Action.CONTINUE for e in outcome.events)
    assert outcome.remaining.previous_state.time == pytest.approx(7.0)
    assert outcome.remaining.current_state.time == 10.0


def test_accept_step_stops():
    manager = EventsManager()
    detector = TimeDetector(3.0, 6.0, max_check=1.0, handler=StopOnEvent())
    manager.add_detector(detector)
    manager.init(TrajectoryState(0.0), 10.0)
    parts = []

    outcome = manager.accept_step(
        time_step(0.0, 10.0),
        step_handler=lambda interpolator, is_last: parts.append(
            (interpolator.current_state.time, is_last)
        ),
    )

    assert outcome.action == Action.STOP
    assert outcome.state.time == pytest.approx(3.0)
    assert outcome.remaining is None
    assert len(outcome.events) == 1
    assert parts == [(outcome.state.time, True)]


def test_manager_detectors():
    manager = EventsManager()
    a, b = TimeDetector(1.0), TimeDetector(2.0)
    manager.add_detector(a)
    manager.add_detector(b)
    assert manager.detectors == (a, b)
    assert [es.detector for es in manager.event_states] == [a, b]
    manager.clear()
    assert manager.detectors == ()


def test_too_many_event_resets():
    detector = TimeDetector(
        1.0, 2.0, 3.0, 4.0,
        max_check=0.5,
        handler=RecordAndReturn(action=Action.RESET_EVENTS),
    )
    propagator = time_propagator(detectors=[detector], step_size=10.0, max_event_resets=2)

    with pytest.raises(TooManyEventResetsError) as excinfo:
        propagator.propagate(10.0)

    assert excinfo.value.max_resets == 2
    assert excinfo.value.detector is detector
    assert excinfo.value.time == pytest.approx(3.0)
    assert "limit is 2" in str(excinfo.value)


def test_event_resets_within_limit():
    handler = RecordAndReturn(action=Action.RESET_EVENTS)
    detector = TimeDetector(1.0, 2.0, 3.0, 4.0, max_check=0.5, handler=handler)
    propagator = time_propagator(detectors=[detector], step_size=10.0)

    propagator.propagate(10.0)

    assert [e.time for e in handler.events] == pytest.approx([1.0, 2.0, 3.0, 4.0])


def test_reset_events_reveals_changed_detector():
    # The first detector's handler enables the second one's switching function
    events = []
    enabled = [False]

    class Enable(RecordAndReturn):
        def event_occurred(self, state, detector, increasing):
            enabled[0] = True
            return super().event_occurred(state, detector, increasing)

    trigger = TimeDetector(
        2.0, max_check=1.0, handler=Enable(events, action=Action.RESET_EVENTS)
    )
    gated_detector = FunctionalDetector(
        lambda s: s.time - 5.0 if enabled[0] else -1.0,
        max_check=1.0,
        handler=RecordAndContinue(events),
    )
    propagator = time_propagator(
        detectors=[trigger, gated_detector], step_size=10.0
    )

    propagator.propagate(10.0)

    assert [e.detector for e in events] == [trigger, gated_detector]
    assert [e.time for e in events] == pytest.approx([2.0, 5.0])


def test_reset_state_without_state():
    class NoState(RecordAndReturn):
        def reset_state(self, detector, old_state):
            return None

    detector = TimeDetector(5.0, max_check=1.0, handler=NoState(action=Action.RESET_STATE))
    propagator = time_propagator(detectors=[detector], step_size=10.0)

    with pytest.raises(ResetStateError) as excinfo:
        propagator.propagate(10.0)

    assert excinfo.value.detector is detector
    assert excinfo.value.time == 5.0


def test_step_handler_parts():
    step_handler = RecordingStepHandler()
    detector = TimeDetector(5.0, max_check=1.0, handler=RecordAndContinue())
    propagator = time_propagator(detectors=[detector], step_size=10.0)
    propagator.step_handler = step_handler

    propagator.propagate(20.0)

    assert step_handler.legs == [(0.0, 20.0)]
    assert step_handler.parts == [
        (0.0, 5.0, False),
        (5.0, 10.0, False),
        (10.0, 20.0, True),
    ]


def test_step_handler_on_stop():
    step_handler = RecordingStepHandler()
    detector = TimeDetector(5.0, max_check=1.0)
    propagator = time_propagator(detectors=[detector], step_size=10.0)
    propagator.step_handler = step_handler

    final_state = propagator.propagate(20.0)

    assert final_state.time == 5.0
    assert step_handler.parts == [(0.0, 5.0, True)]


def test_reset_derivatives_truncates_step():
    step_handler = RecordingStepHandler()
    handler = RecordAndReturn(action=Action.RESET_DERIVATIVES)
    detector = TimeDetector(5.0, max_check=1.0, handler=handler)
    propagator = time_propagator(detectors=[detector], step_size=10.0)
    propagator.step_handler = step_handler

    final_state = propagator.propagate(20.0)

    assert final_state.time == 20.0
    assert len(handler.events) == 1
    # The propagation restarts from the event
    assert step_handler.parts == [
        (0.0, 5.0, False),
        (5.0, 15.0, False),
        (15.0, 20.0, True),
    ]
