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


import math

import numpy as np
import pytest

from switchpoint.error import PropagationError, RootNotConvergedError
from switchpoint.events import Action, FunctionalDetector, RecordAndContinue
from switchpoint.events.root_solver import NonConvergencePolicy
from switchpoint.propagation import (
    AnalyticalPropagator,
    PropagatorOptions,
    TrajectoryState,
)
from switchpoint.testing import RecordAndReturn, TimeDetector, linear_model, time_propagator

pytestmark = pytest.mark.minimal


def harmonic(reference, t):
    # x = a cos(t + phase), through the reference state
    x0, v0 = reference.y
    dt = t - reference.time
    x = x0 * math.cos(dt) + v0 * math.sin(dt)
    v = -x0 * math.sin(dt) + v0 * math.cos(dt)
    return TrajectoryState(t, np.array([x, v]), np.array([v, -x]))


def test_propagate_without_events():
    propagator = time_propagator(step_size=3.0)
    state = propagator.propagate(10.0)
    assert state.time == 10.0
    assert state.y == pytest.approx(10.0)
    assert propagator.state is state


def test_propagate_backward():
    propagator = time_propagator(t0=5.0, step_size=3.0)
    state = propagator.propagate(-4.0)
    assert state.time == -4.0
    assert state.y == pytest.approx(-4.0)


def test_harmonic_zero_crossings():
    handler = RecordAndContinue()
    detector = FunctionalDetector(
        lambda s: s.y[0], max_check=0.5, threshold=1e-12, handler=handler
    )
    propagator = AnalyticalPropagator(
        harmonic,
        TrajectoryState(0.0, np.array([1.0, 0.0])),
        PropagatorOptions(step_size=1.0),
    )
    propagator.register_detector(detector)

    propagator.propagate(10.0)

    expected = [math.pi / 2 + k * math.pi for k in range(3)]
    assert [e.time for e in handler.events] == pytest.approx(expected, abs=1e-10)
    assert [e.increasing for e in handler.events] == [False, True, False]


def test_impulsive_reset():
    # y = t until the event at 5, then jumps by 100
    def jump(state):
        return TrajectoryState(state.time, state.y + 100.0, state.ydot)

    handler = RecordAndReturn(action=Action.RESET_STATE, new_state=jump)
    detector = TimeDetector(5.0, max_check=1.0, handler=handler)
    propagator = time_propagator(detectors=[detector], step_size=10.0)

    state = propagator.propagate(8.0)

    assert state.y == pytest.approx(108.0)
    assert propagator.reference_state.time == 5.0
    assert propagator.reference_state.y == pytest.approx(105.0)


def test_propagate_from_start():
    handler = RecordAndContinue()
    detector = TimeDetector(3.0, 12.0, max_check=1.0, handler=handler)
    propagator = time_propagator(detectors=[detector], step_size=4.0)

    # The first event is skipped while moving to the start time
    state = propagator.propagate(5.0, 15.0)

    assert state.time == 15.0
    assert [e.time for e in handler.events] == pytest.approx([12.0])


def test_resume_after_stop():
    detector = TimeDetector(3.0, 6.0, max_check=1.0)
    propagator = time_propagator(detectors=[detector], step_size=10.0)

    first = propagator.propagate(10.0)
    second = propagator.propagate(10.0)
    third = propagator.propagate(10.0)

    assert first.time == pytest.approx(3.0)
    assert second.time == pytest.approx(6.0)
    assert third.time == 10.0


def test_invalid_times():
    propagator = time_propagator()
    with pytest.raises(PropagationError):
        propagator.propagate(math.inf)
    with pytest.raises(PropagationError):
        propagator.propagate(math.nan, 2.0)


def test_reset_state_time_must_match():
    propagator = time_propagator()
    with pytest.raises(PropagationError) as excinfo:
        propagator.request_reset(1.0, TrajectoryState(2.0, 2.0, 1.0))
    assert excinfo.value.time == 1.0


def test_detector_registration():
    propagator = time_propagator()
    a, b = TimeDetector(1.0), TimeDetector(2.0)
    propagator.register_detector(a)
    propagator.register_detector(b)
    assert propagator.event_detectors == (a, b)

    propagator.remove_all_detectors()
    assert propagator.event_detectors == ()
    assert propagator.propagate(5.0).time == 5.0


def test_reset_initial_state():
    propagator = AnalyticalPropagator(
        linear_model, TrajectoryState(0.0, 0.0, 1.0), PropagatorOptions()
    )
    propagator.reset_initial_state(TrajectoryState(1.0, 10.0, -1.0))
    state = propagator.propagate(3.0)
    assert state.y == pytest.approx(8.0)


@pytest.mark.parametrize(
    "policy", [NonConvergencePolicy.ACCEPT, NonConvergencePolicy.WARN]
)
def test_unconverged_root_is_still_reported(policy):
    handler = RecordAndContinue()
    detector = FunctionalDetector(
        lambda s: math.sin(s.time),
        max_check=1.0,
        threshold=1e-15,
        max_iter=2,
        handler=handler,
    )
    propagator = time_propagator(
        t0=1.0, detectors=[detector], step_size=10.0, non_convergence_policy=policy
    )

    assert propagator.propagate(5.0).time == 5.0
    assert len(handler.events) == 1
    assert 3.0 <= handler.events[0].time <= 4.0


def test_unconverged_root_raises():
    detector = FunctionalDetector(
        lambda s: math.sin(s.time),
        max_check=1.0,
        threshold=1e-15,
        max_iter=2,
        handler=RecordAndContinue(),
    )
    propagator = time_propagator(
        t0=1.0,
        detectors=[detector],
        step_size=10.0,
        non_convergence_policy=NonConvergencePolicy.RAISE,
    )

    with pytest.raises(RootNotConvergedError) as exc_info:
        propagator.propagate(5.0)

    interval = exc_info.value.interval
    assert interval.left_abscissa <= math.pi <= interval.right_abscissa
    assert "did not converge" in str(exc_info.value)
