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

from switchpoint.error import (
    EventsInternalError,
    PropagationError,
    ResetStateError,
    RootNotConvergedError,
    SwitchpointError,
    TooManyEventResetsError,
)
from switchpoint.events import FunctionalDetector
from switchpoint.events.root_solver import Interval

pytestmark = pytest.mark.minimal


def test_default_messages():
    assert str(SwitchpointError()) == "SwitchpointError"
    assert "reset_state returned None" in str(ResetStateError())
    assert "limit is 3" in str(TooManyEventResetsError(3))
    assert "please report it" in str(EventsInternalError())


def test_context_info():
    detector = FunctionalDetector(lambda s: s.time)
    err = PropagationError("Invalid step", detector=detector, time=2.5)
    message = str(err)
    assert message.startswith("Invalid step in detector ")
    assert message.endswith(" at t=2.5")
    assert err.detector is detector
    assert err.time == 2.5


def test_caused_by():
    try:
        try:
            raise ZeroDivisionError("division by zero")
        except ZeroDivisionError as exc:
            raise PropagationError("Failed", time=1.0) from exc
    except PropagationError as err:
        assert err.caused_by(ZeroDivisionError)
        assert err.caused_by(SwitchpointError)
        assert not err.caused_by(KeyError)
        assert str(err) == "Failed at t=1.0: division by zero"


def test_root_not_converged_bracket():
    interval = Interval(1.0, -0.5, 2.0, 0.5)
    err = RootNotConvergedError("No convergence", interval=interval)
    assert err.interval is interval
    assert str(err) == "No convergence (bracket [1.0, 2.0])"
