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

from enum import IntEnum

__all__ = ["Action"]


class Action(IntEnum):
    """Directive returned by an event handler once an event is confirmed.

    The integer values order the actions by how restrictive they are, which is
    used to merge the outcome of several handlers attached to one detector.
    """

    # Accept the event and keep propagating.
    CONTINUE = 0

    # Accept the event and search the remainder of the step again for every
    # detector, since the event may have changed another detector's g function.
    RESET_EVENTS = 1

    # Accept the event, keep the state but discard the rest of the step. The
    # dynamics are about to change.
    RESET_DERIVATIVES = 2

    # Accept the event and replace the state with `EventHandler.reset_state`.
    RESET_STATE = 3

    # Accept the event and halt propagation at this instant.
    STOP = 4

    @property
    def truncates_step(self) -> bool:
        return self in (Action.STOP, Action.RESET_STATE, Action.RESET_DERIVATIVES)
