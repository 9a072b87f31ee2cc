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

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .events.detector import EventDetector

__all__ = [
    "SwitchpointError",
    "ResetStateError",
    "TooManyEventResetsError",
    "RootNotConvergedError",
    "PropagationError",
    "EventsInternalError",
]


class SwitchpointError(Exception):
    """Base class for all custom switchpoint errors."""

    def __init__(
        self,
        message=None,
        *,
        detector: EventDetector = None,
        time: float = None,
    ):
        """Create a new SwitchpointError.

        Only `message` is a positional argument, all others are keyword arguments.

        Args:
            message: A custom error message, defaults to the error class name.
            detector: The event detector involved in the error, if any.
            time: The propagation time at which the error occurred, if known.
        """
        super().__init__(message)
        self.message = message
        self.detector = detector
        self.time = time

    def __str__(self):
        message = self.message or self.default_message
        return f"{message}{self._context_info()}"

    def _context_info(self) -> str:
        strbuf = []

        if self.detector is not None:
            strbuf.append(f" in detector {self.detector!r}")
        if self.time is not None:
            strbuf.append(f" at t={self.time!r}")
        if self.__cause__ is not None:
            strbuf.append(f": {self.__cause__}")

        return "".join(strbuf)

    @property
    def default_message(self):
        return type(self).__name__

    def caused_by(self, exc_type: type):
        """Check if this error is or was caused by another error type.

        Args:
            exc_type: The type of exception to check for (eg. ZeroDivisionError)

        Returns:
            bool: True if the error is or was caused by the given exception type.
        """

        def _is_or_caused_by(exc, cause_type) -> bool:
            if not exc or not cause_type:
                return False
            if isinstance(exc, cause_type):
                return True
            return _is_or_caused_by(exc.__cause__, cause_type)

        return _is_or_caused_by(self, exc_type)


class ResetStateError(SwitchpointError):
    """A handler requested RESET_STATE but `reset_state` produced no state."""

    @property
    def default_message(self):
        return "Handler requested RESET_STATE but reset_state returned None"


class TooManyEventResetsError(SwitchpointError):
    """Too many RESET_EVENTS rescans were requested within a single step."""

    def __init__(self, max_resets: int = None, **kwargs):
        super().__init__(**kwargs)
        self.max_resets = max_resets

    @property
    def default_message(self):
        return (
            f"Too many event resets in a single step (limit is {self.max_resets})"
        )


class RootNotConvergedError(SwitchpointError):
    """The root solver exhausted its iteration budget before the bracket width
    reached the requested tolerance.

    Only raised when the non-convergence policy is set to "raise".
    """

    def __init__(self, message=None, *, interval=None, **kwargs):
        super().__init__(message, **kwargs)
        self.interval = interval

    def __str__(self):
        message = super().__str__()
        if self.interval is not None:
            message += (
                f" (bracket [{self.interval.left_abscissa!r}, "
                f"{self.interval.right_abscissa!r}])"
            )
        return message


class PropagationError(SwitchpointError):
    """Invalid propagation request or failure of the underlying integrator."""

    pass


class EventsInternalError(SwitchpointError):
    """An internal invariant of the event search was violated.

    This is a bug, not a usage error.
    """

    @property
    def default_message(self):
        return "Internal error in event detection, please report it"
