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


"""Logging setup for switchpoint.

Messages go to the `switchpoint` logger. Event handling only logs at DEBUG
level, except for root solver convergence warnings. Structured context is
attached with `logdata`, and shown by `ColorFormatter`.
"""

import logging
import time
from logging import CRITICAL, DEBUG, ERROR, INFO, WARNING

BOLD = "\033[1m"
RED = "\033[31m"
GREEN = "\033[32m"
BLUE = "\033[34m"
CYAN = "\033[36m"
YELLOW = "\033[33m"
LIGHTGREY = "\033[37m"
RESET = "\033[0m"

__all__ = [
    "logger",
    "ColorFormatter",
    "set_log_level",
    "set_file_handler",
    "set_stream_handler",
    "unset_stream_handler",
    "logdata",
    "DEBUG",
    "INFO",
    "WARNING",
    "ERROR",
    "CRITICAL",
]

packages = [__package__]


class ColorFormatter(logging.Formatter):
    """Terminal formatter with colored levels and the `logdata` context."""

    @staticmethod
    def _level_color(level):
        if level >= ERROR:
            return RED
        if level >= WARNING:
            return YELLOW
        if level >= INFO:
            return GREEN
        if level >= DEBUG:
            return BLUE
        return CYAN

    def format(self, record):
        extras: dict | None = record.__dict__.get("extras")
        color = self._level_color(record.levelno)

        ftime = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(record.created))
        msecs = int(record.msecs)
        s = (
            f"{ftime}.{msecs:03d} - {BOLD}[{record.name}]"
            f"[{color}{record.levelname}{RESET}]: {record.getMessage()}{RESET}"
        )

        if extras:
            s += " " + " ".join(f"{LIGHTGREY}{k}{RESET}={v}" for k, v in extras.items())

        return s


_plain_formatter = logging.Formatter(fmt="%(name)s:%(levelname)s %(message)s")
_stream_handler = logging.StreamHandler()
_stream_handler.setFormatter(_plain_formatter)


def set_file_handler(file, formatter=None):
    """Write the logs of all packages to `file`, overwriting it."""
    fh = logging.FileHandler(file, mode="w")
    fh.setFormatter(formatter or _plain_formatter)
    for package in packages:
        logging.getLogger(package).addHandler(fh)
    return fh


def set_stream_handler(handler=None, color: bool = False):
    """Attach a stream handler to all packages.

    Args:
        handler: Handler to attach, the default stderr handler if None.
        color: Format the default handler with `ColorFormatter`.
    """
    if handler is None:
        handler = _stream_handler
        handler.setFormatter(ColorFormatter() if color else _plain_formatter)
    for package in packages:
        logger_ = logging.getLogger(package)
        if handler not in logger_.handlers:
            logger_.addHandler(handler)


def unset_stream_handler():
    """Remove the default stream handler from all packages."""
    for package in packages:
        logging.getLogger(package).removeHandler(_stream_handler)


def set_log_level(level, pkg: str | None = None):
    """Set the log level for the specified or all packages.

    Args:
        level: The log level to set.
        pkg: If set, apply the log level only to the specified package.
    """
    if pkg is not None:
        logging.getLogger(pkg).setLevel(level)
        return

    for package in packages:
        logging.getLogger(package).setLevel(level)


def _detector_info(detector) -> dict:
    if detector is None:
        return {}
    return {"detector": type(detector).__name__, "detector_id": id(detector)}


def logdata(*, detector=None, **kwargs):
    """Use this in logger.debug() and other logging functions to attach context:

    logger.debug("event accepted", **logdata(detector=d, t=t))
    """
    # "extra" is for python logging, "extras" is read by ColorFormatter
    extras = kwargs or {}
    extras.update(_detector_info(detector))

    if len(extras) == 0:
        return {}

    return {"extra": {"extras": extras}}


logger = logging.getLogger(__package__)
