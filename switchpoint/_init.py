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


"""Internal module to properly initialize logging and JAX/x64"""

import os

# State pytrees are flattened with jax.tree_util; event times are resolved down
# to a single ulp, so any jax array created along the way must be 64-bit.
os.environ.setdefault("JAX_ENABLE_X64", "true")

# pylint: disable=wrong-import-position
from . import logging  # noqa: E402

logging.set_log_level(os.environ.get("SWITCHPOINT_LOG_LEVEL", "INFO"))
logging.set_stream_handler(
    color=os.environ.get("SWITCHPOINT_LOG_COLOR", "0").lower() in ("1", "true")
)

# e.g. SWITCHPOINT_LOG_LEVELS=switchpoint:DEBUG,jax:WARNING
_per_package_log_levels = os.environ.get("SWITCHPOINT_LOG_LEVELS", None)
if _per_package_log_levels is not None:
    for item in _per_package_log_levels.split(","):
        pkg, level = item.split(":")
        logging.set_log_level(level, pkg=pkg)
