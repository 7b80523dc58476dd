# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for tutormind.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations
"""

from tutormind.utils.datetime import (
    elapsed_days,
    ensure_utc,
    hours_ago,
    latest,
    utc_now,
)
from tutormind.utils.logging import get_logger, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    # Datetime
    "utc_now",
    "ensure_utc",
    "hours_ago",
    "elapsed_days",
    "latest",
]
