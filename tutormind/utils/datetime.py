# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for tutormind.

All timestamps are stored and compared as timezone-aware UTC. SQLite drops
tzinfo on round trip, so values read back from the database go through
``ensure_utc`` before any arithmetic.

Usage:
    from tutormind.utils.datetime import utc_now

    created_at = mapped_column(DateTime(timezone=True), default=utc_now)
"""

from datetime import datetime, timedelta, timezone

SECONDS_PER_DAY = 86400.0


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None. Naive values are assumed UTC.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def hours_ago(hours: float, now: datetime | None = None) -> datetime:
    """Get the datetime a number of hours before now."""
    return (now or utc_now()) - timedelta(hours=hours)


def elapsed_days(since: datetime | None, now: datetime | None = None) -> float:
    """Get fractional days elapsed since a datetime.

    Args:
        since: Start of the interval. None counts as no elapsed time.
        now: End of the interval. Defaults to the current time.

    Returns:
        Elapsed days, never negative.
    """
    start = ensure_utc(since)
    if start is None:
        return 0.0
    end = ensure_utc(now) or utc_now()
    return max(0.0, (end - start).total_seconds() / SECONDS_PER_DAY)


def latest(*values: datetime | None) -> datetime | None:
    """Get the latest of several optional datetimes."""
    present = [ensure_utc(v) for v in values if v is not None]
    return max(present) if present else None

