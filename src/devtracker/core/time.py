"""Epoch-millisecond clock helpers and local calendar bucketing.

Events carry integer epoch-millisecond timestamps.  Calendar bucketing
(daily and hourly histograms) uses the *local* timezone by default; every
helper accepts an explicit ``tz`` so callers and tests can pin it.
"""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return time.time_ns() // 1_000_000


def to_datetime(ts_ms: int, tz: tzinfo | None = None) -> datetime:
    """Convert epoch milliseconds to an aware datetime in *tz* (local if ``None``)."""
    dt = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    return dt.astimezone(tz) if tz is not None else dt.astimezone()


def local_date_key(ts_ms: int, tz: tzinfo | None = None) -> str:
    """Return the ``YYYY-MM-DD`` calendar date of *ts_ms* in *tz*."""
    return to_datetime(ts_ms, tz).date().isoformat()


def local_hour(ts_ms: int, tz: tzinfo | None = None) -> int:
    """Return the hour of day (0-23) of *ts_ms* in *tz*."""
    return to_datetime(ts_ms, tz).hour


def generate_day_keys(now: int, days: int, tz: tzinfo | None = None) -> list[str]:
    """Enumerate the *days* calendar dates ending at the date of *now*.

    Args:
        now: Reference time in epoch milliseconds.
        days: Number of calendar days to enumerate (``<= 0`` yields none).
        tz: Timezone used to resolve calendar dates.

    Returns:
        Ascending list of ``YYYY-MM-DD`` keys; the last key is today's date.
    """
    today = to_datetime(now, tz).date()
    return [(today - timedelta(days=i)).isoformat() for i in range(days - 1, -1, -1)]


def iso_utc(ts_ms: int) -> str:
    """Format epoch milliseconds as an ISO-8601 UTC string with a ``Z`` suffix."""
    dt = datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"
