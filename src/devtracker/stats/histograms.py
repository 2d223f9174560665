"""Daily and hourly activity histograms, and day streaks.

Buckets use local calendar time; pass ``tz`` to pin a timezone.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import tzinfo
from typing import Sequence

from devtracker.core.time import generate_day_keys, local_date_key, local_hour
from devtracker.core.types import ActivityEvent
from devtracker.stats.timing import active_time


def daily_activity(
    events: Sequence[ActivityEvent],
    days: int,
    now: int,
    tz: tzinfo | None = None,
) -> list[dict[str, int | str]]:
    """One ``{"date", "events", "activeTime"}`` bucket per day of the window.

    Every day of the *days*-long window ending today is present, in
    ascending date order, even without events.  Events outside the
    window are ignored.
    """
    keys = generate_day_keys(now, days, tz)
    by_day: dict[str, list[ActivityEvent]] = defaultdict(list)
    for event in events:
        by_day[local_date_key(event.timestamp, tz)].append(event)
    return [
        {"date": key, "events": len(by_day[key]), "activeTime": active_time(by_day[key])}
        for key in keys
    ]


def hourly_activity(
    events: Sequence[ActivityEvent],
    tz: tzinfo | None = None,
) -> list[dict[str, int]]:
    """24 ``{"hour", "events", "activeTime"}`` buckets for local hours 0-23."""
    by_hour: dict[int, list[ActivityEvent]] = {h: [] for h in range(24)}
    for event in events:
        by_hour[local_hour(event.timestamp, tz)].append(event)
    return [
        {"hour": h, "events": len(bucket), "activeTime": active_time(bucket)}
        for h, bucket in by_hour.items()
    ]


def streaks(daily: Sequence[dict[str, int | str]]) -> dict[str, int]:
    """Current and longest runs of consecutive days with events.

    Args:
        daily: Ascending daily buckets as returned by :func:`daily_activity`.

    Returns:
        ``{"current", "longest"}`` where *current* is the run ending on the
        most recent day (0 if that day is empty).
    """
    current = 0
    longest = 0
    run = 0
    touching_latest = True
    for bucket in reversed(daily):
        if int(bucket["events"]) > 0:
            run += 1
        else:
            if touching_latest:
                current = run
                touching_latest = False
            longest = max(longest, run)
            run = 0
    if touching_latest:
        current = run
    longest = max(longest, run)
    return {"current": current, "longest": longest}
