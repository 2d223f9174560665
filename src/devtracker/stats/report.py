"""ActivityStats snapshot assembled from a time-windowed event slice."""

from __future__ import annotations

import math
from datetime import tzinfo
from typing import Any, Sequence

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from devtracker.core.defaults import MS_PER_DAY, MS_PER_MINUTE
from devtracker.core.time import now_ms
from devtracker.core.types import ActivityEvent, ActivityType
from devtracker.stats.histograms import daily_activity, hourly_activity, streaks
from devtracker.stats.rankings import most_edited_files, most_used_commands, most_used_languages
from devtracker.stats.score import productivity_score
from devtracker.stats.timing import active_time, coding_time, debug_time


class _StatsModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class FileRank(_StatsModel):
    file: str
    edits: int
    time: int


class LanguageRank(_StatsModel):
    language: str
    time: int
    files: int


class CommandRank(_StatsModel):
    command: str
    count: int


class DailyBucket(_StatsModel):
    date: str = Field(description="Local calendar date, YYYY-MM-DD.")
    events: int
    active_time: int


class HourlyBucket(_StatsModel):
    hour: int = Field(ge=0, le=23)
    events: int
    active_time: int


class StreakData(_StatsModel):
    current: int = 0
    longest: int = 0


class ActivityStats(_StatsModel):
    """Derived statistics for one window; never persisted."""

    total_events: int = 0
    files_switched: int = 0
    files_edited: int = 0
    files_created: int = 0
    commands_executed: int = 0
    active_time: int = 0
    coding_time: int = 0
    debug_time: int = 0
    most_edited_files: list[FileRank] = Field(default_factory=list)
    most_used_languages: list[LanguageRank] = Field(default_factory=list)
    most_used_commands: list[CommandRank] = Field(default_factory=list)
    daily_activity: list[DailyBucket] = Field(default_factory=list)
    hourly_activity: list[HourlyBucket] = Field(default_factory=list)
    productivity_score: int = Field(default=0, ge=0, le=100)
    streak_data: StreakData = Field(default_factory=StreakData)


def window_cutoff(now: int, days: int) -> int:
    return now - days * MS_PER_DAY


def compute_stats(
    events: Sequence[ActivityEvent],
    days: int,
    *,
    all_events: Sequence[ActivityEvent] | None = None,
    now: int | None = None,
    tz: tzinfo | None = None,
) -> ActivityStats:
    """Compute :class:`ActivityStats` over the last *days* days of *events*.

    Args:
        events: Event log (any order); never mutated.
        days: Window length in days.
        all_events: Full log used for streaks; defaults to *events*.
        now: Reference time in epoch ms; defaults to the wall clock.
        tz: Timezone for calendar buckets; defaults to local time.
    """
    if now is None:
        now = now_ms()
    cutoff = window_cutoff(now, days)
    recent = [e for e in events if e.timestamp >= cutoff]

    def count(event_type: ActivityType) -> int:
        return sum(1 for e in recent if e.type is event_type)

    full_log = events if all_events is None else all_events
    return ActivityStats(
        total_events=len(recent),
        files_switched=count(ActivityType.FILE_SWITCH),
        files_edited=count(ActivityType.FILE_EDIT),
        files_created=count(ActivityType.FILE_CREATE),
        commands_executed=count(ActivityType.COMMAND_EXECUTE),
        active_time=active_time(recent),
        coding_time=coding_time(recent),
        debug_time=debug_time(recent),
        most_edited_files=most_edited_files(recent),
        most_used_languages=most_used_languages(recent),
        most_used_commands=most_used_commands(recent),
        daily_activity=daily_activity(recent, days, now, tz),
        hourly_activity=hourly_activity(recent, tz),
        productivity_score=productivity_score(recent),
        streak_data=streaks(daily_activity(full_log, days, now, tz)),
    )


def dump_stats(stats: ActivityStats) -> dict[str, Any]:
    """camelCase JSON-compatible dict of *stats*."""
    return stats.model_dump(mode="json", by_alias=True)


def summary_line(stats: ActivityStats) -> str | None:
    """One-line human summary of *stats*, or ``None`` when there was no activity."""
    if stats.total_events == 0:
        return None
    active_minutes = math.floor(stats.active_time / MS_PER_MINUTE + 0.5)
    coding_minutes = math.floor(stats.coding_time / MS_PER_MINUTE + 0.5)
    return (
        f"Today's Summary: {active_minutes} active minutes, "
        f"{coding_minutes} coding minutes, {stats.files_edited} files edited"
    )
