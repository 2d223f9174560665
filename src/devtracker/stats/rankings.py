"""Top-N rankings of files, languages and commands."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from typing import Sequence

from devtracker.core.defaults import (
    DEFAULT_IDLE_GAP_MS,
    TOP_COMMANDS,
    TOP_FILES,
    TOP_LANGUAGES,
)
from devtracker.core.types import (
    ActivityEvent,
    ActivityType,
    CommandPayload,
    FilePayload,
)
from devtracker.stats.timing import sort_by_time


@dataclass
class _Tally:
    count: int = 0
    time: int = 0
    last: int | None = None
    files: set[str] = field(default_factory=set)

    def touch(self, ts: int, idle_gap_ms: int) -> None:
        self.count += 1
        if self.last is not None and ts - self.last < idle_gap_ms:
            self.time += ts - self.last
        self.last = ts


def most_edited_files(
    events: Sequence[ActivityEvent],
    limit: int = TOP_FILES,
    idle_gap_ms: int = DEFAULT_IDLE_GAP_MS,
) -> list[dict[str, int | str]]:
    """Files ranked by ``file_edit`` count, with gap-merged editing time.

    Returns:
        ``[{"file", "edits", "time"}, ...]`` descending by edits.
    """
    tallies: dict[str, _Tally] = {}
    for event in sort_by_time(events):
        if event.type is not ActivityType.FILE_EDIT:
            continue
        payload = event.payload
        if not isinstance(payload, FilePayload) or not payload.file_name:
            continue
        tallies.setdefault(payload.file_name, _Tally()).touch(event.timestamp, idle_gap_ms)

    ranked = sorted(tallies.items(), key=lambda kv: kv[1].count, reverse=True)
    return [{"file": name, "edits": t.count, "time": t.time} for name, t in ranked[:limit]]


def most_used_languages(
    events: Sequence[ActivityEvent],
    limit: int = TOP_LANGUAGES,
    idle_gap_ms: int = DEFAULT_IDLE_GAP_MS,
) -> list[dict[str, int | str]]:
    """Languages ranked by gap-merged time between ``file_switch`` events.

    Returns:
        ``[{"language", "time", "files"}, ...]`` descending by time, where
        ``files`` counts distinct file names switched to.
    """
    tallies: dict[str, _Tally] = {}
    for event in sort_by_time(events):
        if event.type is not ActivityType.FILE_SWITCH:
            continue
        payload = event.payload
        if not isinstance(payload, FilePayload) or not payload.language:
            continue
        tally = tallies.setdefault(payload.language, _Tally())
        tally.touch(event.timestamp, idle_gap_ms)
        if payload.file_name:
            tally.files.add(payload.file_name)

    ranked = sorted(tallies.items(), key=lambda kv: kv[1].time, reverse=True)
    return [
        {"language": lang, "time": t.time, "files": len(t.files)}
        for lang, t in ranked[:limit]
    ]


def most_used_commands(
    events: Sequence[ActivityEvent],
    limit: int = TOP_COMMANDS,
) -> list[dict[str, int | str]]:
    """Command ids ranked by execution count; ties keep first-use order."""
    counts: Counter[str] = Counter(
        e.payload.command_id
        for e in sort_by_time(events)
        if e.type is ActivityType.COMMAND_EXECUTE and isinstance(e.payload, CommandPayload)
    )
    return [{"command": cmd, "count": n} for cmd, n in counts.most_common(limit)]
