"""Time estimators over event sequences.

Active time is a "merge small gaps, discard large gaps" estimate: events
of an active type are walked in timestamp order and each gap to the
previous active event is added only when it is shorter than the idle
threshold.  The first event of a burst has no anchor and adds nothing.
"""

from __future__ import annotations

from typing import Iterable, Sequence

from devtracker.core.defaults import DEFAULT_IDLE_GAP_MS
from devtracker.core.types import ACTIVE_TYPES, CODING_TYPES, ActivityEvent, ActivityType


def sort_by_time(events: Iterable[ActivityEvent]) -> list[ActivityEvent]:
    """Return a new list of *events* sorted by timestamp (stable)."""
    return sorted(events, key=lambda e: e.timestamp)


def merge_gaps(timestamps: Iterable[int], idle_gap_ms: int = DEFAULT_IDLE_GAP_MS) -> int:
    """Sum consecutive gaps shorter than *idle_gap_ms* over ascending *timestamps*."""
    total = 0
    prev: int | None = None
    for ts in timestamps:
        if prev is not None and ts - prev < idle_gap_ms:
            total += ts - prev
        prev = ts
    return total


def active_time(
    events: Sequence[ActivityEvent],
    types: frozenset[ActivityType] = ACTIVE_TYPES,
    idle_gap_ms: int = DEFAULT_IDLE_GAP_MS,
) -> int:
    """Estimated active milliseconds across *events* of the given *types*."""
    return merge_gaps(
        (e.timestamp for e in sort_by_time(events) if e.type in types),
        idle_gap_ms,
    )


def coding_time(events: Sequence[ActivityEvent], idle_gap_ms: int = DEFAULT_IDLE_GAP_MS) -> int:
    """Active-time estimate restricted to edit and save events."""
    return active_time(events, CODING_TYPES, idle_gap_ms)


def debug_time(events: Sequence[ActivityEvent]) -> int:
    """Sum of ``debug_start`` to next ``debug_stop`` intervals.

    A later start replaces an unclosed earlier one; an unmatched trailing
    start and any stop without an open start contribute nothing.
    """
    total = 0
    started: int | None = None
    for event in sort_by_time(events):
        if event.type is ActivityType.DEBUG_START:
            started = event.timestamp
        elif event.type is ActivityType.DEBUG_STOP and started is not None:
            total += event.timestamp - started
            started = None
    return total
