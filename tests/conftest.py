"""Shared fixtures for the devtracker test suite.

Timers are driven by :class:`ManualScheduler`, which advances a
:class:`FakeClock` in step with simulated time so that event timestamps
and timer deadlines stay consistent.
"""

from __future__ import annotations

from typing import Any, Callable

import pytest

from devtracker.collector.types import DocumentInfo
from devtracker.core.types import ActivityEvent, ActivityType

# 2024-06-15T10:00:00Z
BASE_TS = 1_718_445_600_000


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: int = BASE_TS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class _Handle:
    def __init__(self, when: float, seq: int, callback: Callable[..., object], args: tuple) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.args = args
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Deterministic stand-in for an asyncio loop's ``call_later``."""

    def __init__(self, clock: FakeClock | None = None) -> None:
        self.clock = clock
        self.time = 0.0
        self._queue: list[_Handle] = []
        self._seq = 0

    def call_later(self, delay: float, callback: Callable[..., object], *args: Any) -> _Handle:
        self._seq += 1
        handle = _Handle(self.time + delay, self._seq, callback, args)
        self._queue.append(handle)
        return handle

    @property
    def pending(self) -> list[_Handle]:
        return [h for h in self._queue if not h.cancelled]

    def advance(self, seconds: float) -> None:
        """Move time forward, firing due callbacks in deadline order."""
        target = self.time + seconds
        while True:
            due = [h for h in self._queue if not h.cancelled and h.when <= target]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._queue.remove(handle)
            self._move_to(handle.when)
            handle.callback(*handle.args)
        self._move_to(target)
        self._queue = [h for h in self._queue if not h.cancelled]

    def _move_to(self, when: float) -> None:
        if self.clock is not None:
            self.clock.advance(round((when - self.time) * 1000))
        self.time = when


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def scheduler(clock: FakeClock) -> ManualScheduler:
    return ManualScheduler(clock)


def make_event(
    event_type: ActivityType,
    ts: int,
    data: dict[str, Any] | None = None,
    *,
    session_id: str = "session_test",
    event_id: str | None = None,
    workspace_id: str | None = None,
) -> ActivityEvent:
    """Build a valid event; *data* uses the camelCase payload keys."""
    return ActivityEvent.model_validate({
        "id": event_id or f"{ts}_{event_type.value}",
        "timestamp": ts,
        "type": event_type,
        "data": data or {},
        "sessionId": session_id,
        "workspaceId": workspace_id,
    })


@pytest.fixture()
def doc() -> DocumentInfo:
    return DocumentInfo(
        path="/work/project/src/app.py",
        language_id="python",
        line_count=3,
        text="import os\nprint(os.getcwd())\n",
    )
