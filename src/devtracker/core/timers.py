"""Cancellable timers on top of an event-loop scheduler.

Components never create ambient platform timers.  They own explicit
handles obtained from a :class:`Scheduler`, which is any object with an
asyncio-style ``call_later`` (an :class:`asyncio.AbstractEventLoop`
qualifies as-is), and replace or cancel them explicitly.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Minimal scheduling contract, satisfied by :class:`asyncio.AbstractEventLoop`."""

    def call_later(
        self, delay: float, callback: Callable[..., object], *args: Any
    ) -> TimerHandle: ...


class ReplaceableTimer:
    """A single-shot timer slot: scheduling again cancels the pending shot.

    Used for debounce-style behaviour where only the latest request
    matters.  Timers are replaced, never stacked.
    """

    def __init__(self, scheduler: Scheduler, name: str = "timer") -> None:
        self._scheduler = scheduler
        self._name = name
        self._handle: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, delay: float, callback: Callable[[], object]) -> None:
        """Cancel any pending shot and arm a new one *delay* seconds from now."""
        self.cancel()
        self._handle = self._scheduler.call_later(delay, self._fire, callback)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _fire(self, callback: Callable[[], object]) -> None:
        self._handle = None
        try:
            callback()
        except Exception:
            logger.exception("Timer %s callback failed", self._name)


class PeriodicTask:
    """Runs *callback* every *interval* seconds until stopped.

    The next run is armed before the callback executes, so a failing
    callback never stops the loop.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        interval: float,
        callback: Callable[[], object],
        name: str = "periodic",
    ) -> None:
        if interval <= 0:
            raise ValueError(f"interval must be positive, got {interval}")
        self._timer = ReplaceableTimer(scheduler, name)
        self._interval = interval
        self._callback = callback
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._timer.schedule(self._interval, self._tick)

    def stop(self) -> None:
        self._running = False
        self._timer.cancel()

    def _tick(self) -> None:
        if not self._running:
            return
        self._timer.schedule(self._interval, self._tick)
        self._callback()
