"""Age-based eviction of events and archived sessions."""

from __future__ import annotations

import logging
from typing import Callable

from devtracker.core.defaults import (
    DEFAULT_RETENTION_DAYS,
    DEFAULT_RETENTION_INTERVAL_SECONDS,
    MS_PER_DAY,
)
from devtracker.core.time import Clock, now_ms
from devtracker.core.timers import PeriodicTask, Scheduler
from devtracker.storage.events import EventStore

logger = logging.getLogger(__name__)


class RetentionManager:
    """Drops records older than the configured retention horizon.

    Args:
        store: Event store to prune.
        retention_days: Returns the current retention horizon in days;
            read on every run so configuration changes apply.
        scheduler: Drives the periodic run; ``None`` disables :meth:`start`.
        clock: Epoch-millisecond clock.
    """

    def __init__(
        self,
        store: EventStore,
        retention_days: Callable[[], int] = lambda: DEFAULT_RETENTION_DAYS,
        scheduler: Scheduler | None = None,
        *,
        interval: float = DEFAULT_RETENTION_INTERVAL_SECONDS,
        clock: Clock = now_ms,
    ) -> None:
        self._store = store
        self._retention_days = retention_days
        self._clock = clock
        self._task = (
            PeriodicTask(scheduler, interval, self.run_once, "retention")
            if scheduler is not None
            else None
        )

    def cutoff(self) -> int:
        return self._clock() - self._retention_days() * MS_PER_DAY

    def run_once(self) -> int:
        """Prune once; returns the number of removed records."""
        cutoff = self.cutoff()
        removed = self._store.prune(cutoff)
        if removed:
            logger.info("Retention removed %d records", removed)
        return removed

    def start(self) -> None:
        """Run immediately, then on every interval."""
        self.run_once()
        if self._task is not None:
            self._task.start()

    def stop(self) -> None:
        if self._task is not None:
            self._task.stop()
