"""Wiring and lifecycle of a live collector.

The host owns one :class:`ActivityService`: it constructs it with its event
loop, calls :meth:`ActivityService.init` once, forwards editor
notifications to :attr:`ActivityService.normalizer`, and calls
:meth:`ActivityService.dispose` on shutdown::

    loop = asyncio.get_running_loop()
    service = ActivityService(data_dir, loop, workspace_folders=folders)
    service.init()
    ...
    service.normalizer.on_file_open(doc)
    ...
    service.dispose()
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Coroutine, Iterable

from devtracker.collector.normalizer import EventNormalizer, WorkspaceContext
from devtracker.collector.types import WorkspaceFolder
from devtracker.core.config import TrackerConfig
from devtracker.core.defaults import (
    DEFAULT_DATA_DIR,
    DEFAULT_STATS_DAYS,
    DEFAULT_SYNC_INTERVAL_SECONDS,
    UNKNOWN,
)
from devtracker.core.time import Clock, now_ms
from devtracker.core.timers import PeriodicTask, Scheduler
from devtracker.report.export import build_snapshot, export_snapshot
from devtracker.stats.report import ActivityStats, compute_stats, summary_line
from devtracker.storage.events import EventStore
from devtracker.storage.retention import RetentionManager
from devtracker.storage.sessions import SessionManager
from devtracker.sync.client import SyncClient, SyncResult, Transport, urllib_transport

logger = logging.getLogger(__name__)

Spawn = Callable[[Coroutine[Any, Any, Any]], object]


def open_store(
    data_dir: Path | str,
    scheduler: Scheduler | None = None,
    *,
    workspace: WorkspaceContext | None = None,
    clock: Clock = now_ms,
) -> EventStore:
    """Create an :class:`EventStore` with its session manager and load it."""
    ctx = workspace or WorkspaceContext()
    sessions = SessionManager(clock=clock, workspace=lambda: (ctx.workspace_id, ctx.project_name))
    store = EventStore(Path(data_dir), sessions, scheduler, clock=clock)
    store.load()
    return store


class ActivityService:
    """One collector instance: normalizer, store, retention and sync.

    Args:
        data_dir: Directory for every persisted document.
        scheduler: Event loop (or compatible) owning all timers.
        workspace_folders: Folders open at start-up.
        config: Settings; read from *data_dir* when omitted.
        transport: HTTP transport for sync.
        spawn: Schedules a coroutine in the background; defaults to
            :func:`asyncio.ensure_future` on the running loop.  When it
            returns a future, overlapping periodic syncs are skipped and
            :meth:`dispose` cancels the one in flight.
        host_version: Editor version recorded in exports.
        clock: Epoch-millisecond clock.
    """

    def __init__(
        self,
        data_dir: Path | str,
        scheduler: Scheduler,
        *,
        workspace_folders: Iterable[WorkspaceFolder] = (),
        config: TrackerConfig | None = None,
        transport: Transport = urllib_transport,
        spawn: Spawn | None = None,
        host_version: str = UNKNOWN,
        clock: Clock = now_ms,
    ) -> None:
        self.data_dir = Path(data_dir)
        self.config = config or TrackerConfig(self.data_dir)
        self._clock = clock
        self._spawn = spawn or asyncio.ensure_future
        self._host_version = host_version
        self._initialized = False

        self.workspace = WorkspaceContext(workspace_folders)
        self.sessions = SessionManager(
            clock=clock,
            workspace=lambda: (self.workspace.workspace_id, self.workspace.project_name),
        )
        self.store = EventStore(self.data_dir, self.sessions, scheduler, clock=clock)
        self.normalizer = EventNormalizer(
            self.store.append,
            scheduler,
            session_id=lambda: self.sessions.session_id,
            workspace=self.workspace,
            is_enabled=lambda: self.config.enable_tracking,
            on_workspace_change=self._on_workspace_change,
            clock=clock,
        )
        self.retention = RetentionManager(
            self.store,
            lambda: self.config.data_retention_days,
            scheduler,
            clock=clock,
        )
        self.sync_client = SyncClient(
            self.data_dir,
            self.store,
            enabled=lambda: self.config.enable_sync,
            api_url=lambda: self.config.api_url,
            transport=transport,
        )
        self._sync_task = PeriodicTask(
            scheduler, DEFAULT_SYNC_INTERVAL_SECONDS, self._periodic_sync, "sync",
        )
        self._background: asyncio.Future[Any] | None = None

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def background_sync_pending(self) -> bool:
        """Whether a spawned periodic sync has not finished yet."""
        return self._background is not None and not self._background.done()

    # -- lifecycle -------------------------------------------------------------

    def init(self) -> None:
        """Load persisted state, open a session, and start background work."""
        if self._initialized:
            return
        self.store.load()
        self.sessions.start()
        self.store.flush()
        self.retention.start()
        self.normalizer.start()
        self._sync_task.start()
        self._initialized = True
        logger.info("Activity tracking started in %s", self.data_dir)

    def dispose(self) -> None:
        """Close the session, stop timers and sync, flush pending edits, write once more."""
        if not self._initialized:
            return
        self.sessions.end()
        self.normalizer.cancel_timers()
        self.store.cancel_pending()
        self.retention.stop()
        self._sync_task.stop()
        if self.background_sync_pending:
            # Cancelled at its await, so the watermark is never advanced.
            self._background.cancel()
        self._background = None
        self.normalizer.flush_all_edits()
        self.store.flush()
        self._initialized = False
        logger.info("Activity tracking stopped")

    def _on_workspace_change(self) -> None:
        self.sessions.start()
        self.store.flush()

    # -- user actions ----------------------------------------------------------

    def stats(self, days: int = DEFAULT_STATS_DAYS) -> ActivityStats:
        events = self.store.query()
        return compute_stats(events, days, all_events=events, now=self._clock())

    def daily_summary(self) -> str | None:
        """Today's summary line, or ``None`` if notifications are off or nothing happened."""
        if not self.config.enable_notifications:
            return None
        return summary_line(self.stats(1))

    def export(self, path: Path, fmt: str | None = None) -> Path:
        """Write an export snapshot; *fmt* defaults to the ``exportFormat`` setting.

        Raises:
            ValueError: On an unsupported format.
            OSError: If the file cannot be written.
        """
        sessions = self.sessions.sessions
        if self.sessions.current is not None:
            sessions.append(self.sessions.current)
        snapshot = build_snapshot(
            self.store.query(),
            sessions,
            host_version=self._host_version,
            now=self._clock(),
        )
        return export_snapshot(snapshot, path, fmt or self.config.export_format)

    def clear(self) -> None:
        """Delete all events and sessions, then open a fresh session."""
        self.store.clear()
        self.sessions.start()
        self.store.flush()
        logger.info("Cleared all activity data")

    def toggle_tracking(self) -> bool:
        """Flip ``enableTracking``; returns the new value."""
        enabled = not self.config.enable_tracking
        self.config.update({"enableTracking": enabled})
        return enabled

    async def sync_now(self, token: str | None = None) -> SyncResult:
        """User-initiated sync; stores *token* first when given."""
        if token:
            self.sync_client.set_token(token)
        return await self.sync_client.sync()

    def _periodic_sync(self) -> None:
        if not self.config.enable_sync:
            return
        if self.background_sync_pending:
            logger.debug("Previous background sync still running, skipping")
            return
        task = self._spawn(self._background_sync())
        self._background = task if isinstance(task, asyncio.Future) else None

    async def _background_sync(self) -> None:
        result = await self.sync_client.sync()
        if not result.success:
            logger.warning("Background sync failed: %s", result.error)
