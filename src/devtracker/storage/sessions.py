"""Session lifecycle: one open session at a time plus an archive of closed ones.

The session held by :class:`SessionManager` is **open**.  :meth:`SessionManager.start`
closes the open session (if any) before opening a fresh one, so at most one
session is ever open.  Closed sessions are archived and never mutated again,
except for removal by retention or an explicit clear.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from devtracker.core.defaults import DEFAULT_IDLE_GAP_MS, UNKNOWN
from devtracker.core.ids import new_session_id
from devtracker.core.time import Clock, now_ms
from devtracker.core.types import ACTIVE_TYPES, ActivityEvent, SessionData

logger = logging.getLogger(__name__)

WorkspaceInfo = Callable[[], tuple[str | None, str | None]]


def _no_workspace() -> tuple[str | None, str | None]:
    return None, None


class SessionManager:
    """Owns the current session and the session archive.

    Args:
        clock: Epoch-millisecond clock.
        workspace: Returns ``(workspace_id, project_name)`` for new sessions.
        idle_gap_ms: Gaps between active events at or above this are idle.
    """

    def __init__(
        self,
        *,
        clock: Clock = now_ms,
        workspace: WorkspaceInfo = _no_workspace,
        idle_gap_ms: int = DEFAULT_IDLE_GAP_MS,
    ) -> None:
        self._clock = clock
        self._workspace = workspace
        self._idle_gap_ms = idle_gap_ms
        self._current: SessionData | None = None
        self._archive: list[SessionData] = []
        # Timestamp of the open session's latest active-type event.
        self._last_active: int | None = None

    @property
    def current(self) -> SessionData | None:
        return self._current

    @property
    def sessions(self) -> list[SessionData]:
        """Archived (closed) sessions in archive order."""
        return list(self._archive)

    @property
    def session_id(self) -> str:
        """Id of the open session, else of the last archived one."""
        if self._current is not None:
            return self._current.id
        if self._archive:
            return self._archive[-1].id
        return UNKNOWN

    def start(self) -> SessionData:
        """Close any open session, then open and return a new one."""
        self.end()
        now = self._clock()
        self._last_active = None
        workspace_id, project_name = self._workspace()
        self._current = SessionData(
            id=new_session_id(now),
            start_time=now,
            workspace_id=workspace_id,
            project_name=project_name,
        )
        logger.info("Started session %s", self._current.id)
        return self._current

    def end(self) -> SessionData | None:
        """Close and archive the open session; no-op when none is open."""
        session = self._current
        if session is None:
            return None
        session.end_time = max(self._clock(), session.start_time)
        self._archive.append(session)
        self._current = None
        logger.info(
            "Closed session %s (%d events, %d ms active)",
            session.id, session.total_events, session.active_time,
        )
        return session

    def record(self, event: ActivityEvent) -> None:
        """Update the open session's counters for *event*."""
        session = self._current
        if session is None:
            return
        session.total_events += 1
        session.end_time = max(self._clock(), session.start_time)
        if event.type in ACTIVE_TYPES:
            last = self._last_active
            if last is not None and 0 <= event.timestamp - last < self._idle_gap_ms:
                session.active_time += event.timestamp - last
            self._last_active = event.timestamp

    def restore(self, archived: Iterable[SessionData], current: SessionData | None = None) -> None:
        """Replace the archive with *archived*.

        A *current* session left behind by an unclean shutdown is closed
        at its last known activity and archived.
        """
        self._archive = list(archived)
        if current is not None:
            if current.end_time is None:
                current.end_time = current.start_time
            self._archive.append(current)
            logger.warning("Recovered unclosed session %s", current.id)

    def prune(self, cutoff: int) -> int:
        """Drop archived sessions started before *cutoff*; returns how many."""
        before = len(self._archive)
        self._archive = [s for s in self._archive if s.start_time >= cutoff]
        return before - len(self._archive)

    def clear(self) -> None:
        """Forget the open session and the whole archive."""
        self._current = None
        self._last_active = None
        self._archive = []

    def sessions_since(self, watermark: int, *, inclusive: bool = False) -> list[SessionData]:
        """Archived and open sessions whose last activity is after *watermark*.

        With *inclusive*, sessions whose last activity equals it are kept too.
        """
        candidates = list(self._archive)
        if self._current is not None:
            candidates.append(self._current)
        if inclusive:
            return [s for s in candidates if s.last_activity >= watermark]
        return [s for s in candidates if s.last_activity > watermark]
