"""Watermark-based push of new events and sessions to a remote API.

Each attempt selects everything newer than the persisted watermark
(``lastSyncTime``) plus anything stamped at the watermark itself that the
last batch did not carry, POSTs it as ``{"events": [...], "sessions": [...]}``
to ``{apiUrl}/devtracker/sync`` with a bearer token, and advances the
watermark only after the receiver confirms with ``{"success": true}``.
Delivery is at-least-once; the receiver deduplicates by event id.

The HTTP call runs on a worker thread so the event loop keeps ingesting
while a request is in flight.  No failure ever propagates out of
:meth:`SyncClient.sync`; every outcome is a :class:`SyncResult`.
"""

from __future__ import annotations

import asyncio
import http.client
import json
import logging
import urllib.error
import urllib.request
from pathlib import Path
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from devtracker.core.config import api_token_from_env
from devtracker.core.defaults import (
    DEFAULT_API_URL,
    DEFAULT_SYNC_TIMEOUT_SECONDS,
    SYNC_ENDPOINT_PATH,
    SYNC_STATE_FILENAME,
)
from devtracker.core.store import read_json, write_json
from devtracker.core.types import ActivityEvent, SessionData, dump_event, dump_session
from devtracker.storage.events import EventStore

logger = logging.getLogger(__name__)

# (url, body, headers, timeout) -> (status, response body)
Transport = Callable[[str, bytes, dict[str, str], float], tuple[int, bytes]]

NOT_ENABLED = "Sync not enabled"
NOT_AUTHENTICATED = "Not authenticated"
NO_NEW_DATA = "No new data to sync"
IN_PROGRESS = "Sync already in progress"


class SyncResult(BaseModel):
    """Outcome of one sync attempt."""

    model_config = ConfigDict(frozen=True)

    success: bool
    message: str | None = None
    error: str | None = None
    status: int | None = Field(default=None, description="HTTP status, when a request was made.")
    events_synced: int = 0
    sessions_synced: int = 0


class SyncState(BaseModel):
    """Persisted contents of ``sync-state.json``."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    last_sync_time: int = Field(default=0, ge=0)
    # Ids already delivered whose timestamp equals last_sync_time.
    synced_event_ids: list[str] = Field(default_factory=list)
    synced_session_ids: list[str] = Field(default_factory=list)
    session_token: str | None = None


def urllib_transport(url: str, body: bytes, headers: dict[str, str], timeout: float) -> tuple[int, bytes]:
    """POST *body* to *url*; HTTP error statuses are returned, not raised."""
    req = urllib.request.Request(url, data=body, headers=headers, method="POST")
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return resp.status, resp.read()
    except urllib.error.HTTPError as exc:
        return exc.code, exc.read()


class SyncClient:
    """Pushes unsynced data from an :class:`EventStore` to the remote API.

    Args:
        data_dir: Directory holding ``sync-state.json``.
        store: Source of events and sessions.
        enabled: Returns the current ``enableSync`` setting.
        api_url: Returns the current API base URL.
        transport: Blocking HTTP POST; replaced in tests.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        data_dir: Path,
        store: EventStore,
        *,
        enabled: Callable[[], bool] = lambda: False,
        api_url: Callable[[], str] = lambda: DEFAULT_API_URL,
        transport: Transport = urllib_transport,
        timeout: float = DEFAULT_SYNC_TIMEOUT_SECONDS,
    ) -> None:
        self._path = Path(data_dir) / SYNC_STATE_FILENAME
        self._store = store
        self._enabled = enabled
        self._api_url = api_url
        self._transport = transport
        self._timeout = timeout
        self._state = self._load_state()
        self._in_flight = False

    # -- state -----------------------------------------------------------------

    def _load_state(self) -> SyncState:
        try:
            return SyncState.model_validate(read_json(self._path))
        except FileNotFoundError:
            return SyncState()
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable sync state %s: %s", self._path, exc)
            return SyncState()

    def _save_state(self) -> None:
        try:
            write_json(self._state.model_dump(by_alias=True), self._path)
        except OSError as exc:
            logger.warning("Failed to persist sync state: %s", exc)

    @property
    def state_path(self) -> Path:
        return self._path

    @property
    def last_sync_time(self) -> int:
        return self._state.last_sync_time

    @property
    def token(self) -> str | None:
        """Bearer token; ``DEVTRACKER_API_TOKEN`` overrides the stored one."""
        return api_token_from_env() or self._state.session_token

    def set_token(self, token: str) -> None:
        token = token.strip()
        if not token:
            raise ValueError("token must be a non-empty string")
        self._state.session_token = token
        self._save_state()

    def clear_token(self) -> None:
        self._state.session_token = None
        self._save_state()

    def reset(self) -> None:
        """Forget the watermark so the next sync resends everything."""
        self._state.last_sync_time = 0
        self._state.synced_event_ids = []
        self._state.synced_session_ids = []
        self._save_state()

    # -- sync ------------------------------------------------------------------

    def endpoint(self) -> str:
        return self._api_url().rstrip("/") + SYNC_ENDPOINT_PATH

    def pending_batch(self) -> tuple[list[dict[str, Any]], list[dict[str, Any]], int]:
        """Serialized events and sessions not yet delivered.

        Records stamped exactly at the watermark are included unless their
        id was part of the batch that set it.

        Returns:
            ``(events, sessions, high_water)`` where *high_water* is the
            newest timestamp in the batch (the watermark if it is empty).
        """
        events, sessions = self._select()
        high = _high_water(self._state.last_sync_time, events, sessions)
        return [dump_event(e) for e in events], [dump_session(s) for s in sessions], high

    def _select(self) -> tuple[list[ActivityEvent], list[SessionData]]:
        watermark = self._state.last_sync_time
        seen_events = set(self._state.synced_event_ids)
        events = [
            e for e in self._store.query(start_time=watermark)
            if e.timestamp > watermark or e.id not in seen_events
        ]
        seen_sessions = set(self._state.synced_session_ids)
        # A session touched by a pending event may have changed without moving.
        sessions = [
            s for s in self._store.sessions.sessions_since(watermark, inclusive=True)
            if s.last_activity > watermark or events or s.id not in seen_sessions
        ]
        return events, sessions

    def _advance(self, events: list[ActivityEvent], sessions: list[SessionData]) -> None:
        """Move the watermark past a delivered batch."""
        state = self._state
        high = _high_water(state.last_sync_time, events, sessions)
        event_ids = {e.id for e in events if e.timestamp == high}
        session_ids = {s.id for s in sessions if s.last_activity == high}
        if high == state.last_sync_time:
            event_ids.update(state.synced_event_ids)
            session_ids.update(state.synced_session_ids)
        state.last_sync_time = high
        state.synced_event_ids = sorted(event_ids)
        state.synced_session_ids = sorted(session_ids)
        self._save_state()

    async def sync(self) -> SyncResult:
        """Attempt one sync.  Never raises."""
        if not self._enabled():
            return SyncResult(success=False, error=NOT_ENABLED)
        token = self.token
        if not token:
            return SyncResult(success=False, error=NOT_AUTHENTICATED)
        if self._in_flight:
            return SyncResult(success=False, error=IN_PROGRESS)

        events, sessions = self._select()
        if not events and not sessions:
            return SyncResult(success=True, message=NO_NEW_DATA)
        # Snapshot the open session; it keeps changing while the request runs.
        sessions = [s.model_copy() for s in sessions]

        body = json.dumps({
            "events": [dump_event(e) for e in events],
            "sessions": [dump_session(s) for s in sessions],
        }).encode("utf-8")
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {token}",
        }
        url = self.endpoint()
        logger.debug("Syncing %d events and %d sessions to %s", len(events), len(sessions), url)

        self._in_flight = True
        try:
            status, raw = await asyncio.to_thread(self._transport, url, body, headers, self._timeout)
        except (OSError, ValueError, http.client.HTTPException) as exc:
            logger.warning("Sync request to %s failed: %s", url, exc)
            return SyncResult(success=False, error=f"Network error: {exc}")
        finally:
            self._in_flight = False

        if status in (401, 403):
            logger.warning("Sync rejected by %s with HTTP %d", url, status)
            return SyncResult(success=False, error=NOT_AUTHENTICATED, status=status)

        response = _parse_response(raw)
        if not 200 <= status < 300:
            error = response.get("error") or f"HTTP {status}"
            logger.warning("Sync to %s failed: %s", url, error)
            return SyncResult(success=False, error=str(error), status=status)
        if response.get("success") is not True:
            error = response.get("error") or "Remote rejected the batch"
            logger.warning("Sync to %s was not confirmed: %s", url, error)
            return SyncResult(success=False, error=str(error), status=status)

        self._advance(events, sessions)
        logger.info("Synced %d events and %d sessions", len(events), len(sessions))
        message = response.get("message")
        return SyncResult(
            success=True,
            message=message if isinstance(message, str) else None,
            status=status,
            events_synced=len(events),
            sessions_synced=len(sessions),
        )


def _parse_response(raw: bytes) -> dict[str, Any]:
    try:
        doc = json.loads(raw.decode("utf-8")) if raw else {}
    except (UnicodeDecodeError, json.JSONDecodeError):
        return {}
    return doc if isinstance(doc, dict) else {}


def _high_water(watermark: int, events: list[ActivityEvent], sessions: list[SessionData]) -> int:
    return max(
        [watermark]
        + [e.timestamp for e in events]
        + [s.last_activity for s in sessions]
    )
