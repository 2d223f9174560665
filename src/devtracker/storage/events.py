"""Append-only, bounded, durably persisted event log.

Two JSON documents live in the data directory:

* ``activity-data.json``: ``{events, lastUpdated, version}``
* ``sessions-data.json``: ``{sessions, currentSession, lastUpdated, version}``

Both are rewritten in full on every flush (last writer wins).  Critical
event types flush synchronously; everything else re-arms a single
debounce timer.  Read and write failures never propagate: a failed read
yields an empty state and a failed write leaves the store running from
memory.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, TypeVar

from pydantic import BaseModel, ValidationError

from devtracker.core.defaults import (
    DEFAULT_MAX_EVENTS,
    DEFAULT_SAVE_DEBOUNCE_SECONDS,
    EVENTS_FILENAME,
    SESSIONS_FILENAME,
    STORAGE_VERSION,
    TRUNCATE_KEEP_RATIO,
)
from devtracker.core.store import read_json, write_json
from devtracker.core.time import Clock, now_ms
from devtracker.core.timers import ReplaceableTimer, Scheduler
from devtracker.core.types import (
    CRITICAL_TYPES,
    ActivityEvent,
    SessionData,
    dump_event,
    dump_session,
)
from devtracker.storage.sessions import SessionManager

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class EventStore:
    """Single owner of the in-memory event log and its persisted snapshot.

    Args:
        data_dir: Directory holding both JSON documents.
        sessions: Session manager updated on every append and persisted
            alongside the events.
        scheduler: Owner of the save-debounce timer.  ``None`` makes
            every append flush immediately (one-shot command-line use).
        max_events: Hard cap on the in-memory log.
        save_debounce: Seconds of quiet before a debounced flush.
        clock: Epoch-millisecond clock used for ``lastUpdated``.
    """

    def __init__(
        self,
        data_dir: Path,
        sessions: SessionManager,
        scheduler: Scheduler | None = None,
        *,
        max_events: int = DEFAULT_MAX_EVENTS,
        save_debounce: float = DEFAULT_SAVE_DEBOUNCE_SECONDS,
        clock: Clock = now_ms,
    ) -> None:
        if max_events <= 0:
            raise ValueError(f"max_events must be positive, got {max_events}")
        self._data_dir = Path(data_dir)
        self._sessions = sessions
        self._max_events = max_events
        self._save_debounce = save_debounce
        self._clock = clock
        self._events: list[ActivityEvent] = []
        self._save_timer = ReplaceableTimer(scheduler, "save") if scheduler is not None else None

    @property
    def events_path(self) -> Path:
        return self._data_dir / EVENTS_FILENAME

    @property
    def sessions_path(self) -> Path:
        return self._data_dir / SESSIONS_FILENAME

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    @property
    def flush_pending(self) -> bool:
        return self._save_timer is not None and self._save_timer.pending

    def __len__(self) -> int:
        return len(self._events)

    # -- ingestion -------------------------------------------------------------

    def append(self, event: ActivityEvent) -> None:
        """Append *event* at the tail and schedule persistence."""
        self._events.append(event)
        self._sessions.record(event)
        self._enforce_bounds()

        if event.type in CRITICAL_TYPES or self._save_timer is None:
            self.flush()
        else:
            self._save_timer.schedule(self._save_debounce, self.flush)

    def _enforce_bounds(self) -> None:
        if len(self._events) > self._max_events:
            keep = int(self._max_events * TRUNCATE_KEEP_RATIO)
            dropped = len(self._events) - keep
            self._events = self._events[-keep:] if keep else []
            logger.debug("Event log over %d, dropped %d oldest events", self._max_events, dropped)

    # -- reads -----------------------------------------------------------------

    def query(self, start_time: int | None = None, end_time: int | None = None) -> list[ActivityEvent]:
        """Events with ``start_time <= timestamp <= end_time``, in append order.

        Either bound may be ``None`` (unbounded).  Always returns a new list.
        """
        return [
            e for e in self._events
            if (start_time is None or e.timestamp >= start_time)
            and (end_time is None or e.timestamp <= end_time)
        ]

    def events_since(self, watermark: int) -> list[ActivityEvent]:
        """Events strictly newer than *watermark*, in append order."""
        return [e for e in self._events if e.timestamp > watermark]

    # -- mutation --------------------------------------------------------------

    def prune(self, cutoff: int) -> int:
        """Drop events and archived sessions older than *cutoff*.

        Flushes only when something was removed.

        Returns:
            Total number of removed events and sessions.
        """
        before = len(self._events)
        self._events = [e for e in self._events if e.timestamp >= cutoff]
        removed = before - len(self._events) + self._sessions.prune(cutoff)
        if removed:
            logger.info("Pruned %d records older than %d", removed, cutoff)
            self.flush()
        return removed

    def clear(self) -> bool:
        """Drop every event and session, then persist the empty state.

        Returns:
            Whether the empty state was written.
        """
        self._events = []
        self._sessions.clear()
        return self.flush()

    # -- persistence -----------------------------------------------------------

    def cancel_pending(self) -> None:
        if self._save_timer is not None:
            self._save_timer.cancel()

    def flush(self) -> bool:
        """Write both documents now, superseding any pending debounced save.

        Returns:
            ``True`` if both documents were written.
        """
        self.cancel_pending()
        updated = self._clock()
        current = self._sessions.current
        events_doc = {
            "events": [dump_event(e) for e in self._events],
            "lastUpdated": updated,
            "version": STORAGE_VERSION,
        }
        sessions_doc = {
            "sessions": [dump_session(s) for s in self._sessions.sessions],
            "currentSession": dump_session(current) if current is not None else None,
            "lastUpdated": updated,
            "version": STORAGE_VERSION,
        }
        try:
            write_json(events_doc, self.events_path)
            write_json(sessions_doc, self.sessions_path)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to persist activity data to %s: %s", self._data_dir, exc)
            return False
        logger.debug("Persisted %d events", len(self._events))
        return True

    def load(self) -> None:
        """Replace in-memory state with the persisted snapshot.

        Missing or unreadable documents yield an empty state; invalid
        records are skipped.  Never raises.
        """
        events_doc = _read_document(self.events_path)
        self._events = _parse_records(events_doc.get("events"), ActivityEvent.model_validate, "event")
        self._enforce_bounds()

        sessions_doc = _read_document(self.sessions_path)
        archived = _parse_records(sessions_doc.get("sessions"), SessionData.model_validate, "session")
        current = None
        raw_current = sessions_doc.get("currentSession")
        if raw_current is not None:
            parsed = _parse_records([raw_current], SessionData.model_validate, "session")
            current = parsed[0] if parsed else None
        self._sessions.restore(archived, current)
        logger.info(
            "Loaded %d events and %d sessions from %s",
            len(self._events), len(self._sessions.sessions), self._data_dir,
        )


def _read_document(path: Path) -> dict[str, Any]:
    try:
        doc = read_json(path)
    except FileNotFoundError:
        return {}
    except (OSError, json.JSONDecodeError, UnicodeDecodeError) as exc:
        logger.warning("Ignoring unreadable %s: %s", path, exc)
        return {}
    if not isinstance(doc, dict):
        logger.warning("Ignoring %s: expected a JSON object", path)
        return {}
    return doc


def _parse_records(raw: Any, parse: Callable[[Any], M], kind: str) -> list[M]:
    if not isinstance(raw, list):
        return []
    records: list[M] = []
    skipped = 0
    for item in raw:
        try:
            records.append(parse(item))
        except ValidationError:
            skipped += 1
    if skipped:
        logger.warning("Skipped %d invalid %s records", skipped, kind)
    return records
