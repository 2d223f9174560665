"""Export snapshot of the activity log: JSON, CSV, and Parquet output.

The JSON form is the complete snapshot and can be read back with
:func:`load_export_json`.  CSV and Parquet are flat one-row-per-event
tables with the columns in :data:`EXPORT_COLUMNS`.
"""

from __future__ import annotations

import csv
import sys
from datetime import tzinfo
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import Any, Final, Sequence

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from devtracker.core.defaults import EXPORT_STATS_DAYS, STORAGE_VERSION, UNKNOWN
from devtracker.core.store import read_json, write_json, write_parquet
from devtracker.core.time import iso_utc, now_ms
from devtracker.core.types import ActivityEvent, FilePayload, SessionData
from devtracker.stats.report import ActivityStats, compute_stats

EXPORT_FORMATS: Final[tuple[str, ...]] = ("json", "csv", "parquet")

EXPORT_COLUMNS: Final[list[str]] = [
    "timestamp",
    "type",
    "fileName",
    "language",
    "sessionId",
    "workspaceId",
]


class _ExportModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class TimeRange(_ExportModel):
    start: str = Field(default="", description="ISO-8601 UTC of the oldest event, or ''.")
    end: str = Field(default="", description="ISO-8601 UTC of the newest event, or ''.")


class ExportMetadata(_ExportModel):
    host_version: str = UNKNOWN
    tool_version: str = UNKNOWN
    platform: str = UNKNOWN


class ExportSnapshot(_ExportModel):
    """Everything the tracker knows, plus 30-day statistics."""

    export_date: str
    version: str = STORAGE_VERSION
    total_events: int = Field(ge=0)
    time_range: TimeRange
    events: list[ActivityEvent]
    sessions: list[SessionData]
    stats: ActivityStats
    metadata: ExportMetadata


def tool_version() -> str:
    try:
        return version("devtracker")
    except PackageNotFoundError:
        return STORAGE_VERSION


def build_snapshot(
    events: Sequence[ActivityEvent],
    sessions: Sequence[SessionData],
    *,
    host_version: str = UNKNOWN,
    now: int | None = None,
    tz: tzinfo | None = None,
) -> ExportSnapshot:
    """Assemble an :class:`ExportSnapshot` from the full log."""
    if now is None:
        now = now_ms()
    time_range = TimeRange()
    if events:
        stamps = [e.timestamp for e in events]
        time_range = TimeRange(start=iso_utc(min(stamps)), end=iso_utc(max(stamps)))
    return ExportSnapshot(
        export_date=iso_utc(now),
        total_events=len(events),
        time_range=time_range,
        events=list(events),
        sessions=list(sessions),
        stats=compute_stats(events, EXPORT_STATS_DAYS, now=now, tz=tz),
        metadata=ExportMetadata(
            host_version=host_version,
            tool_version=tool_version(),
            platform=sys.platform,
        ),
    )


def snapshot_to_dict(snapshot: ExportSnapshot) -> dict[str, Any]:
    return snapshot.model_dump(mode="json", by_alias=True, exclude_none=True)


def event_rows(events: Sequence[ActivityEvent]) -> list[dict[str, str]]:
    """Flatten *events* into :data:`EXPORT_COLUMNS` rows."""
    rows: list[dict[str, str]] = []
    for event in events:
        payload = event.payload
        is_file = isinstance(payload, FilePayload)
        rows.append({
            "timestamp": iso_utc(event.timestamp),
            "type": event.type.value,
            "fileName": (payload.file_name or "") if is_file else "",
            "language": (payload.language or "") if is_file else "",
            "sessionId": event.session_id,
            "workspaceId": event.workspace_id or "",
        })
    return rows


def export_json(snapshot: ExportSnapshot, path: Path) -> Path:
    """Write the full snapshot as indented JSON."""
    return write_json(snapshot_to_dict(snapshot), path)


def export_csv(snapshot: ExportSnapshot, path: Path) -> Path:
    """Write one CSV row per event with :data:`EXPORT_COLUMNS`."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=EXPORT_COLUMNS)
        writer.writeheader()
        writer.writerows(event_rows(snapshot.events))
    return path


def export_parquet(snapshot: ExportSnapshot, path: Path) -> Path:
    """Write the CSV table as Parquet; same columns, string-typed."""
    df = pd.DataFrame(event_rows(snapshot.events), columns=EXPORT_COLUMNS)
    return write_parquet(df, path)


def export_snapshot(snapshot: ExportSnapshot, path: Path, fmt: str = "json") -> Path:
    """Write *snapshot* to *path* in *fmt*.

    Raises:
        ValueError: If *fmt* is not one of :data:`EXPORT_FORMATS`.
    """
    if fmt == "json":
        return export_json(snapshot, path)
    if fmt == "csv":
        return export_csv(snapshot, path)
    if fmt == "parquet":
        return export_parquet(snapshot, path)
    raise ValueError(f"Unsupported export format {fmt!r}; expected one of {EXPORT_FORMATS}")


def load_export_json(path: Path) -> ExportSnapshot:
    """Parse a JSON export written by :func:`export_json`."""
    return ExportSnapshot.model_validate(read_json(path))
