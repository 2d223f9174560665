"""Atomic JSON and Parquet I/O primitives."""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any

import pandas as pd


def write_json(data: Any, path: Path) -> Path:
    """Write *data* as JSON to *path* atomically.

    Writes to a temporary file in the same directory first, then
    atomically replaces the target via :func:`os.replace`.  This
    prevents readers from ever seeing a partially-written file, so a
    crash mid-write leaves the previous snapshot intact.

    Args:
        data: JSON-serializable document.
        path: Destination file path (e.g. ``data/devtracker/activity-data.json``).

    Returns:
        The *path* that was written, for convenient chaining.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".json.tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise
    return path


def read_json(path: Path) -> Any:
    """Read a JSON document.

    Args:
        path: Path to an existing ``.json`` file.

    Returns:
        The decoded document.

    Raises:
        OSError: If the file cannot be read.
        json.JSONDecodeError: If the content is not valid JSON.
    """
    return json.loads(path.read_text("utf-8"))


def write_parquet(df: pd.DataFrame, path: Path) -> Path:
    """Write *df* to a parquet file at *path* atomically.

    Same temp-file-then-:func:`os.replace` scheme as :func:`write_json`.

    Args:
        df: DataFrame to persist.
        path: Destination file path (e.g. ``exports/activity.parquet``).

    Returns:
        The *path* that was written, for convenient chaining.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, suffix=".parquet.tmp")
    try:
        os.close(fd)
        df.to_parquet(tmp, engine="pyarrow", index=False)
        os.replace(tmp, path)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp)
        raise
    return path


def read_parquet(path: Path) -> pd.DataFrame:
    return pd.read_parquet(path, engine="pyarrow")
