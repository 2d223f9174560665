"""Tracker configuration persistence.

Stores the recognized options as a JSON file inside the data directory.
The file is only written on the first mutation; until then defaults
apply.  Keys use the camelCase names the editor settings expose::

    {"enableTracking": true, "enableSync": false, "dataRetentionDays": 30,
     "exportFormat": "json", "apiUrl": "http://localhost:3000/api",
     "enableNotifications": true}

Usage::

    from devtracker.core.config import TrackerConfig

    cfg = TrackerConfig(data_dir)
    cfg.enable_tracking          # True by default
    cfg.update({"enableSync": True})   # validated, persists immediately
    cfg.as_dict()

Environment variables override persisted values for the current process
only (they are never written back): ``DEVTRACKER_API_URL``,
``DEVTRACKER_ENABLE_SYNC``.  ``DEVTRACKER_API_TOKEN`` is read by the
sync client.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Final, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from devtracker.core.defaults import (
    CONFIG_FILENAME,
    DEFAULT_API_URL,
    DEFAULT_DATA_DIR,
    DEFAULT_EXPORT_FORMAT,
    DEFAULT_RETENTION_DAYS,
)

logger = logging.getLogger(__name__)

ENV_API_URL: Final[str] = "DEVTRACKER_API_URL"
ENV_ENABLE_SYNC: Final[str] = "DEVTRACKER_ENABLE_SYNC"
ENV_API_TOKEN: Final[str] = "DEVTRACKER_API_TOKEN"

_TRUTHY: Final[frozenset[str]] = frozenset({"true", "1", "yes", "on"})


class TrackerSettings(BaseModel):
    """Validated view of every recognized configuration option."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    enable_tracking: bool = True
    enable_sync: bool = False
    data_retention_days: int = Field(default=DEFAULT_RETENTION_DAYS, ge=1)
    export_format: Literal["json", "csv"] = DEFAULT_EXPORT_FORMAT
    api_url: str = DEFAULT_API_URL
    enable_notifications: bool = True


def _env_overrides() -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    api_url = os.getenv(ENV_API_URL)
    if api_url:
        overrides["apiUrl"] = api_url
    enable_sync = os.getenv(ENV_ENABLE_SYNC)
    if enable_sync is not None:
        overrides["enableSync"] = enable_sync.strip().lower() in _TRUTHY
    return overrides


def api_token_from_env() -> str | None:
    """Bearer token supplied through ``DEVTRACKER_API_TOKEN``, if any."""
    token = os.getenv(ENV_API_TOKEN, "").strip()
    return token or None


class TrackerConfig:
    """Read/write access to ``config.json`` in a data directory.

    All mutations are validated through :class:`TrackerSettings` and
    persisted immediately.  A corrupt or invalid file is logged and
    ignored so the collector always starts with usable settings.
    """

    def __init__(self, data_dir: Path | str = DEFAULT_DATA_DIR) -> None:
        self._path = Path(data_dir) / CONFIG_FILENAME
        self._data: dict[str, Any] = self._load()
        self._settings = self._resolve()

    def _load(self) -> dict[str, Any]:
        if self._path.exists():
            try:
                data = json.loads(self._path.read_text("utf-8"))
                TrackerSettings.model_validate(data)
                return data
            except (json.JSONDecodeError, OSError, ValidationError):
                logger.warning("Corrupt config at %s, using defaults", self._path)
        return {}

    def _resolve(self) -> TrackerSettings:
        return TrackerSettings.model_validate({**self._data, **_env_overrides()})

    def _persist(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps(self._data, indent=2) + "\n", "utf-8")

    @property
    def path(self) -> Path:
        return self._path

    @property
    def settings(self) -> TrackerSettings:
        return self._settings

    # -- recognized options ----------------------------------------------------

    @property
    def enable_tracking(self) -> bool:
        return self._settings.enable_tracking

    @property
    def enable_sync(self) -> bool:
        return self._settings.enable_sync

    @property
    def data_retention_days(self) -> int:
        return self._settings.data_retention_days

    @property
    def export_format(self) -> str:
        return self._settings.export_format

    @property
    def api_url(self) -> str:
        return self._settings.api_url

    @property
    def enable_notifications(self) -> bool:
        return self._settings.enable_notifications

    # -- generic helpers -------------------------------------------------------

    def as_dict(self) -> dict[str, Any]:
        return self._settings.model_dump(by_alias=True)

    def update(self, patch: dict[str, Any]) -> dict[str, Any]:
        """Merge *patch* into the config, validate, and persist.

        Keys may be given in camelCase (``enableSync``) or snake_case
        (``enable_sync``).  Unknown keys are rejected.

        Returns:
            The full resolved configuration.

        Raises:
            ValueError: If a key is unknown or a value fails validation.
        """
        fields = TrackerSettings.model_fields
        normalized: dict[str, Any] = {}
        for key, val in patch.items():
            if key in fields:
                key = to_camel(key)
            elif key not in {f.alias for f in fields.values()}:
                raise ValueError(f"Unknown config key {key!r}")
            normalized[key] = val

        merged = {**self._data, **normalized}
        try:
            TrackerSettings.model_validate(merged)
        except ValidationError as exc:
            raise ValueError(str(exc)) from exc

        self._data = merged
        self._persist()
        self._settings = self._resolve()
        return self.as_dict()
