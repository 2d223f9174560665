"""Centralised default constants for devtracker.

Every project-wide magic number / string lives here.
Import these instead of hard-coding values in function signatures or CLI options.
"""

from __future__ import annotations

from typing import Final

# ── Timing ──
MS_PER_SECOND: Final[int] = 1000
MS_PER_MINUTE: Final[int] = 60 * 1000
MS_PER_DAY: Final[int] = 24 * 60 * 60 * 1000
DEFAULT_IDLE_GAP_MS: Final[int] = 5 * 60 * 1000
DEFAULT_EDIT_QUIET_MS: Final[int] = 1000
DEFAULT_INACTIVITY_TIMEOUT_SECONDS: Final[float] = 5 * 60.0
DEFAULT_SAVE_DEBOUNCE_SECONDS: Final[float] = 2.0
DEFAULT_RETENTION_INTERVAL_SECONDS: Final[float] = 60 * 60.0
DEFAULT_SYNC_INTERVAL_SECONDS: Final[float] = 5 * 60.0

# ── Event log bounds ──
DEFAULT_MAX_EVENTS: Final[int] = 50_000
TRUNCATE_KEEP_RATIO: Final[float] = 0.8

# ── Document safety caps ──
MAX_DOCUMENT_CHARS: Final[int] = 100 * 1024
MAX_DOCUMENT_LINES: Final[int] = 1000

# ── Paths ──
DEFAULT_DATA_DIR: Final[str] = "data/devtracker"
EVENTS_FILENAME: Final[str] = "activity-data.json"
SESSIONS_FILENAME: Final[str] = "sessions-data.json"
SYNC_STATE_FILENAME: Final[str] = "sync-state.json"
CONFIG_FILENAME: Final[str] = "config.json"
STORAGE_VERSION: Final[str] = "1.0.0"

# ── Statistics ──
DEFAULT_STATS_DAYS: Final[int] = 7
EXPORT_STATS_DAYS: Final[int] = 30
TOP_FILES: Final[int] = 10
TOP_LANGUAGES: Final[int] = 5
TOP_COMMANDS: Final[int] = 10
MAX_EVENT_WEIGHT: Final[int] = 5

# ── Configuration ──
DEFAULT_RETENTION_DAYS: Final[int] = 30
DEFAULT_API_URL: Final[str] = "http://localhost:3000/api"
DEFAULT_EXPORT_FORMAT: Final[str] = "json"

# ── Sync ──
SYNC_ENDPOINT_PATH: Final[str] = "/devtracker/sync"
DEFAULT_SYNC_TIMEOUT_SECONDS: Final[int] = 10

# ── Misc ──
UNKNOWN: Final[str] = "unknown"
UNKNOWN_COMMAND: Final[str] = "unknown.command"
