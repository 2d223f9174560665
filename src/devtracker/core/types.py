"""Core data contracts: activity events, typed payload variants, and sessions.

Payloads form a closed set of shapes.  Which shape an event carries is
decided by its :class:`ActivityType` through :data:`PAYLOAD_TYPES`, so a
``file_edit`` event always holds an :class:`EditPayload`, a
``command_execute`` event always holds a :class:`CommandPayload`, and so on.
Types without a dedicated shape carry a :class:`GenericPayload`.

All models serialize with camelCase aliases so persisted and exported JSON
keeps the ``{id, timestamp, type, data, sessionId, ...}`` layout.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Final, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SerializeAsAny,
    model_validator,
)
from pydantic.alias_generators import to_camel


class ActivityType(StrEnum):
    """Every kind of normalized activity event.

    Values are persisted; do NOT rename them without a storage version bump.
    """

    FILE_OPEN = "file_open"
    FILE_CLOSE = "file_close"
    FILE_SWITCH = "file_switch"
    FILE_EDIT = "file_edit"
    FILE_SAVE = "file_save"
    FILE_CREATE = "file_create"
    FILE_DELETE = "file_delete"
    FILE_RENAME = "file_rename"
    COMMAND_EXECUTE = "command_execute"
    DEBUG_START = "debug_start"
    DEBUG_STOP = "debug_stop"
    DEBUG_BREAKPOINT = "debug_breakpoint"
    TERMINAL_OPEN = "terminal_open"
    TERMINAL_CLOSE = "terminal_close"
    EXTENSION_INSTALL = "extension_install"
    EXTENSION_UNINSTALL = "extension_uninstall"
    WORKSPACE_OPEN = "workspace_open"
    WORKSPACE_CLOSE = "workspace_close"
    FOCUS_GAINED = "focus_gained"
    FOCUS_LOST = "focus_lost"
    TASK_START = "task_start"
    TASK_END = "task_end"
    GIT_COMMIT = "git_commit"
    GIT_PUSH = "git_push"
    GIT_PULL = "git_pull"
    SEARCH_PERFORMED = "search_performed"

    @property
    def group(self) -> str:
        """Coarse event family, e.g. ``"file"`` or ``"debug"``."""
        return self.value.split("_", 1)[0]


# Types whose gaps count towards active time.
ACTIVE_TYPES: Final[frozenset[ActivityType]] = frozenset({
    ActivityType.FILE_EDIT,
    ActivityType.FILE_SWITCH,
    ActivityType.COMMAND_EXECUTE,
    ActivityType.FOCUS_GAINED,
})

CODING_TYPES: Final[frozenset[ActivityType]] = frozenset({
    ActivityType.FILE_EDIT,
    ActivityType.FILE_SAVE,
})

# Session-boundary events that are persisted without debouncing.
CRITICAL_TYPES: Final[frozenset[ActivityType]] = frozenset({
    ActivityType.WORKSPACE_OPEN,
    ActivityType.WORKSPACE_CLOSE,
    ActivityType.DEBUG_START,
    ActivityType.GIT_COMMIT,
})


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# ---------------------------------------------------------------------------
# Payload variants
# ---------------------------------------------------------------------------


class BasePayload(_CamelModel):
    workspace_name: str | None = None


class CursorPosition(_CamelModel):
    line: int = Field(ge=0)
    character: int = Field(ge=0)


class FilePayload(BasePayload):
    """File metadata attached to open/close/switch/save/create/delete events."""

    file_name: str | None = None
    file_path: str | None = None
    file_extension: str | None = None
    language: str | None = None
    line_count: int | None = Field(default=None, ge=0)
    character_count: int | None = Field(default=None, ge=0)
    file_size: int | None = Field(default=None, ge=0)
    is_untitled: bool | None = None
    is_dirty: bool | None = None
    encoding: str | None = None


class EditPayload(FilePayload):
    """File metadata plus the coalesced edit delta of one ``file_edit``."""

    lines_added: int | None = Field(default=None, ge=0)
    lines_deleted: int | None = Field(default=None, ge=0)
    characters_added: int = Field(default=0, ge=0)
    characters_deleted: int = Field(default=0, ge=0)
    edit_type: Literal["insert", "delete", "replace"] | None = None
    cursor_position: CursorPosition | None = None


class CommandPayload(BasePayload):
    command_id: str
    command_title: str | None = None
    category: str | None = None
    execution_time: int | None = Field(default=None, ge=0, description="Wall-clock duration in ms.")
    succeeded: bool | None = None


class DebugPayload(BasePayload):
    debug_type: str | None = None
    configuration_name: str | None = None
    breakpoint_count: int | None = Field(default=None, ge=0)
    duration: int | None = Field(default=None, ge=0)


class GitPayload(BasePayload):
    repository: str | None = None
    branch: str | None = None
    commit_hash: str | None = None
    commit_message: str | None = None
    files_changed: int | None = Field(default=None, ge=0)


class SearchPayload(BasePayload):
    query: str
    results_count: int | None = Field(default=None, ge=0)
    search_scope: Literal["workspace", "file", "selection"] | None = None
    is_regex: bool | None = None
    is_case_sensitive: bool | None = None


class GenericPayload(BasePayload):
    """Fallback shape: keeps arbitrary extra keys (terminal, task, workspace, ...)."""

    model_config = ConfigDict(extra="allow")


PAYLOAD_TYPES: Final[dict[ActivityType, type[BasePayload]]] = {
    ActivityType.FILE_OPEN: FilePayload,
    ActivityType.FILE_CLOSE: FilePayload,
    ActivityType.FILE_SWITCH: FilePayload,
    ActivityType.FILE_SAVE: FilePayload,
    ActivityType.FILE_CREATE: FilePayload,
    ActivityType.FILE_DELETE: FilePayload,
    ActivityType.FILE_EDIT: EditPayload,
    ActivityType.COMMAND_EXECUTE: CommandPayload,
    ActivityType.DEBUG_START: DebugPayload,
    ActivityType.DEBUG_STOP: DebugPayload,
    ActivityType.DEBUG_BREAKPOINT: DebugPayload,
    ActivityType.GIT_COMMIT: GitPayload,
    ActivityType.GIT_PUSH: GitPayload,
    ActivityType.GIT_PULL: GitPayload,
    ActivityType.SEARCH_PERFORMED: SearchPayload,
}


def payload_type_for(event_type: ActivityType) -> type[BasePayload]:
    """Return the payload class carried by *event_type*."""
    return PAYLOAD_TYPES.get(event_type, GenericPayload)


# ---------------------------------------------------------------------------
# Events and sessions
# ---------------------------------------------------------------------------


class ActivityEvent(_CamelModel):
    """One normalized, timestamped record of a discrete developer action.

    Immutable once created.  ``payload`` is serialized under the ``data``
    key.  A raw dict payload is coerced into the class selected by
    ``type``; a payload instance of the wrong class is rejected.
    """

    id: str
    timestamp: int = Field(ge=0, description="Epoch milliseconds.")
    type: ActivityType
    payload: SerializeAsAny[BasePayload] = Field(alias="data")
    session_id: str
    workspace_id: str | None = None
    project_name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_payload(cls, values: Any) -> Any:
        if not isinstance(values, dict):
            return values
        key = "data" if "data" in values else "payload"
        raw = values.get(key)
        try:
            event_type = ActivityType(values.get("type"))
        except ValueError:
            return values
        expected = payload_type_for(event_type)
        if raw is None:
            raw = {}
        if isinstance(raw, dict):
            values = {**values, key: expected.model_validate(raw)}
        elif type(raw) is not expected:
            raise ValueError(
                f"{event_type.value} events carry {expected.__name__}, "
                f"got {type(raw).__name__}"
            )
        return values


class SessionData(BaseModel):
    """A contiguous span of tracked activity.

    ``end_time`` tracks the latest recorded activity, so an open session
    already carries one.  Mutated in place by
    :class:`~devtracker.storage.sessions.SessionManager` only.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        validate_assignment=True,
    )

    id: str
    start_time: int = Field(ge=0)
    end_time: int | None = Field(default=None, ge=0)
    workspace_id: str | None = None
    project_name: str | None = None
    total_events: int = Field(default=0, ge=0)
    active_time: int = Field(default=0, ge=0)

    @property
    def last_activity(self) -> int:
        """``end_time`` if set, otherwise ``start_time``."""
        return self.end_time if self.end_time is not None else self.start_time


def dump_event(event: ActivityEvent) -> dict[str, Any]:
    """Serialize *event* to its camelCase JSON-compatible dict."""
    return event.model_dump(mode="json", by_alias=True, exclude_none=True)


def dump_session(session: SessionData) -> dict[str, Any]:
    """Serialize *session* to its camelCase JSON-compatible dict."""
    return session.model_dump(mode="json", by_alias=True, exclude_none=True)
