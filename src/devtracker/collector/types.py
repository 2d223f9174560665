"""Inbound notification shapes delivered by the editor host.

These carry only what the normalizer needs.  The host adapts its own
document/debug/task objects into them; any field it cannot fill keeps
its safe default.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class DocumentInfo(BaseModel, frozen=True):
    """A text document as seen by the host at notification time."""

    path: str = Field(default="", description="Absolute file-system path.")
    language_id: str = Field(default="unknown", description="Host language identifier, e.g. 'python'.")
    line_count: int = Field(default=0, ge=0)
    text: str = Field(default="", description="Document text; capped before measuring.")
    is_untitled: bool = False
    is_dirty: bool = False
    scheme: str = Field(default="file", description="URI scheme; only 'file' edits are coalesced.")


class TextChange(BaseModel, frozen=True):
    """One content change inside an edit notification."""

    range_length: int = Field(default=0, ge=0, description="Characters replaced or deleted.")
    text: str = Field(default="", description="Inserted text.")


class CursorInfo(BaseModel, frozen=True):
    line: int = Field(default=0, ge=0)
    character: int = Field(default=0, ge=0)


class DebugSessionInfo(BaseModel, frozen=True):
    debug_type: str | None = None
    name: str | None = None
    breakpoint_count: int = Field(default=0, ge=0)


class TaskInfo(BaseModel, frozen=True):
    name: str = "unknown"
    task_type: str | None = None
    scope: str | None = None


class WorkspaceFolder(BaseModel, frozen=True):
    path: str
    name: str


class RenamedFile(BaseModel, frozen=True):
    old_path: str
    new_path: str
