"""Command categorization and safe file-metadata extraction.

Command identifiers are dotted strings (``git.commit``,
``editor.action.formatDocument``).  :func:`categorize_command` maps them
onto a coarse category through an ordered prefix table.
"""

from __future__ import annotations

import logging
import re
from typing import Final

from devtracker.collector.types import DocumentInfo
from devtracker.core.defaults import MAX_DOCUMENT_CHARS, MAX_DOCUMENT_LINES, UNKNOWN
from devtracker.core.types import FilePayload

logger = logging.getLogger(__name__)

# ---- command prefix registry ---------------------------------------------------
# Checked in order; the first matching prefix wins.

COMMAND_CATEGORIES: Final[tuple[tuple[str, str], ...]] = (
    ("git.", "git"),
    ("debug.", "debug"),
    ("workbench.action.files.", "file"),
    ("editor.action.", "editor"),
    ("workbench.action.terminal.", "terminal"),
)

DEFAULT_COMMAND_CATEGORY: Final[str] = "other"

_PATH_SEPARATORS: Final[re.Pattern[str]] = re.compile(r"[/\\]")

_GIT_MESSAGE_FILES: Final[tuple[str, ...]] = ("commit_editmsg", "merge_msg")


def categorize_command(command_id: str) -> str:
    """Return the coarse category of *command_id* (``"other"`` if unmatched)."""
    for prefix, category in COMMAND_CATEGORIES:
        if command_id.startswith(prefix):
            return category
    return DEFAULT_COMMAND_CATEGORY


def split_file_name(path: str) -> tuple[str, str]:
    """Return ``(file_name, extension)`` for a ``/`` or ``\\`` separated *path*.

    Falls back to ``("unknown", "")`` when *path* has no final component.
    """
    parts = _PATH_SEPARATORS.split(path or "")
    file_name = parts[-1] if parts and parts[-1] else UNKNOWN
    extension = file_name.rsplit(".", 1)[-1] if "." in file_name else ""
    return file_name, extension


def cap_text(text: str, max_lines: int = MAX_DOCUMENT_LINES, max_chars: int = MAX_DOCUMENT_CHARS) -> str:
    """Truncate *text* to its first *max_lines* lines, then to *max_chars* characters."""
    lines = text.splitlines(keepends=True)
    if len(lines) > max_lines:
        text = "".join(lines[:max_lines]).rstrip("\r\n")
    return text[:max_chars]


def is_git_message_file(path: str) -> bool:
    """True for files git opens in the editor to collect commit/merge messages."""
    name = split_file_name(path)[0].lower()
    return any(marker in name for marker in _GIT_MESSAGE_FILES)


def file_payload(document: DocumentInfo, workspace_name: str | None = None) -> FilePayload:
    """Build a :class:`FilePayload` from *document* with safe defaults.

    Document text is capped before measuring so a huge buffer never
    inflates memory use.  Any failure yields a payload with
    ``"unknown"`` names and zero counts.
    """
    try:
        file_name, extension = split_file_name(document.path)
        text = cap_text(document.text)
        return FilePayload(
            file_name=file_name,
            file_path=document.path or UNKNOWN,
            file_extension=extension,
            language=document.language_id or UNKNOWN,
            line_count=document.line_count,
            character_count=len(text),
            file_size=len(text.encode("utf-8")),
            is_untitled=document.is_untitled,
            is_dirty=document.is_dirty,
            encoding="utf8",
            workspace_name=workspace_name,
        )
    except Exception:
        logger.exception("Failed to extract file metadata")
        return FilePayload(
            file_name=UNKNOWN,
            file_path=UNKNOWN,
            file_extension="",
            language=UNKNOWN,
            line_count=0,
            character_count=0,
            file_size=0,
            is_untitled=False,
            is_dirty=False,
            encoding="utf8",
            workspace_name=workspace_name,
        )
