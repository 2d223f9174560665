"""Raw editor notifications to de-noised :class:`ActivityEvent` records.

The host calls one ``on_*`` method per notification.  The normalizer
turns each into at most one event per meaningful unit of work and hands
it to a *sink* (the event store's ``append``):

* **Edit coalescing**: edits to the same file that arrive less than
  one second apart are summed into a per-file buffer.  Each edit re-arms
  that file's one-second timer; when the file goes quiet (or is closed)
  the buffer becomes a single ``file_edit`` event.
* **Inactivity**: a five-minute timer emits a synthetic ``focus_lost``
  unless a focus notification arrives first; focus-gained re-arms it.
  While the window is unfocused nothing but focus changes is recorded.
* **Commands**: :meth:`EventNormalizer.invoke_command` and
  :meth:`EventNormalizer.invoke_command_async` are the instrumentation
  boundary every command dispatch goes through.  Success and failure
  are recorded identically, with elapsed wall-clock time and a
  prefix-derived category.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Sequence, TypeVar

from devtracker.collector.mapping import (
    categorize_command,
    file_payload,
    is_git_message_file,
    split_file_name,
)
from devtracker.collector.types import (
    CursorInfo,
    DebugSessionInfo,
    DocumentInfo,
    RenamedFile,
    TaskInfo,
    TextChange,
    WorkspaceFolder,
)
from devtracker.core.defaults import (
    DEFAULT_EDIT_QUIET_MS,
    DEFAULT_INACTIVITY_TIMEOUT_SECONDS,
    MS_PER_SECOND,
    UNKNOWN_COMMAND,
)
from devtracker.core.ids import new_event_id
from devtracker.core.time import Clock, now_ms
from devtracker.core.timers import ReplaceableTimer, Scheduler
from devtracker.core.types import (
    ActivityEvent,
    ActivityType,
    BasePayload,
    CommandPayload,
    CursorPosition,
    DebugPayload,
    EditPayload,
    FilePayload,
    GitPayload,
    SearchPayload,
    payload_type_for,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WorkspaceContext:
    """The host's open workspace folders; the first one identifies the workspace."""

    def __init__(self, folders: Iterable[WorkspaceFolder] = ()) -> None:
        self._folders: list[WorkspaceFolder] = list(folders)

    @property
    def folders(self) -> list[WorkspaceFolder]:
        return list(self._folders)

    @property
    def workspace_id(self) -> str | None:
        return self._folders[0].path if self._folders else None

    @property
    def project_name(self) -> str | None:
        return self._folders[0].name if self._folders else None

    def apply(self, added: Sequence[WorkspaceFolder], removed: Sequence[WorkspaceFolder]) -> bool:
        """Apply a folder change; returns ``True`` if the primary folder changed."""
        before = self.workspace_id
        removed_paths = {f.path for f in removed}
        self._folders = [f for f in self._folders if f.path not in removed_paths]
        known = {f.path for f in self._folders}
        self._folders.extend(f for f in added if f.path not in known)
        return self.workspace_id != before


@dataclass
class _EditBuffer:
    document: DocumentInfo
    last_edit: int
    added: int = 0
    deleted: int = 0
    edits: int = 0
    cursor: CursorInfo | None = None


class EventNormalizer:
    """Converts host notifications into :class:`ActivityEvent` records.

    Args:
        sink: Ingestion entry point receiving every emitted event.
        scheduler: Owner of the edit and inactivity timers.
        session_id: Returns the id of the session events belong to.
        workspace: Current workspace folders.
        is_enabled: Returns ``False`` while tracking is switched off.
        on_workspace_change: Called after the primary workspace folder
            changes, before the matching ``workspace_open`` events.
        clock: Epoch-millisecond clock.
    """

    def __init__(
        self,
        sink: Callable[[ActivityEvent], None],
        scheduler: Scheduler,
        *,
        session_id: Callable[[], str],
        workspace: WorkspaceContext | None = None,
        is_enabled: Callable[[], bool] = lambda: True,
        on_workspace_change: Callable[[], None] | None = None,
        clock: Clock = now_ms,
        edit_quiet_ms: int = DEFAULT_EDIT_QUIET_MS,
        inactivity_timeout: float = DEFAULT_INACTIVITY_TIMEOUT_SECONDS,
    ) -> None:
        self._sink = sink
        self._scheduler = scheduler
        self._session_id = session_id
        self.workspace = workspace or WorkspaceContext()
        self._is_enabled = is_enabled
        self._on_workspace_change = on_workspace_change
        self._clock = clock
        self._edit_quiet_ms = edit_quiet_ms
        self._inactivity_timeout = inactivity_timeout

        self._edit_buffers: dict[str, _EditBuffer] = {}
        self._edit_timers: dict[str, ReplaceableTimer] = {}
        self._inactivity_timer = ReplaceableTimer(scheduler, "inactivity")
        self._focused = True

    # -- lifecycle -------------------------------------------------------------

    def start(self) -> None:
        """Arm the inactivity timer and record the initially open workspace."""
        self._restart_inactivity_timer()
        folders = self.workspace.folders
        if folders:
            self._emit(ActivityType.WORKSPACE_OPEN, _workspace_data(folders[0]))

    def cancel_timers(self) -> None:
        """Cancel every pending timer; buffered edits stay buffered."""
        self._inactivity_timer.cancel()
        for timer in self._edit_timers.values():
            timer.cancel()
        self._edit_timers.clear()

    def flush_all_edits(self) -> None:
        for path in list(self._edit_buffers):
            self.flush_edits(path)

    @property
    def pending_edit_paths(self) -> list[str]:
        return list(self._edit_buffers)

    # -- emission --------------------------------------------------------------

    def _emit(
        self,
        event_type: ActivityType,
        payload: BasePayload | dict[str, Any],
        *,
        while_unfocused: bool = False,
    ) -> ActivityEvent | None:
        if not self._is_enabled():
            return None
        if not self._focused and not while_unfocused:
            return None
        project = self.workspace.project_name
        try:
            if isinstance(payload, dict):
                payload = payload_type_for(event_type).model_validate(payload)
            if payload.workspace_name is None and project is not None:
                payload = payload.model_copy(update={"workspace_name": project})
            ts = self._clock()
            event = ActivityEvent(
                id=new_event_id(ts),
                timestamp=ts,
                type=event_type,
                payload=payload,
                session_id=self._session_id(),
                workspace_id=self.workspace.workspace_id,
                project_name=project,
            )
        except Exception:
            logger.exception("Failed to build %s event", event_type.value)
            return None

        logger.debug("Emitting %s event %s", event_type.value, event.id)
        try:
            self._sink(event)
        except Exception:
            logger.exception("Sink rejected %s event", event_type.value)
        return event

    # -- files -----------------------------------------------------------------

    def on_file_open(self, document: DocumentInfo) -> None:
        self._emit(ActivityType.FILE_OPEN, file_payload(document))

    def on_file_close(self, document: DocumentInfo) -> None:
        self._emit(ActivityType.FILE_CLOSE, file_payload(document))
        self.flush_edits(document.path)

    def on_file_save(self, document: DocumentInfo) -> None:
        self._emit(ActivityType.FILE_SAVE, file_payload(document))
        if is_git_message_file(document.path):
            lines = document.text.splitlines()
            self._emit(
                ActivityType.GIT_COMMIT,
                GitPayload(
                    repository=self.workspace.project_name,
                    commit_message=lines[0] if lines else "",
                ),
            )

    def on_files_created(self, paths: Iterable[str]) -> None:
        for path in paths:
            if path:
                self._emit(ActivityType.FILE_CREATE, _path_payload(path))

    def on_files_deleted(self, paths: Iterable[str]) -> None:
        for path in paths:
            if path:
                self._emit(ActivityType.FILE_DELETE, _path_payload(path))

    def on_files_renamed(self, renames: Iterable[RenamedFile]) -> None:
        for rename in renames:
            if not rename.old_path or not rename.new_path:
                continue
            self._emit(ActivityType.FILE_RENAME, {
                "oldFileName": split_file_name(rename.old_path)[0],
                "newFileName": split_file_name(rename.new_path)[0],
                "oldFilePath": rename.old_path,
                "newFilePath": rename.new_path,
            })

    def on_editor_switch(self, document: DocumentInfo | None) -> None:
        if document is None:
            return
        self._emit(ActivityType.FILE_SWITCH, file_payload(document))

    # -- edit coalescing -------------------------------------------------------

    def on_file_edit(
        self,
        document: DocumentInfo,
        changes: Sequence[TextChange],
        cursor: CursorInfo | None = None,
    ) -> None:
        """Buffer one edit notification for *document*.

        A notification arriving one second or more after the previous edit
        on the same file first flushes the stale buffer.
        """
        if document.scheme != "file" or not changes or not self._focused:
            return

        path = document.path
        now = self._clock()
        buf = self._edit_buffers.get(path)
        if buf is not None and now - buf.last_edit >= self._edit_quiet_ms:
            self.flush_edits(path)
            buf = None
        if buf is None:
            buf = _EditBuffer(document=document, last_edit=now)
            self._edit_buffers[path] = buf

        for change in changes:
            buf.added += len(change.text)
            buf.deleted += change.range_length
            buf.edits += 1
        buf.document = document
        buf.cursor = cursor
        buf.last_edit = now

        timer = self._edit_timers.get(path)
        if timer is None:
            timer = ReplaceableTimer(self._scheduler, f"edit:{path}")
            self._edit_timers[path] = timer
        timer.schedule(self._edit_quiet_ms / MS_PER_SECOND, lambda: self.flush_edits(path))

    def flush_edits(self, path: str) -> ActivityEvent | None:
        """Emit the buffered edits of *path* as one ``file_edit`` event.

        Returns the event, or ``None`` when nothing was buffered or the
        buffer nets to zero added and zero deleted characters.
        """
        timer = self._edit_timers.pop(path, None)
        if timer is not None:
            timer.cancel()
        buf = self._edit_buffers.pop(path, None)
        if buf is None or (buf.added == 0 and buf.deleted == 0):
            return None

        if buf.added and buf.deleted:
            edit_type = "replace"
        elif buf.added:
            edit_type = "insert"
        else:
            edit_type = "delete"

        base = file_payload(buf.document)
        payload = EditPayload(
            **base.model_dump(),
            characters_added=buf.added,
            characters_deleted=buf.deleted,
            edit_type=edit_type,
            cursor_position=(
                CursorPosition(line=buf.cursor.line, character=buf.cursor.character)
                if buf.cursor is not None
                else None
            ),
        )
        # Buffered while focused, so recorded even after focus is lost.
        return self._emit(ActivityType.FILE_EDIT, payload, while_unfocused=True)

    # -- focus -----------------------------------------------------------------

    def on_window_focus(self, focused: bool) -> None:
        """Record a focus change; nothing else is recorded while unfocused."""
        self._inactivity_timer.cancel()
        event_type = ActivityType.FOCUS_GAINED if focused else ActivityType.FOCUS_LOST
        self._emit(event_type, {"focused": focused}, while_unfocused=True)
        self._focused = focused
        if focused:
            self._restart_inactivity_timer()

    @property
    def focused(self) -> bool:
        return self._focused

    def _restart_inactivity_timer(self) -> None:
        self._inactivity_timer.schedule(self._inactivity_timeout, self._on_inactivity)

    def _on_inactivity(self) -> None:
        logger.debug("No focus change for %.0fs, recording focus loss", self._inactivity_timeout)
        self._emit(ActivityType.FOCUS_LOST, {"reason": "inactivity_timeout"})

    # -- commands --------------------------------------------------------------

    def record_command(
        self,
        command: object,
        title: str | None = None,
        execution_time: int | None = None,
        succeeded: bool | None = None,
    ) -> ActivityEvent | None:
        command_id = command if isinstance(command, str) and command else UNKNOWN_COMMAND
        return self._emit(
            ActivityType.COMMAND_EXECUTE,
            CommandPayload(
                command_id=command_id,
                command_title=title,
                category=categorize_command(command_id),
                execution_time=execution_time,
                succeeded=succeeded,
            ),
        )

    def invoke_command(
        self,
        command_id: str,
        func: Callable[..., T],
        *args: Any,
        title: str | None = None,
        **kwargs: Any,
    ) -> T:
        """Run *func* and record a ``command_execute`` event, whatever the outcome.

        Exceptions raised by *func* propagate to the caller after the
        event has been recorded.
        """
        started = time.monotonic()
        succeeded = False
        try:
            result = func(*args, **kwargs)
            succeeded = True
            return result
        finally:
            self.record_command(command_id, title, _elapsed_ms(started), succeeded)

    async def invoke_command_async(
        self,
        command_id: str,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        title: str | None = None,
        **kwargs: Any,
    ) -> T:
        """Awaitable counterpart of :meth:`invoke_command`."""
        started = time.monotonic()
        succeeded = False
        try:
            result = await func(*args, **kwargs)
            succeeded = True
            return result
        finally:
            self.record_command(command_id, title, _elapsed_ms(started), succeeded)

    # -- debug / terminal / tasks / extensions --------------------------------

    def on_debug_start(self, session: DebugSessionInfo) -> None:
        self._emit(ActivityType.DEBUG_START, _debug_payload(session))

    def on_debug_stop(self, session: DebugSessionInfo) -> None:
        self._emit(ActivityType.DEBUG_STOP, _debug_payload(session))

    def on_terminal_open(self, name: str) -> None:
        self._emit(ActivityType.TERMINAL_OPEN, {"terminalName": name})

    def on_terminal_close(self, name: str, exit_code: int | None = None) -> None:
        self._emit(ActivityType.TERMINAL_CLOSE, {"terminalName": name, "exitCode": exit_code})

    def on_task_start(self, task: TaskInfo) -> None:
        self._emit(ActivityType.TASK_START, _task_data(task))

    def on_task_end(self, task: TaskInfo) -> None:
        self._emit(ActivityType.TASK_END, _task_data(task))

    def on_extensions_changed(self, total: int, active: int) -> None:
        self._emit(ActivityType.EXTENSION_INSTALL, {
            "extensionCount": total,
            "activeExtensions": active,
        })

    def on_search(
        self,
        query: str,
        results_count: int | None = None,
        scope: str | None = None,
        is_regex: bool | None = None,
        is_case_sensitive: bool | None = None,
    ) -> None:
        self._emit(ActivityType.SEARCH_PERFORMED, SearchPayload(
            query=query,
            results_count=results_count,
            search_scope=scope,
            is_regex=is_regex,
            is_case_sensitive=is_case_sensitive,
        ))

    # -- workspace -------------------------------------------------------------

    def on_workspace_folders_changed(
        self,
        added: Sequence[WorkspaceFolder] = (),
        removed: Sequence[WorkspaceFolder] = (),
    ) -> None:
        """Record folder removals, switch context, then record additions.

        Removals are attributed to the outgoing session; when the primary
        folder changes ``on_workspace_change`` runs (typically starting a
        new session) before additions are recorded.
        """
        for folder in removed:
            self._emit(ActivityType.WORKSPACE_CLOSE, _workspace_data(folder))
        if self.workspace.apply(added, removed) and self._on_workspace_change is not None:
            self._on_workspace_change()
        for folder in added:
            self._emit(ActivityType.WORKSPACE_OPEN, _workspace_data(folder))


def _elapsed_ms(started: float) -> int:
    return max(0, int((time.monotonic() - started) * MS_PER_SECOND))


def _path_payload(path: str) -> FilePayload:
    file_name, extension = split_file_name(path)
    return FilePayload(file_name=file_name, file_path=path, file_extension=extension)


def _debug_payload(session: DebugSessionInfo) -> DebugPayload:
    return DebugPayload(
        debug_type=session.debug_type,
        configuration_name=session.name,
        breakpoint_count=session.breakpoint_count,
    )


def _task_data(task: TaskInfo) -> dict[str, Any]:
    return {"taskName": task.name, "taskType": task.task_type, "scope": task.scope}


def _workspace_data(folder: WorkspaceFolder) -> dict[str, Any]:
    return {"workspacePath": folder.path, "workspaceName": folder.name}
