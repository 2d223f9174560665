"""Tests for EventNormalizer.

Covers:
- Edit coalescing within the quiet window, stale-buffer flush, flush on close
- Inactivity timer and focus handling
- Command instrumentation on success and failure (sync and async)
- Workspace folder changes and session hand-over
- Tracking switch, git commit detection, sink failures
"""

from __future__ import annotations

import asyncio

import pytest

from conftest import BASE_TS, FakeClock, ManualScheduler
from devtracker.collector.normalizer import EventNormalizer, WorkspaceContext
from devtracker.collector.types import (
    CursorInfo,
    DebugSessionInfo,
    DocumentInfo,
    RenamedFile,
    TaskInfo,
    TextChange,
    WorkspaceFolder,
)
from devtracker.core.types import (
    ActivityEvent,
    ActivityType,
    CommandPayload,
    EditPayload,
    GitPayload,
    dump_event,
)

PROJECT = WorkspaceFolder(path="/work/project", name="project")


@pytest.fixture()
def events() -> list[ActivityEvent]:
    return []


@pytest.fixture()
def normalizer(events, scheduler: ManualScheduler, clock: FakeClock) -> EventNormalizer:
    return EventNormalizer(
        events.append,
        scheduler,
        session_id=lambda: "session_1",
        workspace=WorkspaceContext([PROJECT]),
        clock=clock,
    )


def _types(events: list[ActivityEvent]) -> list[ActivityType]:
    return [e.type for e in events]


class TestEditCoalescing:
    def test_burst_becomes_one_edit_event(self, normalizer, events, scheduler, doc) -> None:
        normalizer.on_file_edit(doc, [TextChange(text="abc")])
        scheduler.advance(0.2)
        normalizer.on_file_edit(doc, [TextChange(text="de", range_length=1)])
        scheduler.advance(0.3)
        normalizer.on_file_edit(doc, [TextChange(range_length=4)], CursorInfo(line=2, character=5))
        assert events == []

        scheduler.advance(1.0)
        assert len(events) == 1
        edit = events[0]
        assert edit.type is ActivityType.FILE_EDIT
        assert isinstance(edit.payload, EditPayload)
        assert edit.payload.characters_added == 5
        assert edit.payload.characters_deleted == 5
        assert edit.payload.edit_type == "replace"
        assert edit.payload.cursor_position is not None
        assert edit.payload.cursor_position.line == 2
        assert edit.payload.file_name == "app.py"
        assert edit.timestamp == BASE_TS + 1500

    def test_each_edit_resets_the_quiet_timer(self, normalizer, events, scheduler, doc) -> None:
        for _ in range(5):
            normalizer.on_file_edit(doc, [TextChange(text="x")])
            scheduler.advance(0.9)
        assert events == []
        scheduler.advance(0.5)
        assert len(events) == 1
        assert events[0].payload.characters_added == 5

    def test_files_are_buffered_independently(self, normalizer, events, scheduler, doc) -> None:
        other = DocumentInfo(path="/work/project/README.md", language_id="markdown")
        normalizer.on_file_edit(doc, [TextChange(text="a")])
        normalizer.on_file_edit(other, [TextChange(range_length=2)])
        scheduler.advance(1.0)
        by_name = {e.payload.file_name: e.payload for e in events}
        assert by_name["app.py"].edit_type == "insert"
        assert by_name["README.md"].edit_type == "delete"

    def test_stale_buffer_flushed_by_late_edit(self, normalizer, events, clock, doc) -> None:
        normalizer.on_file_edit(doc, [TextChange(text="aa")])
        clock.advance(1500)
        normalizer.on_file_edit(doc, [TextChange(text="b")])
        assert len(events) == 1
        assert events[0].payload.characters_added == 2
        assert normalizer.pending_edit_paths == [doc.path]

    def test_close_flushes_after_close_event(self, normalizer, events, scheduler, doc) -> None:
        normalizer.on_file_edit(doc, [TextChange(text="abc")])
        normalizer.on_file_close(doc)
        assert _types(events) == [ActivityType.FILE_CLOSE, ActivityType.FILE_EDIT]
        scheduler.advance(5.0)
        assert len(events) == 2

    def test_zero_delta_is_dropped(self, normalizer, events, scheduler, doc) -> None:
        normalizer.on_file_edit(doc, [TextChange()])
        scheduler.advance(1.0)
        assert events == []

    def test_non_file_scheme_ignored(self, normalizer, events, scheduler) -> None:
        git_doc = DocumentInfo(path="/work/project/app.py", scheme="git")
        normalizer.on_file_edit(git_doc, [TextChange(text="x")])
        scheduler.advance(1.0)
        assert events == []
        assert normalizer.pending_edit_paths == []

    def test_flush_all_edits(self, normalizer, events, doc) -> None:
        normalizer.on_file_edit(doc, [TextChange(text="x")])
        normalizer.cancel_timers()
        normalizer.flush_all_edits()
        assert _types(events) == [ActivityType.FILE_EDIT]


class TestFocus:
    def test_inactivity_emits_synthetic_focus_lost(self, normalizer, events, scheduler) -> None:
        normalizer.start()
        assert _types(events) == [ActivityType.WORKSPACE_OPEN]

        scheduler.advance(299.0)
        assert len(events) == 1
        scheduler.advance(1.0)
        assert events[-1].type is ActivityType.FOCUS_LOST
        assert dump_event(events[-1])["data"]["reason"] == "inactivity_timeout"

    def test_focus_lost_cancels_timer(self, normalizer, events, scheduler) -> None:
        normalizer.start()
        normalizer.on_window_focus(False)
        scheduler.advance(600.0)
        assert _types(events) == [ActivityType.WORKSPACE_OPEN, ActivityType.FOCUS_LOST]
        assert "reason" not in dump_event(events[-1])["data"]

    def test_focus_gained_restarts_timer(self, normalizer, events, scheduler) -> None:
        normalizer.start()
        scheduler.advance(200.0)
        normalizer.on_window_focus(True)
        scheduler.advance(200.0)
        assert events[-1].type is ActivityType.FOCUS_GAINED
        scheduler.advance(100.0)
        assert events[-1].type is ActivityType.FOCUS_LOST

    def test_unfocused_window_records_only_focus_changes(self, normalizer, events, scheduler, doc) -> None:
        normalizer.on_file_edit(doc, [TextChange(text="ab")])
        normalizer.on_window_focus(False)
        assert not normalizer.focused

        normalizer.on_file_open(doc)
        normalizer.on_file_edit(doc, [TextChange(text="zzz")])
        normalizer.record_command("git.commit")
        scheduler.advance(1.0)
        # The edit buffered before focus was lost is still recorded.
        assert _types(events) == [ActivityType.FOCUS_LOST, ActivityType.FILE_EDIT]
        assert events[-1].payload.characters_added == 2

        normalizer.on_window_focus(True)
        normalizer.on_file_open(doc)
        assert _types(events)[-2:] == [ActivityType.FOCUS_GAINED, ActivityType.FILE_OPEN]


class TestCommands:
    def test_invoke_command_records_success(self, normalizer, events) -> None:
        result = normalizer.invoke_command("git.commit", lambda a, b: a + b, 2, 3, title="Commit")
        assert result == 5
        payload = events[-1].payload
        assert isinstance(payload, CommandPayload)
        assert payload.command_id == "git.commit"
        assert payload.command_title == "Commit"
        assert payload.category == "git"
        assert payload.succeeded is True
        assert payload.execution_time is not None and payload.execution_time >= 0

    def test_invoke_command_records_failure_and_reraises(self, normalizer, events) -> None:
        def boom() -> None:
            raise RuntimeError("failed")

        with pytest.raises(RuntimeError, match="failed"):
            normalizer.invoke_command("debug.start", boom)
        assert events[-1].payload.succeeded is False
        assert events[-1].payload.category == "debug"

    def test_invoke_command_async(self, normalizer, events) -> None:
        async def work(x: int) -> int:
            await asyncio.sleep(0)
            return x * 2

        assert asyncio.run(normalizer.invoke_command_async("editor.action.format", work, 21)) == 42
        assert events[-1].payload.category == "editor"
        assert events[-1].payload.succeeded is True

    def test_non_string_command_id(self, normalizer, events) -> None:
        normalizer.record_command(None)
        normalizer.record_command("")
        assert [e.payload.command_id for e in events] == ["unknown.command", "unknown.command"]
        assert events[0].payload.category == "other"


class TestNotifications:
    def test_events_carry_session_and_workspace(self, normalizer, events, doc) -> None:
        normalizer.on_file_open(doc)
        event = events[0]
        assert event.session_id == "session_1"
        assert event.workspace_id == "/work/project"
        assert event.project_name == "project"
        assert event.payload.workspace_name == "project"
        assert event.id.startswith(f"{BASE_TS}_")
        assert len(event.id.split("_")[1]) == 9

    def test_git_commit_detected_on_save(self, normalizer, events) -> None:
        msg = DocumentInfo(path="/work/project/.git/COMMIT_EDITMSG", text="Fix parser\n\nDetails")
        normalizer.on_file_save(msg)
        assert _types(events) == [ActivityType.FILE_SAVE, ActivityType.GIT_COMMIT]
        assert isinstance(events[1].payload, GitPayload)
        assert events[1].payload.commit_message == "Fix parser"
        assert events[1].payload.repository == "project"

    def test_created_deleted_renamed(self, normalizer, events) -> None:
        normalizer.on_files_created(["/work/project/new.py", ""])
        normalizer.on_files_deleted(["/work/project/old.py"])
        normalizer.on_files_renamed([RenamedFile(old_path="/w/a.py", new_path="/w/b.py")])
        assert _types(events) == [
            ActivityType.FILE_CREATE,
            ActivityType.FILE_DELETE,
            ActivityType.FILE_RENAME,
        ]
        assert events[0].payload.file_extension == "py"
        rename = dump_event(events[2])["data"]
        assert rename["oldFileName"] == "a.py"
        assert rename["newFileName"] == "b.py"

    def test_editor_switch_ignores_none(self, normalizer, events, doc) -> None:
        normalizer.on_editor_switch(None)
        normalizer.on_editor_switch(doc)
        assert _types(events) == [ActivityType.FILE_SWITCH]

    def test_debug_terminal_task_extension_search(self, normalizer, events) -> None:
        session = DebugSessionInfo(debug_type="python", name="Launch", breakpoint_count=2)
        normalizer.on_debug_start(session)
        normalizer.on_debug_stop(session)
        normalizer.on_terminal_open("zsh")
        normalizer.on_terminal_close("zsh", 0)
        normalizer.on_task_start(TaskInfo(name="build", task_type="shell"))
        normalizer.on_task_end(TaskInfo(name="build"))
        normalizer.on_extensions_changed(40, 12)
        normalizer.on_search("TODO", results_count=3, scope="workspace")
        assert _types(events) == [
            ActivityType.DEBUG_START,
            ActivityType.DEBUG_STOP,
            ActivityType.TERMINAL_OPEN,
            ActivityType.TERMINAL_CLOSE,
            ActivityType.TASK_START,
            ActivityType.TASK_END,
            ActivityType.EXTENSION_INSTALL,
            ActivityType.SEARCH_PERFORMED,
        ]
        assert events[0].payload.configuration_name == "Launch"
        assert dump_event(events[3])["data"]["exitCode"] == 0
        assert dump_event(events[4])["data"]["taskName"] == "build"
        assert events[7].payload.query == "TODO"

    def test_tracking_disabled_emits_nothing(self, scheduler, clock, doc) -> None:
        captured: list[ActivityEvent] = []
        normalizer = EventNormalizer(
            captured.append, scheduler, session_id=lambda: "s", is_enabled=lambda: False, clock=clock,
        )
        normalizer.on_file_open(doc)
        normalizer.record_command("git.push")
        normalizer.on_file_edit(doc, [TextChange(text="x")])
        scheduler.advance(1.0)
        assert captured == []

    def test_sink_failure_is_swallowed(self, scheduler, clock, doc, caplog) -> None:
        def broken(event: ActivityEvent) -> None:
            raise OSError("disk full")

        normalizer = EventNormalizer(broken, scheduler, session_id=lambda: "s", clock=clock)
        normalizer.on_file_open(doc)
        assert "Sink rejected file_open event" in caplog.text


class TestWorkspaceFolders:
    def test_primary_change_runs_callback_between_close_and_open(self, scheduler, clock) -> None:
        captured: list[ActivityEvent] = []
        session = {"id": "session_old"}

        def new_session() -> None:
            session["id"] = "session_new"

        other = WorkspaceFolder(path="/work/other", name="other")
        normalizer = EventNormalizer(
            captured.append,
            scheduler,
            session_id=lambda: session["id"],
            workspace=WorkspaceContext([PROJECT]),
            on_workspace_change=new_session,
            clock=clock,
        )
        normalizer.on_workspace_folders_changed(added=[other], removed=[PROJECT])

        assert _types(captured) == [ActivityType.WORKSPACE_CLOSE, ActivityType.WORKSPACE_OPEN]
        assert captured[0].session_id == "session_old"
        assert captured[1].session_id == "session_new"
        assert captured[1].workspace_id == "/work/other"
        assert normalizer.workspace.project_name == "other"

    def test_adding_secondary_folder_keeps_session(self, scheduler, clock) -> None:
        calls: list[int] = []
        normalizer = EventNormalizer(
            lambda e: None,
            scheduler,
            session_id=lambda: "s",
            workspace=WorkspaceContext([PROJECT]),
            on_workspace_change=lambda: calls.append(1),
            clock=clock,
        )
        normalizer.on_workspace_folders_changed(added=[WorkspaceFolder(path="/x", name="x")])
        assert calls == []
        assert normalizer.workspace.workspace_id == "/work/project"
