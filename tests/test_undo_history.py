"""Tests for undo_history.py: debounced commits, the undo stack and reentrancy."""
from __future__ import annotations

import pytest
from PyQt6.QtTest import QTest

from undo_history import (
    ActionType,
    DebounceTimer,
    HistoryManager,
    SnapshotCommand,
    describe_action,
    is_valid_map_text,
)


@pytest.fixture
def history(qapp):
    manager = HistoryManager("v0")
    yield manager
    manager.dispose(flush=False)


# ─────────────────────────────────────────────────────────
# DebounceTimer
# ─────────────────────────────────────────────────────────


class TestDebounceTimer:
    def test_flush_runs_pending(self, qapp):
        calls = []
        timer = DebounceTimer()
        timer.schedule("g", lambda: calls.append(1), 10_000)
        assert timer.is_pending
        assert timer.group_id == "g"
        assert timer.flush()
        assert calls == [1]
        assert not timer.is_pending

    def test_flush_without_pending(self, qapp):
        assert not DebounceTimer().flush()

    def test_cancel_drops_call(self, qapp):
        calls = []
        timer = DebounceTimer()
        timer.schedule(None, lambda: calls.append(1), 10)
        timer.cancel()
        QTest.qWait(50)
        assert calls == []

    def test_fires_after_delay(self, qapp):
        calls = []
        timer = DebounceTimer()
        timer.schedule(None, lambda: calls.append(1), 10)
        QTest.qWait(100)
        assert calls == [1]

    def test_reschedule_replaces_callback(self, qapp):
        calls = []
        timer = DebounceTimer()
        timer.schedule("g", lambda: calls.append("first"), 10_000)
        timer.schedule("g", lambda: calls.append("second"), 10_000)
        timer.flush()
        assert calls == ["second"]


# ─────────────────────────────────────────────────────────
# Commits and undo/redo
# ─────────────────────────────────────────────────────────


class TestCommitUndoRedo:
    def test_commit(self, history):
        history.commit("v1", ActionType.TOOLBAR_COMPONENT)
        assert history.current_text == "v1"
        assert history.can_undo
        assert not history.can_redo
        assert history.undo_description == "Add component"

    def test_undo_redo(self, history):
        history.commit("v1", ActionType.TOOLBAR_COMPONENT)
        history.commit("v2", ActionType.CANVAS_DELETE)
        assert history.undo() == "v1"
        assert history.redo_description == "Delete element"
        assert history.undo() == "v0"
        assert history.undo() is None
        assert history.current_text == "v0"
        assert history.redo() == "v1"
        assert history.redo() == "v2"
        assert history.redo() is None

    def test_new_commit_clears_redo(self, history):
        history.commit("v1")
        history.undo()
        assert history.can_redo
        history.commit("v1b")
        assert not history.can_redo
        assert history.redo() is None

    def test_undo_does_not_clear_redo(self, history):
        history.commit("v1")
        history.commit("v2")
        history.undo()
        history.undo()
        assert len(history.future) == 2

    def test_identical_text_is_not_a_step(self, history):
        history.commit("v0")
        assert not history.can_undo

    def test_pending_change_flushed_by_undo(self, history):
        history.request_mutation("v1", ActionType.EDITOR_TEXT)
        assert history.current_text == "v0"
        assert history.can_undo
        assert history.undo() == "v0"
        assert history.redo() == "v1"

    def test_bounded_history(self, qapp):
        manager = HistoryManager("v0", max_size=3)
        for index in range(1, 6):
            manager.commit(f"v{index}")
        assert len(manager.past) == 3
        results = [manager.undo() for _ in range(3)]
        assert results == ["v4", "v3", "v2"]
        assert manager.undo() is None
        assert manager.current_text == "v2"
        manager.dispose()

    def test_default_max_size_from_settings(self, qapp, isolated_settings):
        isolated_settings.settings.history.max_size = 2
        manager = HistoryManager("v0")
        assert manager.max_size == 2
        manager.dispose()

    @pytest.mark.parametrize("bad", [None, 5, "a\0b", "x" * 1_000_001],
                             ids=["none", "int", "nul", "too-long"])
    def test_invalid_snapshots_rejected(self, history, bad):
        assert not history.request_mutation(bad)
        assert not history.has_pending

    def test_is_valid_map_text(self):
        assert is_valid_map_text("")
        assert not is_valid_map_text(b"x")

    def test_describe_unknown_action(self):
        assert describe_action("mystery") == "Edit map"


# ─────────────────────────────────────────────────────────
# Coalescing
# ─────────────────────────────────────────────────────────


class TestCoalescing:
    def test_same_group_coalesces(self, history):
        for step in range(10):
            history.request_mutation(f"drag {step}", ActionType.CANVAS_MOVE, group_id="drag-1")
        history.flush()
        assert history.current_text == "drag 9"
        assert len(history.past) == 1
        assert history.undo() == "v0"

    def test_different_group_flushes_previous(self, history):
        history.request_mutation("a", ActionType.CANVAS_MOVE, group_id="drag-1")
        history.request_mutation("b", ActionType.CANVAS_MOVE, group_id="drag-2")
        assert history.current_text == "a"
        history.flush()
        assert [entry.text for entry in history.past] == ["v0", "a"]

    def test_groupable_action_without_group_id(self, history):
        history.request_mutation("t", ActionType.EDITOR_TEXT)
        history.request_mutation("te", ActionType.EDITOR_TEXT)
        history.request_mutation("tea", ActionType.EDITOR_TEXT)
        history.flush()
        assert len(history.past) == 1
        assert history.current_text == "tea"

    def test_non_groupable_actions_are_separate(self, history):
        history.request_mutation("a", ActionType.TOOLBAR_COMPONENT)
        history.request_mutation("b", ActionType.TOOLBAR_COMPONENT)
        history.flush()
        assert len(history.past) == 2

    def test_group_interval_limits_coalescing(self, history, isolated_settings):
        isolated_settings.settings.history.max_group_interval_ms = 0
        history._config = isolated_settings.settings.history
        history.request_mutation("t", ActionType.EDITOR_TEXT)
        QTest.qWait(5)
        history.request_mutation("te", ActionType.EDITOR_TEXT)
        history.flush()
        assert len(history.past) == 2

    def test_debounce_commits_after_quiet_period(self, history, isolated_settings):
        isolated_settings.settings.history.action_debounce_ms["canvas-move"] = 20
        history._config = isolated_settings.settings.history
        history.request_mutation("m1", ActionType.CANVAS_MOVE, group_id="g")
        QTest.qWait(5)
        history.request_mutation("m2", ActionType.CANVAS_MOVE, group_id="g")
        assert history.current_text == "v0"
        QTest.qWait(200)
        assert history.current_text == "m2"
        assert len(history.past) == 1

    def test_same_group_merges_across_flushes(self, history):
        history.request_mutation("d1", ActionType.CANVAS_MOVE, group_id="drag-1")
        history.flush()
        history.request_mutation("d2", ActionType.CANVAS_MOVE, group_id="drag-1")
        history.flush()
        assert history.current_text == "d2"
        assert [e.text for e in history.past] == ["v0"]
        assert history.undo() == "v0"
        assert history.redo() == "d2"

    def test_group_back_to_start_leaves_no_step(self, history):
        history.commit("d1", ActionType.CANVAS_MOVE, group_id="drag-1")
        history.commit("v0", ActionType.CANVAS_MOVE, group_id="drag-1")
        assert history.current_text == "v0"
        assert not history.can_undo
        assert history.undo_stack.count() == 0

    def test_group_merge_respects_interval(self, history, isolated_settings):
        isolated_settings.settings.history.max_group_interval_ms = 0
        history._config = isolated_settings.settings.history
        history.commit("d1", ActionType.CANVAS_MOVE, group_id="drag-1")
        QTest.qWait(5)
        history.commit("d2", ActionType.CANVAS_MOVE, group_id="drag-1")
        assert [e.text for e in history.past] == ["v0", "d1"]


# ─────────────────────────────────────────────────────────
# Undo stack
# ─────────────────────────────────────────────────────────


class TestUndoStack:
    def test_limit_follows_max_size(self, qapp):
        manager = HistoryManager("v0", max_size=4)
        assert manager.undo_stack.undoLimit() == 4
        manager.dispose()

    def test_commands_carry_snapshots(self, history):
        history.commit("v1", ActionType.TOOLBAR_LINK)
        command = history.undo_stack.command(0)
        assert isinstance(command, SnapshotCommand)
        assert (command.old_text, command.new_text) == ("v0", "v1")
        assert command.text() == "Add link"
        assert command.id() == -1

    def test_index_tracks_undo(self, history):
        history.commit("v1")
        history.commit("v2")
        history.undo()
        assert history.undo_stack.index() == 1
        assert history.undo_stack.count() == 2
        assert [e.text for e in history.future] == ["v2"]
        assert history.undo_description == "Edit map"

    def test_stack_undo_updates_text(self, history):
        history.commit("v1")
        history.undo_stack.undo()
        assert history.current_text == "v0"
        history.undo_stack.redo()
        assert history.current_text == "v1"

    def test_reset_clears_stack(self, history):
        history.commit("v1")
        history.reset("fresh")
        assert history.undo_stack.count() == 0


# ─────────────────────────────────────────────────────────
# Signals, listeners and reentrancy
# ─────────────────────────────────────────────────────────


class TestNotifications:
    def test_signals(self, history):
        changed, committed, restored = [], [], []
        history.history_changed.connect(lambda u, r: changed.append((u, r)))
        history.text_committed.connect(committed.append)
        history.text_restored.connect(restored.append)
        history.commit("v1")
        history.undo()
        assert committed == ["v1"]
        assert restored == ["v0"]
        assert changed == [(True, False), (False, True)]

    def test_raising_listener_keeps_stacks_consistent(self, history):
        def broken(event, text):
            raise RuntimeError("boom")

        seen = []
        history.add_listener(broken)
        history.add_listener(lambda event, text: seen.append((event, text)))
        history.commit("v1")
        assert history.current_text == "v1"
        assert [e.text for e in history.past] == ["v0"]
        assert seen == [("commit", "v1")]
        assert history.undo() == "v0"

    def test_remove_listener(self, history):
        seen = []
        listener = lambda event, text: seen.append(event)  # noqa: E731
        history.add_listener(listener)
        history.remove_listener(listener)
        history.commit("v1")
        assert seen == []

    def test_reentrant_commit_runs_after_current_commit(self, history):
        def follow_up(event, text):
            if event == "commit" and text == "v1":
                history.commit("v2")

        history.add_listener(follow_up)
        history.commit("v1")
        assert history.current_text == "v2"
        assert not history.has_pending
        assert [e.text for e in history.past] == ["v0", "v1"]

    def test_reentrant_request_is_queued(self, history):
        def follow_up(event, text):
            if event == "commit" and text == "v1":
                history.request_mutation("v2")

        history.add_listener(follow_up)
        history.commit("v1")
        assert history.current_text == "v1"
        assert history.has_pending
        history.flush()
        assert history.current_text == "v2"
        assert [e.text for e in history.past] == ["v0", "v1"]

    def test_reentrant_undo_rejected(self, history):
        results = []
        history.add_listener(lambda event, text: results.append(history.undo()) if event == "commit" else None)
        history.commit("v1")
        assert results == [None]
        assert history.current_text == "v1"

    def test_mutation_during_restore_ignored(self, history):
        history.commit("v1")
        history.add_listener(lambda event, text: history.request_mutation("echo") if event == "undo" else None)
        history.undo()
        assert not history.has_pending
        assert history.current_text == "v0"


# ─────────────────────────────────────────────────────────
# Lifecycle
# ─────────────────────────────────────────────────────────


class TestLifecycle:
    def test_reset(self, history):
        history.commit("v1")
        history.request_mutation("v2")
        history.reset("fresh")
        assert history.current_text == "fresh"
        assert not history.can_undo
        assert not history.can_redo
        assert not history.has_pending

    def test_sync_external_text(self, history):
        history.commit("v1")
        history.request_mutation("v2")
        history.sync_external_text("from disk")
        assert history.current_text == "from disk"
        assert not history.has_pending
        assert len(history.past) == 1

    def test_dispose_flushes(self, qapp):
        manager = HistoryManager("v0")
        manager.request_mutation("v1", ActionType.EDITOR_TEXT)
        manager.dispose()
        assert manager.current_text == "v1"
        assert not manager.request_mutation("v2")

    def test_dispose_without_flush_cancels_timer(self, qapp):
        manager = HistoryManager("v0")
        manager.request_mutation("v1", ActionType.CANVAS_MOVE)
        manager.dispose(flush=False)
        QTest.qWait(50)
        assert manager.current_text == "v0"
