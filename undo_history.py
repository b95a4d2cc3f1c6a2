"""
undo_history.py

Debounced, bounded undo/redo history over whole-text snapshots.

Every structural edit produces a new version of the map text.  Instead of
pushing one undo step per keystroke or drag event, edits are held as a
pending change and committed once the action's debounce delay passes
without a further edit in the same group.  Committed edits live on a
QUndoStack as SnapshotCommand entries.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, List, Optional, Tuple

from PyQt6.QtCore import QObject, QTimer, pyqtSignal
from PyQt6.QtGui import QUndoCommand, QUndoStack

from debug_trace import trace, trace_exception
from settings import get_settings

log = logging.getLogger(__name__)

MAX_SNAPSHOT_LENGTH = 1_000_000

# QUndoCommand.id() shared by snapshot commands that carry a group id
SNAPSHOT_MERGE_ID = 1001


class ActionType:
    """Where an edit came from; selects its debounce delay."""
    TOOLBAR_COMPONENT = "toolbar-component"
    TOOLBAR_LINK = "toolbar-link"
    TOOLBAR_PST = "toolbar-pst"
    TOOLBAR_METHOD = "toolbar-method"
    CANVAS_MOVE = "canvas-move"
    CANVAS_RENAME = "canvas-rename"
    CANVAS_DELETE = "canvas-delete"
    EDITOR_TEXT = "editor-text"
    UNKNOWN = "unknown"


ACTION_DESCRIPTIONS: Dict[str, str] = {
    ActionType.TOOLBAR_COMPONENT: "Add component",
    ActionType.TOOLBAR_LINK: "Add link",
    ActionType.TOOLBAR_PST: "Add attitude",
    ActionType.TOOLBAR_METHOD: "Set method",
    ActionType.CANVAS_MOVE: "Move element",
    ActionType.CANVAS_RENAME: "Rename element",
    ActionType.CANVAS_DELETE: "Delete element",
    ActionType.EDITOR_TEXT: "Edit text",
    ActionType.UNKNOWN: "Edit map",
}

# Consecutive edits of these types merge into one step without a group id
GROUPABLE_ACTIONS = (ActionType.CANVAS_MOVE, ActionType.EDITOR_TEXT)

# Listener events
EVENT_COMMIT = "commit"
EVENT_UNDO = "undo"
EVENT_REDO = "redo"
EVENT_RESET = "reset"


def is_valid_map_text(text) -> bool:
    """True for strings that may be stored as a snapshot."""
    return isinstance(text, str) and "\0" not in text and len(text) <= MAX_SNAPSHOT_LENGTH


def describe_action(action_type: str) -> str:
    return ACTION_DESCRIPTIONS.get(action_type, ACTION_DESCRIPTIONS[ActionType.UNKNOWN])


@dataclass(frozen=True)
class HistoryEntry:
    """One snapshot on the undo or redo side of the history.

    ``action_type`` and ``description`` describe the edit that moved away
    from ``text``, so they label the step that undo/redo would perform.
    """
    text: str
    action_type: str
    description: str
    timestamp: float
    group_id: Optional[str] = None


@dataclass
class _PendingChange:
    text: str
    action_type: str
    description: str
    group_id: Optional[str]
    started_ms: float


def _now_ms() -> float:
    return time.monotonic() * 1000.0


# ----------------------------
# Undo command
# ----------------------------

class SnapshotCommand(QUndoCommand):
    """One committed edit: the map text before and after it.

    The manager has already made ``new_text`` live when the command is
    pushed, so the first ``redo()`` is skipped.  Commands with the same
    ``group_id`` merge while consecutive commits stay within
    ``merge_interval_ms`` of each other.
    """

    def __init__(self, manager: "HistoryManager", old_text: str, new_text: str,
                 action_type: str, description: str, group_id: Optional[str] = None,
                 merge_interval_ms: float = 0, parent=None):
        super().__init__(parent)
        self._manager = manager
        self.old_text = old_text
        self.new_text = new_text
        self.action_type = action_type
        self.group_id = group_id
        self.timestamp = time.time()
        self._committed_ms = _now_ms()
        self._merge_interval_ms = merge_interval_ms
        self.setText(description)
        self._first_redo = True

    def id(self) -> int:
        return SNAPSHOT_MERGE_ID if self.group_id is not None else -1

    def mergeWith(self, other: QUndoCommand) -> bool:
        if not isinstance(other, SnapshotCommand) or other.group_id != self.group_id:
            return False
        if other._committed_ms - self._committed_ms > self._merge_interval_ms:
            return False
        self.new_text = other.new_text
        self._committed_ms = other._committed_ms
        # A burst that ends where it started is no step at all
        self.setObsolete(self.new_text == self.old_text)
        return True

    def undo(self):
        self._manager._apply_snapshot(self.old_text)

    def redo(self):
        if self._first_redo:
            self._first_redo = False
            return
        self._manager._apply_snapshot(self.new_text)

    def past_entry(self) -> HistoryEntry:
        return HistoryEntry(self.old_text, self.action_type, self.text(), self.timestamp, self.group_id)

    def future_entry(self) -> HistoryEntry:
        return HistoryEntry(self.new_text, self.action_type, self.text(), self.timestamp, self.group_id)


# ----------------------------
# Debounce timer
# ----------------------------

class DebounceTimer(QObject):
    """A cancellable trailing-edge delayed call.

    ``schedule`` restarts the countdown every time it is called, so only
    the last call of a burst fires.  Owners must ``flush()`` or
    ``cancel()`` on teardown.
    """

    def __init__(self, parent: Optional[QObject] = None):
        super().__init__(parent)
        self._timer = QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.timeout.connect(self._fire)
        self._commit_fn: Optional[Callable[[], None]] = None
        self._group_id: Optional[str] = None

    @property
    def group_id(self) -> Optional[str]:
        return self._group_id

    @property
    def is_pending(self) -> bool:
        return self._commit_fn is not None

    def schedule(self, group_id: Optional[str], commit_fn: Callable[[], None], delay_ms: int) -> None:
        """(Re)start the countdown; ``commit_fn`` runs when it expires."""
        self._group_id = group_id
        self._commit_fn = commit_fn
        self._timer.start(max(0, int(delay_ms)))

    def cancel(self) -> None:
        """Drop the pending call without running it."""
        self._timer.stop()
        self._commit_fn = None
        self._group_id = None

    def flush(self) -> bool:
        """Run the pending call now.

        Returns:
            True if a call was pending.
        """
        commit_fn = self._commit_fn
        if commit_fn is None:
            return False
        self.cancel()
        commit_fn()
        return True

    def _fire(self) -> None:
        self.flush()


# ----------------------------
# History manager
# ----------------------------

_QueuedRequest = Tuple[str, str, Optional[str], Optional[str], bool]


class HistoryManager(QObject):
    """Owns the live map text and its undo stack.

    Signals:
        history_changed(can_undo, can_redo): After every commit, undo, redo or reset.
        text_committed(text): A pending change became the live text.
        text_restored(text): Undo or redo replaced the live text.

    Plain Python listeners (``add_listener``) receive ``(event, text)``;
    an exception raised by one is logged and does not affect the stack.
    """

    history_changed = pyqtSignal(bool, bool)
    text_committed = pyqtSignal(str)
    text_restored = pyqtSignal(str)

    def __init__(self, initial_text: str = "", max_size: Optional[int] = None,
                 parent: Optional[QObject] = None):
        super().__init__(parent)
        self._config = get_settings().settings.history
        self._max_size = max(1, int(max_size or self._config.max_size))
        self._stack = QUndoStack(self)
        self._stack.setUndoLimit(self._max_size)
        self._current = initial_text if is_valid_map_text(initial_text) else ""
        self._pending: Optional[_PendingChange] = None
        self._timer = DebounceTimer(self)
        self._listeners: List[Callable[[str, str], None]] = []
        self._queue: Deque[_QueuedRequest] = deque()
        self._committing = False
        self._restoring = False
        self._disposed = False

    # --- state ---

    @property
    def current_text(self) -> str:
        return self._current

    @property
    def max_size(self) -> int:
        return self._max_size

    @property
    def undo_stack(self) -> QUndoStack:
        return self._stack

    @property
    def can_undo(self) -> bool:
        return self._stack.canUndo() or self._has_pending_change()

    @property
    def can_redo(self) -> bool:
        return self._stack.canRedo() and not self._has_pending_change()

    @property
    def has_pending(self) -> bool:
        return self._pending is not None

    @property
    def past(self) -> Tuple[HistoryEntry, ...]:
        """Undo side, oldest first; the last entry is restored by the next undo."""
        return tuple(self._stack.command(i).past_entry() for i in range(self._stack.index()))

    @property
    def future(self) -> Tuple[HistoryEntry, ...]:
        """Redo side; the last entry is restored by the next redo."""
        return tuple(self._stack.command(i).future_entry()
                     for i in reversed(range(self._stack.index(), self._stack.count())))

    @property
    def undo_description(self) -> Optional[str]:
        if self._has_pending_change():
            return self._pending.description
        return self._stack.undoText() if self._stack.canUndo() else None

    @property
    def redo_description(self) -> Optional[str]:
        return self._stack.redoText() if self._stack.canRedo() else None

    def _has_pending_change(self) -> bool:
        return self._pending is not None and self._pending.text != self._current

    def _apply_snapshot(self, text: str) -> None:
        self._current = text

    # --- listeners ---

    def add_listener(self, callback: Callable[[str, str], None]) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: Callable[[str, str], None]) -> None:
        if callback in self._listeners:
            self._listeners.remove(callback)

    def _notify(self, event: str, text: str) -> None:
        self.history_changed.emit(self.can_undo, self.can_redo)
        if event == EVENT_COMMIT:
            self.text_committed.emit(text)
        elif event in (EVENT_UNDO, EVENT_REDO):
            self.text_restored.emit(text)
        for callback in list(self._listeners):
            try:
                callback(event, text)
            except Exception:
                log.exception("History listener failed on %s", event)
                trace_exception(f"History listener failed on {event}")

    # --- mutations ---

    def request_mutation(self, new_text: str, action_type: str = ActionType.UNKNOWN,
                         description: Optional[str] = None, group_id: Optional[str] = None) -> bool:
        """Stage a new version of the text.

        A change in the same group as the pending one (same ``group_id``,
        or the same groupable action type within ``max_group_interval_ms``)
        replaces the pending text and restarts its countdown.  Anything
        else commits the pending change first.

        Args:
            new_text: Full map text after the edit.
            action_type: One of the ActionType values.
            description: Label for the undo step; defaults per action type.
            group_id: Optional id that ties a burst of edits together.

        Returns:
            False if the request was ignored (disposed, invalid text, or
            made while undo/redo restores a snapshot).
        """
        return self._stage(new_text, action_type, description, group_id, False)

    def commit(self, new_text: str, action_type: str = ActionType.UNKNOWN,
               description: Optional[str] = None, group_id: Optional[str] = None) -> bool:
        """Request a mutation and commit it immediately.

        Called from a listener while another commit is being announced,
        the request waits for that commit to finish and is then committed
        without a debounce delay.
        """
        return self._stage(new_text, action_type, description, group_id, True)

    def _stage(self, new_text: str, action_type: str, description: Optional[str],
               group_id: Optional[str], immediate: bool) -> bool:
        if self._disposed:
            log.warning("request_mutation after dispose ignored")
            return False
        if not is_valid_map_text(new_text):
            log.warning("Rejected history snapshot (%s)", type(new_text).__name__)
            return False
        if self._restoring:
            log.debug("request_mutation during restore ignored")
            return False
        if self._committing:
            self._queue.append((new_text, action_type, description, group_id, immediate))
            return True

        now = _now_ms()
        pending = self._pending
        if pending is not None and self._can_coalesce(pending, action_type, group_id, now):
            pending.text = new_text
            if description:
                pending.description = description
        else:
            # Commit the previous change, plus anything its listeners queued
            while self._timer.flush():
                pass
            self._pending = _PendingChange(
                text=new_text,
                action_type=action_type,
                description=description or describe_action(action_type),
                group_id=group_id,
                started_ms=now,
            )
        self._timer.schedule(group_id, self._commit_pending, self._config.debounce_for(action_type))
        if immediate:
            self.flush()
        return True

    def _can_coalesce(self, pending: _PendingChange, action_type: str,
                      group_id: Optional[str], now: float) -> bool:
        if group_id is not None or pending.group_id is not None:
            return group_id == pending.group_id
        return (action_type == pending.action_type
                and action_type in GROUPABLE_ACTIONS
                and now - pending.started_ms <= self._config.max_group_interval_ms)

    def _commit_pending(self) -> None:
        pending = self._pending
        self._pending = None
        if pending is None or pending.text == self._current:
            return

        self._committing = True
        try:
            old_text = self._current
            self._current = pending.text
            self._stack.push(SnapshotCommand(
                self, old_text, pending.text,
                pending.action_type, pending.description, pending.group_id,
                self._config.max_group_interval_ms,
            ))
            log.debug("Committed %s (%d undo steps)", pending.action_type, self._stack.index())
            trace(f"commit {pending.action_type}: past={self._stack.index()}", "HISTORY")
            self._notify(EVENT_COMMIT, self._current)
        finally:
            self._committing = False
        self._drain_queue()

    def _drain_queue(self) -> None:
        while self._queue and not self._committing:
            self._stage(*self._queue.popleft())

    def flush(self) -> bool:
        """Commit the pending change now, if any."""
        return self._timer.flush()

    # --- undo / redo ---

    def undo(self) -> Optional[str]:
        """Step back one snapshot.

        Returns:
            The restored text, or None when there is nothing to undo.
        """
        return self._restore(EVENT_UNDO)

    def redo(self) -> Optional[str]:
        """Step forward one snapshot; None when there is nothing to redo."""
        return self._restore(EVENT_REDO)

    def _restore(self, event: str) -> Optional[str]:
        if self._committing or self._restoring:
            log.warning("%s requested during a commit; ignored", event)
            return None
        self.flush()
        stack = self._stack
        if event == EVENT_UNDO and not stack.canUndo():
            return None
        if event == EVENT_REDO and not stack.canRedo():
            return None

        self._restoring = True
        try:
            if event == EVENT_UNDO:
                stack.undo()
            else:
                stack.redo()
            trace(f"{event}: index={stack.index()} count={stack.count()}", "HISTORY")
            self._notify(event, self._current)
        finally:
            self._restoring = False
        return self._current

    # --- lifecycle ---

    def reset(self, text: str = "") -> None:
        """Drop all history and pending edits, and make ``text`` live."""
        self._timer.cancel()
        self._pending = None
        self._queue.clear()
        self._stack.clear()
        self._current = text if is_valid_map_text(text) else ""
        self._notify(EVENT_RESET, self._current)

    def sync_external_text(self, text: str) -> None:
        """Adopt text changed outside the history (e.g. a file reload) without a new step.

        The pending change is discarded; the undo stack is kept.
        """
        if not is_valid_map_text(text):
            log.warning("Rejected external text (%s)", type(text).__name__)
            return
        self._timer.cancel()
        self._pending = None
        self._current = text

    def dispose(self, flush: bool = True) -> None:
        """Stop the debounce timer; commits the pending change when ``flush`` is set."""
        if self._disposed:
            return
        if flush:
            self.flush()
        else:
            self._timer.cancel()
            self._pending = None
        self._disposed = True
        self._listeners.clear()
        self._queue.clear()
