"""Single-field text editor: cursor, selection and bounded undo/redo.

Positions are indices into a Python ``str``, i.e. Unicode code points, so a
multi-byte character always moves the cursor by exactly one position.
"""

from __future__ import annotations

import enum
from collections import deque
from dataclasses import dataclass
from typing import Optional

DEFAULT_MAX_HISTORY = 100


class Direction(enum.Enum):
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"
    LINE_START = "line_start"
    LINE_END = "line_end"
    WORD_LEFT = "word_left"
    WORD_RIGHT = "word_right"
    START = "start"
    END = "end"


@dataclass(frozen=True)
class EditOperation:
    """One edit: ``removed`` at ``position`` was replaced by ``inserted``.

    Plain inserts have an empty ``removed``, plain deletes an empty
    ``inserted``. Cursor and selection anchor from before the edit are kept
    so undo can put them back exactly.
    """
    position: int
    removed: str
    inserted: str
    cursor_before: int
    anchor_before: Optional[int]


class Editor:
    """Mutable text buffer for one form field."""

    def __init__(self, text: str = "", multiline: bool = False,
                 max_history: int = DEFAULT_MAX_HISTORY):
        self.multiline = multiline
        self.text = self._clean(text)
        self.cursor = len(self.text)
        self.anchor: Optional[int] = None
        self.max_history = max(1, int(max_history))
        self._undo: deque[EditOperation] = deque(maxlen=self.max_history)
        self._redo: deque[tuple[EditOperation, int, Optional[int]]] = deque(
            maxlen=self.max_history)

    def _clean(self, text: str) -> str:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        if not self.multiline:
            text = text.replace("\n", " ")
        return text

    # ── Inspection ──────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self.text)

    @property
    def selection(self) -> Optional[tuple[int, int]]:
        """Selected range ``[start, end)`` or None."""
        if self.anchor is None or self.anchor == self.cursor:
            return None
        return (min(self.anchor, self.cursor), max(self.anchor, self.cursor))

    @property
    def selected_text(self) -> str:
        sel = self.selection
        if sel is None:
            return ""
        return self.text[sel[0]:sel[1]]

    @property
    def lines(self) -> list[str]:
        return self.text.split("\n")

    @property
    def cursor_line_col(self) -> tuple[int, int]:
        before = self.text[:self.cursor]
        line = before.count("\n")
        return line, self.cursor - (before.rfind("\n") + 1)

    @property
    def undo_depth(self) -> int:
        return len(self._undo)

    @property
    def redo_depth(self) -> int:
        return len(self._redo)

    # ── Editing ─────────────────────────────────────────────────────

    def reset(self, text: str = "") -> None:
        """Replace the whole buffer and forget history."""
        self.text = self._clean(text)
        self.cursor = len(self.text)
        self.anchor = None
        self._undo.clear()
        self._redo.clear()

    def insert(self, text: str) -> bool:
        """Insert at the cursor, replacing the selection if there is one."""
        text = self._clean(text)
        sel = self.selection
        if sel is None:
            if not text:
                return False
            sel = (self.cursor, self.cursor)
        return self._replace(sel[0], sel[1], text)

    def delete_backward(self) -> bool:
        sel = self.selection
        if sel is not None:
            return self._replace(sel[0], sel[1], "")
        if self.cursor == 0:
            return False
        return self._replace(self.cursor - 1, self.cursor, "")

    def delete_forward(self) -> bool:
        sel = self.selection
        if sel is not None:
            return self._replace(sel[0], sel[1], "")
        if self.cursor >= len(self.text):
            return False
        return self._replace(self.cursor, self.cursor + 1, "")

    def delete_word_backward(self) -> bool:
        sel = self.selection
        if sel is not None:
            return self._replace(sel[0], sel[1], "")
        start = self._word_left(self.cursor)
        if start == self.cursor:
            return False
        return self._replace(start, self.cursor, "")

    def _replace(self, start: int, end: int, inserted: str) -> bool:
        op = EditOperation(
            position=start,
            removed=self.text[start:end],
            inserted=inserted,
            cursor_before=self.cursor,
            anchor_before=self.anchor,
        )
        self._apply(op)
        self.cursor = start + len(inserted)
        self.anchor = None
        self._undo.append(op)
        self._redo.clear()
        return True

    def _apply(self, op: EditOperation) -> None:
        end = op.position + len(op.removed)
        self.text = self.text[:op.position] + op.inserted + self.text[end:]

    def _revert(self, op: EditOperation) -> None:
        end = op.position + len(op.inserted)
        self.text = self.text[:op.position] + op.removed + self.text[end:]

    # ── History ─────────────────────────────────────────────────────

    def undo(self) -> bool:
        """Revert the latest edit. False when there is nothing to undo."""
        if not self._undo:
            return False
        op = self._undo.pop()
        self._redo.append((op, self.cursor, self.anchor))
        self._revert(op)
        self.cursor = op.cursor_before
        self.anchor = op.anchor_before
        return True

    def redo(self) -> bool:
        """Re-apply the latest undone edit. False when there is none."""
        if not self._redo:
            return False
        op, cursor, anchor = self._redo.pop()
        self._apply(op)
        self.cursor = cursor
        self.anchor = anchor
        self._undo.append(op)
        return True

    # ── Cursor and selection ────────────────────────────────────────

    def move_cursor(self, direction: Direction, extend_selection: bool = False) -> bool:
        if extend_selection:
            if self.anchor is None:
                self.anchor = self.cursor
        else:
            self.anchor = None
        target = self._target(direction)
        moved = target != self.cursor
        self.cursor = target
        return moved

    def select_all(self) -> None:
        self.anchor = 0
        self.cursor = len(self.text)

    def clear_selection(self) -> None:
        self.anchor = None

    def _target(self, direction: Direction) -> int:
        pos, text = self.cursor, self.text
        if direction is Direction.LEFT:
            return max(0, pos - 1)
        if direction is Direction.RIGHT:
            return min(len(text), pos + 1)
        if direction is Direction.START:
            return 0
        if direction is Direction.END:
            return len(text)
        if direction is Direction.LINE_START:
            return text.rfind("\n", 0, pos) + 1
        if direction is Direction.LINE_END:
            nl = text.find("\n", pos)
            return len(text) if nl == -1 else nl
        if direction is Direction.WORD_LEFT:
            return self._word_left(pos)
        if direction is Direction.WORD_RIGHT:
            return self._word_right(pos)
        return self._vertical(-1 if direction is Direction.UP else 1)

    def _word_left(self, pos: int) -> int:
        text = self.text
        while pos > 0 and not text[pos - 1].isalnum():
            pos -= 1
        while pos > 0 and text[pos - 1].isalnum():
            pos -= 1
        return pos

    def _word_right(self, pos: int) -> int:
        text = self.text
        while pos < len(text) and not text[pos].isalnum():
            pos += 1
        while pos < len(text) and text[pos].isalnum():
            pos += 1
        return pos

    def _vertical(self, step: int) -> int:
        lines = self.lines
        line, col = self.cursor_line_col
        target = line + step
        if target < 0 or target >= len(lines):
            return self.cursor
        offset = sum(len(l) + 1 for l in lines[:target])
        return offset + min(col, len(lines[target]))


# ════════════════════════════════════════════════════════════════════════
#  Key handling
# ════════════════════════════════════════════════════════════════════════

_MOVE_KEYS = {
    "left": (Direction.LEFT, False),
    "right": (Direction.RIGHT, False),
    "up": (Direction.UP, False),
    "down": (Direction.DOWN, False),
    "home": (Direction.LINE_START, False),
    "end": (Direction.LINE_END, False),
    "c-left": (Direction.WORD_LEFT, False),
    "c-right": (Direction.WORD_RIGHT, False),
    "c-home": (Direction.START, False),
    "c-end": (Direction.END, False),
    "s-left": (Direction.LEFT, True),
    "s-right": (Direction.RIGHT, True),
    "s-up": (Direction.UP, True),
    "s-down": (Direction.DOWN, True),
    "s-home": (Direction.LINE_START, True),
    "s-end": (Direction.LINE_END, True),
    "c-s-left": (Direction.WORD_LEFT, True),
    "c-s-right": (Direction.WORD_RIGHT, True),
}


def is_text_key(key: str) -> bool:
    return len(key) == 1 and key.isprintable()


def apply_editing_key(editor: Editor, key: str) -> bool:
    """Feed one canonical key name to ``editor``; False if it is not an editing key."""
    if is_text_key(key):
        editor.insert(key)
        return True
    if key in _MOVE_KEYS:
        direction, extend = _MOVE_KEYS[key]
        if not editor.multiline and direction in (Direction.UP, Direction.DOWN):
            return False
        editor.move_cursor(direction, extend)
        return True
    if key == "backspace":
        editor.delete_backward()
    elif key == "delete":
        editor.delete_forward()
    elif key == "c-w":
        editor.delete_word_backward()
    elif key == "c-a":
        editor.select_all()
    elif key == "enter" and editor.multiline:
        editor.insert("\n")
    else:
        return False
    return True
