"""Editable multi-line input buffer.

``TextEditBuffer`` owns the lines, cursor and input mode of the prompt. It
knows nothing about keys or rendering: the dispatcher decides which operation
runs and views read the state back. All operations are total, so a move or
delete at a boundary is simply a no-op.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable

import grapheme

from chatterm.utils import is_punctuation_char, is_whitespace_char

if TYPE_CHECKING:
    from chatterm.external_editor import EditorResult, ExternalEditor

logger = logging.getLogger(__name__)

SHELL_TRIGGER = "!"
UNDO_LIMIT = 200


class InputMode(Enum):
    NORMAL = "normal"
    SHELL = "shell"


class Direction(Enum):
    HOME = "home"
    END = "end"
    LEFT = "left"
    RIGHT = "right"
    UP = "up"
    DOWN = "down"
    WORD_LEFT = "word_left"
    WORD_RIGHT = "word_right"


@dataclass
class BufferState:
    lines: list[str] = field(default_factory=lambda: [""])
    cursor_line: int = 0
    cursor_col: int = 0
    mode: InputMode = InputMode.NORMAL


# ---------------------------------------------------------------------------
# Kill ring and undo snapshots
# ---------------------------------------------------------------------------


class KillRing:
    """Killed text for yank. Consecutive kills merge into one entry."""

    def __init__(self, limit: int = 30) -> None:
        self._ring: list[str] = []
        self._limit = limit

    def push(self, text: str, *, prepend: bool, accumulate: bool = False) -> None:
        if not text:
            return
        if accumulate and self._ring:
            last = self._ring.pop()
            self._ring.append(text + last if prepend else last + text)
        else:
            self._ring.append(text)
            del self._ring[: -self._limit]

    def peek(self) -> str | None:
        return self._ring[-1] if self._ring else None

    def __len__(self) -> int:
        return len(self._ring)


class UndoStack:
    """Bounded stack of detached ``BufferState`` snapshots."""

    def __init__(self, limit: int = UNDO_LIMIT) -> None:
        self._stack: list[BufferState] = []
        self._limit = limit

    def push(self, state: BufferState) -> None:
        self._stack.append(copy.deepcopy(state))
        del self._stack[: -self._limit]

    def pop(self) -> BufferState | None:
        return self._stack.pop() if self._stack else None

    def clear(self) -> None:
        self._stack.clear()

    def __len__(self) -> int:
        return len(self._stack)


# ---------------------------------------------------------------------------
# TextEditBuffer
# ---------------------------------------------------------------------------


def _first_grapheme_len(text: str) -> int:
    for g in grapheme.graphemes(text):
        return len(g)
    return 0


def _last_grapheme_len(text: str) -> int:
    last = ""
    for g in grapheme.graphemes(text):
        last = g
    return len(last)


def _snap_to_boundary(line: str, col: int) -> int:
    """Largest grapheme boundary in *line* that is <= *col*."""
    pos = 0
    for g in grapheme.graphemes(line):
        if pos + len(g) > col:
            break
        pos += len(g)
    return pos


class TextEditBuffer:
    """Lines, cursor and mode of the prompt being composed."""

    def __init__(self) -> None:
        self._state = BufferState()
        self._kill_ring = KillRing()
        self._undo_stack = UndoStack()
        self._last_action: str | None = None
        self._preferred_col: int | None = None

        self.on_change: Callable[[str], None] | None = None
        self.on_mode_change: Callable[[InputMode], None] | None = None

    # -- read accessors ------------------------------------------------------

    @property
    def state(self) -> BufferState:
        """A detached copy of the current state."""
        return copy.deepcopy(self._state)

    @property
    def lines(self) -> list[str]:
        return list(self._state.lines)

    @property
    def cursor(self) -> tuple[int, int]:
        return self._state.cursor_line, self._state.cursor_col

    @property
    def mode(self) -> InputMode:
        return self._state.mode

    @property
    def text(self) -> str:
        return "\n".join(self._state.lines)

    @property
    def is_empty(self) -> bool:
        return len(self._state.lines) == 1 and self._state.lines[0] == ""

    @property
    def on_first_line(self) -> bool:
        return self._state.cursor_line == 0

    @property
    def on_last_line(self) -> bool:
        return self._state.cursor_line == len(self._state.lines) - 1

    @property
    def current_line(self) -> str:
        return self._state.lines[self._state.cursor_line]

    @property
    def char_before_cursor(self) -> str:
        before = self.current_line[: self._state.cursor_col]
        n = _last_grapheme_len(before)
        return before[-n:] if n else ""

    # -- internals -----------------------------------------------------------

    def _changed(self) -> None:
        if self.on_change:
            self.on_change(self.text)

    def _set_col(self, col: int) -> None:
        self._state.cursor_col = col
        self._preferred_col = None

    def _push_undo(self) -> None:
        self._undo_stack.push(self._state)

    def _set_mode(self, mode: InputMode) -> None:
        if self._state.mode is mode:
            return
        self._state.mode = mode
        logger.debug("Input mode -> %s", mode.value)
        if self.on_mode_change:
            self.on_mode_change(mode)

    def _join_with_previous(self) -> None:
        s = self._state
        previous = s.lines[s.cursor_line - 1]
        s.lines[s.cursor_line - 1] = previous + s.lines[s.cursor_line]
        del s.lines[s.cursor_line]
        s.cursor_line -= 1
        self._set_col(len(previous))

    def _join_with_next(self) -> None:
        s = self._state
        s.lines[s.cursor_line] += s.lines[s.cursor_line + 1]
        del s.lines[s.cursor_line + 1]

    def _insert_raw(self, text: str) -> None:
        s = self._state
        inserted = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        line = s.lines[s.cursor_line]
        before, after = line[: s.cursor_col], line[s.cursor_col :]

        if len(inserted) == 1:
            s.lines[s.cursor_line] = before + inserted[0] + after
            self._set_col(s.cursor_col + len(inserted[0]))
            return

        middle = inserted[1:-1]
        s.lines[s.cursor_line : s.cursor_line + 1] = (
            [before + inserted[0]] + middle + [inserted[-1] + after]
        )
        s.cursor_line += len(inserted) - 1
        self._set_col(len(inserted[-1]))

    # -- editing -------------------------------------------------------------

    def insert(self, text: str) -> None:
        """Insert text at the cursor; newlines split lines.

        A lone ``!`` typed into an empty NORMAL buffer switches to shell mode
        instead of being inserted.
        """
        if not text:
            return

        if text == SHELL_TRIGGER and self.is_empty and self._state.mode is InputMode.NORMAL:
            self._last_action = None
            self._set_mode(InputMode.SHELL)
            self._changed()
            return

        # Typing a run of word characters coalesces into one undo step
        single_word_char = len(text) == 1 and not is_whitespace_char(text)
        if not single_word_char or self._last_action != "type-word":
            self._push_undo()
        self._last_action = "type-word" if single_word_char else None

        self._insert_raw(text)
        self._changed()

    def newline(self) -> None:
        self._push_undo()
        self._last_action = None
        self._insert_raw("\n")
        self._changed()

    def delete_backward(self) -> None:
        s = self._state
        self._last_action = None
        if s.cursor_col > 0:
            self._push_undo()
            line = s.lines[s.cursor_line]
            n = _last_grapheme_len(line[: s.cursor_col])
            s.lines[s.cursor_line] = line[: s.cursor_col - n] + line[s.cursor_col :]
            self._set_col(s.cursor_col - n)
        elif s.cursor_line > 0:
            self._push_undo()
            self._join_with_previous()
        else:
            return
        self._changed()

    def delete_forward(self) -> None:
        s = self._state
        self._last_action = None
        line = s.lines[s.cursor_line]
        if s.cursor_col < len(line):
            self._push_undo()
            n = _first_grapheme_len(line[s.cursor_col :])
            s.lines[s.cursor_line] = line[: s.cursor_col] + line[s.cursor_col + n :]
        elif s.cursor_line < len(s.lines) - 1:
            self._push_undo()
            self._join_with_next()
        else:
            return
        self._changed()

    def kill_to_line_end(self) -> None:
        s = self._state
        accumulate = self._last_action == "kill"
        line = s.lines[s.cursor_line]
        if s.cursor_col < len(line):
            self._push_undo()
            self._kill_ring.push(line[s.cursor_col :], prepend=False, accumulate=accumulate)
            s.lines[s.cursor_line] = line[: s.cursor_col]
        elif s.cursor_line < len(s.lines) - 1:
            self._push_undo()
            self._kill_ring.push("\n", prepend=False, accumulate=accumulate)
            self._join_with_next()
        else:
            return
        self._last_action = "kill"
        self._changed()

    def kill_to_line_start(self) -> None:
        s = self._state
        accumulate = self._last_action == "kill"
        line = s.lines[s.cursor_line]
        if s.cursor_col > 0:
            self._push_undo()
            self._kill_ring.push(line[: s.cursor_col], prepend=True, accumulate=accumulate)
            s.lines[s.cursor_line] = line[s.cursor_col :]
            self._set_col(0)
        elif s.cursor_line > 0:
            self._push_undo()
            self._kill_ring.push("\n", prepend=True, accumulate=accumulate)
            self._join_with_previous()
        else:
            return
        self._last_action = "kill"
        self._changed()

    def delete_word_backward(self) -> None:
        s = self._state
        accumulate = self._last_action == "kill"
        if s.cursor_col == 0:
            if s.cursor_line == 0:
                return
            self._push_undo()
            self._kill_ring.push("\n", prepend=True, accumulate=accumulate)
            self._join_with_previous()
        else:
            self._push_undo()
            line = s.lines[s.cursor_line]
            start = self._word_start_before(line, s.cursor_col)
            self._kill_ring.push(line[start : s.cursor_col], prepend=True, accumulate=accumulate)
            s.lines[s.cursor_line] = line[:start] + line[s.cursor_col :]
            self._set_col(start)
        self._last_action = "kill"
        self._changed()

    def yank(self) -> None:
        text = self._kill_ring.peek()
        if text is None:
            return
        self._push_undo()
        self._insert_raw(text)
        self._last_action = "yank"
        self._changed()

    def undo(self) -> None:
        snapshot = self._undo_stack.pop()
        if snapshot is None:
            return
        self._state.lines = snapshot.lines
        self._state.cursor_line = snapshot.cursor_line
        self._state.cursor_col = snapshot.cursor_col
        self._last_action = None
        self._preferred_col = None
        self._changed()

    def set_text(self, text: str) -> None:
        """Replace the whole text, leaving the cursor at the end."""
        if text != self.text:
            self._push_undo()
        lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
        self._state.lines = lines
        self._state.cursor_line = len(lines) - 1
        self._set_col(len(lines[-1]))
        self._last_action = None
        self._changed()

    def replace_range(self, start: int, end: int, text: str) -> None:
        """Replace ``[start, end)`` on the cursor line and put the cursor after it."""
        s = self._state
        line = s.lines[s.cursor_line]
        start = max(0, min(start, len(line)))
        end = max(start, min(end, len(line)))
        self._push_undo()
        self._last_action = None
        s.lines[s.cursor_line] = line[:start] + line[end:]
        self._set_col(start)
        self._insert_raw(text)
        self._changed()

    def reset(self) -> None:
        """Clear the text; the input mode is kept."""
        self._state.lines = [""]
        self._state.cursor_line = 0
        self._set_col(0)
        self._undo_stack.clear()
        self._last_action = None
        self._changed()

    def exit_shell_mode(self) -> None:
        self._set_mode(InputMode.NORMAL)

    # -- movement ------------------------------------------------------------

    def move(self, direction: Direction) -> None:
        s = self._state
        line = s.lines[s.cursor_line]
        if direction is not Direction.UP and direction is not Direction.DOWN:
            self._last_action = None

        if direction is Direction.HOME:
            self._set_col(0)
        elif direction is Direction.END:
            self._set_col(len(line))
        elif direction is Direction.LEFT:
            if s.cursor_col > 0:
                self._set_col(s.cursor_col - _last_grapheme_len(line[: s.cursor_col]))
            elif s.cursor_line > 0:
                s.cursor_line -= 1
                self._set_col(len(s.lines[s.cursor_line]))
        elif direction is Direction.RIGHT:
            if s.cursor_col < len(line):
                self._set_col(s.cursor_col + _first_grapheme_len(line[s.cursor_col :]))
            elif s.cursor_line < len(s.lines) - 1:
                s.cursor_line += 1
                self._set_col(0)
        elif direction is Direction.UP:
            self._move_vertical(-1)
        elif direction is Direction.DOWN:
            self._move_vertical(1)
        elif direction is Direction.WORD_LEFT:
            if s.cursor_col == 0:
                if s.cursor_line > 0:
                    s.cursor_line -= 1
                    self._set_col(len(s.lines[s.cursor_line]))
            else:
                self._set_col(self._word_start_before(line, s.cursor_col))
        elif direction is Direction.WORD_RIGHT:
            if s.cursor_col >= len(line):
                if s.cursor_line < len(s.lines) - 1:
                    s.cursor_line += 1
                    self._set_col(0)
            else:
                self._set_col(self._word_end_after(line, s.cursor_col))

    def _move_vertical(self, delta: int) -> None:
        s = self._state
        target = s.cursor_line + delta
        if not 0 <= target < len(s.lines):
            return
        wanted = self._preferred_col if self._preferred_col is not None else s.cursor_col
        s.cursor_line = target
        s.cursor_col = _snap_to_boundary(s.lines[target], min(wanted, len(s.lines[target])))
        self._preferred_col = wanted

    @staticmethod
    def _word_start_before(line: str, col: int) -> int:
        graphemes = list(grapheme.graphemes(line[:col]))
        while graphemes and is_whitespace_char(graphemes[-1]):
            col -= len(graphemes.pop())
        if graphemes and is_punctuation_char(graphemes[-1]):
            while graphemes and is_punctuation_char(graphemes[-1]):
                col -= len(graphemes.pop())
        else:
            while (
                graphemes
                and not is_whitespace_char(graphemes[-1])
                and not is_punctuation_char(graphemes[-1])
            ):
                col -= len(graphemes.pop())
        return col

    @staticmethod
    def _word_end_after(line: str, col: int) -> int:
        graphemes = list(grapheme.graphemes(line[col:]))
        i = 0
        while i < len(graphemes) and is_whitespace_char(graphemes[i]):
            col += len(graphemes[i])
            i += 1
        if i < len(graphemes) and is_punctuation_char(graphemes[i]):
            while i < len(graphemes) and is_punctuation_char(graphemes[i]):
                col += len(graphemes[i])
                i += 1
        else:
            while (
                i < len(graphemes)
                and not is_whitespace_char(graphemes[i])
                and not is_punctuation_char(graphemes[i])
            ):
                col += len(graphemes[i])
                i += 1
        return col

    # -- external editor -----------------------------------------------------

    async def open_external(self, editor: ExternalEditor) -> EditorResult:
        """Edit the current text in an external editor process.

        The text is replaced only when the editor exits successfully; on any
        failure the buffer is left as it was.
        """
        result = await editor.edit(self.text)
        if result.ok and result.text is not None:
            self.set_text(result.text)
        return result
