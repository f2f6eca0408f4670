"""Routes one key event to exactly one target and operation.

``dispatch`` is a pure function of the key and a ``DispatchContext``
snapshot; ``ChatApp`` executes the returned ``Dispatch``. Priority, highest
first: global shortcuts, an open dialog, the completion list, then buffer
editing and history navigation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from chatterm.keybindings import KeybindingsManager
from chatterm.keys import KeyEvent
from chatterm.streaming import StreamingState
from chatterm.text_buffer import Direction, InputMode


class Target(Enum):
    GLOBAL = "global"
    DIALOG = "dialog"
    COMPLETION = "completion"
    BUFFER = "buffer"
    HISTORY = "history"
    MODE = "mode"
    STREAM = "stream"
    SESSION = "session"
    NONE = "none"


@dataclass(frozen=True)
class DispatchContext:
    mode: InputMode = InputMode.NORMAL
    streaming: StreamingState = StreamingState.IDLE
    dialog_open: bool = False
    completion_open: bool = False
    buffer_empty: bool = True
    on_first_line: bool = True
    on_last_line: bool = True
    char_before_cursor: str = ""


@dataclass(frozen=True)
class Dispatch:
    target: Target
    operation: str
    argument: Any = None


IGNORE = Dispatch(Target.NONE, "ignore")
SWALLOW = Dispatch(Target.NONE, "swallow")

_GLOBAL_ACTIONS = (
    ("quit", "quit"),
    ("clearScreen", "clear_screen"),
    ("toggleDebugConsole", "toggle_debug_console"),
    ("toggleHeightConstraint", "toggle_height_constraint"),
    ("toggleDescriptions", "toggle_descriptions"),
)

_MOVES = (
    ("cursorLeft", Direction.LEFT),
    ("cursorRight", Direction.RIGHT),
    ("cursorWordLeft", Direction.WORD_LEFT),
    ("cursorWordRight", Direction.WORD_RIGHT),
    ("cursorLineStart", Direction.HOME),
    ("cursorLineEnd", Direction.END),
)

_EDITS = (
    ("deleteCharBackward", "delete_backward"),
    ("deleteCharForward", "delete_forward"),
    ("deleteWordBackward", "delete_word_backward"),
    ("deleteToLineStart", "kill_to_line_start"),
    ("deleteToLineEnd", "kill_to_line_end"),
    ("yank", "yank"),
    ("undo", "undo"),
)

_default_keybindings: KeybindingsManager | None = None


def _defaults() -> KeybindingsManager:
    global _default_keybindings
    if _default_keybindings is None:
        _default_keybindings = KeybindingsManager()
    return _default_keybindings


def dispatch(
    event: KeyEvent | None,
    ctx: DispatchContext,
    keybindings: KeybindingsManager | None = None,
) -> Dispatch:
    """Decide which component handles *event*."""
    if event is None:
        return IGNORE
    kb = keybindings or _defaults()

    for action, operation in _GLOBAL_ACTIONS:
        if kb.matches(event, action):
            return Dispatch(Target.GLOBAL, operation, event.id)

    if ctx.dialog_open:
        return _dispatch_dialog(event, kb)

    if ctx.completion_open:
        routed = _dispatch_completion(event, kb)
        if routed is not None:
            return routed

    return _dispatch_editing(event, ctx, kb)


def _dispatch_dialog(event: KeyEvent, kb: KeybindingsManager) -> Dispatch:
    if kb.matches(event, "selectDown") or kb.matches(event, "tab"):
        return Dispatch(Target.DIALOG, "next")
    if kb.matches(event, "selectUp"):
        return Dispatch(Target.DIALOG, "previous")
    if kb.matches(event, "selectConfirm"):
        return Dispatch(Target.DIALOG, "confirm")
    if kb.matches(event, "cancel"):
        return Dispatch(Target.DIALOG, "cancel")
    return SWALLOW


def _dispatch_completion(event: KeyEvent, kb: KeybindingsManager) -> Dispatch | None:
    if kb.matches(event, "selectUp"):
        return Dispatch(Target.COMPLETION, "move_selection", -1)
    if kb.matches(event, "selectDown"):
        return Dispatch(Target.COMPLETION, "move_selection", 1)
    if kb.matches(event, "tab") or kb.matches(event, "selectConfirm"):
        return Dispatch(Target.COMPLETION, "accept")
    if kb.matches(event, "cancel"):
        return Dispatch(Target.COMPLETION, "close")
    # Anything else edits the buffer and re-queries
    return None


def _dispatch_editing(event: KeyEvent, ctx: DispatchContext, kb: KeybindingsManager) -> Dispatch:
    if kb.matches(event, "cancel"):
        if ctx.mode is InputMode.SHELL:
            return Dispatch(Target.MODE, "exit_shell_mode")
        if ctx.streaming is StreamingState.RESPONDING:
            return Dispatch(Target.STREAM, "cancel")
        return IGNORE

    if kb.matches(event, "newLine"):
        return Dispatch(Target.BUFFER, "newline")
    if kb.matches(event, "submit"):
        if ctx.char_before_cursor == "\\":
            return Dispatch(Target.BUFFER, "continue_line")
        return Dispatch(Target.SESSION, "submit")

    if kb.matches(event, "historyPrevious"):
        return Dispatch(Target.HISTORY, "navigate_up")
    if kb.matches(event, "historyNext"):
        return Dispatch(Target.HISTORY, "navigate_down")
    if kb.matches(event, "cursorUp"):
        if ctx.on_first_line:
            return Dispatch(Target.HISTORY, "navigate_up")
        return Dispatch(Target.BUFFER, "move", Direction.UP)
    if kb.matches(event, "cursorDown"):
        if ctx.on_last_line:
            return Dispatch(Target.HISTORY, "navigate_down")
        return Dispatch(Target.BUFFER, "move", Direction.DOWN)

    for action, direction in _MOVES:
        if kb.matches(event, action):
            return Dispatch(Target.BUFFER, "move", direction)
    for action, operation in _EDITS:
        if kb.matches(event, action):
            return Dispatch(Target.BUFFER, operation)

    if kb.matches(event, "openEditor"):
        return Dispatch(Target.BUFFER, "open_external")
    if kb.matches(event, "tab"):
        return Dispatch(Target.COMPLETION, "trigger")

    if event.is_paste or event.is_printable:
        return Dispatch(Target.BUFFER, "insert", event.text)
    return IGNORE
