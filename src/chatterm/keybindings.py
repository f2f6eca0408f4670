"""Action-to-key bindings for the chat runtime."""

from __future__ import annotations

import logging
from typing import Literal, Mapping

from chatterm.keys import KeyEvent, KeyId

logger = logging.getLogger(__name__)

Action = Literal[
    # Global shortcuts
    "quit",
    "clearScreen",
    "toggleDebugConsole",
    "toggleHeightConstraint",
    "toggleDescriptions",
    # Cursor movement
    "cursorUp",
    "cursorDown",
    "cursorLeft",
    "cursorRight",
    "cursorWordLeft",
    "cursorWordRight",
    "cursorLineStart",
    "cursorLineEnd",
    # Deletion
    "deleteCharBackward",
    "deleteCharForward",
    "deleteWordBackward",
    "deleteToLineStart",
    "deleteToLineEnd",
    # Text input
    "newLine",
    "submit",
    "tab",
    "cancel",
    "openEditor",
    # History
    "historyPrevious",
    "historyNext",
    # Selection (completion list and dialogs)
    "selectUp",
    "selectDown",
    "selectConfirm",
    # Kill ring / undo
    "yank",
    "undo",
]

KeybindingsConfig = Mapping[str, "KeyId | list[KeyId]"]

DEFAULT_KEYBINDINGS: dict[Action, KeyId | list[KeyId]] = {
    # Global shortcuts
    "quit": ["ctrl+c", "ctrl+d"],
    "clearScreen": "ctrl+l",
    "toggleDebugConsole": "ctrl+o",
    "toggleHeightConstraint": "ctrl+s",
    "toggleDescriptions": "ctrl+t",
    # Cursor movement
    "cursorUp": "up",
    "cursorDown": "down",
    "cursorLeft": ["left", "ctrl+b"],
    "cursorRight": ["right", "ctrl+f"],
    "cursorWordLeft": ["alt+left", "ctrl+left", "alt+b"],
    "cursorWordRight": ["alt+right", "ctrl+right", "alt+f"],
    "cursorLineStart": ["home", "ctrl+a"],
    "cursorLineEnd": ["end", "ctrl+e"],
    # Deletion
    "deleteCharBackward": ["backspace", "shift+backspace"],
    "deleteCharForward": "delete",
    "deleteWordBackward": ["ctrl+w", "alt+backspace"],
    "deleteToLineStart": "ctrl+u",
    "deleteToLineEnd": "ctrl+k",
    # Text input
    "newLine": ["shift+enter", "alt+enter", "ctrl+j"],
    "submit": "enter",
    "tab": "tab",
    "cancel": "escape",
    "openEditor": "ctrl+x",
    # History
    "historyPrevious": "ctrl+p",
    "historyNext": "ctrl+n",
    # Selection
    "selectUp": "up",
    "selectDown": "down",
    "selectConfirm": "enter",
    # Kill ring / undo
    "yank": "ctrl+y",
    "undo": ["ctrl+-", "ctrl+_"],
}

_MODIFIER_ORDER = ("ctrl", "shift", "alt")
_ALIASES = {"esc": "escape", "return": "enter", "del": "delete"}


def normalize_key_id(key_id: KeyId) -> KeyId:
    """Canonical ``ctrl+shift+alt+key`` form with lowercase modifiers."""
    parts = key_id.split("+")
    if key_id.endswith("++"):
        parts = parts[:-2] + ["+"]
    mods = {p.lower() for p in parts[:-1]}
    key = parts[-1]
    key = _ALIASES.get(key.lower(), key if len(key) != 1 else key.lower())
    return "".join(f"{m}+" for m in _MODIFIER_ORDER if m in mods) + key


class KeybindingsManager:
    """Maps actions to key ids, with user overrides layered over defaults."""

    def __init__(self, config: KeybindingsConfig | None = None) -> None:
        self._action_to_keys: dict[str, list[KeyId]] = {}
        self._build_maps(config or {})

    def _build_maps(self, config: KeybindingsConfig) -> None:
        self._action_to_keys.clear()

        for action, keys in DEFAULT_KEYBINDINGS.items():
            key_array = keys if isinstance(keys, list) else [keys]
            self._action_to_keys[action] = [normalize_key_id(k) for k in key_array]

        for action, keys in config.items():
            if action not in DEFAULT_KEYBINDINGS:
                logger.warning("Ignoring keybinding for unknown action %r", action)
                continue
            key_array = keys if isinstance(keys, list) else [keys]
            self._action_to_keys[action] = [normalize_key_id(k) for k in key_array]

    def matches(self, event: KeyEvent, action: Action) -> bool:
        """Check if a key event triggers a specific action."""
        keys = self._action_to_keys.get(action)
        if not keys:
            return False
        return event.id in keys

    def get_keys(self, action: Action) -> list[KeyId]:
        return self._action_to_keys.get(action, [])

    def set_config(self, config: KeybindingsConfig) -> None:
        self._build_maps(config)
