"""Live-region components."""

from chatterm.components.completion_menu import CompletionMenu
from chatterm.components.confirmation_dialog import ConfirmationDialog
from chatterm.components.debug_console import DebugConsole
from chatterm.components.editor_view import EditorView, LayoutLine, layout_buffer
from chatterm.components.thinking_indicator import ThinkingIndicator

__all__ = [
    "CompletionMenu",
    "ConfirmationDialog",
    "DebugConsole",
    "EditorView",
    "LayoutLine",
    "ThinkingIndicator",
    "layout_buffer",
]
