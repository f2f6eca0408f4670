"""chatterm: interactive terminal chat runtime."""

# Input editing
from chatterm.text_buffer import BufferState, Direction, InputMode, KillRing, TextEditBuffer, UndoStack

# History
from chatterm.history import HistoryEntry, HistoryRouter, HistoryStore

# Completion
from chatterm.completion import (
    CommandCompletionSource,
    CompletionCandidate,
    CompletionEngine,
    CompletionItem,
    CompletionSource,
    PathCompletionSource,
    Replacement,
    SlashCommand,
    Trigger,
    TriggerKind,
    find_trigger,
)

# Key handling
from chatterm.dispatcher import Dispatch, DispatchContext, Target, dispatch
from chatterm.keybindings import DEFAULT_KEYBINDINGS, KeybindingsManager
from chatterm.keys import KeyEvent, is_key_release, parse_key

# Streaming
from chatterm.backend import (
    ApprovalRequest,
    Backend,
    CancellationToken,
    ContentChunk,
    EchoBackend,
    ShellBackend,
)
from chatterm.streaming import StreamingCoordinator, StreamingState, StreamOutcome, StreamResult

# Transcript and rendering
from chatterm.overflow import (
    EntryKind,
    EntryMarker,
    OverflowRenderer,
    Transcript,
    TranscriptEntry,
    TruncationResult,
    ViewportBudget,
    truncate_lines,
)
from chatterm.terminal import ProcessTerminal, Terminal
from chatterm.tui import TUI, Component, Container

# Application
from chatterm.app import ChatApp
from chatterm.config import Config
from chatterm.errors import (
    BackendError,
    ChatTermError,
    CompletionSourceError,
    ExternalEditorError,
    InvalidTransitionError,
    StreamingBusyError,
)
from chatterm.external_editor import EditorResult, ExternalEditor
from chatterm.selection import InMemorySelectionStore, SelectionStore
from chatterm.theme import Theme, get_theme

__all__ = [
    "ApprovalRequest",
    "Backend",
    "BackendError",
    "BufferState",
    "CancellationToken",
    "ChatApp",
    "ChatTermError",
    "CommandCompletionSource",
    "CompletionCandidate",
    "CompletionEngine",
    "CompletionItem",
    "CompletionSource",
    "CompletionSourceError",
    "Component",
    "Config",
    "Container",
    "ContentChunk",
    "DEFAULT_KEYBINDINGS",
    "Direction",
    "Dispatch",
    "DispatchContext",
    "EchoBackend",
    "EditorResult",
    "EntryKind",
    "EntryMarker",
    "ExternalEditor",
    "ExternalEditorError",
    "HistoryEntry",
    "HistoryRouter",
    "HistoryStore",
    "InMemorySelectionStore",
    "InputMode",
    "InvalidTransitionError",
    "KeyEvent",
    "KeybindingsManager",
    "KillRing",
    "OverflowRenderer",
    "PathCompletionSource",
    "ProcessTerminal",
    "Replacement",
    "SelectionStore",
    "ShellBackend",
    "SlashCommand",
    "StreamOutcome",
    "StreamResult",
    "StreamingBusyError",
    "StreamingCoordinator",
    "StreamingState",
    "TUI",
    "Target",
    "Terminal",
    "TextEditBuffer",
    "Theme",
    "Transcript",
    "TranscriptEntry",
    "Trigger",
    "TriggerKind",
    "TruncationResult",
    "UndoStack",
    "ViewportBudget",
    "dispatch",
    "find_trigger",
    "get_theme",
    "is_key_release",
    "parse_key",
    "truncate_lines",
]
