"""ChatApp: wires the terminal, the components and the backends together.

Every key event goes through the same path: ``parse_key`` -> ``dispatch``
(a pure routing decision over a ``DispatchContext`` snapshot) -> one handler
below that executes it. Handlers mutate state and call ``request_render``;
the screen is always a projection of that state.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from typing import Awaitable, Sequence

from chatterm.backend import ApprovalRequest, Backend, ShellBackend
from chatterm.completion import (
    CommandCompletionSource,
    CompletionEngine,
    PathCompletionSource,
    SlashCommand,
    TriggerKind,
)
from chatterm.components import (
    CompletionMenu,
    ConfirmationDialog,
    DebugConsole,
    EditorView,
    ThinkingIndicator,
)
from chatterm.config import Config
from chatterm.dispatcher import Dispatch, DispatchContext, Target, dispatch
from chatterm.external_editor import ExternalEditor, resolve_editor_command
from chatterm.history import HistoryRouter
from chatterm.keybindings import KeybindingsManager
from chatterm.keys import KeyEvent, is_key_release, paste_event, parse_key
from chatterm.overflow import (
    EntryFormatter,
    EntryMarker,
    OverflowRenderer,
    Transcript,
    TranscriptEntry,
    ViewportBudget,
    plain_formatter,
)
from chatterm.selection import EDITOR_KEY, THEME_KEY, InMemorySelectionStore, SelectionStore
from chatterm.streaming import StreamingCoordinator, StreamingState, StreamOutcome
from chatterm.terminal import Terminal
from chatterm.text_buffer import InputMode, TextEditBuffer
from chatterm.theme import THEMES, Theme, get_theme
from chatterm.tui import TUI
from chatterm.utils import truncate_to_width

logger = logging.getLogger(__name__)

NOTICE_SECONDS = 3.0

DEFAULT_COMMANDS: tuple[SlashCommand, ...] = (
    SlashCommand("clear", "Clear the transcript"),
    SlashCommand("quit", "Exit chatterm"),
    SlashCommand("theme", "Switch colour theme: /theme <name>"),
    SlashCommand("editor", "Set the external editor: /editor <command>"),
)


# ---------------------------------------------------------------------------
# Small live-region components
# ---------------------------------------------------------------------------


class ActiveEntryView:
    """The in-progress transcript entry, truncated to the height budget."""

    def __init__(self, app: ChatApp) -> None:
        self._app = app

    def invalidate(self) -> None:
        pass

    def render(self, width: int) -> list[str]:
        return self._app.renderer.render_active(self._app.budget(width)).lines


class StatusLine:
    """One-line transient hint (quit guard, notices, toggles)."""

    def __init__(self, theme: Theme) -> None:
        self._theme = theme
        self.text: str | None = None

    def invalidate(self) -> None:
        pass

    def render(self, width: int) -> list[str]:
        if not self.text:
            return []
        return [self._theme.muted(truncate_to_width(self.text, width))]


def themed_formatter(theme: Theme) -> EntryFormatter:
    """``plain_formatter`` with the role label coloured by role."""
    styles = {
        "user": theme.user,
        "assistant": theme.assistant,
        "shell": theme.shell,
        "output": theme.muted,
        "error": theme.error,
    }

    def format_entry(entry: TranscriptEntry, width: int) -> list[str]:
        lines = plain_formatter(entry, width)
        style = styles.get(entry.role, theme.accent)
        lines[0] = style(lines[0])
        if entry.marker is not None:
            lines[-1] = theme.error(lines[-1]) if entry.marker is EntryMarker.ERROR else theme.warning(lines[-1])
        return lines

    return format_entry


# ---------------------------------------------------------------------------
# ChatApp
# ---------------------------------------------------------------------------


class ChatApp:
    """One interactive chat session on one terminal."""

    def __init__(
        self,
        terminal: Terminal,
        backend: Backend,
        *,
        config: Config | None = None,
        shell_backend: Backend | None = None,
        commands: Sequence[SlashCommand] = DEFAULT_COMMANDS,
        cwd: str | os.PathLike[str] | None = None,
        selection: SelectionStore | None = None,
        debug_console: DebugConsole | None = None,
    ) -> None:
        self.config = config or Config()
        self.terminal = terminal
        self.backend = backend
        self.shell_backend = shell_backend or ShellBackend(cwd)
        self.selection = selection or InMemorySelectionStore()
        self.theme = get_theme(self.selection.get(THEME_KEY), no_color=self.config.no_color)

        self.keybindings = KeybindingsManager(dict(self.config.keybindings))
        self.buffer = TextEditBuffer()
        self.history = HistoryRouter(self.config.history_limit)
        self.completion = CompletionEngine(
            {
                TriggerKind.PATH: PathCompletionSource(cwd),
                TriggerKind.COMMAND: CommandCompletionSource(commands),
            },
            max_visible=self.config.completion_max_visible,
        )
        self.coordinator = StreamingCoordinator(
            self.config.phrases,
            phrase_interval=self.config.phrase_interval,
        )
        self.transcript = Transcript()
        self.renderer = OverflowRenderer(
            self.transcript,
            themed_formatter(self.theme),
            head_lines=self.config.overflow_head_lines,
            tail_lines=self.config.overflow_tail_lines,
        )
        self.external_editor = ExternalEditor(terminal, self._editor_command())
        self.tui = TUI(terminal)
        self.tui.static_source = self.renderer.take_new_static

        self.height_constrained = True
        self.dialog: ConfirmationDialog | None = None
        self.debug_console = debug_console or DebugConsole(self.theme)

        self._editing = False
        self._stream_starting = False
        self._tasks: set[asyncio.Task[None]] = set()
        self._quit_armed_at: float | None = None
        self._status_handle: asyncio.TimerHandle | None = None
        self._exit_event = asyncio.Event()

        self.buffer.on_change = lambda _text: self._buffer_changed()
        self.buffer.on_mode_change = lambda _mode: self._mode_changed()
        self.completion.on_update = self.tui.request_render
        self.coordinator.on_state_change = self._stream_state_changed
        self.coordinator.on_phrase = lambda _phrase: self.tui.request_render()
        self.debug_console.on_append = self.tui.request_render

        self._build_views()

    # -- layout --------------------------------------------------------------

    def _build_views(self) -> None:
        """(Re)create the live-region components for the current theme."""
        indicator = getattr(self, "indicator", None)
        if indicator is not None:
            indicator.stop()
        self.active_view = ActiveEntryView(self)
        self.indicator = ThinkingIndicator(
            self.coordinator,
            self.theme,
            interval=self.config.spinner_interval,
            on_tick=self.tui.request_render,
        )
        self.status = StatusLine(self.theme)
        self.completion_menu = CompletionMenu(self.completion, self.theme)
        self.editor_view = EditorView(self.buffer, self.theme)
        self.debug_console.theme = self.theme
        self._layout()
        if self.coordinator.is_busy:
            self.indicator.start()

    def _layout(self) -> None:
        self.tui.clear()
        self.tui.add_child(self.active_view)
        self.tui.add_child(self.indicator)
        if self.dialog is not None:
            self.tui.add_child(self.dialog)
        self.tui.add_child(self.status)
        self.tui.add_child(self.editor_view)
        self.tui.add_child(self.completion_menu)
        self.tui.add_child(self.debug_console)
        self.tui.request_render()

    def budget(self, width: int) -> ViewportBudget:
        return ViewportBudget(
            width=width,
            height=self.terminal.rows,
            reserved_rows=self.config.reserved_rows,
            height_constrained=self.height_constrained,
        )

    def _editor_command(self) -> list[str]:
        return resolve_editor_command(self.selection.get(EDITOR_KEY) or self.config.editor)

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        self.terminal.start(self.handle_input, self.handle_paste, self.handle_resize)
        self.tui.start()

    async def run(self) -> None:
        """Run until the quit sequence (or ``/quit``)."""
        self.start()
        try:
            await self._exit_event.wait()
        finally:
            await self.shutdown()

    def exit(self) -> None:
        self._exit_event.set()

    async def shutdown(self) -> None:
        if self.coordinator.is_busy:
            self.coordinator.fail()
        self.completion.close()
        self.indicator.stop()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._clear_status_timer()
        self.tui.stop()
        self.terminal.stop()

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task[None]:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -- input ---------------------------------------------------------------

    def handle_input(self, data: str) -> None:
        if self._editing or is_key_release(data):
            return
        self.handle_key(parse_key(data))

    def handle_paste(self, content: str) -> None:
        if self._editing:
            return
        self.handle_key(paste_event(content))

    def handle_resize(self) -> None:
        self.tui.request_render()

    def context(self) -> DispatchContext:
        buf = self.buffer
        return DispatchContext(
            mode=buf.mode,
            streaming=self.coordinator.state,
            dialog_open=self.dialog is not None,
            completion_open=self.completion.is_open,
            buffer_empty=buf.is_empty,
            on_first_line=buf.on_first_line,
            on_last_line=buf.on_last_line,
            char_before_cursor=buf.char_before_cursor,
        )

    def handle_key(self, event: KeyEvent | None) -> Dispatch:
        decision = dispatch(event, self.context(), self.keybindings)
        if decision.target is Target.NONE:
            return decision
        if not (decision.target is Target.GLOBAL and decision.operation == "quit"):
            self._disarm_quit()

        handler = self._handlers[decision.target]
        handler(self, decision)
        self.tui.request_render()
        return decision

    # -- dispatch targets ----------------------------------------------------

    def _run_global(self, decision: Dispatch) -> None:
        op = decision.operation
        if op == "quit":
            self._quit_pressed(decision.argument)
        elif op == "clear_screen":
            self.tui.clear_screen()
        elif op == "toggle_debug_console":
            self.debug_console.toggle()
        elif op == "toggle_height_constraint":
            self.height_constrained = not self.height_constrained
            state = "on" if self.height_constrained else "off"
            self.set_status(f"Height constraint {state}")
        elif op == "toggle_descriptions":
            self.completion_menu.toggle_descriptions()

    def _run_dialog(self, decision: Dispatch) -> None:
        dialog = self.dialog
        if dialog is None:
            return
        getattr(dialog, decision.operation)()

    def _run_completion(self, decision: Dispatch) -> None:
        op = decision.operation
        if op == "move_selection":
            self.completion.move_selection(decision.argument)
        elif op == "accept":
            replacement = self.completion.accept()
            if replacement is not None:
                self.buffer.replace_range(replacement.start, replacement.end, replacement.text)
        elif op == "close":
            self.completion.close()
        elif op == "trigger":
            self._refresh_completion()

    def _run_buffer(self, decision: Dispatch) -> None:
        op = decision.operation
        buf = self.buffer
        if op == "insert":
            buf.insert(decision.argument)
        elif op == "move":
            buf.move(decision.argument)
            self._refresh_completion()
        elif op == "continue_line":
            # Trailing backslash: replace it with a line break
            buf.delete_backward()
            buf.newline()
        elif op == "open_external":
            self._spawn(self.open_editor())
        else:
            getattr(buf, op)()

    def _run_history(self, decision: Dispatch) -> None:
        store = self.history.for_mode(self.buffer.mode)
        if decision.operation == "navigate_up":
            text = store.navigate_up(self.buffer.text)
        else:
            text = store.navigate_down()
        if text is not None:
            self.buffer.set_text(text)

    def _run_mode(self, decision: Dispatch) -> None:
        if decision.operation == "exit_shell_mode":
            self.buffer.exit_shell_mode()

    def _run_stream(self, decision: Dispatch) -> None:
        if decision.operation == "cancel" and self.coordinator.state is StreamingState.RESPONDING:
            self.coordinator.cancel()
            self.transcript.freeze_active(EntryMarker.CANCELLED)
            logger.info("Response cancelled")

    def _run_session(self, decision: Dispatch) -> None:
        if decision.operation == "submit":
            self.submit()

    _handlers = {
        Target.GLOBAL: _run_global,
        Target.DIALOG: _run_dialog,
        Target.COMPLETION: _run_completion,
        Target.BUFFER: _run_buffer,
        Target.HISTORY: _run_history,
        Target.MODE: _run_mode,
        Target.STREAM: _run_stream,
        Target.SESSION: _run_session,
    }

    # -- buffer and completion -----------------------------------------------

    def _buffer_changed(self) -> None:
        self._refresh_completion()
        self.tui.request_render()

    def _mode_changed(self) -> None:
        self.completion.close()
        self.tui.request_render()

    def _refresh_completion(self) -> None:
        buf = self.buffer
        line, col = buf.cursor
        if buf.mode is InputMode.SHELL:
            self.completion.close()
            return
        self.completion.update(buf.current_line, col, first_line=line == 0)

    # -- quit guard ----------------------------------------------------------

    def _quit_pressed(self, key_id: str | None) -> None:
        now = time.monotonic()
        armed = self._quit_armed_at
        if armed is not None and now - armed <= self.config.quit_confirm_timeout:
            logger.info("Quit requested")
            self.exit()
            return
        self._quit_armed_at = now
        if not self.buffer.is_empty:
            self.buffer.reset()
        self.set_status(f"Press {key_id or 'ctrl+c'} again to exit", timeout=self.config.quit_confirm_timeout)

    def _disarm_quit(self) -> None:
        if self._quit_armed_at is not None:
            self._quit_armed_at = None
            self.set_status(None)

    # -- status line ---------------------------------------------------------

    def set_status(self, text: str | None, *, timeout: float | None = NOTICE_SECONDS) -> None:
        self._clear_status_timer()
        self.status.text = text
        if text and timeout is not None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                loop = None
            if loop is not None:
                self._status_handle = loop.call_later(timeout, self._status_expired)
        self.tui.request_render()

    def _status_expired(self) -> None:
        self._status_handle = None
        self._quit_armed_at = None
        self.status.text = None
        self.tui.request_render()

    def _clear_status_timer(self) -> None:
        if self._status_handle is not None:
            self._status_handle.cancel()
            self._status_handle = None

    # -- submission ----------------------------------------------------------

    @property
    def is_streaming(self) -> bool:
        return self.coordinator.is_busy or self._stream_starting

    def submit(self) -> None:
        """Submit the buffer: local command, shell command or prompt."""
        text = self.buffer.text
        if not text.strip():
            return
        if self.is_streaming:
            self.set_status("Still responding (esc to cancel)")
            return

        mode = self.buffer.mode
        self.history.for_mode(mode).append(text)
        self.buffer.reset()

        if mode is InputMode.SHELL:
            self.transcript.add_static("shell", text)
            self._start_stream(self.shell_backend, text, role="output")
            return

        if text.startswith("/") and self._run_command(text.strip()):
            return
        self.transcript.add_static("user", text)
        self._start_stream(self.backend, text, role="assistant")

    def _run_command(self, line: str) -> bool:
        name, _, arg = line[1:].partition(" ")
        arg = arg.strip()
        if name == "quit":
            self.exit()
        elif name == "clear":
            self.transcript.clear()
            self.renderer.reset()
            self.tui.clear_screen()
        elif name == "theme":
            self.set_theme(arg)
        elif name == "editor":
            self.set_editor(arg)
        else:
            return False
        return True

    def set_theme(self, name: str) -> None:
        if name not in THEMES:
            self.set_status(f"Unknown theme {name!r} (available: {', '.join(sorted(THEMES))})")
            return
        self.selection.set(THEME_KEY, name)
        self.theme = get_theme(name, no_color=self.config.no_color)
        self.renderer.set_formatter(themed_formatter(self.theme))
        self._build_views()
        self.set_status(f"Theme: {self.theme.name}")

    def set_editor(self, command: str) -> None:
        if not command:
            self.set_status(f"Editor: {' '.join(self.external_editor.command)}")
            return
        self.selection.set(EDITOR_KEY, command)
        self.external_editor = ExternalEditor(self.terminal, self._editor_command())
        self.set_status(f"Editor: {command}")

    # -- streaming -----------------------------------------------------------

    def _start_stream(self, backend: Backend, prompt: str, *, role: str) -> None:
        entry = self.transcript.start_active(role)
        self._stream_starting = True
        self._spawn(self._consume(backend, prompt, entry))

    async def _consume(self, backend: Backend, prompt: str, entry: TranscriptEntry) -> None:
        self._stream_starting = False
        result = await self.coordinator.run(
            backend,
            prompt,
            on_chunk=self._on_chunk,
            on_approval=self._on_approval,
        )
        if self.transcript.active is entry:
            marker = None
            if result.outcome is StreamOutcome.CANCELLED:
                marker = EntryMarker.CANCELLED
            elif result.outcome is StreamOutcome.FAILED:
                marker = EntryMarker.ERROR
            self.transcript.freeze_active(marker)
        if result.outcome is StreamOutcome.FAILED:
            error = result.error
            message = str(error) if error is not None and str(error) else type(error).__name__
            self.transcript.add_static("error", message)
        self.tui.request_render()

    def _on_chunk(self, text: str) -> None:
        if self.transcript.active is not None:
            self.transcript.append_active(text)
        self.tui.request_render()

    def _on_approval(self, request: ApprovalRequest) -> None:
        dialog = ConfirmationDialog(request.title, request.detail, self.theme)
        dialog.on_decision = self._resolve_approval
        self.dialog = dialog
        self._layout()

    def _resolve_approval(self, approved: bool) -> None:
        self._close_dialog()
        if self.coordinator.state is StreamingState.WAITING_FOR_CONFIRMATION:
            self.coordinator.resolve_approval(approved)

    def _close_dialog(self) -> None:
        if self.dialog is not None:
            self.dialog = None
            self._layout()

    def _stream_state_changed(self, old: StreamingState, new: StreamingState) -> None:
        if old is StreamingState.IDLE:
            self.indicator.start()
        if new is StreamingState.IDLE:
            self.indicator.stop()
            self._close_dialog()
        self.tui.request_render()

    # -- external editor -----------------------------------------------------

    async def open_editor(self) -> None:
        """Hand the buffer to the external editor; input is ignored meanwhile."""
        if self._editing:
            return
        self._editing = True
        self.completion.close()
        self.tui.pause()
        try:
            result = await self.buffer.open_external(self.external_editor)
        finally:
            self._editing = False
            self.tui.resume()
        if not result.ok:
            self.set_status(f"Editor failed: {result.error}")
