"""Terminal abstraction for raw-mode stdin/stdout interaction.

``Terminal`` is what the renderer and the application talk to;
``ProcessTerminal`` drives the real tty. The tty can be lent to a child
process (an external editor) with ``suspend`` and taken back with
``resume``; both are no-ops when repeated.
"""

from __future__ import annotations

import asyncio
import logging
import os
import re
import signal
import sys
import termios
import tty
from dataclasses import dataclass
from typing import Callable, Protocol

from chatterm.stdin_buffer import StdinBuffer

logger = logging.getLogger(__name__)

InputHandler = Callable[[str], None]
ResizeHandler = Callable[[], None]

# ---------------------------------------------------------------------------
# Escape sequences
# ---------------------------------------------------------------------------

PASTE_ON = "\x1b[?2004h"
PASTE_OFF = "\x1b[?2004l"
KITTY_PROBE = "\x1b[?u"
KITTY_PUSH = "\x1b[>1u"
KITTY_POP = "\x1b[<u"
CURSOR_HIDE = "\x1b[?25l"
CURSOR_SHOW = "\x1b[?25h"

_KITTY_REPLY = re.compile(r"\x1b\[\?\d+u")

_FALLBACK_SIZE = os.terminal_size((80, 24))


# ---------------------------------------------------------------------------
# Terminal protocol
# ---------------------------------------------------------------------------


class Terminal(Protocol):
    """Interface for terminal I/O operations."""

    @property
    def columns(self) -> int: ...

    @property
    def rows(self) -> int: ...

    def start(self, on_input: InputHandler, on_paste: InputHandler, on_resize: ResizeHandler) -> None: ...

    def stop(self) -> None: ...

    def suspend(self) -> None: ...

    def resume(self) -> None: ...

    def write(self, data: str) -> None: ...

    def hide_cursor(self) -> None: ...

    def show_cursor(self) -> None: ...


@dataclass
class _Handlers:
    on_input: InputHandler
    on_paste: InputHandler
    on_resize: ResizeHandler


# ---------------------------------------------------------------------------
# ProcessTerminal
# ---------------------------------------------------------------------------


class ProcessTerminal:
    """Terminal on the process's own stdin/stdout."""

    def __init__(self, stdin=None, stdout=None) -> None:
        self._in = stdin or sys.stdin
        self._out = stdout or sys.stdout
        self._handlers: _Handlers | None = None
        self._keys = StdinBuffer(timeout=0.01)
        self._keys.on_data = self._dispatch_sequence
        self._keys.on_paste = self._dispatch_paste
        self._saved_attrs: list | None = None
        self._reading_on: asyncio.AbstractEventLoop | None = None
        self._old_winch = None
        self._kitty = False
        self._lent = False

    def _size(self) -> os.terminal_size:
        try:
            return os.get_terminal_size(self._out.fileno())
        except (ValueError, OSError):
            return _FALLBACK_SIZE

    @property
    def columns(self) -> int:
        return self._size().columns

    @property
    def rows(self) -> int:
        return self._size().lines

    # -- lifecycle ------------------------------------------------------------

    def start(self, on_input: InputHandler, on_paste: InputHandler, on_resize: ResizeHandler) -> None:
        """Take over the tty and deliver key sequences, pastes and resizes."""
        self._handlers = _Handlers(on_input, on_paste, on_resize)
        self._old_winch = signal.signal(signal.SIGWINCH, self._winch)
        self._grab()
        # The reply, if any, arrives as input and flips ``_kitty``.
        self.write(KITTY_PROBE)

    def stop(self) -> None:
        self._release()
        self._keys.clear()
        if self._old_winch is not None:
            signal.signal(signal.SIGWINCH, self._old_winch)
            self._old_winch = None
        self._handlers = None

    def suspend(self) -> None:
        """Put the tty back in cooked mode for a child process."""
        if self._lent:
            return
        self._lent = True
        self.show_cursor()
        self._release()
        self._keys.clear()

    def resume(self) -> None:
        if not self._lent:
            return
        self._lent = False
        self._grab()
        if self._kitty:
            self.write(KITTY_PUSH)

    def _grab(self) -> None:
        fd = self._in.fileno()
        self._saved_attrs = termios.tcgetattr(fd)
        tty.setraw(fd)
        self.write(PASTE_ON)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("No running loop, stdin is not being read")
            return
        loop.add_reader(fd, self._readable)
        self._reading_on = loop

    def _release(self) -> None:
        self.write(PASTE_OFF + (KITTY_POP if self._kitty else ""))
        if self._reading_on is not None:
            self._reading_on.remove_reader(self._in.fileno())
            self._reading_on = None
        if self._saved_attrs is not None:
            termios.tcsetattr(self._in.fileno(), termios.TCSADRAIN, self._saved_attrs)
            self._saved_attrs = None

    # -- output ---------------------------------------------------------------

    def write(self, data: str) -> None:
        try:
            self._out.write(data)
            self._out.flush()
        except OSError as exc:
            logger.debug("Terminal write failed: %s", exc)

    def hide_cursor(self) -> None:
        self.write(CURSOR_HIDE)

    def show_cursor(self) -> None:
        self.write(CURSOR_SHOW)

    # -- input ----------------------------------------------------------------

    def _readable(self) -> None:
        try:
            chunk = os.read(self._in.fileno(), 4096)
        except OSError:
            return
        if chunk:
            self._keys.process(chunk.decode("utf-8", errors="replace"))

    def _dispatch_sequence(self, seq: str) -> None:
        if _KITTY_REPLY.fullmatch(seq):
            if not self._kitty:
                self._kitty = True
                self.write(KITTY_PUSH)
                logger.debug("Kitty keyboard protocol enabled")
        elif self._handlers is not None:
            self._handlers.on_input(seq)

    def _dispatch_paste(self, text: str) -> None:
        if self._handlers is not None:
            self._handlers.on_paste(text)

    def _winch(self, signum: int, frame: object) -> None:
        if self._handlers is not None and not self._lent:
            self._handlers.on_resize()
