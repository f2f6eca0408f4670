"""Reassembles raw stdin chunks into complete input sequences.

Reads from a tty can split an escape sequence across chunks, and a lone ESC
is ambiguous until either more bytes arrive or a short timeout passes.
Bracketed paste content is collected whole and emitted separately so that
pasted newlines never look like Enter.
"""

from __future__ import annotations

import asyncio
import re
from typing import Callable

ESC = "\x1b"
BRACKETED_PASTE_START = "\x1b[200~"
BRACKETED_PASTE_END = "\x1b[201~"

_COMPLETE = "complete"
_INCOMPLETE = "incomplete"

_SGR_MOUSE_RE = re.compile(r"^<\d+;\d+;\d+[Mm]$")


def _sequence_status(data: str) -> str:
    """Classify an ESC-prefixed candidate as complete or incomplete."""
    if len(data) == 1:
        return _INCOMPLETE

    intro = data[1]
    if intro == "[":
        if data.startswith("\x1b[M"):
            # X10 mouse: three raw bytes follow
            return _COMPLETE if len(data) >= 6 else _INCOMPLETE
        if len(data) < 3:
            return _INCOMPLETE
        payload = data[2:]
        if not 0x40 <= ord(payload[-1]) <= 0x7E:
            return _INCOMPLETE
        if payload.startswith("<") and not _SGR_MOUSE_RE.match(payload):
            return _INCOMPLETE
        return _COMPLETE

    if intro == "]":
        return _COMPLETE if data.endswith(("\x07", "\x1b\\")) else _INCOMPLETE

    if intro in ("P", "_"):
        return _COMPLETE if data.endswith("\x1b\\") else _INCOMPLETE

    if intro == "O":
        return _COMPLETE if len(data) >= 3 else _INCOMPLETE

    # ESC + one char is an Alt-modified key
    return _COMPLETE


def split_sequences(buffer: str) -> tuple[list[str], str]:
    """Split *buffer* into complete sequences plus an incomplete remainder."""
    sequences: list[str] = []
    pos = 0

    while pos < len(buffer):
        if buffer[pos] != ESC:
            sequences.append(buffer[pos])
            pos += 1
            continue

        end = pos + 1
        while end <= len(buffer) and _sequence_status(buffer[pos:end]) == _INCOMPLETE:
            end += 1
        if end > len(buffer):
            return sequences, buffer[pos:]
        sequences.append(buffer[pos:end])
        pos = end

    return sequences, ""


class StdinBuffer:
    """Buffers stdin input and emits complete sequences to callbacks.

    ``on_data`` receives one key sequence at a time; ``on_paste`` receives the
    full text of a bracketed paste.
    """

    def __init__(self, *, timeout: float = 0.01) -> None:
        self._buffer = ""
        self._timeout = timeout
        self._timeout_handle: asyncio.TimerHandle | None = None
        self._paste_mode = False
        self._paste_buffer = ""

        self.on_data: Callable[[str], None] | None = None
        self.on_paste: Callable[[str], None] | None = None

    def _emit_data(self, data: str) -> None:
        if self.on_data:
            self.on_data(data)

    def _emit_paste(self, data: str) -> None:
        if self.on_paste:
            self.on_paste(data)

    def _cancel_timeout(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

    def process(self, data: str) -> None:
        """Feed one chunk of decoded stdin input."""
        self._cancel_timeout()
        self._buffer += data

        if not self._paste_mode:
            start = self._buffer.find(BRACKETED_PASTE_START)
            if start == -1:
                self._drain()
                return
            for sequence in split_sequences(self._buffer[:start])[0]:
                self._emit_data(sequence)
            self._buffer = self._buffer[start + len(BRACKETED_PASTE_START):]
            self._paste_mode = True

        self._paste_buffer += self._buffer
        self._buffer = ""
        end = self._paste_buffer.find(BRACKETED_PASTE_END)
        if end == -1:
            return

        content = self._paste_buffer[:end]
        remaining = self._paste_buffer[end + len(BRACKETED_PASTE_END):]
        self._paste_mode = False
        self._paste_buffer = ""
        self._emit_paste(content)
        if remaining:
            self.process(remaining)

    def _drain(self) -> None:
        sequences, self._buffer = split_sequences(self._buffer)
        for sequence in sequences:
            self._emit_data(sequence)

        if self._buffer:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                # No event loop, so nothing would ever complete the sequence
                for sequence in self.flush():
                    self._emit_data(sequence)
                return
            self._timeout_handle = loop.call_later(self._timeout, self._flush_timeout)

    def _flush_timeout(self) -> None:
        self._timeout_handle = None
        for sequence in self.flush():
            self._emit_data(sequence)

    def flush(self) -> list[str]:
        """Return whatever is buffered as-is, clearing the buffer."""
        self._cancel_timeout()
        if not self._buffer:
            return []
        sequences = [self._buffer]
        self._buffer = ""
        return sequences

    def clear(self) -> None:
        self._cancel_timeout()
        self._buffer = ""
        self._paste_mode = False
        self._paste_buffer = ""

    @property
    def pending(self) -> str:
        return self._buffer
