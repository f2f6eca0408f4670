"""Differential renderer for the live region of the screen.

The screen has two zones. Finalized transcript lines are written once into
normal terminal scrollback and never touched again. Below them sits the live
region (active entry, indicator, completion menu, editor), which is redrawn
by diffing against the previous frame so unchanged rows are not rewritten.
Render requests are coalesced: any number of ``request_render`` calls within
one event-loop tick produce a single render.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Protocol

from chatterm.utils import visible_width

if TYPE_CHECKING:
    from chatterm.terminal import Terminal

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Protocols
# ---------------------------------------------------------------------------


class Component(Protocol):
    """A renderable terminal component."""

    def render(self, width: int) -> list[str]: ...

    def invalidate(self) -> None: ...


# Zero-width APC marker a component emits where the cursor should sit
CURSOR_MARKER = "\x1b_chatterm:c\x07"

_CLEAR_LINE = "\x1b[K"
_CLEAR_BELOW = "\x1b[J"
_CLEAR_VISIBLE = "\x1b[2J\x1b[H"

StaticSource = Callable[[int], "list[str]"]


class Container:
    """Renders its children top to bottom."""

    def __init__(self) -> None:
        self.children: list[Component] = []

    def add_child(self, component: Component) -> None:
        self.children.append(component)

    def remove_child(self, component: Component) -> None:
        try:
            self.children.remove(component)
        except ValueError:
            pass

    def clear(self) -> None:
        self.children.clear()

    def invalidate(self) -> None:
        for child in self.children:
            child.invalidate()

    def render(self, width: int) -> list[str]:
        lines: list[str] = []
        for child in self.children:
            lines.extend(child.render(width))
        return lines


def extract_cursor_position(lines: list[str]) -> tuple[list[str], int, int]:
    """Find and remove ``CURSOR_MARKER``; return ``(lines, row, col)``.

    Without a marker the cursor goes to the start of the last line.
    """
    for row, line in enumerate(lines):
        pos = line.find(CURSOR_MARKER)
        if pos == -1:
            continue
        cleaned = list(lines)
        cleaned[row] = line[:pos] + line[pos + len(CURSOR_MARKER) :]
        return cleaned, row, visible_width(line[:pos])
    return lines, max(0, len(lines) - 1), 0


class TUI(Container):
    """Owns the live region and writes frames to a ``Terminal``."""

    def __init__(self, terminal: Terminal) -> None:
        super().__init__()
        self.terminal = terminal
        self.static_source: StaticSource | None = None

        self._previous_lines: list[str] = []
        self._previous_width = 0
        self._cursor_row = 0
        self._render_requested = False
        self._stopped = True
        self._paused = False

        self._render_count = 0
        self._full_redraw_count = 0

    # -- metrics -------------------------------------------------------------

    @property
    def render_count(self) -> int:
        return self._render_count

    @property
    def full_redraws(self) -> int:
        return self._full_redraw_count

    @property
    def previous_lines(self) -> list[str]:
        return list(self._previous_lines)

    # -- lifecycle -----------------------------------------------------------

    def start(self) -> None:
        self._stopped = False
        self.terminal.hide_cursor()
        self.request_render()

    def stop(self) -> None:
        """Leave the cursor below the live region so the shell prompt is clean."""
        if self._stopped:
            return
        self._stopped = True
        below = len(self._previous_lines) - self._cursor_row - 1
        out = f"\x1b[{below}B" if below > 0 else ""
        self.terminal.write(out + "\r\n")
        self.terminal.show_cursor()

    def pause(self) -> None:
        """Stop writing to the terminal while another process owns it."""
        self._paused = True

    def resume(self) -> None:
        """Start writing again with one full redraw of the live region."""
        if not self._paused:
            return
        self._paused = False
        self.force_full_redraw()

    @property
    def paused(self) -> bool:
        return self._paused

    def invalidate(self) -> None:
        super().invalidate()
        self.request_render()

    # -- scheduling ----------------------------------------------------------

    def request_render(self) -> None:
        """Schedule a render on the next event-loop tick (coalesced)."""
        if self._render_requested or self._stopped or self._paused:
            return
        self._render_requested = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._render_tick()
            return
        loop.call_soon(self._render_tick)

    def _render_tick(self) -> None:
        self._render_requested = False
        if self._stopped or self._paused:
            return
        self.do_render()

    def clear_screen(self) -> None:
        """Clear the visible screen and repaint the live region at the top."""
        if self._paused:
            return
        self.terminal.write(_CLEAR_VISIBLE)
        self._previous_lines = []
        self._cursor_row = 0
        self.request_render()

    def force_full_redraw(self) -> None:
        self._previous_width = 0
        self.request_render()

    # -- render --------------------------------------------------------------

    def do_render(self) -> None:
        width = self.terminal.columns
        height = self.terminal.rows
        if width <= 0 or height <= 0:
            return

        new_static = self.static_source(width) if self.static_source else []

        lines = self.render(width)
        if len(lines) > height:
            # Keep the bottom of the live region, where the editor is
            lines = lines[len(lines) - height :]
        lines, cursor_row, cursor_col = extract_cursor_position(lines)

        full = bool(new_static) or width != self._previous_width
        out: list[str] = []

        # Back to row 0 of the live region
        if self._cursor_row > 0:
            out.append(f"\x1b[{self._cursor_row}A")
        out.append("\r")

        if full:
            self._full_redraw_count += 1
            out.append(_CLEAR_BELOW)
            for line in new_static:
                out.append(line + _CLEAR_LINE + "\r\n")
            out.append("\r\n".join(line + _CLEAR_LINE for line in lines))
            last_row = max(0, len(lines) - 1)
        else:
            total = max(len(lines), len(self._previous_lines))
            for i in range(total):
                if i > 0:
                    out.append("\r\n")
                if i >= len(lines):
                    out.append(_CLEAR_LINE)
                elif i >= len(self._previous_lines) or lines[i] != self._previous_lines[i]:
                    out.append(lines[i] + _CLEAR_LINE)
            last_row = max(0, total - 1)

        delta = last_row - cursor_row
        if delta > 0:
            out.append(f"\x1b[{delta}A")
        elif delta < 0:
            out.append(f"\x1b[{-delta}B")
        out.append("\r")
        if cursor_col > 0:
            out.append(f"\x1b[{cursor_col}C")

        self._previous_lines = lines
        self._previous_width = width
        self._cursor_row = cursor_row
        self._render_count += 1
        self.terminal.write("".join(out))
