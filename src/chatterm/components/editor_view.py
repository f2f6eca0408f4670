"""Renders a ``TextEditBuffer`` as the prompt area."""

from __future__ import annotations

from dataclasses import dataclass

import grapheme

from chatterm.text_buffer import InputMode, TextEditBuffer
from chatterm.theme import Theme
from chatterm.tui import CURSOR_MARKER
from chatterm.utils import grapheme_width, visible_width

PROMPTS = {InputMode.NORMAL: "> ", InputMode.SHELL: "! "}
CONTINUATION = "  "


@dataclass
class LayoutLine:
    text: str
    has_cursor: bool = False
    cursor_pos: int | None = None
    first_of_logical: bool = False
    logical_index: int = 0


def layout_buffer(lines: list[str], cursor_line: int, cursor_col: int, width: int) -> list[LayoutLine]:
    """Hard-wrap logical lines to *width* columns at grapheme boundaries."""
    width = max(1, width)
    out: list[LayoutLine] = []
    for index, line in enumerate(lines):
        segments: list[tuple[int, str]] = []
        start = 0
        cols = 0
        pos = 0
        for g in grapheme.graphemes(line):
            w = grapheme_width(g)
            if cols + w > width and pos > start:
                segments.append((start, line[start:pos]))
                start = pos
                cols = 0
            cols += w
            pos += len(g)
        segments.append((start, line[start:]))

        for n, (seg_start, seg_text) in enumerate(segments):
            layout = LayoutLine(text=seg_text, first_of_logical=n == 0, logical_index=index)
            if index == cursor_line:
                seg_end = seg_start + len(seg_text)
                is_last = n == len(segments) - 1
                if seg_start <= cursor_col < seg_end or (is_last and cursor_col == seg_end):
                    layout.has_cursor = True
                    layout.cursor_pos = cursor_col - seg_start
            out.append(layout)
    return out


class EditorView:
    """Prompt (``>`` or ``!``), wrapped text, fake cursor and scroll indicators."""

    def __init__(self, buffer: TextEditBuffer, theme: Theme, *, max_visible_lines: int = 10) -> None:
        self._buffer = buffer
        self._theme = theme
        self.max_visible_lines = max_visible_lines
        self.focused = True
        self._scroll_offset = 0

    def invalidate(self) -> None:
        pass

    def render(self, width: int) -> list[str]:
        mode = self._buffer.mode
        prompt = PROMPTS[mode]
        prompt_style = self._theme.shell if mode is InputMode.SHELL else self._theme.accent
        content_width = max(1, width - visible_width(prompt) - 1)

        line_index, col = self._buffer.cursor
        layout = layout_buffer(self._buffer.lines, line_index, col, content_width)

        cursor_index = next((i for i, ll in enumerate(layout) if ll.has_cursor), 0)
        max_lines = max(1, self.max_visible_lines)
        if cursor_index < self._scroll_offset:
            self._scroll_offset = cursor_index
        elif cursor_index >= self._scroll_offset + max_lines:
            self._scroll_offset = cursor_index - max_lines + 1
        self._scroll_offset = max(0, min(self._scroll_offset, max(0, len(layout) - max_lines)))
        visible = layout[self._scroll_offset : self._scroll_offset + max_lines]

        rule = self._theme.muted("─" * width)
        result: list[str] = []
        if self._scroll_offset > 0:
            result.append(self._indicator(f"↑ {self._scroll_offset} more", width))
        else:
            result.append(rule)

        for i, ll in enumerate(visible):
            is_first_row = self._scroll_offset + i == 0
            lead = prompt_style(prompt) if is_first_row else CONTINUATION
            result.append(lead + self._with_cursor(ll))

        below = len(layout) - (self._scroll_offset + len(visible))
        if below > 0:
            result.append(self._indicator(f"↓ {below} more", width))
        else:
            result.append(rule)
        return result

    def _with_cursor(self, ll: LayoutLine) -> str:
        if not ll.has_cursor or ll.cursor_pos is None or not self.focused:
            return ll.text
        before = ll.text[: ll.cursor_pos]
        after = ll.text[ll.cursor_pos :]
        first = next(iter(grapheme.graphemes(after)), "")
        under = first or " "
        return before + CURSOR_MARKER + self._theme.cursor(under) + after[len(first) :]

    def _indicator(self, label: str, width: int) -> str:
        text = f"─── {label} "
        return self._theme.muted(text + "─" * max(0, width - visible_width(text)))
