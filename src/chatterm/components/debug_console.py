"""In-app log viewer (toggled with Ctrl+O)."""

from __future__ import annotations

import logging
from collections import deque
from typing import Callable

from chatterm.theme import Theme
from chatterm.utils import truncate_to_width

DEFAULT_CAPACITY = 500


class DebugConsole:
    """Bounded ring of recent log lines; a ``LogSink`` for ``SinkHandler``."""

    def __init__(self, theme: Theme, *, capacity: int = DEFAULT_CAPACITY, visible_lines: int = 8) -> None:
        self.theme = theme
        self._lines: deque[tuple[int, str]] = deque(maxlen=capacity)
        self.visible_lines = visible_lines
        self.visible = False
        self.on_append: Callable[[], None] | None = None

    @property
    def lines(self) -> list[str]:
        return [line for _, line in self._lines]

    def append(self, level: int, line: str) -> None:
        self._lines.append((level, line))
        if self.visible and self.on_append:
            self.on_append()

    def toggle(self) -> None:
        self.visible = not self.visible

    def invalidate(self) -> None:
        pass

    def render(self, width: int) -> list[str]:
        if not self.visible:
            return []
        header = self.theme.muted(truncate_to_width(f"── debug console ({len(self._lines)}) ", width))
        out = [header]
        recent = list(self._lines)[-self.visible_lines :]
        if not recent:
            out.append(self.theme.dim("  (no log output)"))
        for level, line in recent:
            text = truncate_to_width(line, width)
            if level >= logging.ERROR:
                text = self.theme.error(text)
            elif level >= logging.WARNING:
                text = self.theme.warning(text)
            else:
                text = self.theme.dim(text)
            out.append(text)
        return out
