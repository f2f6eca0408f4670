"""Completion list shown under the editor."""

from __future__ import annotations

import re

from chatterm.completion import CompletionEngine
from chatterm.theme import Theme
from chatterm.utils import truncate_to_width, visible_width

LABEL_COLUMN = 32


def _single_line(text: str) -> str:
    return re.sub(r"[\r\n]+", " ", text).strip()


class CompletionMenu:
    """Visible window of candidates, counter, scroll hints and error notice."""

    def __init__(self, engine: CompletionEngine, theme: Theme) -> None:
        self._engine = engine
        self._theme = theme
        self.show_descriptions = True

    def toggle_descriptions(self) -> None:
        self.show_descriptions = not self.show_descriptions

    def invalidate(self) -> None:
        pass

    def render(self, width: int) -> list[str]:
        engine = self._engine
        if not engine.is_open:
            return []

        if engine.error is not None:
            notice = f"  ! completion unavailable: {_single_line(engine.error)} (esc to dismiss)"
            return [self._theme.error(truncate_to_width(notice, width))]

        lines: list[str] = []
        if engine.has_more_above:
            lines.append(self._theme.muted(truncate_to_width(f"  ↑ {engine.scroll_offset} more", width)))

        selected = engine.selected_index
        for i, candidate in enumerate(engine.visible_candidates, start=engine.scroll_offset):
            is_selected = i == selected
            prefix = "→ " if is_selected else "  "
            label = truncate_to_width(candidate.label, min(LABEL_COLUMN - 2, max(1, width - 4)), "")
            line = prefix + label
            if self.show_descriptions and candidate.description and width > 40:
                pad = " " * max(1, LABEL_COLUMN - visible_width(line))
                remaining = width - visible_width(line) - len(pad) - 1
                if remaining > 10:
                    desc = truncate_to_width(_single_line(candidate.description), remaining, "")
                    if is_selected:
                        lines.append(self._theme.selected(line + pad + desc))
                    else:
                        lines.append(line + self._theme.muted(pad + desc))
                    continue
            lines.append(self._theme.selected(line) if is_selected else line)

        index, total = engine.counter
        below = total - engine.scroll_offset - len(engine.visible_candidates)
        footer = f"  ({index}/{total})"
        if below > 0:
            footer += f" ↓ {below} more"
        if total > engine.max_visible:
            lines.append(self._theme.muted(truncate_to_width(footer, width)))
        return lines
