"""Modal approve/deny prompt for backend approval requests."""

from __future__ import annotations

from typing import Callable

from chatterm.theme import Theme
from chatterm.utils import truncate_to_width, wrap_text_with_ansi

OPTIONS = ("Approve", "Deny")


class ConfirmationDialog:
    """Two-option modal. ``confirm`` answers with the highlighted option;
    ``cancel`` always denies."""

    def __init__(self, title: str, detail: str, theme: Theme) -> None:
        self.title = title
        self.detail = detail
        self._theme = theme
        self._selected = 0
        self.on_decision: Callable[[bool], None] | None = None

    @property
    def selected(self) -> str:
        return OPTIONS[self._selected]

    def next(self) -> None:
        self._selected = (self._selected + 1) % len(OPTIONS)

    def previous(self) -> None:
        self._selected = (self._selected - 1) % len(OPTIONS)

    def confirm(self) -> None:
        self._decide(self._selected == 0)

    def cancel(self) -> None:
        self._decide(False)

    def _decide(self, approved: bool) -> None:
        if self.on_decision:
            self.on_decision(approved)

    def invalidate(self) -> None:
        pass

    def render(self, width: int) -> list[str]:
        lines = [self._theme.warning(truncate_to_width(f"? {self.title}", width))]
        if self.detail:
            for line in wrap_text_with_ansi(self.detail, max(1, width - 2)):
                lines.append("  " + line)
        for i, option in enumerate(OPTIONS):
            if i == self._selected:
                lines.append(self._theme.selected(f"→ {option}"))
            else:
                lines.append(f"  {option}")
        lines.append(self._theme.muted(truncate_to_width("  ↑/↓ choose · enter confirm · esc deny", width)))
        return lines
