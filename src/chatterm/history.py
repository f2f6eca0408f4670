"""Navigable logs of submitted prompts and shell commands."""

from __future__ import annotations

import itertools
from dataclasses import dataclass

from chatterm.text_buffer import InputMode

DEFAULT_HISTORY_LIMIT = 100

_seq_counter = itertools.count(1)


@dataclass(frozen=True)
class HistoryEntry:
    text: str
    seq: int


class HistoryStore:
    """Append-only log with an up/down navigation cursor.

    The cursor starts below the newest entry (index ``-1``, nothing
    selected). The first step up remembers the unsent draft so that stepping
    back down past the newest entry restores it.
    """

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._entries: list[HistoryEntry] = []
        self._limit = limit
        self._index = -1
        self._draft = ""

    @property
    def entries(self) -> list[HistoryEntry]:
        return list(self._entries)

    @property
    def index(self) -> int:
        return self._index

    @property
    def is_navigating(self) -> bool:
        return self._index != -1

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, text: str) -> HistoryEntry | None:
        """Record a submission and reset navigation.

        Blank text and an exact repeat of the newest entry are not recorded.
        """
        self.reset_navigation()
        if not text.strip():
            return None
        if self._entries and self._entries[-1].text == text:
            return None

        entry = HistoryEntry(text=text, seq=next(_seq_counter))
        self._entries.append(entry)
        if len(self._entries) > self._limit:
            del self._entries[: len(self._entries) - self._limit]
        return entry

    def navigate_up(self, current_text: str) -> str | None:
        """Step toward older entries. Returns the text to load, or None."""
        if not self._entries:
            return None
        next_index = self._index + 1
        if next_index >= len(self._entries):
            return None
        if self._index == -1:
            self._draft = current_text
        self._index = next_index
        return self._entries[-1 - self._index].text

    def navigate_down(self) -> str | None:
        """Step toward newer entries; past the newest, return the saved draft."""
        if self._index == -1:
            return None
        self._index -= 1
        if self._index == -1:
            draft, self._draft = self._draft, ""
            return draft
        return self._entries[-1 - self._index].text

    def reset_navigation(self) -> None:
        self._index = -1
        self._draft = ""


class HistoryRouter:
    """One independent ``HistoryStore`` per input mode."""

    def __init__(self, limit: int = DEFAULT_HISTORY_LIMIT) -> None:
        self._stores = {mode: HistoryStore(limit) for mode in InputMode}

    def for_mode(self, mode: InputMode) -> HistoryStore:
        return self._stores[mode]

    @property
    def input(self) -> HistoryStore:
        return self._stores[InputMode.NORMAL]

    @property
    def shell(self) -> HistoryStore:
        return self._stores[InputMode.SHELL]
