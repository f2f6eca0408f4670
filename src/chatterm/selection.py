"""Persisted user selections (theme, editor).

The runtime only reads and writes through ``SelectionStore``; how values are
stored is up to the embedding application.
"""

from __future__ import annotations

from typing import Protocol

THEME_KEY = "theme"
EDITOR_KEY = "editor"


class SelectionStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class InMemorySelectionStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._values: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._values.get(key)

    def set(self, key: str, value: str) -> None:
        self._values[key] = value
