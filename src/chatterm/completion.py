"""Asynchronous completion for ``@`` file references and ``/`` commands.

``find_trigger`` decides whether the token before the cursor is completable.
``CompletionEngine`` runs one query task per keystroke against the matching
``CompletionSource`` and keeps the candidate window. Only the most recently
issued query may change the list: older tasks are cancelled, and a result
that arrives after being superseded is dropped.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Mapping, Protocol, Sequence

from chatterm.errors import CompletionSourceError
from chatterm.fuzzy import fuzzy_filter

logger = logging.getLogger(__name__)

DEFAULT_MAX_VISIBLE = 8
MAX_PATH_RESULTS = 200
TOKEN_DELIMITERS = frozenset({" ", "\t", '"', "'", "="})


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


class TriggerKind(Enum):
    PATH = "@"
    COMMAND = "/"


@dataclass(frozen=True)
class Trigger:
    kind: TriggerKind
    token: str  # text after the sigil, up to the cursor
    start: int  # column of the sigil
    end: int  # cursor column


@dataclass(frozen=True)
class CompletionItem:
    """What a source returns: insertion text plus display text."""

    value: str
    label: str
    description: str | None = None
    is_directory: bool = False


@dataclass(frozen=True)
class CompletionCandidate:
    value: str
    label: str
    description: str | None
    start: int
    end: int
    is_directory: bool = False


@dataclass(frozen=True)
class Replacement:
    start: int
    end: int
    text: str


@dataclass(frozen=True)
class SlashCommand:
    name: str
    description: str | None = None


class CompletionSource(Protocol):
    async def query(self, token: str) -> list[CompletionItem]: ...


# ---------------------------------------------------------------------------
# Trigger detection
# ---------------------------------------------------------------------------


def find_trigger(line: str, cursor_col: int, *, first_line: bool = True) -> Trigger | None:
    """Return the completion trigger for the token ending at the cursor.

    ``@`` triggers anywhere a token starts. ``/`` triggers only at a token
    start on the first line, and only while the token is a bare command name.
    """
    before = line[:cursor_col]
    start = len(before)
    while start > 0 and before[start - 1] not in TOKEN_DELIMITERS:
        start -= 1
    token = before[start:]
    if not token:
        return None

    if token[0] == "@":
        return Trigger(TriggerKind.PATH, token[1:], start, cursor_col)
    if token[0] == "/" and first_line and "/" not in token[1:]:
        return Trigger(TriggerKind.COMMAND, token[1:], start, cursor_col)
    return None


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class CommandCompletionSource:
    """Fuzzy-ranked command names."""

    def __init__(self, commands: Sequence[SlashCommand]) -> None:
        self._commands = list(commands)

    @property
    def commands(self) -> list[SlashCommand]:
        return list(self._commands)

    async def query(self, token: str) -> list[CompletionItem]:
        matches = fuzzy_filter(self._commands, token, lambda c: c.name)
        return [
            CompletionItem(value=f"/{c.name}", label=f"/{c.name}", description=c.description)
            for c in matches
        ]


class PathCompletionSource:
    """Directory listing relative to a base directory.

    Directories sort first. Dotfiles are listed only when the typed name
    starts with ``.``.
    """

    def __init__(self, base_dir: str | os.PathLike[str] | None = None) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else None

    @property
    def base_dir(self) -> Path:
        return self._base_dir if self._base_dir is not None else Path.cwd()

    async def query(self, token: str) -> list[CompletionItem]:
        dir_part, _, name_prefix = token.rpartition("/")
        if token.startswith("/") and not dir_part:
            dir_part = "/"
        return await asyncio.to_thread(self._list, dir_part, name_prefix)

    def _resolve(self, dir_part: str) -> Path:
        if not dir_part:
            return self.base_dir
        expanded = Path(os.path.expanduser(dir_part))
        return expanded if expanded.is_absolute() else self.base_dir / expanded

    def _list(self, dir_part: str, name_prefix: str) -> list[CompletionItem]:
        directory = self._resolve(dir_part)
        show_hidden = name_prefix.startswith(".")
        needle = name_prefix.lower()
        display_dir = "" if not dir_part else dir_part.rstrip("/") + "/"

        entries: list[tuple[bool, str]] = []
        try:
            with os.scandir(directory) as it:
                for entry in it:
                    if entry.name.startswith(".") and not show_hidden:
                        continue
                    if not entry.name.lower().startswith(needle):
                        continue
                    try:
                        is_dir = entry.is_dir()
                    except OSError:
                        is_dir = False
                    entries.append((is_dir, entry.name))
        except (FileNotFoundError, NotADirectoryError):
            return []
        except OSError as exc:
            raise CompletionSourceError(f"Cannot list {directory}: {exc.strerror or exc}") from exc

        entries.sort(key=lambda e: (not e[0], e[1].lower()))
        items: list[CompletionItem] = []
        for is_dir, name in entries[:MAX_PATH_RESULTS]:
            suffix = "/" if is_dir else ""
            path = f"{display_dir}{name}{suffix}"
            value = f'@"{path}"' if " " in path else f"@{path}"
            items.append(CompletionItem(value=value, label=name + suffix, is_directory=is_dir))
        return items


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


class CompletionEngine:
    """Candidate list, selection window and query supersession."""

    def __init__(
        self,
        sources: Mapping[TriggerKind, CompletionSource],
        *,
        max_visible: int = DEFAULT_MAX_VISIBLE,
    ) -> None:
        self._sources = dict(sources)
        self._max_visible = max_visible

        self._trigger: Trigger | None = None
        self._candidates: list[CompletionCandidate] = []
        self._selected = 0
        self._offset = 0
        self._error: str | None = None

        self._generation = 0
        self._task: asyncio.Task[None] | None = None

        self.on_update: Callable[[], None] | None = None

    # -- state ---------------------------------------------------------------

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def trigger(self) -> Trigger | None:
        return self._trigger

    @property
    def candidates(self) -> list[CompletionCandidate]:
        return list(self._candidates)

    @property
    def error(self) -> str | None:
        return self._error

    @property
    def is_open(self) -> bool:
        """True while candidates or an error annotation are on screen."""
        return self._trigger is not None and (bool(self._candidates) or self._error is not None)

    @property
    def is_pending(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def selected_index(self) -> int:
        return self._selected

    @property
    def selected(self) -> CompletionCandidate | None:
        if not self._candidates:
            return None
        return self._candidates[self._selected]

    @property
    def scroll_offset(self) -> int:
        return self._offset

    @property
    def max_visible(self) -> int:
        return self._max_visible

    @property
    def visible_candidates(self) -> list[CompletionCandidate]:
        return self._candidates[self._offset : self._offset + self._max_visible]

    @property
    def counter(self) -> tuple[int, int]:
        """``(index, total)`` with a 1-based index; ``(0, 0)`` when empty."""
        if not self._candidates:
            return (0, 0)
        return (self._selected + 1, len(self._candidates))

    @property
    def has_more_above(self) -> bool:
        return self._offset > 0

    @property
    def has_more_below(self) -> bool:
        return self._offset + self._max_visible < len(self._candidates)

    # -- queries -------------------------------------------------------------

    def update(self, line: str, cursor_col: int, *, first_line: bool = True) -> None:
        """Re-evaluate the trigger after the buffer changed.

        Issues a new query when the trigger token changed; closes the list
        when the token is no longer completable.
        """
        trigger = find_trigger(line, cursor_col, first_line=first_line)
        if trigger is None or trigger.kind not in self._sources:
            self.close()
            return
        if trigger == self._trigger:
            return

        self._cancel_pending()
        self._trigger = trigger
        self._generation += 1
        generation = self._generation
        logger.debug("Completion query %d: %s%r", generation, trigger.kind.value, trigger.token)
        self._task = asyncio.create_task(self._run_query(generation, trigger))

    async def _run_query(self, generation: int, trigger: Trigger) -> None:
        source = self._sources[trigger.kind]
        try:
            items = await source.query(trigger.token)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            if generation != self._generation:
                return
            logger.warning("Completion source failed for %r: %s", trigger.token, exc)
            self._set_results([], error=str(exc) or type(exc).__name__)
            return

        if generation != self._generation:
            logger.debug("Dropping superseded completion result %d", generation)
            return

        self._set_results(
            [
                CompletionCandidate(
                    value=item.value,
                    label=item.label,
                    description=item.description,
                    start=trigger.start,
                    end=trigger.end,
                    is_directory=item.is_directory,
                )
                for item in items
            ],
            error=None,
        )

    def _set_results(self, candidates: list[CompletionCandidate], *, error: str | None) -> None:
        self._candidates = candidates
        self._selected = 0
        self._offset = 0
        self._error = error
        self._notify()

    def _cancel_pending(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def settle(self) -> None:
        """Wait for the in-flight query, if any, to finish."""
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    def _notify(self) -> None:
        if self.on_update:
            self.on_update()

    # -- selection -----------------------------------------------------------

    def move_selection(self, delta: int) -> None:
        total = len(self._candidates)
        if total == 0:
            return
        self._selected = (self._selected + delta) % total
        if self._selected < self._offset:
            self._offset = self._selected
        elif self._selected >= self._offset + self._max_visible:
            self._offset = self._selected - self._max_visible + 1
        self._notify()

    def accept(self) -> Replacement | None:
        """Close the list and return the edit for the highlighted candidate.

        The edit spans the token currently under the cursor, which may have
        grown since the shown candidates were queried. Directories get no
        trailing space, so re-running :meth:`update` on the edited line opens
        their contents.
        """
        candidate = self.selected
        if candidate is None:
            return None
        start, end = candidate.start, candidate.end
        if self._trigger is not None:
            start, end = self._trigger.start, self._trigger.end
        suffix = "" if candidate.is_directory else " "
        self.close()
        return Replacement(start=start, end=end, text=candidate.value + suffix)

    def dismiss_error(self) -> None:
        if self._error is not None:
            self._error = None
            self._notify()

    def close(self) -> None:
        """Hide the list and invalidate any pending query."""
        was_visible = self.is_open
        self._cancel_pending()
        if self._trigger is not None:
            self._generation += 1
        self._trigger = None
        self._candidates = []
        self._selected = 0
        self._offset = 0
        self._error = None
        if was_visible:
            self._notify()
