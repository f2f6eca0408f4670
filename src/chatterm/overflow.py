"""Transcript zones and height-constrained rendering.

The transcript is split into Static entries, which are laid out once and
then only ever replayed, and at most one Active entry that is re-measured on
every render. In height-constrained mode a tall active entry keeps its first
and last few lines and replaces the middle with a "lines hidden" marker.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Sequence

from chatterm.utils import wrap_text_with_ansi

logger = logging.getLogger(__name__)

DEFAULT_HEAD_LINES = 5
DEFAULT_TAIL_LINES = 5

_entry_ids = itertools.count(1)


class EntryKind(Enum):
    STATIC = "static"
    ACTIVE = "active"


class EntryMarker(Enum):
    CANCELLED = "cancelled"
    ERROR = "error"


@dataclass
class TranscriptEntry:
    role: str
    content: str = ""
    kind: EntryKind = EntryKind.STATIC
    marker: EntryMarker | None = None
    id: int = field(default_factory=lambda: next(_entry_ids))


@dataclass(frozen=True)
class ViewportBudget:
    width: int
    height: int
    reserved_rows: int = 0
    height_constrained: bool = True

    @property
    def active_height_budget(self) -> int:
        return max(0, self.height - self.reserved_rows)


@dataclass(frozen=True)
class TruncationResult:
    lines: list[str]
    hidden_count: int = 0

    @property
    def truncated(self) -> bool:
        return self.hidden_count > 0


def hidden_marker(count: int) -> str:
    return f"... {count} lines hidden ..."


def truncate_lines(
    lines: Sequence[str],
    budget: int,
    *,
    head: int = DEFAULT_HEAD_LINES,
    tail: int = DEFAULT_TAIL_LINES,
    marker: Callable[[int], str] = hidden_marker,
) -> TruncationResult:
    """Keep *head* leading and *tail* trailing lines when over *budget*.

    Content that fits is returned unchanged. When the budget cannot even hold
    head, marker and tail, nothing is hidden.
    """
    total = len(lines)
    if total <= budget or head + 1 + tail > budget:
        return TruncationResult(list(lines))

    hidden = total - head - tail
    kept_tail = list(lines[total - tail :]) if tail else []
    return TruncationResult([*lines[:head], marker(hidden), *kept_tail], hidden)


# ---------------------------------------------------------------------------
# Transcript
# ---------------------------------------------------------------------------


class Transcript:
    """Ordered entries with at most one Active entry, always the last one."""

    def __init__(self) -> None:
        self._entries: list[TranscriptEntry] = []

    @property
    def entries(self) -> list[TranscriptEntry]:
        return list(self._entries)

    @property
    def active(self) -> TranscriptEntry | None:
        if self._entries and self._entries[-1].kind is EntryKind.ACTIVE:
            return self._entries[-1]
        return None

    def __len__(self) -> int:
        return len(self._entries)

    def add_static(self, role: str, content: str, marker: EntryMarker | None = None) -> TranscriptEntry:
        entry = TranscriptEntry(role=role, content=content, kind=EntryKind.STATIC, marker=marker)
        active = self.active
        if active is not None:
            # Keep the active entry last
            self._entries.insert(len(self._entries) - 1, entry)
        else:
            self._entries.append(entry)
        return entry

    def start_active(self, role: str) -> TranscriptEntry:
        if self.active is not None:
            raise ValueError("Transcript already has an active entry")
        entry = TranscriptEntry(role=role, kind=EntryKind.ACTIVE)
        self._entries.append(entry)
        return entry

    def append_active(self, text: str) -> None:
        active = self.active
        if active is None:
            raise ValueError("No active entry to append to")
        active.content += text

    def freeze_active(self, marker: EntryMarker | None = None) -> TranscriptEntry | None:
        """Turn the active entry Static, optionally tagging how it ended."""
        active = self.active
        if active is None:
            return None
        active.kind = EntryKind.STATIC
        if marker is not None:
            active.marker = marker
        return active

    def clear(self) -> None:
        self._entries.clear()


# ---------------------------------------------------------------------------
# Renderer
# ---------------------------------------------------------------------------

EntryFormatter = Callable[[TranscriptEntry, int], "list[str]"]


def plain_formatter(entry: TranscriptEntry, width: int) -> list[str]:
    """Role label on the first line, content word-wrapped below it."""
    lines = [f"{entry.role}:"]
    if entry.content:
        lines.extend(wrap_text_with_ansi(entry.content.rstrip("\n"), width))
    if entry.marker is EntryMarker.CANCELLED:
        lines.append("[cancelled]")
    elif entry.marker is EntryMarker.ERROR:
        lines.append("[error]")
    return lines


class OverflowRenderer:
    """Lays out transcript entries for the two screen zones.

    Static entries are formatted once, at the width in effect when they are
    first painted, and cached by entry id. The active entry is formatted
    afresh on every call.
    """

    def __init__(
        self,
        transcript: Transcript,
        formatter: EntryFormatter = plain_formatter,
        *,
        head_lines: int = DEFAULT_HEAD_LINES,
        tail_lines: int = DEFAULT_TAIL_LINES,
        marker: Callable[[int], str] = hidden_marker,
    ) -> None:
        self._transcript = transcript
        self._formatter = formatter
        self._head = head_lines
        self._tail = tail_lines
        self._marker = marker
        self._static_cache: dict[int, list[str]] = {}
        self._painted: list[int] = []

    @property
    def transcript(self) -> Transcript:
        return self._transcript

    def set_formatter(self, formatter: EntryFormatter) -> None:
        """Lay out entries with *formatter* from now on; painted ones keep their lines."""
        self._formatter = formatter

    def take_new_static(self, width: int) -> list[str]:
        """Lay out static entries that have not been painted yet.

        Returns their lines in transcript order and marks them painted.
        """
        out: list[str] = []
        for entry in self._transcript.entries:
            if entry.kind is not EntryKind.STATIC or entry.id in self._static_cache:
                continue
            lines = self._formatter(entry, width)
            self._static_cache[entry.id] = lines
            self._painted.append(entry.id)
            out.extend(lines)
        return out

    def painted_static(self) -> list[str]:
        """Every static line painted so far, exactly as first laid out."""
        out: list[str] = []
        for entry_id in self._painted:
            out.extend(self._static_cache[entry_id])
        return out

    def render_active(self, budget: ViewportBudget) -> TruncationResult:
        active = self._transcript.active
        if active is None:
            return TruncationResult([])
        lines = self._formatter(active, budget.width)
        if not budget.height_constrained:
            return TruncationResult(lines)
        result = truncate_lines(
            lines,
            budget.active_height_budget,
            head=self._head,
            tail=self._tail,
            marker=self._marker,
        )
        if not result.truncated and len(lines) > budget.active_height_budget:
            logger.debug(
                "Active entry (%d lines) cannot be reduced to %d rows",
                len(lines),
                budget.active_height_budget,
            )
        return result

    def reset(self) -> None:
        """Forget painted entries, e.g. after the transcript is cleared."""
        self._static_cache.clear()
        self._painted.clear()
