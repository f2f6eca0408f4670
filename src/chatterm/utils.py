"""Terminal text utilities: ANSI handling, width measurement, word wrapping.

Widths are measured per grapheme cluster so that emoji, CJK and combining
sequences occupy the number of columns the terminal actually draws.
"""

from __future__ import annotations

import re
import unicodedata

import grapheme
import wcwidth as _wcwidth

# CSI (SGR and simple cursor/erase codes), OSC 8 hyperlinks, APC markers
_STRIP_RE = re.compile(
    r"\x1b\[[0-9;]*[mGKHJ]"
    r"|\x1b\]8;;[^\x07]*\x07"
    r"|\x1b_[^\x07\x1b]*(?:\x07|\x1b\\)"
)
_ANSI_AT_RE = re.compile(
    r"\x1b\[[0-9;]*[mGKHJ]"
    r"|\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"
    r"|\x1b_[^\x07\x1b]*(?:\x07|\x1b\\)"
)

_PUNCTUATION_RE = re.compile(r"[(){}\[\]<>.,;:'\"!?\+\-=*/\\|&%\^$#@~`]")

_RESET = "\x1b[0m"

_width_cache: dict[str, int] = {}
_WIDTH_CACHE_MAX = 512


def strip_ansi(text: str) -> str:
    """Remove escape sequences that do not occupy terminal cells."""
    return _STRIP_RE.sub("", text)


def grapheme_width(g: str) -> int:
    """Return the terminal column width of a single grapheme cluster."""
    if not g:
        return 0

    if len(g) == 1:
        cp = ord(g)
        if cp < 0x20 or 0x7F <= cp <= 0x9F:
            return 0
        return max(_wcwidth.wcwidth(g), 0)

    for ch in g:
        cp = ord(ch)
        # VS16, ZWJ, skin tones and regional indicators all render as emoji
        if cp in (0xFE0F, 0x200D) or 0x1F3FB <= cp <= 0x1F3FF or 0x1F1E6 <= cp <= 0x1F1FF:
            return 2

    first = ord(g[0])
    if first >= 0x1F000 or 0x2600 <= first <= 0x27BF:
        return 2

    if unicodedata.category(g[0]) in ("Mn", "Me", "Mc", "Cf"):
        return 0
    return max(_wcwidth.wcwidth(g[0]), 0)


def visible_width(text: str) -> int:
    """Calculate the visible terminal width of *text*.

    ANSI sequences are ignored and tabs count as 3 columns.
    """
    if not text:
        return 0

    stripped = strip_ansi(text).replace("\t", "   ")
    if stripped.isascii() and stripped.isprintable():
        return len(stripped)

    cached = _width_cache.get(stripped)
    if cached is not None:
        return cached

    total = sum(grapheme_width(g) for g in grapheme.graphemes(stripped))
    if len(_width_cache) >= _WIDTH_CACHE_MAX:
        _width_cache.clear()
    _width_cache[stripped] = total
    return total


def _ansi_at(text: str, pos: int) -> str | None:
    if text[pos] != "\x1b":
        return None
    m = _ANSI_AT_RE.match(text, pos)
    return m.group(0) if m else None


class _SgrState:
    """Collects SGR codes seen since the last reset so they can be replayed."""

    def __init__(self) -> None:
        self._codes: list[str] = []

    def feed(self, code: str) -> None:
        if not code.endswith("m") or not code.startswith("\x1b["):
            return
        params = code[2:-1]
        if params in ("", "0"):
            self._codes.clear()
        else:
            self._codes.append(code)

    @property
    def active(self) -> str:
        return "".join(self._codes)


def wrap_text_with_ansi(text: str, width: int) -> list[str]:
    """Word-wrap *text* to *width* columns, preserving ANSI escape codes.

    Each physical line is wrapped separately. Styling that is active at a
    break is closed at the end of the line and reopened on the next one.
    """
    if width <= 0:
        return [text]

    state = _SgrState()
    result: list[str] = []
    for physical in text.split("\n"):
        result.extend(_wrap_line(physical, width, state))
    return result


def _wrap_line(line: str, width: int, state: _SgrState) -> list[str]:
    if not line:
        return [""]

    out: list[str] = []
    # Each token is (text, width); escape codes are zero width.
    tokens: list[tuple[str, int]] = []
    current_width = 0
    last_space = -1

    def flush(upto: int) -> None:
        nonlocal tokens, current_width, last_space
        head = tokens[:upto]
        tail = tokens[upto:]
        while tail and tail[0][0] == " ":
            tail.pop(0)
        rendered = "".join(t for t, _ in head).rstrip(" ")
        if state.active:
            rendered += _RESET
        out.append(rendered)
        prefix = [(state.active, 0)] if state.active else []
        tokens = prefix + tail
        current_width = sum(w for _, w in tokens)
        last_space = -1

    i = 0
    while i < len(line):
        code = _ansi_at(line, i)
        if code is not None:
            state.feed(code)
            tokens.append((code, 0))
            i += len(code)
            continue

        ch = line[i]
        piece, w = ("   ", 3) if ch == "\t" else (ch, grapheme_width(ch))

        if current_width + w > width and current_width > 0:
            if ch == " ":
                flush(len(tokens))
                i += 1
                continue
            flush(last_space + 1 if last_space >= 0 else len(tokens))

        tokens.append((piece, w))
        current_width += w
        if ch == " ":
            last_space = len(tokens) - 1
        i += 1

    rendered = "".join(t for t, _ in tokens)
    if state.active:
        rendered += _RESET
    out.append(rendered)
    return out


def truncate_to_width(text: str, max_width: int, ellipsis: str = "...", pad: bool = False) -> str:
    """Truncate *text* to fit within *max_width* visible columns.

    The ellipsis counts toward the width. With *pad* the result is padded
    with spaces to exactly *max_width* columns.
    """
    if max_width <= 0:
        return ""

    text_width = visible_width(text)
    if text_width <= max_width:
        return text + " " * (max_width - text_width) if pad else text

    target = max_width - visible_width(ellipsis)
    if target <= 0:
        return _take_columns(ellipsis, max_width)

    result = _take_columns(text, target) + ellipsis
    if pad:
        result += " " * max(0, max_width - visible_width(result))
    return result


def _take_columns(text: str, max_cols: int) -> str:
    parts: list[str] = []
    cols = 0
    i = 0
    while i < len(text):
        code = _ansi_at(text, i)
        if code is not None:
            parts.append(code)
            i += len(code)
            continue
        w = grapheme_width(text[i])
        if cols + w > max_cols:
            break
        parts.append(text[i])
        cols += w
        i += 1
    return "".join(parts)


def pad_to_width(text: str, width: int) -> str:
    """Right-pad *text* with spaces to *width* visible columns."""
    return text + " " * max(0, width - visible_width(text))


def is_whitespace_char(char: str) -> bool:
    return char in (" ", "\t", "\n", "\r", "\f", "\v")


def is_punctuation_char(char: str) -> bool:
    return bool(_PUNCTUATION_RE.match(char))
