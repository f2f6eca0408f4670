"""Colour functions used by the components.

A ``Theme`` is a frozen bundle of ``str -> str`` styling functions. The
no-colour theme maps every function to the identity, which is what
``NO_COLOR`` selects.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

Style = Callable[[str], str]


def _sgr(code: str) -> Style:
    def apply(text: str) -> str:
        return f"\x1b[{code}m{text}\x1b[0m"

    return apply


def _plain(text: str) -> str:
    return text


@dataclass(frozen=True)
class Theme:
    name: str
    accent: Style
    muted: Style
    dim: Style
    error: Style
    warning: Style
    success: Style
    user: Style
    assistant: Style
    shell: Style
    selected: Style
    cursor: Style


DEFAULT_THEME = Theme(
    name="default",
    accent=_sgr("36"),
    muted=_sgr("90"),
    dim=_sgr("2"),
    error=_sgr("31"),
    warning=_sgr("33"),
    success=_sgr("32"),
    user=_sgr("1;34"),
    assistant=_sgr("1;35"),
    shell=_sgr("1;33"),
    selected=_sgr("1;36"),
    cursor=_sgr("7"),
)

NO_COLOR_THEME = Theme(
    name="no-color",
    accent=_plain,
    muted=_plain,
    dim=_plain,
    error=_plain,
    warning=_plain,
    success=_plain,
    user=_plain,
    assistant=_plain,
    shell=_plain,
    selected=_plain,
    # The cursor must stay visible without colour
    cursor=_sgr("7"),
)

THEMES: dict[str, Theme] = {t.name: t for t in (DEFAULT_THEME, NO_COLOR_THEME)}


def get_theme(name: str | None, *, no_color: bool = False) -> Theme:
    if no_color:
        return NO_COLOR_THEME
    return THEMES.get(name or "default", DEFAULT_THEME)
