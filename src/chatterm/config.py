"""Runtime configuration.

``Config`` is immutable and passed to components at construction. Values
come from defaults, then ``CHATTERM_*`` environment variables, then CLI flags
via :meth:`Config.with_overrides`.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping

from chatterm.streaming import DEFAULT_PHRASES

logger = logging.getLogger(__name__)

ENV_PREFIX = "CHATTERM_"


@dataclass(frozen=True)
class Config:
    completion_max_visible: int = 8
    history_limit: int = 100
    overflow_head_lines: int = 5
    overflow_tail_lines: int = 5
    # Rows always kept free for the editor and status lines
    reserved_rows: int = 4
    phrase_interval: float = 15.0
    spinner_interval: float = 0.08
    quit_confirm_timeout: float = 1.0
    editor: str | None = None
    no_color: bool = False
    phrases: tuple[str, ...] = DEFAULT_PHRASES
    keybindings: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Build a config from ``NO_COLOR``, ``VISUAL``/``EDITOR`` and ``CHATTERM_*``.

        Malformed values are logged and ignored.
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}

        if env.get("NO_COLOR"):
            values["no_color"] = True

        editor = env.get(f"{ENV_PREFIX}EDITOR") or env.get("VISUAL") or env.get("EDITOR")
        if editor:
            values["editor"] = editor

        for f in dataclasses.fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or f.name == "editor":
                continue
            try:
                values[f.name] = _parse_value(f.name, raw)
            except (ValueError, TypeError) as exc:
                logger.warning("Ignoring %s%s=%r: %s", ENV_PREFIX, f.name.upper(), raw, exc)

        return cls(**values)

    def with_overrides(self, **overrides: Any) -> Config:
        """Copy with the given non-None fields replaced."""
        return dataclasses.replace(self, **{k: v for k, v in overrides.items() if v is not None})


_INT_FIELDS = frozenset(
    {
        "completion_max_visible",
        "history_limit",
        "overflow_head_lines",
        "overflow_tail_lines",
        "reserved_rows",
    }
)
_FLOAT_FIELDS = frozenset({"phrase_interval", "spinner_interval", "quit_confirm_timeout"})


def _parse_value(name: str, raw: str) -> Any:
    if name in _INT_FIELDS:
        value = int(raw)
        if value < 0:
            raise ValueError("must not be negative")
        return value
    if name in _FLOAT_FIELDS:
        value = float(raw)
        if value <= 0:
            raise ValueError("must be positive")
        return value
    if name == "no_color":
        return raw.strip().lower() not in ("", "0", "false", "no")
    if name == "phrases":
        phrases = tuple(p.strip() for p in raw.split("|") if p.strip())
        if not phrases:
            raise ValueError("no phrases given")
        return phrases
    if name == "keybindings":
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise TypeError("expected a JSON object")
        return data
    raise ValueError(f"unsupported field {name}")
