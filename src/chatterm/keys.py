"""Keyboard input parsing for terminal applications.

Turns one complete terminal input sequence (as produced by
:class:`~chatterm.stdin_buffer.StdinBuffer`) into a :class:`KeyEvent`.
Handles legacy xterm/VT sequences, ``modifyOtherKeys`` and the CSI-u form of
the kitty keyboard protocol.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# ---------------------------------------------------------------------------
# Type alias
# ---------------------------------------------------------------------------

KeyId = str

# ---------------------------------------------------------------------------
# Key event
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class KeyEvent:
    """A single decoded key press (or a bracketed paste).

    ``name`` is the base key: a lowercase character (``"a"``, ``"/"``) or a
    named key (``"enter"``, ``"up"``, ``"paste"``...). ``text`` is the
    literal text a printable key or paste would insert.
    """

    name: str
    ctrl: bool = False
    alt: bool = False
    shift: bool = False
    text: str | None = None

    @property
    def id(self) -> KeyId:
        """Identifier in ``ctrl+shift+alt+key`` form, as used by keybindings."""
        prefix = ""
        if self.ctrl:
            prefix += "ctrl+"
        if self.shift:
            prefix += "shift+"
        if self.alt:
            prefix += "alt+"
        return prefix + self.name

    @property
    def is_printable(self) -> bool:
        return self.text is not None and not self.ctrl and not self.alt

    @property
    def is_paste(self) -> bool:
        return self.name == "paste"


def paste_event(content: str) -> KeyEvent:
    return KeyEvent(name="paste", text=content)


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

MODIFIERS: dict[str, int] = {
    "shift": 1,
    "alt": 2,
    "ctrl": 4,
}

LOCK_MASK = 64 + 128

# kitty functional codepoints for keys that have no printable form
_KITTY_CODEPOINTS: dict[int, str] = {
    27: "escape",
    9: "tab",
    13: "enter",
    32: "space",
    127: "backspace",
    57414: "enter",  # keypad enter
    57399: "0",
}

_CSI_LETTER_KEYS: dict[str, str] = {
    "A": "up",
    "B": "down",
    "C": "right",
    "D": "left",
    "H": "home",
    "F": "end",
    "E": "clear",
}

_CSI_TILDE_KEYS: dict[int, str] = {
    1: "home",
    2: "insert",
    3: "delete",
    4: "end",
    5: "pageUp",
    6: "pageDown",
    7: "home",
    8: "end",
}

_SIMPLE_KEYS: dict[str, KeyEvent] = {
    "\x1b": KeyEvent("escape"),
    "\r": KeyEvent("enter"),
    "\n": KeyEvent("j", ctrl=True),
    "\t": KeyEvent("tab"),
    " ": KeyEvent("space", text=" "),
    "\x7f": KeyEvent("backspace"),
    "\x08": KeyEvent("backspace"),
    "\x00": KeyEvent("space", ctrl=True),
    "\x1f": KeyEvent("-", ctrl=True),
    "\x1c": KeyEvent("\\", ctrl=True),
    "\x1b[Z": KeyEvent("tab", shift=True),
}

_KITTY_CSI_U_RE = re.compile(
    r"\x1b\[(\d+)(?::(\d*)(?::(\d+))?)?(?:;(\d+)(?::(\d+))?)?(?:;[\d:]*)?u$"
)
_CSI_LETTER_RE = re.compile(r"\x1b(?:\[|O)(?:1;(\d+)(?::(\d+))?)?([ABCDHFE])$")
_CSI_TILDE_RE = re.compile(r"\x1b\[(\d+)(?:;(\d+)(?::(\d+))?)?~$")
_MODIFY_OTHER_KEYS_RE = re.compile(r"\x1b\[27;(\d+);(\d+)~$")


def _decode_modifier(raw: int) -> tuple[bool, bool, bool]:
    mod = (raw - 1) & ~LOCK_MASK
    return (
        bool(mod & MODIFIERS["ctrl"]),
        bool(mod & MODIFIERS["alt"]),
        bool(mod & MODIFIERS["shift"]),
    )


def _from_codepoint(cp: int, modifier: int) -> KeyEvent | None:
    ctrl, alt, shift = _decode_modifier(modifier)
    named = _KITTY_CODEPOINTS.get(cp)
    if named is not None:
        text = " " if named == "space" and not (ctrl or alt) else None
        return KeyEvent(named, ctrl=ctrl, alt=alt, shift=shift, text=text)
    if cp <= 0 or cp > 0x10FFFF:
        return None
    ch = chr(cp)
    if not ch.isprintable():
        return None
    text = None if ctrl or alt else (ch.upper() if shift and ch.isalpha() else ch)
    # Shift on a letter is carried by the inserted text, not the key id
    return KeyEvent(ch.lower(), ctrl=ctrl, alt=alt, shift=shift and not text, text=text)


# ---------------------------------------------------------------------------
# Release / repeat detection
# ---------------------------------------------------------------------------

_RELEASE_RE = re.compile(r"(?::3u|;[^:]*:3[~ABCDHFPQRS])$")


def is_key_release(data: str) -> bool:
    """True for kitty key-release events, which callers drop."""
    if data.startswith("\x1b[200~"):
        return False
    return bool(_RELEASE_RE.search(data))


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def parse_key(data: str) -> KeyEvent | None:  # noqa: C901
    """Parse one raw input sequence into a :class:`KeyEvent`.

    Returns ``None`` for empty, malformed or unrecognised input.
    """
    if not data:
        return None

    simple = _SIMPLE_KEYS.get(data)
    if simple is not None:
        return simple

    if data.startswith("\x1b["):
        m = _KITTY_CSI_U_RE.match(data)
        if m:
            return _from_codepoint(int(m.group(1)), int(m.group(4) or 1))

        m = _MODIFY_OTHER_KEYS_RE.match(data)
        if m:
            return _from_codepoint(int(m.group(2)), int(m.group(1)))

        m = _CSI_TILDE_RE.match(data)
        if m:
            name = _CSI_TILDE_KEYS.get(int(m.group(1)))
            if name is None:
                return None
            ctrl, alt, shift = _decode_modifier(int(m.group(2) or 1))
            return KeyEvent(name, ctrl=ctrl, alt=alt, shift=shift)

    m = _CSI_LETTER_RE.match(data)
    if m:
        ctrl, alt, shift = _decode_modifier(int(m.group(1) or 1))
        return KeyEvent(_CSI_LETTER_KEYS[m.group(3)], ctrl=ctrl, alt=alt, shift=shift)

    # --- Alt + key (ESC prefix) ---
    if len(data) == 2 and data[0] == "\x1b":
        inner = parse_key(data[1])
        if inner is None:
            return None
        if inner.name == "j" and inner.ctrl:
            return KeyEvent("enter", alt=True)
        if inner.text is not None and inner.text.isupper():
            return KeyEvent(inner.name, alt=True, shift=True)
        return KeyEvent(inner.name, ctrl=inner.ctrl, alt=True, shift=inner.shift)

    # --- Ctrl + letter (0x01 - 0x1a) ---
    if len(data) == 1 and 1 <= ord(data) <= 26:
        return KeyEvent(chr(ord(data) + ord("a") - 1), ctrl=True)

    # --- Printable text (one grapheme or a burst of typed characters) ---
    if data.isprintable():
        return KeyEvent(data.lower() if len(data) == 1 else "text", text=data)

    return None


def key_event(key_id: KeyId) -> KeyEvent:
    """Build a :class:`KeyEvent` from an identifier like ``"ctrl+shift+a"``.

    Useful for tests and scripted input. A bare printable character yields an
    event carrying that character as text.
    """
    parts = key_id.split("+")
    mods = {p.lower() for p in parts[:-1]}
    name = parts[-1] if parts[-1] else "+"
    ctrl = "ctrl" in mods
    alt = "alt" in mods
    shift = "shift" in mods
    text = None
    if not (ctrl or alt) and len(name) == 1:
        text = name
    elif name == "space" and not (ctrl or alt):
        text = " "
    return KeyEvent(name.lower() if len(name) == 1 else name, ctrl=ctrl, alt=alt, shift=shift, text=text)
