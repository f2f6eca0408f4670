"""Tests for chatterm.keys: raw input sequences to key events."""

from __future__ import annotations

import pytest

from chatterm.keys import KeyEvent, is_key_release, key_event, parse_key, paste_event


# ---------------------------------------------------------------------------
# KeyEvent
# ---------------------------------------------------------------------------


class TestKeyEvent:
    def test_id_orders_modifiers(self):
        assert KeyEvent("a", ctrl=True, alt=True, shift=True).id == "ctrl+shift+alt+a"
        assert KeyEvent("enter").id == "enter"

    def test_printable_requires_text_without_modifiers(self):
        assert KeyEvent("a", text="a").is_printable
        assert not KeyEvent("a", ctrl=True, text="a").is_printable
        assert not KeyEvent("enter").is_printable

    def test_paste_event(self):
        event = paste_event("a\nb")
        assert event.is_paste
        assert event.text == "a\nb"


# ---------------------------------------------------------------------------
# parse_key
# ---------------------------------------------------------------------------


class TestParseLegacy:
    @pytest.mark.parametrize(
        ("data", "key_id"),
        [
            ("\r", "enter"),
            ("\n", "ctrl+j"),
            ("\t", "tab"),
            ("\x1b", "escape"),
            ("\x7f", "backspace"),
            ("\x08", "backspace"),
            ("\x1b[Z", "shift+tab"),
            ("\x03", "ctrl+c"),
            ("\x04", "ctrl+d"),
            ("\x01", "ctrl+a"),
            ("\x1f", "ctrl+-"),
        ],
    )
    def test_control_characters(self, data, key_id):
        event = parse_key(data)
        assert event is not None
        assert event.id == key_id

    @pytest.mark.parametrize(
        ("data", "key_id"),
        [
            ("\x1b[A", "up"),
            ("\x1b[B", "down"),
            ("\x1b[C", "right"),
            ("\x1b[D", "left"),
            ("\x1bOA", "up"),
            ("\x1b[H", "home"),
            ("\x1b[F", "end"),
            ("\x1b[1;5C", "ctrl+right"),
            ("\x1b[1;3D", "alt+left"),
            ("\x1b[1;2A", "shift+up"),
            ("\x1b[3~", "delete"),
            ("\x1b[5~", "pageUp"),
            ("\x1b[3;5~", "ctrl+delete"),
        ],
    )
    def test_cursor_and_editing_keys(self, data, key_id):
        event = parse_key(data)
        assert event is not None
        assert event.id == key_id

    @pytest.mark.parametrize(
        ("data", "key_id"),
        [
            ("\x1bb", "alt+b"),
            ("\x1bf", "alt+f"),
            ("\x1b\r", "alt+enter"),
            ("\x1b\n", "alt+enter"),
            ("\x1b\x7f", "alt+backspace"),
            ("\x1bB", "shift+alt+b"),
        ],
    )
    def test_alt_prefixed(self, data, key_id):
        event = parse_key(data)
        assert event is not None
        assert event.id == key_id


class TestParseKitty:
    @pytest.mark.parametrize(
        ("data", "key_id"),
        [
            ("\x1b[97;5u", "ctrl+a"),
            ("\x1b[13;2u", "shift+enter"),
            ("\x1b[13u", "enter"),
            ("\x1b[27u", "escape"),
            ("\x1b[127;3u", "alt+backspace"),
            ("\x1b[99;5u", "ctrl+c"),
        ],
    )
    def test_csi_u(self, data, key_id):
        event = parse_key(data)
        assert event is not None
        assert event.id == key_id

    def test_shifted_letter_carries_uppercase_text(self):
        event = parse_key("\x1b[97;2u")
        assert event is not None
        assert event.text == "A"
        assert event.is_printable

    def test_lock_modifiers_are_ignored(self):
        event = parse_key("\x1b[97;69u")  # ctrl + caps lock
        assert event is not None
        assert event.id == "ctrl+a"

    def test_modify_other_keys(self):
        event = parse_key("\x1b[27;2;13~")
        assert event is not None
        assert event.id == "shift+enter"


class TestParseText:
    def test_letter(self):
        event = parse_key("a")
        assert event == KeyEvent("a", text="a")

    def test_uppercase_letter_keeps_text(self):
        event = parse_key("A")
        assert event is not None
        assert event.name == "a"
        assert event.text == "A"

    def test_space_inserts_space(self):
        event = parse_key(" ")
        assert event is not None
        assert event.id == "space"
        assert event.text == " "

    def test_non_ascii(self):
        event = parse_key("é")
        assert event is not None
        assert event.is_printable
        assert event.text == "é"

    def test_burst_of_text(self):
        event = parse_key("hello")
        assert event is not None
        assert event.name == "text"
        assert event.text == "hello"

    @pytest.mark.parametrize("data", ["", "\x1b[200~", "\x1b[99~", "\x1b[?1;2c"])
    def test_unrecognised_returns_none(self, data):
        assert parse_key(data) is None


class TestKeyRelease:
    def test_kitty_release(self):
        assert is_key_release("\x1b[97;1:3u")
        assert is_key_release("\x1b[1;1:3A")

    def test_press_and_repeat_are_not_release(self):
        assert not is_key_release("\x1b[97;1:1u")
        assert not is_key_release("\x1b[97;1:2u")
        assert not is_key_release("a")

    def test_paste_is_never_release(self):
        assert not is_key_release("\x1b[200~x:3u")


class TestKeyEventFromId:
    def test_modifiers(self):
        assert key_event("ctrl+shift+a") == KeyEvent("a", ctrl=True, shift=True)

    def test_bare_character_has_text(self):
        assert key_event("x").text == "x"

    def test_named_key_has_no_text(self):
        assert key_event("enter").text is None

    def test_space(self):
        assert key_event("space").text == " "
        assert key_event("ctrl+space").text is None

    def test_round_trip_id(self):
        for key_id in ["ctrl+c", "shift+enter", "alt+left", "ctrl+shift+alt+x"]:
            assert key_event(key_id).id == key_id
