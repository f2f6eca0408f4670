"""Tests for chatterm.stdin_buffer."""

from __future__ import annotations

import asyncio

import pytest

from chatterm.stdin_buffer import StdinBuffer, split_sequences


class Recorder:
    def __init__(self, buf: StdinBuffer) -> None:
        self.data: list[str] = []
        self.pastes: list[str] = []
        buf.on_data = self.data.append
        buf.on_paste = self.pastes.append


@pytest.fixture
def buf() -> StdinBuffer:
    return StdinBuffer(timeout=0.01)


class TestSplitSequences:
    def test_plain_characters(self):
        assert split_sequences("abc") == (["a", "b", "c"], "")

    def test_mixed_sequences(self):
        assert split_sequences("a\x1b[A\x1b[1;5Cb") == (["a", "\x1b[A", "\x1b[1;5C", "b"], "")

    def test_incomplete_remainder(self):
        assert split_sequences("x\x1b[1;") == (["x"], "\x1b[1;")

    def test_alt_key(self):
        assert split_sequences("\x1bb") == (["\x1bb"], "")

    def test_sgr_mouse(self):
        assert split_sequences("\x1b[<0;10;5M") == (["\x1b[<0;10;5M"], "")

    def test_osc_needs_terminator(self):
        assert split_sequences("\x1b]0;title") == ([], "\x1b]0;title")
        assert split_sequences("\x1b]0;title\x07") == (["\x1b]0;title\x07"], "")


class TestStdinBuffer:
    def test_sequences_are_emitted_one_at_a_time(self, buf):
        rec = Recorder(buf)
        buf.process("a\x1b[Bz")
        assert rec.data == ["a", "\x1b[B", "z"]

    @pytest.mark.asyncio
    async def test_split_escape_sequence_is_reassembled(self, buf):
        rec = Recorder(buf)
        buf.process("\x1b[")
        assert rec.data == []
        assert buf.pending == "\x1b["
        buf.process("A")
        assert rec.data == ["\x1b[A"]
        assert buf.pending == ""

    @pytest.mark.asyncio
    async def test_lone_escape_flushes_after_timeout(self, buf):
        rec = Recorder(buf)
        buf.process("\x1b")
        assert rec.data == []
        await asyncio.sleep(0.05)
        assert rec.data == ["\x1b"]

    def test_lone_escape_without_loop_flushes_immediately(self, buf):
        rec = Recorder(buf)
        buf.process("\x1b")
        assert rec.data == ["\x1b"]

    def test_bracketed_paste(self, buf):
        rec = Recorder(buf)
        buf.process("a\x1b[200~hello\nworld\x1b[201~b")
        assert rec.data == ["a", "b"]
        assert rec.pastes == ["hello\nworld"]

    def test_paste_split_across_chunks(self, buf):
        rec = Recorder(buf)
        buf.process("\x1b[200~first ")
        buf.process("second\r")
        assert rec.pastes == []
        buf.process("third\x1b[201~")
        assert rec.pastes == ["first second\rthird"]
        assert rec.data == []

    def test_clear_drops_pending_state(self, buf):
        rec = Recorder(buf)
        buf.process("\x1b[200~partial")
        buf.clear()
        buf.process("x")
        assert rec.data == ["x"]
        assert rec.pastes == []
