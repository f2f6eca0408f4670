"""Tests for chatterm.backend."""

from __future__ import annotations

import asyncio

import pytest

from chatterm.backend import ApprovalRequest, CancellationToken, ContentChunk, EchoBackend, ShellBackend


async def collect(stream) -> list:
    return [event async for event in stream]


class TestCancellationToken:
    @pytest.mark.asyncio
    async def test_sleep_returns_early_when_cancelled(self):
        token = CancellationToken()
        loop = asyncio.get_running_loop()
        loop.call_later(0.01, token.cancel)
        started = loop.time()
        assert await token.sleep(5) is True
        assert loop.time() - started < 1

    @pytest.mark.asyncio
    async def test_sleep_times_out(self):
        assert await CancellationToken().sleep(0.001) is False


class TestEchoBackend:
    @pytest.mark.asyncio
    async def test_streams_words(self):
        events = await collect(EchoBackend(delay=0).stream("hello there", CancellationToken()))
        assert all(isinstance(e, ContentChunk) for e in events)
        assert "".join(e.text for e in events) == "You said: hello there"
        assert len(events) == 4

    @pytest.mark.asyncio
    async def test_stops_when_cancelled(self):
        token = CancellationToken()
        token.cancel()
        assert await collect(EchoBackend(delay=0).stream("hello", token)) == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("approved", "reply"), [(True, "Ran `ls`.\n"), (False, "Skipped: not approved.\n")])
    async def test_run_prompt_asks_for_approval(self, approved, reply):
        stream = EchoBackend(delay=0).stream("run ls", CancellationToken())
        request = await stream.__anext__()
        assert isinstance(request, ApprovalRequest)
        assert request.detail == "ls"
        request.decision.set_result(approved)
        rest = await collect(stream)
        assert rest == [ContentChunk(reply)]


class TestShellBackend:
    @pytest.mark.asyncio
    async def test_streams_output_lines(self, tmp_path):
        backend = ShellBackend(tmp_path, shell="/bin/sh")
        events = await collect(backend.stream("echo one; echo two", CancellationToken()))
        assert [e.text for e in events] == ["one\n", "two\n"]

    @pytest.mark.asyncio
    async def test_runs_in_cwd(self, tmp_path):
        (tmp_path / "marker.txt").write_text("")
        events = await collect(ShellBackend(tmp_path, shell="/bin/sh").stream("ls", CancellationToken()))
        assert "marker.txt\n" in [e.text for e in events]

    @pytest.mark.asyncio
    async def test_stderr_and_exit_status(self, tmp_path):
        events = await collect(ShellBackend(tmp_path, shell="/bin/sh").stream("echo oops >&2; exit 2", CancellationToken()))
        assert [e.text for e in events] == ["oops\n", "[exit 2]\n"]

    @pytest.mark.asyncio
    async def test_cancel_stops_long_command(self, tmp_path):
        token = CancellationToken()
        backend = ShellBackend(tmp_path, shell="/bin/sh")
        asyncio.get_running_loop().call_later(0.05, token.cancel)
        events = await asyncio.wait_for(collect(backend.stream("echo start; sleep 30", token)), timeout=5)
        assert [e.text for e in events] == ["start\n"]
