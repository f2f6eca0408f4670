"""Tests for chatterm.streaming."""

from __future__ import annotations

import asyncio
import random
from typing import AsyncIterator

import pytest

from chatterm.backend import ApprovalRequest, CancellationToken, ContentChunk, StreamEvent
from chatterm.errors import BackendError, InvalidTransitionError, StreamingBusyError
from chatterm.streaming import (
    FATAL_ERROR,
    StreamingCoordinator,
    StreamingState,
    StreamOutcome,
)

IDLE = StreamingState.IDLE
RESPONDING = StreamingState.RESPONDING
WAITING = StreamingState.WAITING_FOR_CONFIRMATION


# ---------------------------------------------------------------------------
# Fake backends
# ---------------------------------------------------------------------------


class ScriptedBackend:
    """Yields the given chunks, pausing on ``gate`` before each one if set."""

    def __init__(self, chunks: list[str], gate: asyncio.Event | None = None) -> None:
        self.chunks = chunks
        self.gate = gate
        self.closed = False

    async def stream(self, prompt: str, token: CancellationToken) -> AsyncIterator[StreamEvent]:
        try:
            for chunk in self.chunks:
                if self.gate is not None:
                    await self.gate.wait()
                    self.gate.clear()
                yield ContentChunk(chunk)
        finally:
            self.closed = True


class FailingBackend:
    async def stream(self, prompt: str, token: CancellationToken) -> AsyncIterator[StreamEvent]:
        yield ContentChunk("partial")
        raise BackendError("connection reset")


class ApprovalBackend:
    def __init__(self) -> None:
        self.decision: bool | None = None

    async def stream(self, prompt: str, token: CancellationToken) -> AsyncIterator[StreamEvent]:
        request = ApprovalRequest(title="Run?", detail=prompt)
        yield request
        self.decision = await request.decision
        yield ContentChunk("approved" if self.decision else "denied")


class UnansweredApprovalBackend:
    async def stream(self, prompt: str, token: CancellationToken) -> AsyncIterator[StreamEvent]:
        yield ApprovalRequest(title="Run?")


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------


def coordinator_in(state: StreamingState) -> StreamingCoordinator:
    coordinator = StreamingCoordinator()
    if state is not IDLE:
        coordinator.transition("submit")
    if state is WAITING:
        coordinator.transition("approval_request")
    return coordinator


class TestTransitions:
    @pytest.mark.parametrize(
        ("start", "event", "end"),
        [
            (IDLE, "submit", RESPONDING),
            (RESPONDING, "chunk", RESPONDING),
            (RESPONDING, "approval_request", WAITING),
            (WAITING, "approved", RESPONDING),
            (WAITING, "denied", RESPONDING),
            (RESPONDING, "complete", IDLE),
            (RESPONDING, "cancel", IDLE),
            (IDLE, FATAL_ERROR, IDLE),
            (RESPONDING, FATAL_ERROR, IDLE),
            (WAITING, FATAL_ERROR, IDLE),
        ],
    )
    def test_valid_edges(self, start: StreamingState, event: str, end: StreamingState) -> None:
        coordinator = coordinator_in(start)
        assert coordinator.transition(event) is end
        assert coordinator.state is end

    @pytest.mark.parametrize(
        ("start", "event"),
        [
            (IDLE, "chunk"),
            (IDLE, "cancel"),
            (IDLE, "complete"),
            (RESPONDING, "submit"),
            (RESPONDING, "approved"),
            (WAITING, "chunk"),
            (WAITING, "cancel"),
            (WAITING, "submit"),
        ],
    )
    def test_invalid_edges_leave_state_unchanged(self, start: StreamingState, event: str) -> None:
        coordinator = coordinator_in(start)
        with pytest.raises(InvalidTransitionError):
            coordinator.transition(event)
        assert coordinator.state is start

    def test_state_change_callback_skips_self_loops(self) -> None:
        coordinator = StreamingCoordinator()
        seen: list[tuple[StreamingState, StreamingState]] = []
        coordinator.on_state_change = lambda old, new: seen.append((old, new))
        coordinator.transition("submit")
        coordinator.transition("chunk")
        coordinator.transition("complete")
        assert seen == [(IDLE, RESPONDING), (RESPONDING, IDLE)]


class TestSubmit:
    @pytest.mark.asyncio
    async def test_busy_submit_raises_and_keeps_state(self) -> None:
        coordinator = StreamingCoordinator()
        coordinator.submit()
        with pytest.raises(StreamingBusyError):
            coordinator.submit()
        assert coordinator.state is RESPONDING
        assert coordinator.active_request == 1

    @pytest.mark.asyncio
    async def test_cancel_sets_token_and_returns_to_idle(self) -> None:
        coordinator = StreamingCoordinator()
        token = coordinator.submit()
        coordinator.cancel()
        assert token.is_cancelled
        assert coordinator.state is IDLE
        assert coordinator.active_request is None

    @pytest.mark.asyncio
    async def test_cancel_not_allowed_while_waiting(self) -> None:
        coordinator = StreamingCoordinator()
        coordinator.submit()
        coordinator.transition("approval_request")
        with pytest.raises(InvalidTransitionError):
            coordinator.cancel()
        assert coordinator.state is WAITING

    @pytest.mark.asyncio
    async def test_late_chunk_is_discarded(self) -> None:
        coordinator = StreamingCoordinator()
        coordinator.submit()
        request_id = coordinator.active_request
        assert request_id is not None
        coordinator.cancel()
        assert coordinator.chunk(request_id) is False
        assert coordinator.state is IDLE

    @pytest.mark.asyncio
    async def test_fail_resolves_pending_approval_as_denied(self) -> None:
        coordinator = StreamingCoordinator()
        coordinator.submit()
        request = ApprovalRequest(title="Run?")
        assert coordinator.request_approval(coordinator.active_request or 0, request)
        coordinator.fail()
        assert request.decision.result() is False
        assert coordinator.pending_approval is None


class TestPhraseTimer:
    @pytest.mark.asyncio
    async def test_timer_runs_only_while_responding(self) -> None:
        coordinator = StreamingCoordinator()
        assert not coordinator.phrase_timer_active
        coordinator.submit()
        assert coordinator.phrase_timer_active
        coordinator.transition("approval_request")
        assert not coordinator.phrase_timer_active
        coordinator.resolve_approval(True)
        assert coordinator.phrase_timer_active
        coordinator.cancel()
        assert not coordinator.phrase_timer_active

    @pytest.mark.asyncio
    async def test_phrase_rotates_on_interval(self) -> None:
        coordinator = StreamingCoordinator(["a", "b"], phrase_interval=0.01, rng=random.Random(0))
        rotated: list[str] = []
        coordinator.on_phrase = rotated.append
        coordinator.submit()
        first = coordinator.phrase
        await asyncio.sleep(0.05)
        assert rotated
        assert rotated[0] != first
        coordinator.cancel()

    @pytest.mark.asyncio
    async def test_elapsed_resets_when_idle(self) -> None:
        coordinator = StreamingCoordinator()
        coordinator.submit()
        await asyncio.sleep(0.01)
        assert coordinator.elapsed > 0
        coordinator.cancel()
        assert coordinator.elapsed == 0.0


# ---------------------------------------------------------------------------
# run()
# ---------------------------------------------------------------------------


class TestRun:
    @pytest.mark.asyncio
    async def test_completed_stream(self) -> None:
        coordinator = StreamingCoordinator()
        chunks: list[str] = []
        backend = ScriptedBackend(["Hel", "lo"])
        result = await coordinator.run(backend, "hi", on_chunk=chunks.append)
        assert result.outcome is StreamOutcome.COMPLETED
        assert chunks == ["Hel", "lo"]
        assert coordinator.state is IDLE
        assert backend.closed

    @pytest.mark.asyncio
    async def test_cancel_mid_stream_drops_later_chunks(self) -> None:
        coordinator = StreamingCoordinator()
        gate = asyncio.Event()
        backend = ScriptedBackend(["one", "two", "three"], gate)
        chunks: list[str] = []
        task = asyncio.ensure_future(coordinator.run(backend, "hi", on_chunk=chunks.append))

        gate.set()
        while not chunks:
            await asyncio.sleep(0)
        coordinator.cancel()
        gate.set()

        result = await task
        assert result.outcome is StreamOutcome.CANCELLED
        assert chunks == ["one"]
        assert coordinator.state is IDLE
        assert backend.closed

    @pytest.mark.asyncio
    async def test_backend_error_fails(self) -> None:
        coordinator = StreamingCoordinator()
        chunks: list[str] = []
        result = await coordinator.run(FailingBackend(), "hi", on_chunk=chunks.append)
        assert result.outcome is StreamOutcome.FAILED
        assert isinstance(result.error, BackendError)
        assert chunks == ["partial"]
        assert coordinator.state is IDLE

    @pytest.mark.asyncio
    @pytest.mark.parametrize("approved", [True, False])
    async def test_approval_round_trip(self, approved: bool) -> None:
        coordinator = StreamingCoordinator()
        backend = ApprovalBackend()
        chunks: list[str] = []
        states: list[StreamingState] = []
        coordinator.on_state_change = lambda old, new: states.append(new)

        def on_approval(request: ApprovalRequest) -> None:
            assert coordinator.state is WAITING
            asyncio.get_running_loop().call_soon(coordinator.resolve_approval, approved)

        result = await coordinator.run(backend, "ls", on_chunk=chunks.append, on_approval=on_approval)
        assert result.outcome is StreamOutcome.COMPLETED
        assert backend.decision is approved
        assert chunks == ["approved" if approved else "denied"]
        assert states == [RESPONDING, WAITING, RESPONDING, IDLE]

    @pytest.mark.asyncio
    async def test_stream_ending_while_waiting_denies(self) -> None:
        coordinator = StreamingCoordinator()
        requests: list[ApprovalRequest] = []
        result = await coordinator.run(
            UnansweredApprovalBackend(), "x", on_chunk=lambda _: None, on_approval=requests.append
        )
        assert result.outcome is StreamOutcome.COMPLETED
        assert requests[0].decision.result() is False
        assert coordinator.state is IDLE

    @pytest.mark.asyncio
    async def test_run_while_busy_raises(self) -> None:
        coordinator = StreamingCoordinator()
        coordinator.submit()
        with pytest.raises(StreamingBusyError):
            await coordinator.run(ScriptedBackend([]), "hi", on_chunk=lambda _: None)
