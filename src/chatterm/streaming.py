"""Streaming state machine: when the UI is thinking, waiting or idle.

Edges::

    IDLE                     --submit-->            RESPONDING
    RESPONDING               --chunk-->             RESPONDING
    RESPONDING               --approval_request-->  WAITING_FOR_CONFIRMATION
    WAITING_FOR_CONFIRMATION --approved/denied-->   RESPONDING
    RESPONDING               --complete-->          IDLE
    RESPONDING               --cancel-->            IDLE
    any                      --fatal_error-->       IDLE

Anything else raises ``InvalidTransitionError`` and leaves the state alone.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Sequence

from chatterm.backend import ApprovalRequest, Backend, CancellationToken, ContentChunk
from chatterm.errors import InvalidTransitionError, StreamingBusyError

logger = logging.getLogger(__name__)

DEFAULT_PHRASES: tuple[str, ...] = (
    "Thinking",
    "Pondering",
    "Working on it",
    "Reticulating splines",
    "Consulting the archives",
    "Connecting the dots",
)


class StreamingState(Enum):
    IDLE = "idle"
    RESPONDING = "responding"
    WAITING_FOR_CONFIRMATION = "waiting_for_confirmation"


_TRANSITIONS: dict[tuple[StreamingState, str], StreamingState] = {
    (StreamingState.IDLE, "submit"): StreamingState.RESPONDING,
    (StreamingState.RESPONDING, "chunk"): StreamingState.RESPONDING,
    (StreamingState.RESPONDING, "approval_request"): StreamingState.WAITING_FOR_CONFIRMATION,
    (StreamingState.WAITING_FOR_CONFIRMATION, "approved"): StreamingState.RESPONDING,
    (StreamingState.WAITING_FOR_CONFIRMATION, "denied"): StreamingState.RESPONDING,
    (StreamingState.RESPONDING, "complete"): StreamingState.IDLE,
    (StreamingState.RESPONDING, "cancel"): StreamingState.IDLE,
}

FATAL_ERROR = "fatal_error"


class StreamOutcome(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


@dataclass(frozen=True)
class StreamResult:
    outcome: StreamOutcome
    error: BaseException | None = None


class StreamingCoordinator:
    """Owns ``StreamingState`` and the one in-flight request.

    Also runs the phrase cycler, a timer that rotates the "thinking" phrase
    on a fixed interval only while RESPONDING.
    """

    def __init__(
        self,
        phrases: Sequence[str] = DEFAULT_PHRASES,
        *,
        phrase_interval: float = 15.0,
        rng: random.Random | None = None,
    ) -> None:
        self._state = StreamingState.IDLE
        self._phrases = list(phrases) or list(DEFAULT_PHRASES)
        self._phrase_interval = phrase_interval
        self._rng = rng or random.Random()
        self._phrase = self._phrases[0]
        self._phrase_handle: asyncio.TimerHandle | None = None

        self._request_id = 0
        self._active_request: int | None = None
        self._token: CancellationToken | None = None
        self._pending_approval: ApprovalRequest | None = None
        self._started_at: float | None = None

        self.on_state_change: Callable[[StreamingState, StreamingState], None] | None = None
        self.on_phrase: Callable[[str], None] | None = None

    # -- read-only view ------------------------------------------------------

    @property
    def state(self) -> StreamingState:
        return self._state

    @property
    def is_busy(self) -> bool:
        return self._state is not StreamingState.IDLE

    @property
    def phrase(self) -> str:
        return self._phrase

    @property
    def phrase_timer_active(self) -> bool:
        return self._phrase_handle is not None

    @property
    def active_request(self) -> int | None:
        return self._active_request

    @property
    def pending_approval(self) -> ApprovalRequest | None:
        return self._pending_approval

    @property
    def elapsed(self) -> float:
        """Seconds since the in-flight request was submitted."""
        if self._started_at is None:
            return 0.0
        try:
            now = asyncio.get_running_loop().time()
        except RuntimeError:
            return 0.0
        return max(0.0, now - self._started_at)

    # -- transitions ---------------------------------------------------------

    def transition(self, event: str) -> StreamingState:
        """Apply one edge of the state machine and return the new state."""
        old = self._state
        if event == FATAL_ERROR:
            new = StreamingState.IDLE
        else:
            new = _TRANSITIONS.get((old, event))
            if new is None:
                raise InvalidTransitionError(old, event)

        self._state = new
        if new is not StreamingState.RESPONDING:
            self._stop_phrase_timer()
        elif old is not StreamingState.RESPONDING:
            self._start_phrase_timer()
        if new is StreamingState.IDLE:
            self._finish_request()

        if old is not new:
            logger.debug("Streaming %s -> %s (%s)", old.value, new.value, event)
            if self.on_state_change:
                self.on_state_change(old, new)
        return new

    def submit(self) -> CancellationToken:
        """Start a request. Raises ``StreamingBusyError`` unless idle."""
        if self._state is not StreamingState.IDLE:
            raise StreamingBusyError(self._state, "submit")
        self._request_id += 1
        self._active_request = self._request_id
        self._token = CancellationToken()
        try:
            self._started_at = asyncio.get_running_loop().time()
        except RuntimeError:
            self._started_at = None
        self._phrase = self._rng.choice(self._phrases)
        self.transition("submit")
        return self._token

    def is_current(self, request_id: int) -> bool:
        return self._active_request is not None and request_id == self._active_request

    def chunk(self, request_id: int) -> bool:
        """Record a content chunk. Late chunks from a finished request return False."""
        if not self.is_current(request_id):
            logger.debug("Discarding late chunk from request %d", request_id)
            return False
        self.transition("chunk")
        return True

    def request_approval(self, request_id: int, request: ApprovalRequest) -> bool:
        if not self.is_current(request_id):
            return False
        self.transition("approval_request")
        self._pending_approval = request
        return True

    def resolve_approval(self, approved: bool) -> None:
        """Answer the pending approval request and resume responding."""
        request = self._pending_approval
        self.transition("approved" if approved else "denied")
        self._pending_approval = None
        if request is not None and not request.decision.done():
            request.decision.set_result(approved)

    def complete(self, request_id: int) -> bool:
        if not self.is_current(request_id):
            return False
        self.transition("complete")
        return True

    def cancel(self) -> None:
        """Cancel the in-flight request; the state is IDLE on return."""
        if self._state is not StreamingState.RESPONDING:
            raise InvalidTransitionError(self._state, "cancel")
        token = self._token
        self.transition("cancel")
        if token is not None:
            token.cancel()

    def fail(self) -> None:
        """Fatal error edge, valid from any state."""
        token = self._token
        self.transition(FATAL_ERROR)
        if token is not None:
            token.cancel()

    def _finish_request(self) -> None:
        self._active_request = None
        self._token = None
        self._started_at = None
        request = self._pending_approval
        self._pending_approval = None
        if request is not None and not request.decision.done():
            request.decision.set_result(False)

    # -- phrase cycler -------------------------------------------------------

    def _start_phrase_timer(self) -> None:
        self._stop_phrase_timer()
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._phrase_handle = loop.call_later(self._phrase_interval, self._next_phrase)

    def _stop_phrase_timer(self) -> None:
        if self._phrase_handle is not None:
            self._phrase_handle.cancel()
            self._phrase_handle = None

    def _next_phrase(self) -> None:
        self._phrase_handle = None
        if self._state is not StreamingState.RESPONDING:
            return
        if len(self._phrases) > 1:
            choices = [p for p in self._phrases if p != self._phrase]
            self._phrase = self._rng.choice(choices)
        if self.on_phrase:
            self.on_phrase(self._phrase)
        self._start_phrase_timer()

    # -- stream consumption --------------------------------------------------

    async def run(
        self,
        backend: Backend,
        prompt: str,
        *,
        on_chunk: Callable[[str], None],
        on_approval: Callable[[ApprovalRequest], None] | None = None,
    ) -> StreamResult:
        """Submit *prompt* and consume the backend stream until it ends.

        Chunks that arrive after the request was cancelled are dropped.
        Backend exceptions take the fatal-error edge and are returned in the
        result, never raised.
        """
        token = self.submit()
        request_id = self._request_id
        stream = backend.stream(prompt, token)
        try:
            async for event in stream:
                if not self.is_current(request_id):
                    break
                if isinstance(event, ContentChunk):
                    if self.chunk(request_id):
                        on_chunk(event.text)
                elif isinstance(event, ApprovalRequest):
                    if self.request_approval(request_id, event) and on_approval:
                        on_approval(event)
                else:
                    logger.warning("Ignoring unknown stream event %r", event)
        except asyncio.CancelledError:
            if self.is_current(request_id):
                self.fail()
            raise
        except Exception as exc:
            if not self.is_current(request_id):
                return StreamResult(StreamOutcome.CANCELLED)
            logger.exception("Backend stream failed")
            self.fail()
            return StreamResult(StreamOutcome.FAILED, exc)
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

        if self.is_current(request_id) and self._state is StreamingState.WAITING_FOR_CONFIRMATION:
            # Stream ended without waiting for the answer
            self.resolve_approval(False)
        if self.complete(request_id):
            return StreamResult(StreamOutcome.COMPLETED)
        return StreamResult(StreamOutcome.CANCELLED)
