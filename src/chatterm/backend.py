"""Response backends and the events they stream.

A backend turns one submitted prompt into an async iterator of
``ContentChunk`` and ``ApprovalRequest`` events. Streams are not
restartable. Cancellation is cooperative: the backend checks the
``CancellationToken`` between yields and stops promptly once it is set.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from dataclasses import dataclass, field
from typing import AsyncIterator, Protocol, Union

from chatterm.errors import BackendError

logger = logging.getLogger(__name__)


class CancellationToken:
    """One-shot cancellation flag backed by an :class:`asyncio.Event`."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> bool:
        """Sleep for *delay* seconds; return True early if cancelled."""
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return False
        return True


@dataclass(frozen=True)
class ContentChunk:
    text: str


@dataclass
class ApprovalRequest:
    """The backend wants confirmation before continuing.

    The backend awaits ``decision``; the coordinator resolves it when the
    user approves or denies.
    """

    title: str
    detail: str = ""
    decision: asyncio.Future[bool] = field(default_factory=lambda: asyncio.get_running_loop().create_future())


StreamEvent = Union[ContentChunk, ApprovalRequest]


class Backend(Protocol):
    def stream(self, prompt: str, token: CancellationToken) -> AsyncIterator[StreamEvent]: ...


# ---------------------------------------------------------------------------
# EchoBackend
# ---------------------------------------------------------------------------


class EchoBackend:
    """Demo backend that streams a reply word by word.

    Prompts starting with ``run `` first ask for approval to "run" the rest
    of the line.
    """

    def __init__(self, *, delay: float = 0.03, reply_prefix: str = "You said: ") -> None:
        self._delay = delay
        self._reply_prefix = reply_prefix

    async def stream(self, prompt: str, token: CancellationToken) -> AsyncIterator[StreamEvent]:
        if prompt.startswith("run "):
            command = prompt[4:].strip()
            request = ApprovalRequest(title="Run command?", detail=command)
            yield request
            approved = await request.decision
            if token.is_cancelled:
                return
            yield ContentChunk(f"Ran `{command}`.\n" if approved else "Skipped: not approved.\n")
            return

        words = (self._reply_prefix + prompt).split(" ")
        for i, word in enumerate(words):
            if await token.sleep(self._delay):
                return
            yield ContentChunk(word if i == 0 else " " + word)


# ---------------------------------------------------------------------------
# ShellBackend
# ---------------------------------------------------------------------------


class ShellBackend:
    """Runs shell-mode submissions as subprocesses, streaming their output."""

    def __init__(self, cwd: str | os.PathLike[str] | None = None, *, shell: str | None = None) -> None:
        self._cwd = cwd
        self._shell = shell or os.environ.get("SHELL") or "/bin/sh"

    async def stream(self, prompt: str, token: CancellationToken) -> AsyncIterator[StreamEvent]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._shell,
                "-c",
                prompt,
                cwd=self._cwd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                start_new_session=True,
            )
        except OSError as exc:
            raise BackendError(f"Cannot start {self._shell}: {exc}") from exc

        assert proc.stdout is not None
        cancel_wait = asyncio.ensure_future(token.wait())
        try:
            while True:
                read = asyncio.ensure_future(proc.stdout.readline())
                done, _ = await asyncio.wait({read, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
                if cancel_wait in done:
                    read.cancel()
                    _terminate(proc)
                    return
                line = read.result()
                if not line:
                    break
                yield ContentChunk(line.decode("utf-8", errors="replace"))

            code = await proc.wait()
            if code != 0:
                yield ContentChunk(f"[exit {code}]\n")
        finally:
            cancel_wait.cancel()
            if proc.returncode is None:
                _terminate(proc)


def _terminate(proc: asyncio.subprocess.Process) -> None:
    try:
        os.killpg(proc.pid, signal.SIGTERM)
    except ProcessLookupError:
        pass
    except OSError:
        logger.exception("Failed to terminate shell process %s", proc.pid)
