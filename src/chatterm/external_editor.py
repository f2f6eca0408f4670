"""Edit the prompt in an external editor process.

The text is written to a temporary file, the terminal is handed over to the
editor, and the file is read back once the editor exits with status 0. The
terminal is always taken back afterwards, whatever happened.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

from chatterm.errors import ExternalEditorError
from chatterm.terminal import Terminal

logger = logging.getLogger(__name__)

FALLBACK_EDITORS = ("vi", "nano")


def resolve_editor_command(
    configured: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[str]:
    """Editor argv from config, ``$VISUAL`` or ``$EDITOR``, falling back to vi.

    The value is split shell-style, so ``"code --wait"`` works.
    """
    env = os.environ if environ is None else environ
    for candidate in (configured, env.get("VISUAL"), env.get("EDITOR")):
        if not candidate:
            continue
        try:
            parts = shlex.split(candidate)
        except ValueError:
            logger.warning("Cannot parse editor command %r", candidate)
            continue
        if parts:
            return parts

    for name in FALLBACK_EDITORS:
        found = shutil.which(name)
        if found:
            return [found]
    return ["vi"]


@dataclass(frozen=True)
class EditorResult:
    text: str | None
    exit_code: int | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.exit_code == 0


class ExternalEditor:
    """Runs one editor session at a time against a terminal."""

    def __init__(
        self,
        terminal: Terminal,
        command: list[str] | None = None,
        *,
        suffix: str = ".md",
    ) -> None:
        self._terminal = terminal
        self._command = command
        self._suffix = suffix

    @property
    def command(self) -> list[str]:
        return self._command if self._command is not None else resolve_editor_command()

    async def edit(self, text: str) -> EditorResult:
        """Open *text* in the editor and return what was saved.

        Failures are reported in the result rather than raised, so callers
        can leave their state untouched.
        """
        fd, path = tempfile.mkstemp(prefix="chatterm-", suffix=self._suffix)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(text)

            self._terminal.suspend()
            try:
                code = await self._run(path)
            finally:
                self._terminal.resume()

            if code != 0:
                raise ExternalEditorError(f"Editor exited with status {code}", exit_code=code)

            try:
                edited = Path(path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                raise ExternalEditorError(f"Cannot read edited text: {exc}", exit_code=code) from exc
            # Editors append a final newline on save
            if edited.endswith("\n") and not text.endswith("\n"):
                edited = edited[:-1]
            return EditorResult(text=edited, exit_code=0)
        except ExternalEditorError as exc:
            logger.warning("External editor failed: %s", exc)
            return EditorResult(text=None, exit_code=exc.exit_code, error=str(exc))
        finally:
            try:
                os.unlink(path)
            except OSError:
                pass

    async def _run(self, path: str) -> int:
        argv = [*self.command, path]
        logger.debug("Launching editor: %s", shlex.join(argv))
        try:
            proc = await asyncio.create_subprocess_exec(*argv)
        except OSError as exc:
            raise ExternalEditorError(f"Cannot launch {argv[0]}: {exc.strerror or exc}") from exc
        try:
            return await proc.wait()
        except asyncio.CancelledError:
            await _reap(proc)
            raise


async def _reap(proc: asyncio.subprocess.Process, grace: float = 2.0) -> None:
    """Terminate an abandoned editor and wait for it, killing it if it lingers."""
    if proc.returncode is not None:
        return
    logger.debug("Terminating editor process %s", proc.pid)
    try:
        proc.terminate()
        await asyncio.wait_for(proc.wait(), grace)
    except ProcessLookupError:
        return
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
