"""Tests for chatterm.external_editor, using ``sh`` scripts as editors."""

from __future__ import annotations

import asyncio
import os

import pytest

from chatterm.external_editor import ExternalEditor, resolve_editor_command
from chatterm.text_buffer import TextEditBuffer
from virtual_terminal import VirtualTerminal


def script_editor(script: str) -> list[str]:
    """An editor command that runs *script* with the temp file as ``$1``."""
    return ["sh", "-c", script, "editor"]


class TestResolveEditorCommand:
    def test_configured_wins(self):
        env = {"VISUAL": "code --wait", "EDITOR": "vi"}
        assert resolve_editor_command("nano -w", env) == ["nano", "-w"]

    def test_visual_before_editor(self):
        assert resolve_editor_command(None, {"VISUAL": "code --wait", "EDITOR": "vi"}) == ["code", "--wait"]
        assert resolve_editor_command(None, {"EDITOR": "emacs -nw"}) == ["emacs", "-nw"]

    def test_quoted_arguments(self):
        assert resolve_editor_command('"/opt/My Editor/bin/edit" -f', {}) == ["/opt/My Editor/bin/edit", "-f"]

    def test_unparseable_value_is_skipped(self):
        assert resolve_editor_command('"unterminated', {"EDITOR": "vi"}) == ["vi"]

    def test_fallback(self):
        command = resolve_editor_command(None, {})
        assert len(command) == 1
        assert command[0].endswith(("vi", "nano"))


class TestExternalEditor:
    @pytest.mark.asyncio
    async def test_saved_text_is_returned(self):
        term = VirtualTerminal()
        editor = ExternalEditor(term, script_editor('printf "edited text" > "$1"'))
        result = await editor.edit("original")
        assert result.ok
        assert result.text == "edited text"
        assert (term.suspend_count, term.resume_count) == (1, 1)
        assert not term.suspended

    @pytest.mark.asyncio
    async def test_editor_sees_current_text(self):
        editor = ExternalEditor(VirtualTerminal(), script_editor('tr a-z A-Z < "$1" > "$1.tmp" && mv "$1.tmp" "$1"'))
        result = await editor.edit("shout\nthis")
        assert result.text == "SHOUT\nTHIS"

    @pytest.mark.asyncio
    async def test_trailing_newline_added_by_editor_is_dropped(self):
        editor = ExternalEditor(VirtualTerminal(), script_editor('printf "line\\n" > "$1"'))
        result = await editor.edit("line")
        assert result.text == "line"

    @pytest.mark.asyncio
    async def test_nonzero_exit_reports_failure(self):
        term = VirtualTerminal()
        editor = ExternalEditor(term, script_editor('printf "junk" > "$1"; exit 3'))
        result = await editor.edit("keep me")
        assert not result.ok
        assert result.text is None
        assert result.exit_code == 3
        assert "status 3" in (result.error or "")
        assert (term.suspend_count, term.resume_count) == (1, 1)

    @pytest.mark.asyncio
    async def test_missing_binary_reports_failure_and_resumes(self):
        term = VirtualTerminal()
        editor = ExternalEditor(term, ["/nonexistent/chatterm-editor"])
        result = await editor.edit("text")
        assert not result.ok
        assert result.error is not None
        assert "Cannot launch" in result.error
        assert not term.suspended


class TestBufferIntegration:
    @pytest.mark.asyncio
    async def test_success_replaces_buffer(self):
        buf = TextEditBuffer()
        buf.insert("draft")
        editor = ExternalEditor(VirtualTerminal(), script_editor('printf "final\\nversion" > "$1"'))
        await buf.open_external(editor)
        assert buf.text == "final\nversion"

    @pytest.mark.asyncio
    async def test_failure_leaves_buffer_unchanged(self):
        buf = TextEditBuffer()
        buf.insert("draft")
        before = buf.state
        editor = ExternalEditor(VirtualTerminal(), script_editor("exit 1"))
        result = await buf.open_external(editor)
        assert not result.ok
        assert buf.text == "draft"
        assert buf.cursor == (before.cursor_line, before.cursor_col)


class TestCancellation:
    @pytest.mark.asyncio
    async def test_cancel_terminates_and_reaps_editor(self, tmp_path):
        pid_file = tmp_path / "editor.pid"
        term = VirtualTerminal()
        editor = ExternalEditor(term, script_editor(f'echo $$ > "{pid_file}"; exec sleep 30'))
        task = asyncio.ensure_future(editor.edit("text"))

        loop = asyncio.get_running_loop()
        deadline = loop.time() + 5
        while not (pid_file.exists() and pid_file.read_text().strip()):
            assert loop.time() < deadline
            await asyncio.sleep(0.01)
        pid = int(pid_file.read_text())

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        assert task.cancelled()

        with pytest.raises(ProcessLookupError):
            os.kill(pid, 0)
        assert (term.suspend_count, term.resume_count) == (1, 1)
        assert not term.suspended
