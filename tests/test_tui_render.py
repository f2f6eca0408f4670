"""Tests for chatterm.tui: coalesced, differential rendering."""

from __future__ import annotations

import asyncio

import pytest

from chatterm.tui import CURSOR_MARKER, TUI, Container, extract_cursor_position
from virtual_terminal import VirtualTerminal


class Lines:
    """Component that renders whatever is in ``lines``."""

    def __init__(self, *lines: str) -> None:
        self.lines = list(lines)
        self.render_calls = 0

    def render(self, width: int) -> list[str]:
        self.render_calls += 1
        return list(self.lines)

    def invalidate(self) -> None:
        pass


def make_tui(*lines: str, rows: int = 24, columns: int = 80) -> tuple[TUI, VirtualTerminal, Lines]:
    term = VirtualTerminal(rows=rows, columns=columns)
    tui = TUI(term)
    component = Lines(*lines)
    tui.add_child(component)
    return tui, term, component


class TestContainer:
    def test_children_render_in_order(self):
        container = Container()
        container.add_child(Lines("a"))
        container.add_child(Lines("b", "c"))
        assert container.render(80) == ["a", "b", "c"]

    def test_remove_missing_child_is_noop(self):
        container = Container()
        container.remove_child(Lines())
        assert container.children == []


class TestExtractCursorPosition:
    def test_marker_removed_and_located(self):
        lines, row, col = extract_cursor_position(["top", f"ab{CURSOR_MARKER}c"])
        assert lines == ["top", "abc"]
        assert (row, col) == (1, 2)

    def test_marker_after_ansi_counts_visible_columns(self):
        _, _, col = extract_cursor_position([f"\x1b[31mab\x1b[0m{CURSOR_MARKER}"])
        assert col == 2

    def test_no_marker_defaults_to_last_line(self):
        assert extract_cursor_position(["a", "b"]) == (["a", "b"], 1, 0)


class TestScheduling:
    @pytest.mark.asyncio
    async def test_requests_in_one_tick_coalesce(self):
        tui, _, component = make_tui("hello")
        tui.start()
        for _ in range(5):
            tui.request_render()
        await asyncio.sleep(0)
        assert tui.render_count == 1
        assert component.render_calls == 1

    @pytest.mark.asyncio
    async def test_later_request_renders_again(self):
        tui, _, _ = make_tui("hello")
        tui.start()
        await asyncio.sleep(0)
        tui.request_render()
        await asyncio.sleep(0)
        assert tui.render_count == 2

    def test_without_loop_renders_immediately(self):
        tui, term, _ = make_tui("hello")
        tui.start()
        assert tui.render_count == 1
        assert "hello" in term.output

    def test_stopped_tui_ignores_requests(self):
        tui, term, _ = make_tui("hello")
        tui.start()
        tui.stop()
        tui.request_render()
        assert tui.render_count == 1
        assert term.cursor_visible

    @pytest.mark.asyncio
    async def test_paused_tui_writes_nothing_until_resumed(self):
        tui, term, component = make_tui("hello")
        tui.start()
        await asyncio.sleep(0)
        tui.request_render()
        tui.pause()
        term.clear_buffer()
        component.lines = ["changed"]
        tui.request_render()
        tui.clear_screen()
        await asyncio.sleep(0)
        assert term.output == ""
        assert tui.render_count == 1

        tui.resume()
        await asyncio.sleep(0)
        assert tui.render_count == 2
        assert tui.full_redraws == 2
        assert "changed" in term.output


class TestDiffRendering:
    def test_unchanged_frame_rewrites_nothing(self):
        tui, term, _ = make_tui("one", "two")
        tui.start()
        term.clear_buffer()
        tui.do_render()
        assert "one" not in term.output
        assert "two" not in term.output

    def test_only_changed_lines_are_written(self):
        tui, term, component = make_tui("one", "two")
        tui.start()
        component.lines = ["one", "TWO"]
        term.clear_buffer()
        tui.do_render()
        assert "TWO\x1b[K" in term.output
        assert "one" not in term.output
        assert tui.full_redraws == 1

    def test_shrinking_frame_clears_old_rows(self):
        tui, term, component = make_tui("a", "b", "c")
        tui.start()
        component.lines = ["a"]
        term.clear_buffer()
        tui.do_render()
        assert term.output.count("\x1b[K") == 2
        assert tui.previous_lines == ["a"]

    def test_width_change_forces_full_redraw(self):
        tui, term, _ = make_tui("one")
        tui.start()
        term.simulate_resize(columns=40)
        tui.do_render()
        assert tui.full_redraws == 2

    def test_force_full_redraw(self):
        tui, _, _ = make_tui("one")
        tui.start()
        tui.force_full_redraw()
        assert tui.full_redraws == 2

    def test_cursor_marker_positions_cursor(self):
        tui, term, _ = make_tui("status", f"> ab{CURSOR_MARKER}")
        tui.start()
        assert CURSOR_MARKER not in term.output
        assert term.output.endswith("\r\x1b[4C")
        assert tui.previous_lines == ["status", "> ab"]


class TestStaticZone:
    def test_static_lines_are_written_once_above_live_region(self):
        tui, term, _ = make_tui("> ")
        pending = [["user:", "hello"]]
        tui.static_source = lambda width: pending.pop() if pending else []
        tui.start()
        out = term.output
        assert out.index("hello") < out.index("> ")
        term.clear_buffer()
        tui.do_render()
        assert "hello" not in term.output
        assert tui.previous_lines == ["> "]

    def test_new_static_lines_trigger_full_redraw(self):
        tui, _, _ = make_tui("> ")
        pending = [["later"], ["first"]]
        tui.static_source = lambda width: pending.pop() if pending else []
        tui.start()
        tui.do_render()
        assert tui.full_redraws == 2
        tui.do_render()
        assert tui.full_redraws == 2


class TestClamp:
    def test_tall_live_region_keeps_bottom_rows(self):
        tui, _, _ = make_tui(*[f"row {i}" for i in range(30)], rows=10)
        tui.start()
        assert tui.previous_lines == [f"row {i}" for i in range(20, 30)]

    def test_clear_screen_repaints_from_top(self):
        tui, term, _ = make_tui("> ")
        tui.start()
        term.clear_buffer()
        tui.clear_screen()
        assert term.output.startswith("\x1b[2J\x1b[H")
        assert "> " in term.output
