"""Tests for chatterm.config and chatterm.log."""

from __future__ import annotations

import logging

import pytest

from chatterm.config import Config
from chatterm.log import SinkHandler, configure_logging, remove_handlers
from chatterm.streaming import DEFAULT_PHRASES


class TestFromEnv:
    def test_defaults(self):
        config = Config.from_env({})
        assert config == Config()
        assert config.completion_max_visible == 8
        assert config.history_limit == 100
        assert (config.overflow_head_lines, config.overflow_tail_lines) == (5, 5)
        assert config.phrases == DEFAULT_PHRASES

    def test_no_color(self):
        assert Config.from_env({"NO_COLOR": "1"}).no_color
        assert not Config.from_env({"NO_COLOR": ""}).no_color

    def test_editor_precedence(self):
        env = {"EDITOR": "vi", "VISUAL": "code -w"}
        assert Config.from_env(env).editor == "code -w"
        env["CHATTERM_EDITOR"] = "nano"
        assert Config.from_env(env).editor == "nano"
        assert Config.from_env({"EDITOR": "vi"}).editor == "vi"

    def test_prefixed_values(self):
        config = Config.from_env(
            {
                "CHATTERM_HISTORY_LIMIT": "10",
                "CHATTERM_PHRASE_INTERVAL": "2.5",
                "CHATTERM_PHRASES": "Musing | Brewing|",
                "CHATTERM_KEYBINDINGS": '{"submit": "ctrl+enter"}',
            }
        )
        assert config.history_limit == 10
        assert config.phrase_interval == 2.5
        assert config.phrases == ("Musing", "Brewing")
        assert config.keybindings == {"submit": "ctrl+enter"}

    @pytest.mark.parametrize(
        ("name", "raw"),
        [
            ("CHATTERM_HISTORY_LIMIT", "lots"),
            ("CHATTERM_HISTORY_LIMIT", "-1"),
            ("CHATTERM_SPINNER_INTERVAL", "0"),
            ("CHATTERM_PHRASES", " | "),
            ("CHATTERM_KEYBINDINGS", "[1, 2]"),
        ],
    )
    def test_malformed_values_fall_back_to_defaults(self, name, raw):
        assert Config.from_env({name: raw}) == Config()


class TestOverrides:
    def test_none_values_are_ignored(self):
        config = Config(editor="vi").with_overrides(editor=None, no_color=True)
        assert config.editor == "vi"
        assert config.no_color

    def test_returns_new_instance(self):
        base = Config()
        assert base.with_overrides(history_limit=3) is not base
        assert base.history_limit == 100


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


class ListSink:
    def __init__(self) -> None:
        self.lines: list[tuple[int, str]] = []

    def append(self, level: int, line: str) -> None:
        self.lines.append((level, line))


@pytest.fixture
def chatterm_logger():
    logger = logging.getLogger("chatterm")
    level, propagate = logger.level, logger.propagate
    yield logger
    logger.setLevel(level)
    logger.propagate = propagate


class TestLogging:
    def test_sink_receives_records(self, chatterm_logger):
        sink = ListSink()
        handlers = configure_logging(level=logging.DEBUG, sink=sink)
        try:
            logging.getLogger("chatterm.app").warning("first\nsecond")
        finally:
            remove_handlers(handlers)
        assert [level for level, _ in sink.lines] == [logging.WARNING, logging.WARNING]
        assert sink.lines[0][1].endswith("chatterm.app: first")
        assert sink.lines[1][1] == "second"

    def test_level_filters(self, chatterm_logger):
        sink = ListSink()
        handlers = configure_logging(level=logging.INFO, sink=sink)
        try:
            logging.getLogger("chatterm.tui").debug("hidden")
        finally:
            remove_handlers(handlers)
        assert sink.lines == []

    def test_log_file(self, chatterm_logger, tmp_path):
        path = tmp_path / "chatterm.log"
        handlers = configure_logging(log_file=str(path))
        try:
            logging.getLogger("chatterm.cli").info("started")
        finally:
            remove_handlers(handlers)
        assert "chatterm.cli: started" in path.read_text()

    def test_remove_handlers_detaches(self, chatterm_logger):
        sink = ListSink()
        handlers = configure_logging(sink=sink)
        remove_handlers(handlers)
        logging.getLogger("chatterm").info("after")
        assert sink.lines == []
        assert not any(isinstance(h, SinkHandler) for h in chatterm_logger.handlers)
