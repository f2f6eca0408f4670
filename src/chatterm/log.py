"""Logging setup for a raw-mode terminal app.

Nothing may be written to stdout while the terminal is in raw mode, so log
records go to an optional file and to an in-app ``LogSink`` (the debug
console) through ``SinkHandler``.
"""

from __future__ import annotations

import logging
from typing import Protocol

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
SINK_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class LogSink(Protocol):
    def append(self, level: int, line: str) -> None: ...


class SinkHandler(logging.Handler):
    """Forwards formatted records to a ``LogSink``."""

    def __init__(self, sink: LogSink, level: int = logging.NOTSET) -> None:
        super().__init__(level)
        self._sink = sink
        self.setFormatter(logging.Formatter(SINK_FORMAT, datefmt="%H:%M:%S"))

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = self.format(record)
            for line in message.splitlines() or [""]:
                self._sink.append(record.levelno, line)
        except Exception:
            self.handleError(record)


def configure_logging(
    *,
    level: int = logging.INFO,
    log_file: str | None = None,
    sink: LogSink | None = None,
) -> list[logging.Handler]:
    """Attach file and sink handlers to the ``chatterm`` logger.

    Returns the installed handlers so callers can remove them on shutdown.
    """
    logger = logging.getLogger("chatterm")
    logger.setLevel(level)
    logger.propagate = False

    handlers: list[logging.Handler] = []
    if log_file:
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handlers.append(file_handler)
    if sink is not None:
        handlers.append(SinkHandler(sink))

    for handler in handlers:
        logger.addHandler(handler)
    return handlers


def remove_handlers(handlers: list[logging.Handler]) -> None:
    logger = logging.getLogger("chatterm")
    for handler in handlers:
        logger.removeHandler(handler)
        handler.close()
