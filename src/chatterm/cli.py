"""CLI entry point for chatterm."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys

from chatterm.app import ChatApp
from chatterm.backend import EchoBackend, ShellBackend
from chatterm.components import DebugConsole
from chatterm.config import Config
from chatterm.log import configure_logging, remove_handlers
from chatterm.terminal import ProcessTerminal
from chatterm.theme import get_theme


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="chatterm",
        description="Interactive terminal chat with a demo echo backend",
    )
    parser.add_argument("--no-color", action="store_true", default=None, help="Disable colour output")
    parser.add_argument("--editor", help="External editor command (default: $VISUAL, $EDITOR, vi)")
    parser.add_argument("--log-file", help="Write log records to this file")
    parser.add_argument("--debug", action="store_true", help="Log at DEBUG level")
    parser.add_argument("--cwd", default=os.getcwd(), help="Working directory for @ completion and shell mode")
    return parser.parse_args(argv)


async def run_interactive(config: Config, args: argparse.Namespace) -> None:
    console = DebugConsole(get_theme(None, no_color=config.no_color))
    handlers = configure_logging(
        level=logging.DEBUG if args.debug else logging.INFO,
        log_file=args.log_file,
        sink=console,
    )
    try:
        app = ChatApp(
            ProcessTerminal(),
            EchoBackend(),
            config=config,
            shell_backend=ShellBackend(args.cwd),
            cwd=args.cwd,
            debug_console=console,
        )
        await app.run()
    finally:
        remove_handlers(handlers)


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    config = Config.from_env().with_overrides(no_color=args.no_color, editor=args.editor)

    if not sys.stdin.isatty():
        print("chatterm needs an interactive terminal.", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(run_interactive(config, args))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
