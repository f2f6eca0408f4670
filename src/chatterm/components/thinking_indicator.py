"""Spinner line shown while a response is in flight."""

from __future__ import annotations

import asyncio
from typing import Callable

from chatterm.streaming import StreamingCoordinator, StreamingState
from chatterm.theme import Theme
from chatterm.utils import truncate_to_width

FRAMES = ("⠋", "⠙", "⠹", "⠸", "⠼", "⠴", "⠦", "⠧", "⠇", "⠏")


class ThinkingIndicator:
    """Spinner, current phrase, elapsed seconds and the cancel hint.

    Animates on its own timer between :meth:`start` and :meth:`stop`;
    renders nothing while the coordinator is idle.
    """

    def __init__(
        self,
        coordinator: StreamingCoordinator,
        theme: Theme,
        *,
        interval: float = 0.08,
        on_tick: Callable[[], None] | None = None,
    ) -> None:
        self._coordinator = coordinator
        self._theme = theme
        self._interval = interval
        self._frame = 0
        self._timer_handle: asyncio.TimerHandle | None = None
        self.on_tick = on_tick

    @property
    def running(self) -> bool:
        return self._timer_handle is not None

    def start(self) -> None:
        if self._timer_handle is None:
            self._schedule_next()

    def stop(self) -> None:
        if self._timer_handle is not None:
            self._timer_handle.cancel()
            self._timer_handle = None
        self._frame = 0

    def _schedule_next(self) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._timer_handle = loop.call_later(self._interval, self._tick)

    def _tick(self) -> None:
        self._frame = (self._frame + 1) % len(FRAMES)
        if self.on_tick:
            self.on_tick()
        self._schedule_next()

    def invalidate(self) -> None:
        pass

    def render(self, width: int) -> list[str]:
        state = self._coordinator.state
        if state is StreamingState.IDLE:
            return []
        seconds = int(self._coordinator.elapsed)
        if state is StreamingState.WAITING_FOR_CONFIRMATION:
            text = f"{FRAMES[self._frame]} Waiting for confirmation ({seconds}s)"
            return [self._theme.warning(truncate_to_width(text, width))]
        spinner = self._theme.accent(FRAMES[self._frame])
        body = f" {self._coordinator.phrase}... ({seconds}s · esc to cancel)"
        return [spinner + self._theme.muted(truncate_to_width(body, max(1, width - 1)))]
