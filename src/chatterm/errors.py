"""Exception hierarchy shared by the chatterm runtime."""

from __future__ import annotations


class ChatTermError(Exception):
    """Base class for all chatterm errors."""


class InvalidTransitionError(ChatTermError, RuntimeError):
    """A streaming state transition that is not an edge of the state machine."""

    def __init__(self, state: object, event: str) -> None:
        super().__init__(f"Cannot apply {event!r} in state {state}")
        self.state = state
        self.event = event


class StreamingBusyError(InvalidTransitionError):
    """A submission arrived while a request is already in flight."""


class CompletionSourceError(ChatTermError):
    """A completion data source failed to produce candidates."""


class ExternalEditorError(ChatTermError):
    """The external editor could not be launched or exited with an error."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class BackendError(ChatTermError):
    """The backend response stream failed mid-request."""
