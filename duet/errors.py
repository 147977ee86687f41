"""Exception hierarchy for the duet chat client.

Structural failures (bad config, bad status, no usable content) abort an
exchange and reach the caller. FrameDecodeError is the one kind that never
leaves the streaming layer.
"""

from __future__ import annotations


class DuetError(Exception):
    """Base exception for all application-specific errors."""


class ConfigIncomplete(DuetError):
    """Raised when the settings lack a field the selected provider needs."""

    def __init__(self, missing: list[str]) -> None:
        self.missing = list(missing)
        super().__init__(
            "Settings incomplete, missing: " + ", ".join(self.missing)
        )


class SessionBusy(DuetError):
    """Raised when a new exchange is started while another is in flight."""

    def __init__(self, message: str = "A reply is still streaming") -> None:
        super().__init__(message)


class TransportError(DuetError):
    """Raised on a non-success status or a connection-level failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


class StreamTerminationDecodeError(TransportError):
    """The buffered stream still could not be parsed when the stream ended."""


class EmptyResponse(DuetError):
    """Raised when a stream ends without yielding any usable text."""

    def __init__(self, message: str = "The model returned an empty response") -> None:
        super().__init__(message)


class FrameDecodeError(DuetError):
    """A single frame's payload was not well-formed. Swallowed by extractors."""
