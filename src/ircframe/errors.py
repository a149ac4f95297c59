"""Exception types raised by the framing layer."""

from __future__ import annotations


class IRCFrameError(Exception):
    """Base class for errors raised by ircframe itself."""


class ConnectionClosedError(IRCFrameError, ConnectionError):
    """The connection was closed; the operation cannot proceed."""

    def __init__(self, message: str = "use of closed connection") -> None:
        super().__init__(message)


class IncompleteFrameError(IRCFrameError, EOFError):
    """The stream ended before a delimiter terminated the current line.

    The undelimited bytes are kept on ``partial`` so callers can log or
    inspect them; they are never parsed into a message.
    """

    def __init__(self, partial: bytes) -> None:
        super().__init__(
            f"stream ended mid-line ({len(partial)} undelimited bytes)"
        )
        self.partial = partial
