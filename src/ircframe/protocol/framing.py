"""Frame decoder and encoder for newline-delimited protocol streams.

Wire layout::

    +---------------------------+-------+---------------------------+-------+
    | frame 1 bytes             |  LF   | frame 2 bytes             |  LF   | ...
    +---------------------------+-------+---------------------------+-------+

- A frame is every byte up to and including the delimiter (``\\n``)
- The decoder hands each complete frame to a line parser
- The encoder writes each serialized message with exactly one write call

Both sides serialize their own direction with an independent lock, so a
reader blocked waiting for input never holds up a writer and vice versa.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable

from ..errors import ConnectionClosedError, IncompleteFrameError
from .message import Message, parse_message, serialize_message

logger = logging.getLogger(__name__)

DELIM = b"\n"
READ_SIZE = 4096


class Decoder:
    """Reads delimiter-terminated frames from a stream and parses them.

    ``reader`` is anything with a blocking ``read(size) -> bytes`` that
    returns ``b""`` at end of stream. Concurrent callers each receive a
    distinct frame; which caller gets which frame is unspecified.
    """

    def __init__(
        self,
        reader: Any,
        parse: Callable[[bytes], Message] = parse_message,
    ) -> None:
        self._reader = reader
        self._parse = parse
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self.last_line = b""

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _mark_closed(self) -> None:
        self._closed.set()

    def read_frame(self) -> bytes:
        """Read one raw frame, delimiter included.

        Raises:
            ConnectionClosedError: If the owning connection has been closed.
            IncompleteFrameError: If the stream ended after a partial line.
            EOFError: If the stream ended on a frame boundary.
            OSError: Any transport error, unmodified.
        """
        if self.closed:
            raise ConnectionClosedError()

        with self._lock:
            # Callers queued on the lock when close ran must not get a frame
            if self.closed:
                raise ConnectionClosedError()
            while True:
                idx = self._buffer.find(DELIM)
                if idx >= 0:
                    line = bytes(self._buffer[: idx + 1])
                    del self._buffer[: idx + 1]
                    self.last_line = line
                    return line

                if self.closed:
                    raise ConnectionClosedError()

                try:
                    chunk = self._reader.read(READ_SIZE)
                except OSError as e:
                    if self.closed:
                        raise ConnectionClosedError() from e
                    raise

                if not chunk:
                    raise self._eof_error()
                self._buffer += chunk

    def _eof_error(self) -> EOFError | ConnectionClosedError:
        """Build the end-of-stream error, handing back any partial line."""
        if self.closed:
            return ConnectionClosedError()
        partial = bytes(self._buffer)
        self._buffer.clear()
        if partial:
            logger.debug("Stream ended mid-line, %d bytes unframed", len(partial))
            return IncompleteFrameError(partial)
        return EOFError("end of stream")

    def decode(self) -> Message:
        """Read one frame and parse it into a Message."""
        line = self.read_frame()
        return self._parse(line)


class Encoder:
    """Serializes messages and writes them without interleaving.

    ``write`` may be called from many threads at once; each call's bytes
    reach the writer contiguously. Splitting one message across several
    ``write`` calls gives up that guarantee.
    """

    def __init__(
        self,
        writer: Any,
        serialize: Callable[[Message], bytes] = serialize_message,
    ) -> None:
        self._writer = writer
        self._serialize = serialize
        self._lock = threading.Lock()
        self._closed = threading.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def _mark_closed(self) -> None:
        self._closed.set()

    def encode(self, message: Message) -> None:
        """Serialize ``message`` and write it with a single call."""
        self.write(self._serialize(message))

    def write(self, data: bytes) -> int:
        """Write ``data`` to the underlying stream as one unit.

        Returns:
            Number of bytes written; ``0`` for an empty payload.

        Raises:
            ConnectionClosedError: If the owning connection has been closed.
            OSError: Any transport error, unmodified.
        """
        if self.closed:
            raise ConnectionClosedError()
        if not data:
            return 0

        with self._lock:
            if self.closed:
                raise ConnectionClosedError()
            try:
                n = self._writer.write(data)
            except OSError as e:
                if self.closed:
                    raise ConnectionClosedError() from e
                raise

        logger.debug("Wrote %d bytes", n)
        return n
