"""A framed protocol connection: one decoder and one encoder over one transport."""

from __future__ import annotations

import logging
import threading

from .errors import ConnectionClosedError
from .protocol.framing import Decoder, Encoder
from .protocol.message import Message
from .transport.tcp import Transport, dial_tcp

logger = logging.getLogger(__name__)


class Connection:
    """Owns a transport and the decoder/encoder pair that share it.

    Reads and writes are serialized independently by the decoder and
    encoder; the connection itself only guards the OPEN -> CLOSED
    transition, which happens exactly once.

    Usage::

        with Connection.dial("irc.libera.chat:6667") as conn:
            conn.encode(Message("NICK", ["guest"]))
            msg = conn.decode()
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._decoder = Decoder(transport)
        self._encoder = Encoder(transport)
        self._close_lock = threading.Lock()
        self._closed = False

    @classmethod
    def wrap(cls, transport: Transport) -> Connection:
        """Build a connection over an already-established transport."""
        return cls(transport)

    @classmethod
    def dial(cls, address: str) -> Connection:
        """Open a TCP connection to ``host:port`` and wrap it.

        Raises:
            ValueError: If ``address`` is malformed.
            OSError: If the connection cannot be established.
        """
        return cls(dial_tcp(address))

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def decoder(self) -> Decoder:
        return self._decoder

    @property
    def encoder(self) -> Encoder:
        return self._encoder

    @property
    def closed(self) -> bool:
        return self._closed

    def decode(self) -> Message:
        return self._decoder.decode()

    def read_frame(self) -> bytes:
        return self._decoder.read_frame()

    def encode(self, message: Message) -> None:
        self._encoder.encode(message)

    def write(self, data: bytes) -> int:
        return self._encoder.write(data)

    def close(self) -> None:
        """Close the transport, failing all pending and future I/O.

        Raises:
            ConnectionClosedError: If the connection was already closed.
        """
        with self._close_lock:
            if self._closed:
                raise ConnectionClosedError("connection already closed")
            self._closed = True

        self._decoder._mark_closed()
        self._encoder._mark_closed()
        self._transport.close()
        logger.debug("Connection closed")

    def __enter__(self) -> Connection:
        return self

    def __exit__(self, *exc_info) -> None:
        if not self._closed:
            self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Connection(transport={self._transport!r}, {state})"


def wrap(transport: Transport) -> Connection:
    """Build a connection over an already-established transport."""
    return Connection.wrap(transport)


def dial(address: str) -> Connection:
    """Open a TCP connection to ``host:port`` and wrap it."""
    return Connection.dial(address)
