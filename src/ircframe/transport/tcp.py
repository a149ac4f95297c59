"""TCP stream transport for the framing layer.

Any object with blocking ``read``/``write``/``close`` can serve as a
transport; :class:`TCPTransport` adapts a connected ``socket.socket`` to
that shape. Closing it shuts the socket down first so that threads blocked
in ``recv`` or ``send`` wake up with end-of-stream or an error.
"""

from __future__ import annotations

import logging
import socket
from typing import Protocol

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Duplex byte stream consumed by the framing layer."""

    def read(self, size: int) -> bytes:
        """Block until at least one byte is available; ``b""`` at EOF."""
        ...

    def write(self, data: bytes) -> int:
        """Block until all of ``data`` is written; return its length."""
        ...

    def close(self) -> None:
        """Release the stream and unblock in-flight reads and writes."""
        ...


class TCPTransport:
    """A connected TCP socket exposed as a :class:`Transport`.

    Usage::

        transport = dial_tcp("irc.libera.chat:6667")
        transport.write(b"PING :hello\\r\\n")
        data = transport.read(4096)
        transport.close()
    """

    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._closed = False
        try:
            self._peername = sock.getpeername()
        except OSError:
            self._peername = None

    @property
    def socket(self) -> socket.socket:
        return self._sock

    @property
    def peername(self):
        return self._peername

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def timeout(self) -> float | None:
        return self._sock.gettimeout()

    def set_timeout(self, seconds: float | None) -> None:
        """Set a deadline for blocking reads and writes.

        A read that hits the deadline raises ``TimeoutError``; ``None``
        restores fully blocking behaviour.
        """
        self._sock.settimeout(seconds)

    def read(self, size: int) -> bytes:
        return self._sock.recv(size)

    def write(self, data: bytes) -> int:
        self._sock.sendall(data)
        return len(data)

    def close(self) -> None:
        """Shut down and close the socket."""
        if self._closed:
            logger.debug("Transport to %s already closed", self._peername)
            return
        self._closed = True

        try:
            self._sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            # Peer already gone; nothing left to wake up
            logger.debug("Shutdown of %s failed: %s", self._peername, e)
        finally:
            self._sock.close()
            logger.info("Closed connection to %s", self._peername)


def split_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6addr]:port``) into its parts.

    Raises:
        ValueError: If the port is missing or not a valid port number.
    """
    host, sep, port = address.rpartition(":")
    if not sep or not host:
        raise ValueError(f"Address must be host:port, got {address!r}")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(
            f"IPv6 addresses must be bracketed, e.g. [::1]:6667, got {address!r}"
        )

    try:
        port_num = int(port)
    except ValueError:
        raise ValueError(f"Invalid port in address {address!r}") from None
    if not 0 < port_num <= 65535:
        raise ValueError(f"Port must be 1-65535, got {port_num}")

    return host, port_num


def dial_tcp(address: str) -> TCPTransport:
    """Open a TCP connection to ``address`` and wrap it as a transport.

    Raises:
        ValueError: If ``address`` is malformed.
        OSError: If the connection cannot be established. Not retried.
    """
    host, port = split_address(address)
    sock = socket.create_connection((host, port))
    logger.info("Connected to %s:%d", host, port)
    return TCPTransport(sock)
