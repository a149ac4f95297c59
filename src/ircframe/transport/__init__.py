"""Byte-stream transports usable beneath a Connection."""

from .tcp import TCPTransport, Transport, dial_tcp, split_address
