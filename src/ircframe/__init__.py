"""Thread-safe line framing for IRC-style text protocols."""

from .connection import Connection, dial, wrap
from .errors import ConnectionClosedError, IncompleteFrameError, IRCFrameError
from .protocol.framing import Decoder, Encoder
from .protocol.message import Message, Prefix, parse_message, serialize_message

__version__ = "0.1.0"
