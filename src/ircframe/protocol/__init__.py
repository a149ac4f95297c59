"""Protocol layer: IRC message codec and newline frame decoder/encoder."""

from .message import Message, Prefix, parse_message, parse_prefix, serialize_message
from .framing import DELIM, Decoder, Encoder
