"""IRC message codec: parse one raw line into a Message and back.

Line layout::

    [':' prefix SPACE] command [SPACE param]* [SPACE ':' trailing] CRLF

- Prefix: ``name``, ``name!user``, ``name@host`` or ``name!user@host``
- Command: a word or a three-digit numeric, normalized to upper case
- Params: space-separated middle parameters
- Trailing: the last parameter, introduced by ``' :'``, may contain spaces
- A serialized line is at most 512 bytes including the CRLF
"""

from __future__ import annotations

from dataclasses import dataclass, field

PREFIX = ":"
PREFIX_USER = "!"
PREFIX_HOST = "@"
SPACE = " "
CRLF = b"\r\n"
MAX_LENGTH = 510  # 512 - 2 for the line ending


@dataclass
class Prefix:
    """Origin of a message: a server name or a ``nick!user@host`` mask."""

    name: str
    user: str = ""
    host: str = ""

    def is_hostmask(self) -> bool:
        return bool(self.user) and bool(self.host)

    def is_server(self) -> bool:
        return not self.user and not self.host

    def __str__(self) -> str:
        out = self.name
        if self.user:
            out += PREFIX_USER + self.user
        if self.host:
            out += PREFIX_HOST + self.host
        return out

    def to_bytes(self) -> bytes:
        return str(self).encode("utf-8")


@dataclass
class Message:
    """A single parsed IRC protocol line."""

    command: str
    params: list[str] = field(default_factory=list)
    trailing: str = ""
    # Set when the line carried " :" with nothing after it
    empty_trailing: bool = False
    prefix: Prefix | None = None

    def __str__(self) -> str:
        parts = []
        if self.prefix is not None:
            parts.append(PREFIX + str(self.prefix))
        parts.append(self.command)
        parts.extend(self.params)
        out = SPACE.join(parts)
        if self.trailing or self.empty_trailing:
            out += SPACE + PREFIX + self.trailing
        return out

    def __len__(self) -> int:
        return len(str(self).encode("utf-8"))

    def to_bytes(self) -> bytes:
        """Serialize to wire bytes, truncated to 510 bytes plus CRLF.

        Truncation backs up to a character boundary so the line stays
        valid UTF-8.
        """
        data = str(self).encode("utf-8")
        if len(data) > MAX_LENGTH:
            data = data[:MAX_LENGTH].decode("utf-8", errors="ignore").encode("utf-8")
        return data + CRLF

    __bytes__ = to_bytes


def parse_prefix(raw: str) -> Prefix:
    """Split a ``name!user@host`` style prefix into its parts."""
    user_at = raw.find(PREFIX_USER)
    host_at = raw.find(PREFIX_HOST)

    if user_at > 0 and host_at > user_at:
        return Prefix(
            name=raw[:user_at],
            user=raw[user_at + 1 : host_at],
            host=raw[host_at + 1 :],
        )
    if user_at > 0:
        return Prefix(name=raw[:user_at], user=raw[user_at + 1 :])
    if host_at > 0:
        return Prefix(name=raw[:host_at], host=raw[host_at + 1 :])
    return Prefix(name=raw)


def parse_message(raw: bytes | str) -> Message:
    """Parse one raw line (with or without its terminator) into a Message.

    Never raises: blank or malformed lines produce a Message whose
    ``command`` is empty, so callers can skip them.
    """
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    line = raw.strip("\r\n")

    if len(line) < 2:
        return Message(command=line.upper())

    prefix = None
    pos = 0
    if line[0] == PREFIX:
        end = line.find(SPACE)
        if end < 2:
            # Prefix with no command after it
            return Message(command="", prefix=parse_prefix(line[1:]))
        prefix = parse_prefix(line[1:end])
        pos = end + 1

    end = line.find(SPACE, pos)
    if end < 0:
        return Message(command=line[pos:].upper(), prefix=prefix)

    command = line[pos:end].upper()
    rest = line[end + 1 :]

    if rest.startswith(PREFIX):
        middle, trailing = "", rest[1:]
        has_trailing = True
    else:
        cut = rest.find(SPACE + PREFIX)
        has_trailing = cut >= 0
        if has_trailing:
            middle, trailing = rest[:cut], rest[cut + 2 :]
        else:
            middle, trailing = rest, ""

    return Message(
        command=command,
        params=middle.split(),
        trailing=trailing,
        empty_trailing=has_trailing and not trailing,
        prefix=prefix,
    )


def serialize_message(message: Message) -> bytes:
    """Serialize a Message to its CRLF-terminated wire form."""
    return message.to_bytes()
