"""MCP server entry point for raw IRC connections.

Exposes a framed IRC connection as tools and resources via the Model
Context Protocol using the official Python MCP SDK with stdio transport.
The tools only move protocol lines; answering PINGs, registering a nick
and every other session concern is left to the caller.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from mcp.server.fastmcp import FastMCP

from .connection import Connection
from .errors import ConnectionClosedError, IncompleteFrameError
from .protocol.message import Message

logger = logging.getLogger(__name__)

DEFAULT_RECEIVE_TIMEOUT = 5.0
MAX_RECEIVE_COUNT = 100

mcp = FastMCP(
    "ircframe",
    instructions="MCP server for sending and receiving raw IRC protocol lines",
)

# Global connection state
_connection: Connection | None = None
_address: str = ""


def _get_connection() -> Connection:
    """Get the active connection, raising if not connected."""
    if _connection is None or _connection.closed:
        raise RuntimeError(
            "Not connected to a server. Use the 'connect' tool first."
        )
    return _connection


def _drop_connection() -> None:
    """Forget the current connection, closing it if still open."""
    global _connection
    if _connection is not None and not _connection.closed:
        try:
            _connection.close()
        except OSError as e:
            logger.warning("Error closing connection: %s", e)
    _connection = None


def _message_to_dict(message: Message) -> dict[str, Any]:
    result: dict[str, Any] = {
        "command": message.command,
        "params": list(message.params),
        "trailing": message.trailing,
        "line": str(message),
    }
    if message.prefix is not None:
        result["prefix"] = {
            "name": message.prefix.name,
            "user": message.prefix.user,
            "host": message.prefix.host,
        }
    return result


def _has_line_break(text: str) -> bool:
    return any(c in text for c in "\r\n\0")


def _status() -> dict[str, Any]:
    if _connection is None or _connection.closed:
        return {"connected": False}
    return {"connected": True, "address": _address}


# ─── CONNECTION TOOLS ─────────────────────────────────────────────────

@mcp.tool()
def connect(address: str) -> dict[str, Any]:
    """Open a TCP connection to an IRC server.

    Args:
        address: Server address as host:port, e.g. "irc.libera.chat:6667".
    """
    global _connection, _address
    if _connection is not None and not _connection.closed:
        return {
            "connected": True,
            "message": "Already connected",
            "address": _address,
        }

    try:
        _connection = Connection.dial(address)
    except ValueError as e:
        return {"error": str(e)}
    except OSError as e:
        return {"error": f"Could not connect to {address}: {e}"}

    _address = address
    return {"connected": True, "address": address}


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the connection to the server."""
    _drop_connection()
    return {"disconnected": True}


@mcp.tool()
def connection_status() -> dict[str, Any]:
    """Report whether a connection is open and where it points."""
    return _status()


# ─── MESSAGE TOOLS ────────────────────────────────────────────────────

@mcp.tool()
def send_message(
    command: str,
    params: list[str] | None = None,
    trailing: str | None = None,
) -> dict[str, Any]:
    """Send a single IRC message.

    Args:
        command: Command word or numeric, e.g. "PRIVMSG" or "PONG".
        params: Middle parameters, none of which may contain spaces.
        trailing: Optional final parameter; may contain spaces.
    """
    if not command or " " in command:
        return {"error": "Command must be a single non-empty word"}
    params = params or []
    if any(not p or " " in p or p.startswith(":") for p in params):
        return {"error": "Params must be non-empty and contain no spaces"}
    if any(_has_line_break(f) for f in [command, trailing or "", *params]):
        return {"error": "Message fields must not contain CR, LF or NUL"}

    message = Message(
        command=command.upper(),
        params=params,
        trailing=trailing or "",
        empty_trailing=trailing == "",
    )
    conn = _get_connection()
    conn.encode(message)
    return {"sent": True, "line": str(message)}


@mcp.tool()
def send_raw(line: str) -> dict[str, Any]:
    """Send one preformatted protocol line.

    A CRLF terminator is appended if missing. The line must not contain
    embedded line breaks.

    Args:
        line: Raw protocol line, e.g. "PRIVMSG #chan :hello".
    """
    body = line.rstrip("\r\n")
    if not body:
        return {"error": "Line must not be empty"}
    if _has_line_break(body):
        return {"error": "Line must not contain embedded line breaks or NUL"}

    conn = _get_connection()
    written = conn.write(body.encode("utf-8") + b"\r\n")
    return {"sent": True, "bytes": written}


@mcp.tool()
def receive(count: int = 1, timeout: float = DEFAULT_RECEIVE_TIMEOUT) -> dict[str, Any]:
    """Read up to ``count`` messages from the server.

    Stops early when no line arrives within ``timeout`` seconds.

    Args:
        count: Maximum number of messages to return (1-100).
        timeout: Seconds to wait for each line.
    """
    if not 1 <= count <= MAX_RECEIVE_COUNT:
        return {"error": f"Count must be 1-{MAX_RECEIVE_COUNT}"}
    if timeout <= 0:
        return {"error": "Timeout must be positive"}

    conn = _get_connection()
    transport = conn.transport
    set_timeout = getattr(transport, "set_timeout", None)
    previous = getattr(transport, "timeout", None)
    if set_timeout is not None:
        set_timeout(timeout)

    try:
        return _receive_messages(conn, count)
    finally:
        if set_timeout is not None and not conn.closed:
            set_timeout(previous)


def _receive_messages(conn: Connection, count: int) -> dict[str, Any]:
    messages = []
    result: dict[str, Any] = {"messages": messages}
    while len(messages) < count:
        try:
            message = conn.decode()
        except TimeoutError:
            result["timed_out"] = True
            break
        except IncompleteFrameError as e:
            logger.info("Server closed the connection mid-line: %r", e.partial)
            result["closed"] = True
            _drop_connection()
            break
        except (EOFError, ConnectionClosedError):
            result["closed"] = True
            _drop_connection()
            break
        if not message.command:
            continue
        messages.append(_message_to_dict(message))

    return result


# ─── MCP RESOURCES ────────────────────────────────────────────────────

@mcp.resource("irc://connection/status")
def resource_status() -> str:
    """Current connection state."""
    return json.dumps(_status())


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
