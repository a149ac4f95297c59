"""Tests for Connection lifecycle, dialing and close semantics."""

import socket
import threading

import pytest

import ircframe
from ircframe.connection import Connection, dial, wrap
from ircframe.errors import ConnectionClosedError
from ircframe.protocol.message import Message
from ircframe.transport.tcp import TCPTransport


def _make_pair() -> tuple[Connection, socket.socket]:
    """Return a connection over one end of a socket pair, and the peer end."""
    a, b = socket.socketpair()
    return Connection(TCPTransport(a)), b


def _run_in_thread(fn) -> tuple[threading.Thread, dict]:
    """Start ``fn`` in a thread, capturing its result or exception."""
    outcome: dict = {}

    def target():
        try:
            outcome["result"] = fn()
        except Exception as e:
            outcome["error"] = e

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    return thread, outcome


def _listener() -> socket.socket:
    srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    srv.bind(("127.0.0.1", 0))
    srv.listen(1)
    return srv


class _RecordingTransport:
    def __init__(self) -> None:
        self.close_calls = 0

    def read(self, size: int) -> bytes:
        return b""

    def write(self, data: bytes) -> int:
        return len(data)

    def close(self) -> None:
        self.close_calls += 1


def test_wrap_shares_one_transport():
    transport = _RecordingTransport()
    conn = Connection.wrap(transport)
    assert conn.transport is transport
    assert conn.decoder._reader is transport
    assert conn.encoder._writer is transport
    assert not conn.closed


def test_module_level_wrap():
    transport = _RecordingTransport()
    conn = wrap(transport)
    assert isinstance(conn, Connection)
    assert conn.transport is transport


def test_package_exports():
    assert ircframe.Connection is Connection
    assert ircframe.dial is dial


def test_decode_and_encode_through_connection():
    conn, peer = _make_pair()
    try:
        peer.sendall(b"PING :server\r\n")
        msg = conn.decode()
        assert msg.command == "PING"
        assert msg.trailing == "server"

        conn.encode(Message(command="PONG", trailing=msg.trailing))
        assert peer.recv(1024) == b"PONG :server\r\n"
    finally:
        conn.close()
        peer.close()


def test_sequential_lines_then_blocks():
    """Lines are decoded in order; an empty open stream blocks."""
    conn, peer = _make_pair()
    try:
        peer.sendall(b"NICK a\r\nNICK b\r\nNICK c\r\n")
        assert [conn.decode().params[0] for _ in range(3)] == ["a", "b", "c"]

        thread, outcome = _run_in_thread(conn.decode)
        thread.join(timeout=0.3)
        assert thread.is_alive()
        assert outcome == {}
    finally:
        conn.close()
        peer.close()
    thread.join(timeout=2)
    assert not thread.is_alive()


def test_close_unblocks_pending_decode():
    """Closing while a decode is blocked makes it fail promptly."""
    conn, peer = _make_pair()
    thread, outcome = _run_in_thread(conn.decode)
    thread.join(timeout=0.2)
    assert thread.is_alive()

    conn.close()
    thread.join(timeout=2)
    assert not thread.is_alive()
    assert isinstance(outcome["error"], ConnectionClosedError)
    peer.close()


def test_close_unblocks_decode_mid_frame():
    conn, peer = _make_pair()
    peer.sendall(b"PRIVMSG #c :half a li")
    thread, outcome = _run_in_thread(conn.decode)
    thread.join(timeout=0.2)

    conn.close()
    thread.join(timeout=2)
    assert isinstance(outcome["error"], ConnectionClosedError)
    peer.close()


def test_decode_waiting_on_lock_fails_after_close():
    """A decode queued on the lock gets no buffered frame once closed."""
    conn, peer = _make_pair()
    peer.sendall(b"NICK a\r\nNICK b\r\n")
    assert conn.decode().params == ["a"]

    with conn.decoder._lock:
        thread, outcome = _run_in_thread(conn.decode)
        thread.join(timeout=0.1)
        assert thread.is_alive()
        conn.close()

    thread.join(timeout=2)
    assert not thread.is_alive()
    assert isinstance(outcome["error"], ConnectionClosedError)
    peer.close()


def test_close_unblocks_write_blocked_in_transport():
    """A write stuck on a full socket buffer fails promptly on close."""
    conn, peer = _make_pair()
    payload = b"x" * (8 * 1024 * 1024)
    thread, outcome = _run_in_thread(lambda: conn.write(payload))
    thread.join(timeout=0.3)
    assert thread.is_alive()

    conn.close()
    thread.join(timeout=2)
    assert not thread.is_alive()
    assert isinstance(outcome["error"], ConnectionClosedError)
    peer.close()


def test_calls_after_close_fail():
    conn, peer = _make_pair()
    conn.close()
    with pytest.raises(ConnectionClosedError):
        conn.decode()
    with pytest.raises(ConnectionClosedError):
        conn.encode(Message(command="QUIT"))
    with pytest.raises(ConnectionClosedError):
        conn.write(b"QUIT\r\n")
    peer.close()


def test_closed_error_is_a_connection_error():
    """Callers catching OSError/ConnectionError also see closed errors."""
    assert issubclass(ConnectionClosedError, ConnectionError)
    assert issubclass(ConnectionClosedError, OSError)


def test_write_waiting_on_lock_fails_after_close():
    """A writer queued behind an in-flight write fails once closed."""
    started = threading.Event()
    release = threading.Event()

    class _SlowTransport(_RecordingTransport):
        def write(self, data: bytes) -> int:
            started.set()
            release.wait(timeout=5)
            return len(data)

    transport = _SlowTransport()
    conn = Connection(transport)

    first, first_outcome = _run_in_thread(lambda: conn.write(b"A\r\n"))
    started.wait(timeout=2)
    second, second_outcome = _run_in_thread(lambda: conn.write(b"B\r\n"))
    second.join(timeout=0.1)

    conn.close()
    release.set()
    first.join(timeout=2)
    second.join(timeout=2)

    assert first_outcome["result"] == 3
    assert isinstance(second_outcome["error"], ConnectionClosedError)


def test_reads_do_not_block_writes():
    """A decode blocked on input leaves the write path free."""
    conn, peer = _make_pair()
    try:
        thread, _ = _run_in_thread(conn.decode)
        thread.join(timeout=0.1)
        assert thread.is_alive()

        assert conn.write(b"PING :still here\r\n") == 18
        assert peer.recv(1024) == b"PING :still here\r\n"
    finally:
        conn.close()
        peer.close()


def test_close_closes_transport_once():
    transport = _RecordingTransport()
    conn = Connection(transport)
    conn.close()
    assert conn.closed
    with pytest.raises(ConnectionClosedError):
        conn.close()
    assert transport.close_calls == 1


def test_concurrent_close_closes_transport_once():
    transport = _RecordingTransport()
    conn = Connection(transport)
    barrier = threading.Barrier(8)
    errors = []

    def closer():
        barrier.wait()
        try:
            conn.close()
        except ConnectionClosedError as e:
            errors.append(e)

    threads = [threading.Thread(target=closer) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    assert transport.close_calls == 1
    assert len(errors) == 7


def test_context_manager_closes():
    transport = _RecordingTransport()
    with Connection(transport) as conn:
        assert not conn.closed
    assert conn.closed
    assert transport.close_calls == 1


def test_context_manager_after_explicit_close():
    transport = _RecordingTransport()
    with Connection(transport) as conn:
        conn.close()
    assert transport.close_calls == 1


def test_dial_connects_and_wraps():
    srv = _listener()
    port = srv.getsockname()[1]
    try:
        conn = Connection.dial(f"127.0.0.1:{port}")
        peer, _ = srv.accept()
        try:
            peer.sendall(b":irc.example.net NOTICE * :hello\r\n")
            msg = conn.decode()
            assert msg.command == "NOTICE"
            assert msg.prefix.name == "irc.example.net"
        finally:
            conn.close()
            peer.close()
    finally:
        srv.close()


def test_module_level_dial():
    srv = _listener()
    port = srv.getsockname()[1]
    try:
        conn = dial(f"127.0.0.1:{port}")
        peer, _ = srv.accept()
        conn.close()
        assert peer.recv(1) == b""
        peer.close()
    finally:
        srv.close()


def test_dial_refused():
    """Dial failures surface the underlying network error."""
    srv = _listener()
    port = srv.getsockname()[1]
    srv.close()
    with pytest.raises(OSError):
        Connection.dial(f"127.0.0.1:{port}")


def test_dial_bad_address():
    with pytest.raises(ValueError):
        Connection.dial("no-port-here")


def test_repr_shows_state():
    conn = Connection(_RecordingTransport())
    assert "open" in repr(conn)
    conn.close()
    assert "closed" in repr(conn)
