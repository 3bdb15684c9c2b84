"""
Unit tests for Connection reading, writing and idle tracking.

Uses socket.socketpair() so no network is involved.
"""

import socket
import threading
import time
from typing import Tuple

import pytest

from helloserver.core import Connection, ConnectionState
from helloserver.core import connection as connection_module


@pytest.fixture
def pair():
    server_sock, client_sock = socket.socketpair()
    yield server_sock, client_sock
    server_sock.close()
    client_sock.close()


def _connection(server_sock: socket.socket, **kwargs) -> Connection:
    return Connection(socket=server_sock, address=("127.0.0.1", 40000), **kwargs)


class TestReadRequest:

    def test_reads_headers_only_request(self, pair):
        server_sock, client_sock = pair
        conn = _connection(server_sock)
        raw = b"GET /John HTTP/1.1\r\nHost: x\r\n\r\n"

        client_sock.sendall(raw)

        assert conn.read_request() == raw
        assert conn.state == ConnectionState.READING
        assert conn.requests_handled == 1

    def test_reads_body_by_content_length(self, pair):
        server_sock, client_sock = pair
        conn = _connection(server_sock)
        raw = b"POST / HTTP/1.1\r\nContent-Length: 5\r\n\r\nhello"

        # Split across writes to exercise buffering.
        client_sock.sendall(raw[:10])
        threading.Timer(0.05, client_sock.sendall, args=(raw[10:],)).start()

        assert conn.read_request() == raw

    def test_pipelined_requests(self, pair):
        server_sock, client_sock = pair
        conn = _connection(server_sock)
        first = b"GET /a HTTP/1.1\r\n\r\n"
        second = b"GET /b HTTP/1.1\r\n\r\n"

        client_sock.sendall(first + second)

        assert conn.read_request() == first
        assert conn.read_request() == second

    def test_eof_returns_none(self, pair):
        server_sock, client_sock = pair
        conn = _connection(server_sock)

        client_sock.shutdown(socket.SHUT_WR)

        assert conn.read_request() is None

    def test_idle_first_request_returns_none(self, pair):
        server_sock, _ = pair
        conn = _connection(server_sock, read_timeout=0.1)

        assert conn.read_request() is None

    def test_partial_request_times_out(self, pair):
        server_sock, client_sock = pair
        conn = _connection(server_sock, read_timeout=0.2)

        client_sock.sendall(b"GET / HTTP/1.1\r\n")

        with pytest.raises(TimeoutError):
            conn.read_request()

    def test_keep_alive_waits_idle_timeout(self, pair):
        server_sock, client_sock = pair
        conn = _connection(server_sock, read_timeout=0.1, idle_timeout=0.3)

        client_sock.sendall(b"GET / HTTP/1.1\r\n\r\n")
        assert conn.read_request() is not None
        conn.set_keep_alive()

        start = time.monotonic()
        assert conn.read_request() is None
        assert time.monotonic() - start >= 0.25

    def test_oversized_request(self, pair):
        server_sock, client_sock = pair
        conn = _connection(server_sock, max_request_size=64)

        client_sock.sendall(b"POST / HTTP/1.1\r\nContent-Length: 1000\r\n\r\n")

        with pytest.raises(ValueError):
            conn.read_request()

    def test_abort_wakes_blocked_read(self, pair):
        server_sock, _ = pair
        conn = _connection(server_sock)
        threading.Timer(0.05, conn.abort).start()

        start = time.monotonic()
        assert conn.read_request() is None
        assert time.monotonic() - start < 2.0

    def test_abort_between_first_bytes_and_reading(self, pair, monkeypatch):
        server_sock, client_sock = pair
        conn = _connection(server_sock)
        conn.requests_handled = 1
        conn.set_keep_alive()
        aborted = []
        real_recv = conn._recv

        def recv_then_drain(timeout):
            data = real_recv(timeout)
            aborted.append(conn.abort_if_idle())
            return data

        monkeypatch.setattr(conn, "_recv", recv_then_drain)
        client_sock.sendall(b"GET / HTTP/1.1\r\n\r\n")

        assert conn.read_request() is None
        assert aborted == [True]
        assert conn.state == ConnectionState.KEEP_ALIVE


class TestAbortIfIdle:

    def test_keep_alive_aborted(self, pair):
        conn = _connection(pair[0])
        conn.set_keep_alive()

        assert conn.abort_if_idle() is True
        assert conn.read_request() is None

    @pytest.mark.parametrize("state", [
        ConnectionState.READING,
        ConnectionState.PROCESSING,
        ConnectionState.WRITING,
    ])
    def test_busy_connection_left_alone(self, pair, state):
        server_sock, client_sock = pair
        conn = _connection(server_sock)
        conn.state = state

        assert conn.abort_if_idle() is False
        assert conn.send_response(b"HTTP/1.1 200 OK\r\n\r\n") is True
        assert client_sock.recv(1024) == b"HTTP/1.1 200 OK\r\n\r\n"

    def test_request_in_progress_not_aborted(self, pair):
        server_sock, client_sock = pair
        conn = _connection(server_sock)
        conn.requests_handled = 1
        conn.set_keep_alive()

        client_sock.sendall(b"GET /John HTTP/1.1\r\n\r\n")
        assert conn.read_request() == b"GET /John HTTP/1.1\r\n\r\n"

        assert conn.state == ConnectionState.READING
        assert conn.abort_if_idle() is False
        assert conn.send_response(b"HTTP/1.1 200 OK\r\n\r\n") is True


class TestSendAndClose:

    def test_send_response(self, pair):
        server_sock, client_sock = pair
        conn = _connection(server_sock)

        assert conn.send_response(b"HTTP/1.1 200 OK\r\n\r\n") is True
        assert client_sock.recv(1024) == b"HTTP/1.1 200 OK\r\n\r\n"
        assert conn.state == ConnectionState.WRITING

    def test_send_after_abort_fails_quietly(self, pair):
        server_sock, _ = pair
        conn = _connection(server_sock)

        conn.abort()

        assert conn.send_response(b"data") is False

    def test_close(self, pair):
        server_sock, client_sock = pair
        conn = _connection(server_sock)

        conn.close()

        assert conn.is_closed
        assert client_sock.recv(1024) == b""

    def test_context_manager_closes(self, pair):
        server_sock, _ = pair

        with _connection(server_sock) as conn:
            pass

        assert conn.state == ConnectionState.CLOSED


class TestIdle:

    def test_keep_alive_is_idle(self, pair):
        conn = _connection(pair[0])
        conn.set_keep_alive()
        assert conn.is_idle is True

    @pytest.mark.parametrize("state", [
        ConnectionState.READING,
        ConnectionState.PROCESSING,
        ConnectionState.WRITING,
    ])
    def test_busy_states_are_not_idle(self, pair, state):
        conn = _connection(pair[0])
        conn.state = state
        assert conn.is_idle is False

    def test_new_connection_grace(self, pair, monkeypatch):
        conn = _connection(pair[0])
        assert conn.is_idle is False

        monkeypatch.setattr(connection_module, "NEW_CONNECTION_GRACE", 0.0)
        assert conn.is_idle is True

    def test_unique_ids(self, pair):
        assert _connection(pair[0]).id != _connection(pair[0]).id

    def test_address_parts(self, pair):
        conn = _connection(pair[0])
        assert (conn.client_ip, conn.client_port) == ("127.0.0.1", 40000)
