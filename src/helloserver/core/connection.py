"""
=============================================================================
CONNECTION MANAGEMENT
=============================================================================

Wraps one accepted client socket with the operations the HTTP layer
needs: read a complete request, send a response, close cleanly, and be
interrupted from another thread during shutdown.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

recv() returns whatever the kernel has, which may be half a request line
or two pipelined requests at once. We buffer until the end-of-headers
marker (\r\n\r\n), then read exactly Content-Length more bytes. Anything
after that stays in the buffer for the next request on the connection.

=============================================================================
THREE TIMEOUTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   read_timeout    whole request, headers and body, must arrive      │
    │                   within this bound. For the first request the      │
    │                   clock starts at accept(), afterwards at the       │
    │                   first byte of each request.                       │
    │                                                                      │
    │   idle_timeout    a keep-alive connection may sit between           │
    │                   requests for this long before we hang up.         │
    │                                                                      │
    │   write_timeout   bound on sendall() for one response.              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A slow-loris client trickling one byte per second is therefore cut off
after read_timeout no matter how many recv() calls succeed.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► PROCESSING ──────► WRITING ────────┐
     │             │                                    │           │
     │             │                                    │           ▼
     │             │                                    │      KEEP_ALIVE
     │             ▼                                    │           │
     └──────────► CLOSING ◄─────────────────────────────┴───────────┘
                    │
                    ▼
                  CLOSED

NEW and KEEP_ALIVE mean "waiting for a request, nothing received yet".
Graceful shutdown closes such idle connections right away and waits for
the others.

=============================================================================
"""

import socket
import threading
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
import uuid


_default_logger = logging.getLogger(__name__)

# A brand-new connection that has not sent anything yet still counts as
# in flight for this long, so shutdown does not cut off a request that is
# on the wire.
NEW_CONNECTION_GRACE = 5.0


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"                # Just accepted, nothing read yet
    READING = "reading"        # Request bytes are arriving
    PROCESSING = "processing"  # Request parsed, handler is executing
    WRITING = "writing"        # Sending response data
    KEEP_ALIVE = "keep_alive"  # Response sent, waiting for next request
    CLOSING = "closing"        # About to close
    CLOSED = "closed"          # Socket released


@dataclass(eq=False)
class Connection:
    """
    Represents a client connection.

    eq=False keeps identity hashing, so connections can live in the
    server's set of active connections.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short unique identifier for log lines.
        state: Current connection state.
        requests_handled: Number of requests read on this connection.
    """

    socket: socket.socket
    address: tuple

    id: str = field(default_factory=lambda: str(uuid.uuid4())[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.monotonic)
    requests_handled: int = 0

    buffer_size: int = 8192
    read_timeout: float = 15.0
    write_timeout: float = 15.0
    idle_timeout: float = 60.0
    max_request_size: int = 1024 * 1024

    logger: logging.Logger = field(default=_default_logger, repr=False)

    _buffer: bytes = field(default=b"", repr=False)
    _aborted: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.monotonic() - self.created_at

    @property
    def is_idle(self) -> bool:
        """
        True if no request is in progress on this connection.

        KEEP_ALIVE connections are idle. NEW connections become idle only
        after NEW_CONNECTION_GRACE seconds without any data.
        """
        if self.state == ConnectionState.KEEP_ALIVE:
            return True
        if self.state == ConnectionState.NEW:
            return self.age >= NEW_CONNECTION_GRACE
        return False

    @property
    def is_closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read a complete HTTP request from the socket.

        Returns:
            Complete request bytes, or None if the client closed the
            connection, the connection was aborted, or it sat idle past
            its timeout before sending anything.

        Raises:
            TimeoutError: If a started request did not fully arrive
                          within read_timeout.
            ValueError: If the request exceeds max_request_size.
        """
        if self.requests_handled == 0:
            deadline = self.created_at + self.read_timeout
        else:
            deadline = None

        # ─────────────────────────────────────────────────────────────────
        # WAIT FOR THE FIRST BYTE
        # ─────────────────────────────────────────────────────────────────
        if not self._buffer:
            wait = self._remaining(deadline) if deadline else self.idle_timeout
            try:
                chunk = self._recv(wait)
            except socket.timeout:
                self.logger.debug(f"[{self.id}] Timed out waiting for a request")
                return None
            if not chunk:
                return None
            self._buffer += chunk

        # Leaving the idle state and checking for a shutdown abort happen
        # under one lock, so drain() never aborts a request in progress.
        with self._lock:
            if self._aborted:
                return None
            self.state = ConnectionState.READING

        if deadline is None:
            deadline = time.monotonic() + self.read_timeout

        try:
            # ─────────────────────────────────────────────────────────────
            # HEADERS: read until \r\n\r\n
            # ─────────────────────────────────────────────────────────────
            while b"\r\n\r\n" not in self._buffer:
                self._check_size()
                chunk = self._recv(self._remaining(deadline))
                if not chunk:
                    return None
                self._buffer += chunk

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._parse_content_length(self._buffer[:header_end])

            if body_start + content_length > self.max_request_size:
                raise ValueError(
                    f"Request too large: {body_start + content_length} bytes"
                )

            # ─────────────────────────────────────────────────────────────
            # BODY: exactly Content-Length bytes
            # ─────────────────────────────────────────────────────────────
            while len(self._buffer) - body_start < content_length:
                chunk = self._recv(self._remaining(deadline))
                if not chunk:
                    return None
                self._buffer += chunk

        except socket.timeout:
            raise TimeoutError("Request read timeout")

        request_end = body_start + content_length
        request_data = self._buffer[:request_end]
        self._buffer = self._buffer[request_end:]

        self.requests_handled += 1
        return request_data

    def _remaining(self, deadline: float) -> float:
        return deadline - time.monotonic()

    def _check_size(self):
        if len(self._buffer) > self.max_request_size:
            raise ValueError(f"Request too large: {len(self._buffer)} bytes")

    def _recv(self, timeout: float) -> bytes:
        """
        Receive data with a timeout.

        Returns empty bytes if the peer went away or the socket was
        aborted from another thread.

        Raises:
            socket.timeout: If nothing arrived in time.
        """
        if timeout <= 0:
            raise socket.timeout("timed out")

        try:
            self.socket.settimeout(timeout)
            data = self.socket.recv(self.buffer_size)
        except socket.timeout:
            raise
        except OSError:
            return b""

        return data

    def _parse_content_length(self, headers: bytes) -> int:
        """
        Pull Content-Length out of raw headers.

        Only used to know how many body bytes to read; the request parser
        validates the header properly afterwards.
        """
        try:
            header_str = headers.decode("utf-8", errors="replace").lower()
            for line in header_str.split("\r\n"):
                if line.startswith("content-length:"):
                    return max(0, int(line.split(":", 1)[1].strip()))
        except (ValueError, IndexError):
            pass
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send response bytes to the client within write_timeout.

        Returns:
            True if everything was sent, False if the connection is gone
            or the write timed out.
        """
        self.state = ConnectionState.WRITING

        try:
            self.socket.settimeout(self.write_timeout)
            self.socket.sendall(data)
        except OSError as e:
            if not self._aborted:
                self.logger.warning(f"[{self.id}] Send failed: {e}")
            return False

        return True

    def set_keep_alive(self):
        """Mark connection as waiting for its next request."""
        self.state = ConnectionState.KEEP_ALIVE

    # =========================================================================
    # CLOSING
    # =========================================================================

    def abort(self):
        """
        Interrupt the connection from another thread.

        shutdown(SHUT_RDWR) wakes a recv() blocked in the worker thread,
        which then sees EOF and closes the connection itself. The socket
        is not closed here because the worker still owns it.
        """
        with self._lock:
            self._shutdown_both()

    def abort_if_idle(self) -> bool:
        """
        Abort the connection only if no request is in progress.

        Returns:
            True if the connection was idle and has been aborted.
        """
        with self._lock:
            if not self.is_idle:
                return False
            self._shutdown_both()
            return True

    def _shutdown_both(self):
        self._aborted = True
        try:
            self.socket.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Already disconnected

    def close(self):
        """
        Close the connection gracefully.

        1. shutdown(SHUT_WR): send FIN, we are done writing
        2. drain briefly: so unread client data does not turn into a RST
           that destroys the response we just sent
        3. close(): release the file descriptor
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        if not self._aborted:
            try:
                self.socket.settimeout(0.5)
                while self.socket.recv(1024):
                    pass
            except OSError:
                pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        self.logger.debug(f"[{self.id}] Connection closed after {self.requests_handled} requests")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
