"""
=============================================================================
LOW-LEVEL TCP SOCKET SERVER
=============================================================================

Owns the listening socket, the background accept loop, and the set of
connections that are currently open. It is the "ears" of the server: it
accepts connections and hands each one to a callback, it never speaks
HTTP itself.

=============================================================================
SOCKET LIFECYCLE (Server Side)
=============================================================================

    1. getaddrinfo()  Resolve "host:port" (port may be "08080" or "http";
                      numeric ports above 65535 are a BindError)
    2. socket()       Create the listening socket
    3. bind()         Reserve IP:PORT            ─┐
    4. listen()       Start queueing connections ─┴─ BindError on failure
    5. accept()       In a background thread, one call per connection
    6. shutdown()     Stop listening; wakes a blocked accept()
    7. close()        Release the file descriptor

                    ┌───────────────────────┐
                    │   Listening Socket    │ ◄── bind() + listen()
                    └───────────┬───────────┘
                                │ accept()
        ┌───────────────────────┼───────────────────────┐
        ▼                       ▼                       ▼
    ┌───────────┐         ┌───────────┐         ┌───────────┐
    │Connection │         │Connection │         │Connection │ ◄── tracked in
    └───────────┘         └───────────┘         └───────────┘     _connections

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR:  restart immediately without "Address already in use"
               while old sockets sit in TIME_WAIT.
TCP_NODELAY:   disable Nagle's algorithm; responses are small and
               latency matters more than packet count.

SO_REUSEPORT is NOT set: two servers silently sharing a
port would hide a bind conflict that must fail startup.

=============================================================================
STOPPING THE ACCEPT LOOP
=============================================================================

accept() blocks. To stop it from another thread we call
shutdown(SHUT_RDWR) on the listening socket: on Linux this wakes the
blocked accept() with an error and makes the kernel refuse new
connections at once. A 1-second accept timeout backs this up on
platforms where shutdown() does not wake the waiter.

Once stopped, connection attempts get "connection refused". They are
never queued for later.

=============================================================================
ACCEPT ERRORS
=============================================================================

Some accept() failures are temporary: out of file descriptors, a client
that reset the connection before we got to it. Those are retried with
exponential backoff (5ms doubling to 1s). Anything else ends the accept
loop and is reported through the on_error callback as an AcceptError.

=============================================================================
"""

import errno
import socket
import threading
import time
import logging
from typing import Callable, Optional, Set, Tuple

from ..config import ServerConfig, split_address
from ..errors import AcceptError, BindError
from .connection import Connection


_default_logger = logging.getLogger(__name__)

TEMPORARY_ACCEPT_ERRNOS = frozenset({
    errno.EMFILE,        # Process out of file descriptors
    errno.ENFILE,        # System out of file descriptors
    errno.ENOBUFS,
    errno.ENOMEM,
    errno.ECONNABORTED,  # Client gave up while queued
    errno.EINTR,
})

MAX_ACCEPT_BACKOFF = 1.0

MAX_PORT = 65535


class SocketServer:
    """
    Low-level TCP socket server.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      SocketServer Internals                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    bind()              Resolve, create socket, bind, listen          │
    │        │                                                             │
    │    serve_in_background(handler, on_error)                            │
    │        └──► accept thread: _accept_loop()                            │
    │                 while running:                                       │
    │                     accept()       wait for a connection             │
    │                     Connection()   wrap + add to _connections        │
    │                     handler(conn)  hand off (spawns a worker)        │
    │                                                                      │
    │    stop_accepting()    shutdown + close listener, join accept thread │
    │    drain(deadline)     close idle conns, wait for the rest           │
    │    abort_all()         force-close whatever is left                  │
    │    release(conn)       called by workers when a conn is closed       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    The set of open connections is guarded by a Condition, which doubles
    as the wake-up for drain() whenever a connection is released.
    """

    def __init__(self, config: ServerConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or _default_logger

        self._socket: Optional[socket.socket] = None
        self._running = False
        self._accept_thread: Optional[threading.Thread] = None

        self._connections: Set[Connection] = set()
        self._cond = threading.Condition()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def is_running(self) -> bool:
        """True while the accept loop is accepting connections."""
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """The (ip, port) actually bound. Useful when port "0" was requested."""
        if self._socket is None:
            raise RuntimeError("Socket server is not bound")
        sockname = self._socket.getsockname()
        return sockname[0], sockname[1]

    @property
    def active_connections(self) -> int:
        with self._cond:
            return len(self._connections)

    # =========================================================================
    # BIND
    # =========================================================================

    def _create_socket(self, family: int) -> socket.socket:
        sock = socket.socket(family, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # Lets the accept loop re-check _running even if shutdown() did
        # not wake it.
        sock.settimeout(1.0)
        return sock

    def bind(self):
        """
        Resolve the configured address, bind and start listening.

        Raises:
            ValueError: If the address has no port.
            BindError: If resolution, bind() or listen() fails.
        """
        address = self.config.address
        host, port = split_address(address)

        # getaddrinfo() wraps numeric ports modulo 65536 instead of failing.
        if port.isdigit() and int(port) > MAX_PORT:
            raise BindError(address, f"invalid port {port!r}: out of range")

        try:
            infos = socket.getaddrinfo(
                host or None,
                port,
                type=socket.SOCK_STREAM,
                flags=socket.AI_PASSIVE,
            )
            family, _, _, _, sockaddr = infos[0]

            sock = self._create_socket(family)
            try:
                sock.bind(sockaddr)
                sock.listen(self.config.backlog)
            except OSError:
                sock.close()
                raise
        except OSError as e:
            raise BindError(address, str(e)) from e

        self._socket = sock
        self.logger.debug(f"Listening on {address}")

    # =========================================================================
    # ACCEPT LOOP
    # =========================================================================

    def serve_in_background(
        self,
        connection_handler: Callable[[Connection], None],
        on_error: Callable[[AcceptError], None],
    ) -> threading.Thread:
        """
        Start the accept loop on a daemon thread and return immediately.

        Args:
            connection_handler: Called with each accepted Connection. It
                                must not block; it is expected to hand
                                the connection to a worker thread.
            on_error: Called once if the loop dies from a non-temporary
                      accept() failure while still running.
        """
        if self._socket is None:
            raise RuntimeError("bind() must be called before serving")

        self._running = True
        self._accept_thread = threading.Thread(
            target=self._accept_loop,
            args=(connection_handler, on_error),
            name="accept-loop",
            daemon=True,
        )
        self._accept_thread.start()
        return self._accept_thread

    def _accept_loop(
        self,
        connection_handler: Callable[[Connection], None],
        on_error: Callable[[AcceptError], None],
    ):
        backoff = 0.0

        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if not self._running:
                    break  # Listener closed by stop_accepting()

                if e.errno in TEMPORARY_ACCEPT_ERRNOS:
                    backoff = min(backoff * 2, MAX_ACCEPT_BACKOFF) if backoff else 0.005
                    self.logger.warning(
                        f"Accept error: {e}; retrying in {backoff * 1000:.0f}ms"
                    )
                    time.sleep(backoff)
                    continue

                self._running = False
                on_error(AcceptError(f"accept failed: {e}"))
                break

            backoff = 0.0

            with self._cond:
                if not self._running:
                    # Lost the race with stop_accepting(): refuse it.
                    client_socket.close()
                    break

                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    buffer_size=self.config.buffer_size,
                    read_timeout=self.config.read_timeout,
                    write_timeout=self.config.write_timeout,
                    idle_timeout=self.config.idle_timeout,
                    max_request_size=self.config.max_request_size,
                    logger=self.logger,
                )
                self._connections.add(conn)

            self.logger.debug(
                f"[{conn.id}] Accepted connection from {client_address[0]}:{client_address[1]}"
            )

            try:
                connection_handler(conn)
            except Exception as e:
                # Could not dispatch (e.g. no more threads): drop this one
                # connection, keep serving the rest.
                self.logger.error(f"[{conn.id}] Dispatch failed: {e}")
                conn.close()
                self.release(conn)

    # =========================================================================
    # SHUTDOWN PRIMITIVES
    # =========================================================================

    def stop_accepting(self):
        """
        Stop accepting new connections and close the listening socket.

        Safe to call more than once.
        """
        with self._cond:
            self._running = False

        sock = self._socket
        if sock is None:
            return

        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            pass  # Not connected / already shut down

        if self._accept_thread and self._accept_thread is not threading.current_thread():
            self._accept_thread.join(timeout=2.0)

        try:
            sock.close()
        except OSError:
            pass
        self._socket = None

    def release(self, conn: Connection):
        """Forget a closed connection and wake anyone waiting in drain()."""
        with self._cond:
            self._connections.discard(conn)
            self._cond.notify_all()

    def drain(self, deadline: float) -> bool:
        """
        Wait until every connection is closed, closing idle ones as we go.

        Connections that finish their current request go idle and are
        closed on the next pass. Polls with backoff (1ms doubling to
        500ms) but returns as soon as a release() empties the set.

        Args:
            deadline: time.monotonic() value to give up at.

        Returns:
            True if no connections remain, False if the deadline passed.
        """
        poll = 0.001

        with self._cond:
            while True:
                for conn in self._connections:
                    conn.abort_if_idle()

                if not self._connections:
                    return True

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False

                self._cond.wait(min(poll, remaining))
                poll = min(poll * 2, 0.5)

    def abort_all(self) -> int:
        """
        Force-close every remaining connection.

        Returns:
            How many connections were aborted.
        """
        with self._cond:
            connections = list(self._connections)

        for conn in connections:
            conn.abort()
        return len(connections)
