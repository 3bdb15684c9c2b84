"""
=============================================================================
SERVER LIFECYCLE
=============================================================================

ServerLifecycle is the orchestrator: it binds the listener, serves
connections in the background, waits for a termination signal, and runs
a graceful shutdown with a deadline. Its run() method turns all of that
into a process exit code.

=============================================================================
STATE MACHINE
=============================================================================

    ┌─────────┐  start()   ┌───────────┐  shutdown()  ┌───────────────┐
    │ CREATED │ ─────────► │ LISTENING │ ───────────► │ SHUTTING_DOWN │
    └─────────┘            └───────────┘              └───────────────┘
         │                       │                        │        │
         │ bind fails            │ accept loop dies       │        │ drained
         ▼                       ▼                        │        ▼
    ┌──────────────────────────────────┐   deadline       │   ┌─────────┐
    │              FAILED              │ ◄────────────────┘   │ STOPPED │
    └──────────────────────────────────┘   exceeded           └─────────┘

Each transition happens at most once. start() on anything but CREATED,
or shutdown() on anything but LISTENING, raises LifecycleError: a second
shutdown is reported, never silently run twice.

=============================================================================
THREADS
=============================================================================

    main thread      start() → await_termination() → shutdown()
                                 (the only blocking wait, signal driven)

    accept thread    accept() → Connection → spawn worker
                     (one, background, owned by SocketServer)

    worker threads   one per connection, HTTPServer.process_connection()
                     (daemon: an abandoned slow handler never blocks exit)

=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

    1. Mark HTTP layer as shutting down (no more keep-alive)
    2. Stop accepting: listener shut down + closed, new connects refused
    3. Close idle connections; wait for in-flight ones to finish
       (re-closing connections as they go idle)
    4a. All closed before the deadline → STOPPED, exit code 0
    4b. Deadline passed → force-close the rest, FAILED,
        ShutdownTimeoutError, exit code 1

With nothing in flight, step 3 returns at once: shutdown never waits out
the deadline for no reason.

=============================================================================
EXIT CODES
=============================================================================

    0   clean shutdown
    1   BindError, AcceptError or ShutdownTimeoutError (each logged)

=============================================================================
"""

import logging
import threading
import time
from enum import Enum
from typing import Optional, Tuple

from .config import ServerConfig
from .core import Connection, SocketServer, TerminationSignal
from .errors import AcceptError, BindError, LifecycleError, ShutdownTimeoutError
from .handlers import Handler
from .server import HTTPServer


class LifecycleState(Enum):
    CREATED = "created"
    LISTENING = "listening"
    SHUTTING_DOWN = "shutting_down"
    STOPPED = "stopped"
    FAILED = "failed"


class ServerLifecycle:
    """
    Start, serve, and gracefully stop the greeting server.

    =========================================================================
    USAGE
    =========================================================================

        # As a process (what __main__ does)
        lifecycle = ServerLifecycle(config, GreetingHandler(logger), logger)
        sys.exit(lifecycle.run())

        # Step by step (what the tests do)
        termination = TerminationSignal()
        lifecycle = ServerLifecycle(config, handler, logger, termination)
        lifecycle.start()
        ...
        termination.trigger("test")
        lifecycle.await_termination()
        lifecycle.shutdown()

    =========================================================================
    """

    def __init__(
        self,
        config: ServerConfig,
        handler: Handler,
        logger: Optional[logging.Logger] = None,
        termination: Optional[TerminationSignal] = None,
    ):
        """
        Args:
            config: Listen address and timeouts. Validated here (fail fast).
            handler: Dispatch target for every request.
            logger: Logger for lifecycle and request records.
            termination: Source of termination requests. A fresh
                         TerminationSignal if not given.
        """
        config.validate()

        self.config = config
        self.handler = handler
        self.logger = logger or logging.getLogger(__name__)
        self.termination = termination or TerminationSignal()

        self._socket_server = SocketServer(config, self.logger)
        self._http = HTTPServer(config, handler, self.logger)

        self._state = LifecycleState.CREATED
        self._lock = threading.Lock()
        self._accept_error: Optional[AcceptError] = None

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def address(self) -> Tuple[str, int]:
        """The (ip, port) actually bound. Only valid while listening."""
        return self._socket_server.address

    @property
    def is_accepting(self) -> bool:
        return self._socket_server.is_running

    @property
    def active_connections(self) -> int:
        return self._socket_server.active_connections

    def _set_state(self, state: LifecycleState):
        with self._lock:
            self._state = state

    # =========================================================================
    # START
    # =========================================================================

    def start(self):
        """
        Bind the listener and start accepting in the background.

        Returns as soon as the listener is established.

        Raises:
            BindError: The address could not be resolved or bound.
            LifecycleError: The server was already started.
        """
        with self._lock:
            if self._state != LifecycleState.CREATED:
                raise LifecycleError(
                    f"cannot start server in state {self._state.name}"
                )

            try:
                self._socket_server.bind()
            except BindError:
                self._state = LifecycleState.FAILED
                raise

            self._state = LifecycleState.LISTENING

        self._socket_server.serve_in_background(self._dispatch, self._on_accept_error)

    def _dispatch(self, conn: Connection):
        """Give an accepted connection its own worker thread (accept thread)."""
        worker = threading.Thread(
            target=self._serve_connection,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        worker.start()

    def _serve_connection(self, conn: Connection):
        try:
            self._http.process_connection(conn)
        finally:
            self._socket_server.release(conn)

    def _on_accept_error(self, error: AcceptError):
        """Record a dead accept loop and wake the main thread (accept thread)."""
        with self._lock:
            self._accept_error = error
            if self._state == LifecycleState.LISTENING:
                self._state = LifecycleState.FAILED

        self.termination.trigger("accept-error")

    # =========================================================================
    # WAIT
    # =========================================================================

    def await_termination(self) -> Optional[str]:
        """
        Block until a termination signal arrives.

        No timeout and no polling: this returns only when the
        TerminationSignal fires.

        Returns:
            What triggered termination ("SIGINT", "SIGTERM", ...).

        Raises:
            AcceptError: The accept loop died while we were waiting.
        """
        reason = self.termination.wait()

        if self._accept_error is not None:
            raise self._accept_error

        return reason

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def shutdown(self, timeout: Optional[float] = None):
        """
        Gracefully stop the server.

        Args:
            timeout: Seconds to wait for in-flight requests. Defaults to
                     config.shutdown_timeout (30s).

        Raises:
            ShutdownTimeoutError: Requests were still running at the
                                  deadline. They have been force-closed.
            LifecycleError: The server is not listening (never started,
                            already shut down, or failed).
        """
        if timeout is None:
            timeout = self.config.shutdown_timeout

        with self._lock:
            if self._state != LifecycleState.LISTENING:
                raise LifecycleError(
                    f"cannot shut down server in state {self._state.name}"
                )
            self._state = LifecycleState.SHUTTING_DOWN

        deadline = time.monotonic() + timeout

        self._http.begin_shutdown()
        self._socket_server.stop_accepting()

        if self._socket_server.drain(deadline):
            self._set_state(LifecycleState.STOPPED)
            return

        remaining = self._socket_server.abort_all()
        self._set_state(LifecycleState.FAILED)
        raise ShutdownTimeoutError(timeout, remaining)

    def close(self):
        """
        Release the listener and force-close any connections left over.

        Safe in any state and safe to call repeatedly. Used after fatal
        errors, where no graceful shutdown is attempted.
        """
        self._socket_server.stop_accepting()
        self._socket_server.abort_all()

    # =========================================================================
    # PROCESS ENTRY
    # =========================================================================

    def run(self) -> int:
        """
        Run the server until SIGINT/SIGTERM, then shut down gracefully.

        Signal handlers are installed only when called from the main
        thread (a Python requirement) and restored on the way out.

        Returns:
            Process exit code: 0 on clean shutdown, 1 on failure.
        """
        installed = threading.current_thread() is threading.main_thread()
        if installed:
            self.termination.install()

        try:
            return self._run()
        finally:
            if installed:
                self.termination.restore()
            self.close()

    def _run(self) -> int:
        self.logger.info("Starting server", extra={"port": self.config.port})

        try:
            self.start()
        except BindError as e:
            self.logger.error("Server failed to start", extra={"error": str(e)})
            return 1

        try:
            reason = self.await_termination()
        except AcceptError as e:
            self.logger.error("Server failed", extra={"error": str(e)})
            return 1

        self.logger.info("Shutting down server...", extra={"signal": reason})

        try:
            self.shutdown()
        except ShutdownTimeoutError as e:
            self.logger.error("Server forced to shutdown", extra={"error": str(e)})
            return 1

        self.logger.info("Server exited")
        return 0

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
