"""
=============================================================================
TERMINATION SIGNAL
=============================================================================

When you press Ctrl+C or run `docker stop`, the OS sends the process a
SIGNAL. We turn SIGINT and SIGTERM into a one-shot "please terminate"
event that the main thread waits on.

SIGINT (2):   Ctrl+C in a terminal
SIGTERM (15): docker stop, systemd stop, kubectl delete pod, kill <pid>

SIGKILL (9) cannot be caught. That is why orchestrators send SIGTERM
first and only SIGKILL after a grace period.

=============================================================================
WHY AN OBJECT AND NOT JUST signal.signal()?
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   OS signal ──► handler ──┐                                         │
    │                           ├──► TerminationSignal ──► main thread    │
    │   trigger("test") ────────┘       (one Event)        wait() returns │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

The lifecycle only ever calls wait(). Tests call trigger() and never have
to deliver a real signal to the test process. The accept loop can also
call trigger() to wake the main thread when it dies.

Handlers can only be installed from the main thread (a CPython rule), so
install() is separate from construction, and restore() puts the previous
handlers back for applications that embed the server.

=============================================================================
"""

import signal
import threading
from typing import Dict, Optional


class TerminationSignal:
    """
    One-shot termination request.

    Usage:
        termination = TerminationSignal()
        with termination:              # installs SIGINT/SIGTERM handlers
            reason = termination.wait()   # "SIGTERM", "SIGINT", ...
    """

    SIGNALS = (signal.SIGINT, signal.SIGTERM)

    def __init__(self):
        self._event = threading.Event()
        self._reason: Optional[str] = None
        self._original_handlers: Dict[int, object] = {}

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        """What triggered termination (signal name or trigger() argument)."""
        return self._reason

    def trigger(self, reason: str = "manual") -> None:
        """
        Request termination. Only the first reason is kept; later calls
        are no-ops.
        """
        if self._reason is None:
            self._reason = reason
        self._event.set()

    def wait(self, timeout: Optional[float] = None) -> Optional[str]:
        """
        Block until termination is requested.

        Returns:
            The trigger reason, or None if timeout elapsed first.
        """
        if self._event.wait(timeout):
            return self._reason
        return None

    def _handle(self, signum, frame):
        # Runs between bytecodes on the main thread. If that thread is in
        # Event.wait() after entering the Event's Condition but before
        # Condition.wait() releases it, Event.set() here would block on a
        # lock its own thread holds. Set it from a short-lived thread.
        threading.Thread(
            target=self.trigger,
            args=(signal.Signals(signum).name,),
            name="termination-signal",
            daemon=True,
        ).start()

    def install(self) -> None:
        """Route SIGINT and SIGTERM to this object (main thread only)."""
        for sig in self.SIGNALS:
            self._original_handlers[sig] = signal.signal(sig, self._handle)

    def restore(self) -> None:
        """Put back the handlers that were active before install()."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def __enter__(self):
        self.install()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.restore()
        return False
