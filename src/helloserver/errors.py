"""
Server error taxonomy.

Nothing here is recoverable. Each runtime error propagates straight up to
``ServerLifecycle.run()``, which logs it and turns it into a non-zero exit
code:

    BindError             listener could not be created
    AcceptError           accept loop died outside of a deliberate shutdown
    ShutdownTimeoutError  in-flight requests outlived the shutdown deadline

``LifecycleError`` is different: it flags a caller bug (an operation issued
in the wrong lifecycle state, e.g. shutting down twice).
"""


class ServerError(Exception):
    """Base class for fatal server errors."""


class BindError(ServerError):
    """The listening socket could not be resolved, bound or put in listen mode."""

    def __init__(self, address: str, reason: str):
        super().__init__(f"cannot listen on {address}: {reason}")
        self.address = address


class AcceptError(ServerError):
    """The accept loop terminated for a reason other than shutdown."""


class ShutdownTimeoutError(ServerError):
    """In-flight requests did not finish before the shutdown deadline."""

    def __init__(self, timeout: float, remaining: int):
        super().__init__(
            f"context deadline exceeded: {remaining} connection(s) still "
            f"active after {timeout:g}s"
        )
        self.timeout = timeout
        self.remaining = remaining


class LifecycleError(ServerError):
    """An operation was requested in a state that does not allow it."""
