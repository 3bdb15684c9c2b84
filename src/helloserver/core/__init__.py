"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The low-level networking plumbing under the lifecycle.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         SOCKET SERVER                                │
    │  • Binds the listening socket                                       │
    │  • Runs the accept() loop in a background thread                    │
    │  • Tracks every open connection for graceful shutdown               │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ one worker thread per connection
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                          CONNECTION                                  │
    │  • Buffered request reading with read / idle timeouts               │
    │  • Response writing with a write timeout                            │
    │  • State tracking (idle vs. in flight)                              │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      TERMINATION SIGNAL                              │
    │  • SIGINT / SIGTERM → one-shot event the main thread waits on       │
    │  • trigger() for tests and for a dying accept loop                  │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState
from .signals import TerminationSignal

__all__ = [
    "SocketServer",       # Listening socket, accept loop, connection set
    "Connection",         # Wrapper for a client socket
    "ConnectionState",    # Enum for connection lifecycle states
    "TerminationSignal",  # SIGINT/SIGTERM as an awaitable event
]
