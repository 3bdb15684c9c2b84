"""
=============================================================================
HELLOSERVER - Minimal HTTP Greeting Service With Graceful Shutdown
=============================================================================

A tiny HTTP/1.1 service that answers every request with a plain-text
greeting built from the URL path, wrapped in a production-style server
lifecycle: environment configuration, structured JSON logs, signal
handling and a bounded graceful shutdown.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      HELLOSERVER ARCHITECTURE                       │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. GREETING HANDLER                                               │
    │      - "/" → "Hello World!", "/<name>" → "Hello, <name>!"           │
    │      - one structured log line per request                          │
    │                                                                      │
    │   2. HTTP/1.1 TRANSPORT                                             │
    │      - raw sockets, request parsing, keep-alive                     │
    │      - read / write / idle timeouts                                 │
    │      - one worker thread per connection                             │
    │                                                                      │
    │   3. SERVER LIFECYCLE                                               │
    │      - CREATED → LISTENING → SHUTTING_DOWN → STOPPED / FAILED       │
    │      - SIGINT / SIGTERM start a graceful shutdown                   │
    │      - in-flight requests get up to 30s to finish                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    helloserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # Entry point (python -m helloserver)
    ├── lifecycle.py         # ServerLifecycle state machine
    ├── server.py            # HTTPServer: per-connection protocol loop
    ├── config.py            # ServerConfig dataclass, PORT handling
    ├── errors.py            # BindError, AcceptError, ShutdownTimeoutError
    ├── log.py               # JSON log formatter and logger factory
    ├── core/                # Low-level components
    │   ├── socket_server.py # Listener, accept loop, connection tracking
    │   ├── connection.py    # Connection wrapper with timeouts
    │   └── signals.py       # SIGINT/SIGTERM as an awaitable event
    ├── http/                # HTTP protocol components
    │   ├── request.py       # HTTP request parsing
    │   ├── response.py      # HTTP response building
    │   └── status_codes.py  # HTTP status enum
    └── handlers/
        └── greeting.py      # The greeting endpoint

=============================================================================
QUICK START
=============================================================================

    from helloserver import ServerConfig, ServerLifecycle, GreetingHandler
    from helloserver.log import create_logger

    logger = create_logger()
    lifecycle = ServerLifecycle(
        ServerConfig(port="9090"),
        GreetingHandler(logger),
        logger,
    )
    exit_code = lifecycle.run()     # blocks until SIGINT / SIGTERM

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .errors import (
    ServerError,
    BindError,
    AcceptError,
    ShutdownTimeoutError,
    LifecycleError,
)
from .handlers import GreetingHandler, greet
from .lifecycle import LifecycleState, ServerLifecycle
from .server import HTTPServer

__all__ = [
    "ServerConfig",
    "ServerLifecycle",
    "LifecycleState",
    "HTTPServer",
    "GreetingHandler",
    "greet",
    "ServerError",
    "BindError",
    "AcceptError",
    "ShutdownTimeoutError",
    "LifecycleError",
    "__version__",
]
