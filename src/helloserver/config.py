"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Centralized configuration for the greeting server.

=============================================================================
ONE KNOB: PORT
=============================================================================

The service is configured through a single environment variable:

    PORT=9090 python -m helloserver     → listens on 0.0.0.0:9090
    python -m helloserver               → listens on 0.0.0.0:8080

The value is used VERBATIM. It is not parsed as an integer here, so
"08080" stays "08080" in the listen address and logs. The socket layer
resolves it when binding (getaddrinfo also accepts service names such
as "http").

Everything else (timeouts, backlog, buffer sizes) has a fixed default
that can be overridden from code, which is what the tests do.

=============================================================================
TIMEOUTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      CONNECTION TIMELINE                            │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │  accept    request bytes      response        next request          │
    │    │◄──── read_timeout ────►│◄─ write ─►│◄── idle_timeout ──►│      │
    │    │                        │  timeout  │                    │      │
    │                                                                      │
    │  shutdown_timeout: how long shutdown waits for in-flight work       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Tuple


DEFAULT_PORT = "8080"


def split_address(address: str) -> Tuple[str, str]:
    """
    Split a "host:port" listen address into its parts.

    IPv6 hosts may be bracketed ("[::1]:8080"). The port is returned as
    the original string.

    Raises:
        ValueError: If there is no port separator or the port is empty.
    """
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"Invalid address {address!r}: missing port")
    if not port:
        raise ValueError(f"Invalid address {address!r}: empty port")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    return host, port


@dataclass
class ServerConfig:
    """
    Configuration for the greeting server.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK SETTINGS
    - host, port, backlog, buffer_size

    TIMEOUTS
    - read_timeout, write_timeout, idle_timeout, shutdown_timeout

    LIMITS
    - max_request_size

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    """
    The IP address to bind to. All interfaces by default, which is what
    a containerized service needs.
    """

    port: str = DEFAULT_PORT
    """
    Port to listen on, kept as the string it was configured with.
    "0" lets the OS pick a free port (used by the tests).
    """

    backlog: int = 128
    """
    Maximum number of queued connections before the kernel refuses more.
    """

    buffer_size: int = 8192
    """Size of each recv() call in bytes."""

    # ─────────────────────────────────────────────────────────────────────
    # TIMEOUTS (seconds)
    # ─────────────────────────────────────────────────────────────────────

    read_timeout: float = 15.0
    """Max duration to read a full request (headers and body)."""

    write_timeout: float = 15.0
    """Max duration to write a response."""

    idle_timeout: float = 60.0
    """Max time a keep-alive connection may wait for its next request."""

    shutdown_timeout: float = 30.0
    """Deadline for in-flight requests once graceful shutdown begins."""

    # ─────────────────────────────────────────────────────────────────────
    # LIMITS
    # ─────────────────────────────────────────────────────────────────────

    max_request_size: int = 1024 * 1024  # 1 MB
    """
    Maximum request size in bytes. Bodies are never processed, but they
    still have to be read off the socket to keep the connection usable.
    """

    @property
    def address(self) -> str:
        """Listen address in "host:port" form."""
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from the environment.

        Only PORT is read. Unset and empty both mean the default 8080.
        """
        port = os.getenv("PORT", "")
        if port == "":
            port = DEFAULT_PORT
        return cls(port=port)

    def validate(self) -> None:
        """
        Validate configuration values.

        We validate at construction time, not at first use, so a bad
        value fails the process before it ever binds a socket.
        """
        split_address(self.address)

        for name in ("read_timeout", "write_timeout", "idle_timeout", "shutdown_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be > 0")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")
