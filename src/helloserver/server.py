"""
=============================================================================
HTTP CONNECTION PROCESSING
=============================================================================

HTTPServer speaks HTTP/1.1 on one accepted connection: read a request,
parse it, call the handler, write the response, and repeat while the
connection is kept alive. Every connection runs this loop on its own
worker thread, so a slow request never blocks the others.

=============================================================================
REQUEST FLOW
=============================================================================

    1. READ        conn.read_request()      raw bytes, bounded by timeouts
    2. PARSE       RequestParser.parse()    → HTTPRequest
    3. HANDLE      handler(request)         → HTTPResponse
    4. FRAME       Connection / Keep-Alive headers
    5. SEND        conn.send_response()     bounded by write_timeout
    6. KEEP-ALIVE  loop for the next request, or close

=============================================================================
WHEN WE CLOSE INSTEAD OF KEEPING ALIVE
=============================================================================

    - the client asked for it (Connection: close, or HTTP/1.0 default)
    - the request had a Transfer-Encoding body we did not read
    - graceful shutdown has begun
    - anything went wrong (parse error, timeout, too large, handler crash)

=============================================================================
ERRORS
=============================================================================

Failures here are local to one connection. They are answered with an
error status where a response is still possible, and the connection is
closed. Nothing in this module ever takes the server down.

    HTTPParseError     → 400 / 413 / 505 (from the parser)
    TimeoutError       → 408 Request Timeout
    ValueError         → 413 Payload Too Large (request over the limit)
    handler exception  → 500 Internal Server Error

=============================================================================
"""

import logging
import threading
from typing import Optional

from .config import ServerConfig
from .core import Connection, ConnectionState
from .handlers import Handler
from .http import (
    RequestParser, HTTPParseError,
    HTTPStatus, error_response,
)


_default_logger = logging.getLogger(__name__)


class HTTPServer:
    """
    HTTP/1.1 protocol loop for accepted connections.

    Usage:
        http = HTTPServer(config, GreetingHandler(logger), logger)
        worker = threading.Thread(target=http.process_connection, args=(conn,))
    """

    def __init__(
        self,
        config: ServerConfig,
        handler: Handler,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.handler = handler
        self.logger = logger or _default_logger

        self._parser = RequestParser(max_request_size=self.config.max_request_size)
        self._shutting_down = threading.Event()

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down.is_set()

    def begin_shutdown(self):
        """Stop keeping connections alive after their current request."""
        self._shutting_down.set()

    def process_connection(self, conn: Connection):
        """
        Serve requests on a connection until it closes (worker thread).

        The connection is always closed on return.
        """
        with conn:
            while True:
                try:
                    # ─────────────────────────────────────────────────────
                    # READ REQUEST
                    # ─────────────────────────────────────────────────────
                    raw_request = conn.read_request()
                    if raw_request is None:
                        break  # Client closed, idle timeout, or aborted

                    # ─────────────────────────────────────────────────────
                    # PARSE REQUEST
                    # ─────────────────────────────────────────────────────
                    try:
                        request = self._parser.parse(raw_request, conn.address)
                    except HTTPParseError as e:
                        self.logger.debug(f"[{conn.id}] Bad request: {e}")
                        self._send_error(conn, HTTPStatus(e.status_code))
                        break

                    # ─────────────────────────────────────────────────────
                    # HANDLE REQUEST
                    # ─────────────────────────────────────────────────────
                    conn.state = ConnectionState.PROCESSING

                    try:
                        response = self.handler(request)
                    except Exception as e:
                        self.logger.exception(f"[{conn.id}] Handler error: {e}")
                        self._send_error(conn, HTTPStatus.INTERNAL_SERVER_ERROR)
                        break

                    # ─────────────────────────────────────────────────────
                    # CONNECTION HEADERS
                    # ─────────────────────────────────────────────────────
                    keep_alive = (
                        request.is_keep_alive
                        and not request.has_chunked_body
                        and not self.is_shutting_down
                    )

                    if keep_alive:
                        if request.version == "HTTP/1.0":
                            response.headers.setdefault("Connection", "keep-alive")
                    else:
                        response.headers["Connection"] = "close"

                    # ─────────────────────────────────────────────────────
                    # SEND RESPONSE
                    # ─────────────────────────────────────────────────────
                    include_body = request.method != "HEAD"
                    if not conn.send_response(response.to_bytes(include_body=include_body)):
                        break

                    if not keep_alive:
                        break

                    conn.set_keep_alive()

                except TimeoutError:
                    self._send_error(conn, HTTPStatus.REQUEST_TIMEOUT)
                    break

                except ValueError as e:
                    self.logger.debug(f"[{conn.id}] {e}")
                    self._send_error(conn, HTTPStatus.PAYLOAD_TOO_LARGE)
                    break

                except Exception as e:
                    self.logger.exception(f"[{conn.id}] Connection error: {e}")
                    break

    def _send_error(self, conn: Connection, status: HTTPStatus):
        """Send a plain-text error response; the caller closes afterwards."""
        conn.send_response(error_response(status).to_bytes())
