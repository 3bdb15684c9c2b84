"""
=============================================================================
GREETING HANDLER
=============================================================================

The one and only endpoint: greet whoever is named in the URL path.

    GET /            →  Hello World!
    GET /John        →  Hello, John!
    GET /John/Doe    →  Hello, John/Doe!
    GET //           →  Hello, /!
    GET /user-123    →  Hello, user-123!

The rule is "drop exactly one leading slash, greet the rest". Internal
slashes are part of the name, not path segments, and nothing is escaped
or validated. That is also why "//" greets "/": only the first slash is
stripped.

Method, query string, headers and body are ignored. The same path always
produces byte-identical output.

=============================================================================
"""

import logging
from typing import Optional

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ok


def greet(path: str) -> str:
    """
    Build the greeting for a request path.

    >>> greet("/")
    'Hello World!'
    >>> greet("/John/Doe")
    'Hello, John/Doe!'
    """
    name = path[1:]
    if name:
        return f"Hello, {name}!"
    return "Hello World!"


class GreetingHandler:
    """
    Request handler that answers every request with a plain-text greeting.

    Stateless apart from the logger, so a single instance is shared by
    every worker thread without locking.

    Usage:
        handler = GreetingHandler(logger)
        response = handler(request)
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        return self.handle(request)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Log the request and return the greeting.

        Logging goes through the stdlib handler machinery, which reports
        its own failures via Handler.handleError() instead of raising,
        so a broken log sink cannot fail the response.
        """
        self.logger.info(
            "Handling request",
            extra={
                "method": request.method,
                "path": request.path,
                "remote_addr": request.remote_addr,
            },
        )

        return ok(greet(request.path))
