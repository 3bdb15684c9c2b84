"""
=============================================================================
HTTP PROTOCOL COMPONENTS
=============================================================================

Turns bytes from TCP into HTTPRequest objects and HTTPResponse objects
back into bytes.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST PARSER (request.py)                                         │
    │ Input:   b"GET /John?x=1 HTTP/1.1\r\nHost: ...\r\n\r\n"            │
    │ Output:  HTTPRequest(method="GET", path="/John", ...)               │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ RESPONSE BUILDER (response.py)                                      │
    │ Input:   ResponseBuilder().text("Hello, John!")                     │
    │ Output:  b"HTTP/1.1 200 OK\r\nContent-Type: ...\r\n\r\nHello..."    │
    └─────────────────────────────────────────────────────────────────────┘

    ┌─────────────────────────────────────────────────────────────────────┐
    │ STATUS CODES (status_codes.py)                                      │
    │ HTTPStatus.OK → 200, phrase="OK"                                    │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError
from .response import (
    HTTPResponse,
    ResponseBuilder,
    TEXT_PLAIN,
    ok,
    error_response,
    format_http_date,
)
from .status_codes import HTTPStatus

__all__ = [
    # Request parsing
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",

    # Response building
    "HTTPResponse",
    "ResponseBuilder",
    "TEXT_PLAIN",
    "ok",
    "error_response",
    "format_http_date",

    # Status codes
    "HTTPStatus",
]
