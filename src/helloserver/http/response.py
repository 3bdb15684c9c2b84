"""
=============================================================================
HTTP RESPONSE BUILDING
=============================================================================

Builds HTTP responses and serializes them to bytes for the socket.

=============================================================================
HTTP RESPONSE ANATOMY
=============================================================================

    HTTP/1.1 200 OK\r\n                              ← status line
    Content-Type: text/plain; charset=utf-8\r\n      ← set by the handler
    Content-Length: 12\r\n                           ← added by to_bytes()
    Date: Wed, 01 May 2024 12:00:00 GMT\r\n          ← added by to_bytes()
    \r\n
    Hello World!                                     ← body

The handler only decides status, Content-Type and body. Framing headers
(Content-Length, Date, Connection) are the transport's business and are
filled in at serialization time.

=============================================================================
BUILDER PATTERN
=============================================================================

    response = (ResponseBuilder()
        .status(HTTPStatus.OK)
        .text("Hello, John!")
        .build())

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict

from .status_codes import HTTPStatus


TEXT_PLAIN = "text/plain; charset=utf-8"


@dataclass
class HTTPResponse:
    """
    An HTTP response.

    Attributes:
        status: HTTP status code.
        headers: Response headers (name → value, original case kept).
        body: Response body bytes.
        version: HTTP version for the status line.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    def to_bytes(self, include_body: bool = True) -> bytes:
        """
        Serialize the response for the wire.

        Args:
            include_body: False for responses to HEAD requests. Headers,
                          Content-Length included, stay the same.
        """
        response_headers = dict(self.headers)

        if "Content-Length" not in response_headers:
            response_headers["Content-Length"] = str(len(self.body))

        if "Date" not in response_headers:
            response_headers["Date"] = format_http_date(datetime.now(timezone.utc))

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"

        if include_body:
            return header_bytes + self.body
        return header_bytes


class ResponseBuilder:
    """Fluent builder for HTTPResponse objects."""

    def __init__(self):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = status
        return self

    def text(self, text: str, content_type: str = TEXT_PLAIN) -> "ResponseBuilder":
        """Set a text body and its Content-Type."""
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
        )


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an RFC 7231 IMF-fixdate.

    Done by hand instead of strftime() because %a/%b are locale
    dependent and HTTP dates must be English.

    Example: "Wed, 01 May 2024 12:00:00 GMT"
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]

    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


def ok(text: str) -> HTTPResponse:
    """200 OK with a plain-text body."""
    return ResponseBuilder().status(HTTPStatus.OK).text(text).build()


def error_response(status: HTTPStatus) -> HTTPResponse:
    """
    Plain-text error response that closes the connection.

    The body is "<code> <phrase>", e.g. "400 Bad Request".
    """
    return (ResponseBuilder()
        .status(status)
        .text(f"{int(status)} {status.phrase}")
        .close_connection()
        .build())
