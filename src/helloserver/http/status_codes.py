"""
=============================================================================
HTTP STATUS CODES (RFC 7231)
=============================================================================

The status codes this server can actually send.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK                 - every greeting                  │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 Bad Request        - malformed request line          │
    │        │ 408 Request Timeout    - request not read in time        │
    │        │ 413 Content Too Large  - request over max_request_size   │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal Error     - handler raised                  │
    │        │ 505 Version Not Supp.  - not HTTP/1.0 or HTTP/1.1        │
    └────────┴───────────────────────────────────────────────────────────┘

The handler itself only ever answers 200; everything else is produced by
the transport before or around the handler call.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

    IntEnum, so members compare equal to plain integers:

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.OK.phrase
        'OK'
    """

    OK = 200
    BAD_REQUEST = 400
    REQUEST_TIMEOUT = 408
    PAYLOAD_TOO_LARGE = 413
    INTERNAL_SERVER_ERROR = 500
    HTTP_VERSION_NOT_SUPPORTED = 505

    @property
    def phrase(self) -> str:
        """Reason phrase for the status line ("HTTP/1.1 200 OK")."""
        return _STATUS_PHRASES.get(self, "Unknown")


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.REQUEST_TIMEOUT: "Request Timeout",
    HTTPStatus.PAYLOAD_TOO_LARGE: "Payload Too Large",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.HTTP_VERSION_NOT_SUPPORTED: "HTTP Version Not Supported",
}
