"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into structured HTTPRequest objects.
Implements the parts of RFC 7230 the greeting server needs.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     HTTP REQUEST STRUCTURE                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │    GET /John/Doe?lang=en HTTP/1.1\r\n      ← request line           │
    │    ─┬─ ────────┬──────── ────┬───                                   │
    │   Method   Request target  Version                                  │
    │                │                                                     │
    │        ┌───────┴────────┐                                           │
    │      Path           Query String                                    │
    │    /John/Doe          lang=en                                       │
    │                                                                      │
    │    Host: example.com\r\n                   ← headers                │
    │    User-Agent: curl/8.0\r\n                                         │
    │    \r\n                                    ← empty line             │
    │    [body]                                  ← optional               │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHAT WE ACCEPT
=============================================================================

METHODS: any RFC 7230 token. The greeting does not depend on the method,
so GET, POST, PUT, DELETE, PATCH and custom verbs are all welcome.

REQUEST TARGETS:
    origin-form     /path?query              (what browsers and curl send)
    absolute-form   http://host/path?query   (what proxies send)
    asterisk-form   *                        (OPTIONS *)

PATHS are percent-decoded and otherwise left alone. In particular we do
NOT collapse "//" or resolve "..": the path is data for the greeting, not
a filesystem location, so "//" must reach the handler as "//".

Note that urlparse() cannot be used on origin-form targets: it reads
"//name" as a network location and would hand the handler an empty path.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple
from urllib.parse import parse_qs, unquote, urlsplit
import re


class HTTPParseError(Exception):
    """
    Raised when HTTP request parsing fails.

    Carries the HTTP status code to answer with:
    - 400 Bad Request: malformed syntax
    - 413 Payload Too Large: request over the size limit
    - 505 HTTP Version Not Supported
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Header names are stored lowercase.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""

    client_address: Tuple[str, int] = ("", 0)
    raw: bytes = field(default=b"", repr=False)

    @property
    def remote_addr(self) -> str:
        """Client address as "ip:port" (IPv6 addresses bracketed)."""
        host, port = self.client_address[0], self.client_address[1]
        if ":" in host:
            return f"[{host}]:{port}"
        return f"{host}:{port}"

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

        HTTP/1.1 defaults to keep-alive unless "Connection: close".
        HTTP/1.0 defaults to close unless "Connection: keep-alive".
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    @property
    def has_chunked_body(self) -> bool:
        return "transfer-encoding" in self.headers


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

    Usage:
        parser = RequestParser()
        request = parser.parse(raw_bytes, ("127.0.0.1", 54321))
    """

    # RFC 7230 token characters
    REQUEST_LINE_PATTERN = re.compile(
        r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) (\S+) (HTTP/\d\.\d)$"
    )
    HEADER_PATTERN = re.compile(r"^([^:\s]+):\s*(.*)$")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def __init__(self, max_request_size: int = 1024 * 1024):
        self.max_request_size = max_request_size

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0),
    ) -> HTTPRequest:
        """
        Parse raw bytes into an HTTPRequest.

        Args:
            data: Complete request bytes (headers, blank line, body).
            client_address: (ip, port) of the peer.

        Raises:
            HTTPParseError: If the request is malformed or too large.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(
                f"Request too large: {len(data)} bytes",
                status_code=413,
            )

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError(
                f"Invalid Content-Length: {headers['content-length']!r}"
            )
        if content_length < 0:
            raise HTTPParseError(f"Invalid Content-Length: {content_length}")

        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
            raw=data,
        )

    def _parse_request_line(
        self,
        line: str,
    ) -> Tuple[str, str, Dict[str, list[str]], str]:
        """Split "METHOD target VERSION" and decode the target."""
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, target, version = match.groups()

        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(
                f"Unsupported HTTP version: {version}",
                status_code=505,
            )

        path, query = self._split_target(target)
        query_params = parse_qs(query, keep_blank_values=True)

        return method, path, query_params, version

    def _split_target(self, target: str) -> Tuple[str, str]:
        """Return the decoded path and the raw query string of a request target."""
        if target == "*":
            return target, ""

        if target.startswith("/"):
            raw_path, _, query = target.partition("?")
            return unquote(raw_path), query

        # absolute-form
        parts = urlsplit(target)
        if parts.scheme and parts.netloc:
            return unquote(parts.path) or "/", parts.query

        raise HTTPParseError(f"Invalid request target: {target!r}")

    def _parse_headers(self, lines: list[str]) -> Dict[str, str]:
        """
        Parse header lines into a lowercase-keyed dict.

        Repeated headers are joined with ", " (RFC 7230 §3.2.2) and
        obsolete line folding is unfolded into the previous value.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise HTTPParseError(f"Malformed header line: {line!r}")

            name, value = match.groups()
            name = name.lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers

