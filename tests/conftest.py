"""
pytest configuration and fixtures.
"""

import io
import json
import socket
import threading
import time
import http.client
from typing import Callable, Dict, Generator, List, Optional, Tuple
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from helloserver import GreetingHandler, LifecycleState, ServerConfig, ServerLifecycle
from helloserver.core import TerminationSignal
from helloserver.http import HTTPRequest, HTTPResponse
from helloserver.log import create_logger


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /John?lang=en&lang=fr HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/plain\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b'{"name": "John"}'
    return (
        b"POST /test HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


@pytest.fixture
def config() -> ServerConfig:
    """Test configuration: loopback, OS-assigned port, short timeouts."""
    return ServerConfig(
        host="127.0.0.1",
        port="0",
        read_timeout=2.0,
        write_timeout=2.0,
        idle_timeout=5.0,
        shutdown_timeout=5.0,
    )


@pytest.fixture
def log_stream() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def logger(log_stream: io.StringIO, request):
    """JSON logger writing to an in-memory stream, unique per test."""
    return create_logger(name=f"helloserver.test.{request.node.name}", stream=log_stream)


def read_logs(stream: io.StringIO) -> List[Dict]:
    """Parse every JSON line written so far."""
    return [json.loads(line) for line in stream.getvalue().splitlines() if line]


@pytest.fixture
def blocked_port() -> Generator[int, None, None]:
    """A port that already has a listening socket on it."""
    blocker = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    blocker.bind(("0.0.0.0", 0))
    blocker.listen(1)
    try:
        yield blocker.getsockname()[1]
    finally:
        blocker.close()


class SlowHandler:
    """
    Greeting handler that holds each request until released or until
    delay seconds have passed. Used to keep a request in flight.
    """

    def __init__(self, delay: float, logger=None):
        self.delay = delay
        self.started = threading.Event()
        self.release = threading.Event()
        self._greeting = GreetingHandler(logger)

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        self.started.set()
        self.release.wait(self.delay)
        return self._greeting(request)


class RunningServer:
    """A started ServerLifecycle plus client helpers."""

    def __init__(self, lifecycle: ServerLifecycle, termination: TerminationSignal):
        self.lifecycle = lifecycle
        self.termination = termination

    @property
    def host(self) -> str:
        return "127.0.0.1"

    @property
    def port(self) -> int:
        return self._port

    def start(self):
        self.lifecycle.start()
        self._port = self.lifecycle.address[1]

    def request(
        self,
        method: str,
        path: str,
        body: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Dict[str, str], bytes]:
        """Send one request on a fresh connection; return (status, headers, body)."""
        conn = http.client.HTTPConnection(self.host, self.port, timeout=10)
        try:
            conn.request(method, path, body=body, headers=headers or {})
            response = conn.getresponse()
            return response.status, dict(response.getheaders()), response.read()
        finally:
            conn.close()

    def raw(self, data: bytes, timeout: float = 10.0) -> bytes:
        """Send raw bytes and read until the server closes the connection."""
        with socket.create_connection((self.host, self.port), timeout=timeout) as sock:
            sock.sendall(data)
            chunks = []
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
            return b"".join(chunks)

    def stop(self):
        if self.lifecycle.state == LifecycleState.LISTENING:
            self.lifecycle.shutdown(timeout=5.0)
        self.lifecycle.close()


@pytest.fixture
def make_server(config: ServerConfig, logger) -> Generator[Callable[..., RunningServer], None, None]:
    """Factory for started servers; everything it creates is stopped afterwards."""
    servers: List[RunningServer] = []
    handlers: List[SlowHandler] = []

    def factory(handler=None, server_config: Optional[ServerConfig] = None) -> RunningServer:
        if isinstance(handler, SlowHandler):
            handlers.append(handler)
        termination = TerminationSignal()
        lifecycle = ServerLifecycle(
            server_config or config,
            handler or GreetingHandler(logger),
            logger,
            termination,
        )
        server = RunningServer(lifecycle, termination)
        server.start()
        servers.append(server)
        return server

    yield factory

    for handler in handlers:
        handler.release.set()
    for server in servers:
        server.stop()


@pytest.fixture
def server(make_server) -> RunningServer:
    """A running greeting server."""
    return make_server()


def wait_for(condition: Callable[[], bool], timeout: float = 5.0) -> bool:
    """Poll condition until it is true or timeout passes."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()
