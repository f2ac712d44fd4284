"""
pytest configuration and fixtures.
"""

import socket
import threading
from typing import Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from knockserver import KnockKnockServer, ServerConfig
from knockserver.core import Connection


class FakeSocket:
    """
    Scripted stand-in for a client socket.

    recv() hands out the scripted chunks one per call (split further if the
    caller asks for fewer bytes), then b"" for end of stream. A chunk that
    is an exception instance is raised instead. Everything passed to
    sendall() is collected in `sent`.
    """

    def __init__(self, chunks: Optional[List] = None, fail_send_after: Optional[int] = None):
        self.chunks = list(chunks or [])
        self.sent: List[bytes] = []
        self.recv_sizes: List[int] = []
        self.fail_send_after = fail_send_after
        self.closed = False
        self.shut_down = False
        self.timeout = None

    def setblocking(self, flag):
        pass

    def settimeout(self, value):
        self.timeout = value

    def recv(self, size: int) -> bytes:
        if self.closed:
            raise OSError(9, "Bad file descriptor")
        self.recv_sizes.append(size)
        if not self.chunks:
            return b""
        chunk = self.chunks.pop(0)
        if isinstance(chunk, BaseException):
            raise chunk
        if len(chunk) > size:
            self.chunks.insert(0, chunk[size:])
            chunk = chunk[:size]
        return chunk

    def sendall(self, data: bytes):
        if self.fail_send_after is not None and len(self.sent) >= self.fail_send_after:
            raise BrokenPipeError(32, "Broken pipe")
        self.sent.append(data)

    def shutdown(self, how):
        self.shut_down = True

    def close(self):
        self.closed = True

    @property
    def transcript(self) -> bytes:
        return b"".join(self.sent)


@pytest.fixture
def make_connection():
    """Factory for a Connection over a FakeSocket."""
    def factory(chunks=None, line_capacity=255, fail_send_after=None):
        fake = FakeSocket(chunks, fail_send_after=fail_send_after)
        conn = Connection(
            socket=fake,
            address=("127.0.0.1", 12345),
            line_capacity=line_capacity,
        )
        return conn, fake
    return factory


@pytest.fixture
def config() -> ServerConfig:
    """Loopback test configuration; the OS picks a free port."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,
        timeout=5.0,
        accept_poll_interval=0.1,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TestServer:
    """Test server helper that runs in a background thread."""

    __test__ = False  # Not a test class, despite the name

    def __init__(self, server: KnockKnockServer):
        self.server = server
        self.error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def _run(self):
        try:
            self.server.run(setup_logging=False)
        except BaseException as e:
            self.error = e

    def start(self):
        """Start server in background thread and wait until it listens."""
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_listening(timeout=5.0):
            raise RuntimeError(f"Server failed to start: {self.error!r}")

    def connect(self) -> socket.socket:
        client = socket.create_connection(("127.0.0.1", self.port), timeout=5.0)
        return client

    def stop(self):
        """Stop the server."""
        self.server.shutdown()

        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    @property
    def is_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


@pytest.fixture
def test_server(config: ServerConfig) -> Generator[TestServer, None, None]:
    """A running knock-knock server on a loopback port."""
    test_srv = TestServer(KnockKnockServer(config))
    test_srv.start()

    yield test_srv

    test_srv.stop()


def recv_exactly(sock: socket.socket, size: int) -> bytes:
    """Read exactly `size` bytes, or fewer if the server closes first."""
    data = b""
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            break
        data += chunk
    return data


def recv_until_closed(sock: socket.socket) -> bytes:
    """Read everything the server sends until it closes the stream."""
    data = b""
    while True:
        chunk = sock.recv(1024)
        if not chunk:
            return data
        data += chunk
