"""
pytest configuration and fixtures.
"""

import socket
import threading
import time
from typing import Callable, Generator, List, Optional
import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from chatserver import ChatServer, ServerConfig


class LineClient:
    """
    Raw-socket line client with timeouts.

    Buffers bytes itself instead of using makefile(), because a file
    object becomes unusable after its first timeout and the tests rely
    on "nothing arrived within N seconds".
    """

    def __init__(self, sock: socket.socket):
        self.sock = sock
        self._buffer = b""

    @classmethod
    def connect(cls, port: int, timeout: float = 5.0) -> "LineClient":
        return cls(socket.create_connection(("127.0.0.1", port), timeout=timeout))

    def send(self, text: str):
        self.sock.sendall(text.encode("utf-8") + b"\n")

    def read_line(self, timeout: float = 5.0) -> Optional[str]:
        """
        Read one line.

        Returns:
            The line without "\\n", or None on end of stream.

        Raises:
            socket.timeout: If no complete line arrived in time.
        """
        deadline = time.monotonic() + timeout
        while b"\n" not in self._buffer:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise socket.timeout("no line received")
            self.sock.settimeout(remaining)
            try:
                chunk = self.sock.recv(4096)
            except ConnectionResetError:
                return None
            if not chunk:
                return None
            self._buffer += chunk

        line, self._buffer = self._buffer.split(b"\n", 1)
        return line.decode("utf-8")

    def read_lines(self, count: int, timeout: float = 5.0) -> List[str]:
        return [self.read_line(timeout) for _ in range(count)]

    def read_until(self, prefix: str, timeout: float = 5.0) -> str:
        """Skip lines until one starts with prefix; return it."""
        deadline = time.monotonic() + timeout
        while True:
            line = self.read_line(max(0.01, deadline - time.monotonic()))
            if line is None:
                raise AssertionError(f"connection closed before {prefix!r}")
            if line.startswith(prefix):
                return line

    def expect_silence(self, wait: float = 0.3):
        """Assert that no complete line arrives within `wait` seconds."""
        try:
            line = self.read_line(wait)
        except socket.timeout:
            return
        raise AssertionError(f"unexpected line: {line!r}")

    def expect_closed(self, timeout: float = 5.0):
        """Assert the server closed the connection (after any pending lines)."""
        deadline = time.monotonic() + timeout
        while True:
            line = self.read_line(max(0.01, deadline - time.monotonic()))
            if line is None:
                return

    def close(self):
        try:
            self.sock.close()
        except OSError:
            pass


class ServerRunner:
    """Runs a ChatServer in a background thread."""

    def __init__(self, server: ChatServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(target=self.server.run, daemon=True)
        self._thread.start()

        if not self.server.wait_until_ready(5.0):
            raise RuntimeError("Server failed to start")

    def stop(self, timeout: float = 10.0):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout)

    @property
    def stopped(self) -> bool:
        return self._thread is not None and not self._thread.is_alive()

    def wait_for_count(self, count: int, timeout: float = 5.0):
        """Wait until exactly `count` sessions are registered."""
        deadline = time.monotonic() + timeout
        while self.server.registry.active_count != count:
            if time.monotonic() > deadline:
                raise AssertionError(
                    f"expected {count} sessions, have {self.server.registry.active_count}"
                )
            time.sleep(0.02)


@pytest.fixture
def config() -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        max_clients=50,
        drain_timeout=2.0,
        accept_timeout=0.2,
        log_level="INFO",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


@pytest.fixture
def make_runner() -> Generator[Callable[[ServerConfig], ServerRunner], None, None]:
    """Factory for started servers; all are stopped at teardown."""
    runners: List[ServerRunner] = []

    def factory(cfg: ServerConfig) -> ServerRunner:
        runner = ServerRunner(ChatServer(cfg))
        runner.start()
        runners.append(runner)
        return runner

    yield factory

    for runner in runners:
        runner.stop()


@pytest.fixture
def chat_server(make_runner, config: ServerConfig) -> ServerRunner:
    """A running chat server with the default test configuration."""
    return make_runner(config)


@pytest.fixture
def connect() -> Generator[Callable[..., LineClient], None, None]:
    """
    Factory for clients. connect(port) opens a connection; with
    greet=True (default) it also reads the three greeting lines.
    """
    clients: List[LineClient] = []

    def factory(port: int, greet: bool = True) -> LineClient:
        client = LineClient.connect(port)
        clients.append(client)
        if greet:
            client.greeting = client.read_lines(3)
        return client

    yield factory

    for client in clients:
        client.close()


@pytest.fixture
def socket_pair() -> Generator[tuple, None, None]:
    """(server-side socket, LineClient for the other end)."""
    server_sock, client_sock = socket.socketpair()
    client = LineClient(client_sock)

    yield server_sock, client

    client.close()
    try:
        server_sock.close()
    except OSError:
        pass
