"""
pytest configuration and fixtures.
"""

import socket
import threading
from pathlib import Path
from typing import Callable, Dict, Generator, Tuple
import pytest

# Add src to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tidepool import TidepoolServer, ServerConfig


INDEX_HTML = b"<!DOCTYPE html><html><body><h1>Hello!</h1></body></html>\n"
NOT_FOUND_HTML = b"<!DOCTYPE html><html><body><h1>Oops!</h1></body></html>\n"


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /docs/page.html?lang=en&lang=fr HTTP/1.1\r\n"
        b"Host: localhost:7878\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/html\r\n"
        b"\r\n"
    )


@pytest.fixture
def static_dir(tmp_path: Path) -> Path:
    """Document root with an index, a custom 404 page and a stylesheet."""
    root = tmp_path / "public"
    root.mkdir()
    (root / "index.html").write_bytes(INDEX_HTML)
    (root / "404.html").write_bytes(NOT_FOUND_HTML)
    (root / "style.css").write_text("body { color: teal; }\n")

    docs = root / "docs"
    docs.mkdir()
    (docs / "index.html").write_text("<h1>Docs</h1>\n")

    # Outside the root, must never be served
    (tmp_path / "secret.txt").write_text("top secret\n")
    return root


@pytest.fixture
def config(static_dir: Path) -> ServerConfig:
    """Default test server configuration."""
    return ServerConfig(
        host="127.0.0.1",
        port=0,  # Let OS pick a free port
        workers=2,
        timeout=5.0,
        accept_poll_interval=0.1,
        static_dir=str(static_dir),
        sleep_seconds=0.5,
        log_level="WARNING",
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def send_raw(address: Tuple[str, int], data: bytes, timeout: float = 10.0) -> bytes:
    """Send raw bytes, read until the server closes the connection."""
    with socket.create_connection(address, timeout=timeout) as sock:
        sock.sendall(data)
        chunks = []
        while True:
            chunk = sock.recv(65536)
            if not chunk:
                break
            chunks.append(chunk)
    return b"".join(chunks)


def parse_response(raw: bytes) -> Tuple[int, Dict[str, str], bytes]:
    """Split a raw response into (status code, lowercased headers, body)."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("latin-1").split("\r\n")
    status = int(lines[0].split(" ")[1])
    headers = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers[name.strip().lower()] = value.strip()
    return status, headers, body


@pytest.fixture
def fetch() -> Callable[..., Tuple[int, Dict[str, str], bytes]]:
    """fetch(address, path, method="GET") → (status, headers, body)."""
    def _fetch(address, path: str, method: str = "GET", timeout: float = 10.0):
        request = (
            f"{method} {path} HTTP/1.1\r\n"
            f"Host: {address[0]}:{address[1]}\r\n"
            f"User-Agent: pytest\r\n"
            f"\r\n"
        ).encode("ascii")
        return parse_response(send_raw(address, request, timeout=timeout))
    return _fetch


class BackgroundServer:
    """Test server helper that runs in a background thread."""

    def __init__(self, server: TidepoolServer):
        self.server = server
        self._thread: threading.Thread = None

    @property
    def address(self) -> Tuple[str, int]:
        return self.server.address

    def start(self):
        """Bind in the calling thread, serve in a background thread."""
        self.server.start()
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"install_signals": False, "banner": False},
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float = 10.0) -> bool:
        """Request shutdown and wait for run() to return."""
        self.server.shutdown("test finished")
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            return not self._thread.is_alive()
        return True


@pytest.fixture
def running_server(config: ServerConfig) -> Generator[BackgroundServer, None, None]:
    """A started server on a random port."""
    background = BackgroundServer(TidepoolServer(config))
    background.start()

    yield background

    background.stop()
