"""
Unit tests for RequestHandler, driven through socket pairs.
"""

import socket
import time
from dataclasses import replace

import pytest

from conftest import INDEX_HTML, NOT_FOUND_HTML, parse_response
from tidepool.config import ServerConfig
from tidepool.core.connection import Connection
from tidepool.handlers import ALLOWED_METHODS, RequestHandler
from tidepool.http.request import HTTPRequest
from tidepool.http.status_codes import HTTPStatus


@pytest.fixture
def handler(config: ServerConfig) -> RequestHandler:
    return RequestHandler(replace(config, sleep_seconds=0.05))


def exchange(handler: RequestHandler, raw: bytes, timeout: float = 2.0):
    """Send raw bytes, run handle() in this thread, return the parsed response."""
    server_sock, client_sock = socket.socketpair()
    conn = Connection(socket=server_sock, address=("127.0.0.1", 40000), timeout=timeout)
    try:
        client_sock.sendall(raw)
        client_sock.shutdown(socket.SHUT_WR)
        handler.handle(conn)

        assert conn.closed
        chunks = []
        while chunk := client_sock.recv(65536):
            chunks.append(chunk)
        return parse_response(b"".join(chunks))
    finally:
        client_sock.close()


class TestRequestHandler:
    """Tests for RequestHandler class."""

    def test_missing_static_dir(self, tmp_path):
        with pytest.raises(ValueError):
            RequestHandler(ServerConfig(static_dir=str(tmp_path / "missing")))

    def test_get_index(self, handler):
        status, headers, body = exchange(handler, b"GET / HTTP/1.1\r\nHost: x\r\n\r\n")

        assert status == 200
        assert body == INDEX_HTML
        assert headers["content-length"] == str(len(INDEX_HTML))
        assert headers["connection"] == "close"

    def test_get_missing(self, handler):
        status, _, body = exchange(handler, b"GET /nope.html HTTP/1.1\r\n\r\n")

        assert status == 404
        assert body == NOT_FOUND_HTML

    def test_head_has_no_body(self, handler):
        status, headers, body = exchange(handler, b"HEAD / HTTP/1.1\r\n\r\n")

        assert status == 200
        assert headers["content-length"] == str(len(INDEX_HTML))
        assert body == b""

    def test_post_not_allowed(self, handler):
        raw = b"POST / HTTP/1.1\r\nContent-Length: 2\r\n\r\nhi"
        status, headers, _ = exchange(handler, raw)

        assert status == 405
        assert headers["allow"] == "GET, HEAD"

    def test_unknown_method_not_allowed(self, handler):
        status, headers, _ = exchange(handler, b"BREW / HTTP/1.1\r\n\r\n")

        assert status == 405
        assert headers["allow"] == ", ".join(ALLOWED_METHODS)

    def test_malformed_request(self, handler):
        status, _, _ = exchange(handler, b"garbage\r\n\r\n")

        assert status == 400

    def test_unsupported_version(self, handler):
        status, _, _ = exchange(handler, b"GET / HTTP/3.0\r\n\r\n")

        assert status == 505

    def test_traversal_forbidden(self, handler):
        status, _, body = exchange(handler, b"GET /../secret.txt HTTP/1.1\r\n\r\n")

        assert status == 403
        assert b"top secret" not in body

    def test_sleep_route(self, handler):
        start = time.monotonic()
        status, headers, body = exchange(handler, b"GET /sleep HTTP/1.1\r\n\r\n")

        assert time.monotonic() - start >= 0.05
        assert status == 200
        assert headers["content-type"].startswith("text/plain")
        assert body == b"Slept for 0.05 seconds\n"

    def test_sleep_ignores_query(self, handler):
        status, _, _ = exchange(handler, b"GET /sleep?x=1 HTTP/1.1\r\n\r\n")

        assert status == 200

    def test_client_closes_without_request(self, handler):
        """Nothing is sent when the client never sent a request."""
        server_sock, client_sock = socket.socketpair()
        conn = Connection(socket=server_sock, address=("127.0.0.1", 40000), timeout=1.0)
        client_sock.shutdown(socket.SHUT_WR)

        handler.handle(conn)

        assert conn.closed
        assert client_sock.recv(100) == b""
        client_sock.close()

    def test_request_timeout(self, handler):
        server_sock, client_sock = socket.socketpair()
        conn = Connection(socket=server_sock, address=("127.0.0.1", 40000), timeout=0.1)
        client_sock.sendall(b"GET / HTTP/1.1\r\n")

        handler.handle(conn)

        status, _, _ = parse_response(client_sock.recv(65536))
        assert status == 408
        client_sock.close()

    def test_unexpected_error_becomes_500(self, handler, monkeypatch):
        def boom(request):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(handler.static, "handle", boom)
        status, _, body = exchange(handler, b"GET / HTTP/1.1\r\n\r\n")

        assert status == 500
        assert b"disk on fire" not in body

    def test_reject_sends_503(self, handler):
        server_sock, client_sock = socket.socketpair()
        conn = Connection(socket=server_sock, address=("127.0.0.1", 40000), timeout=1.0)
        client_sock.shutdown(socket.SHUT_WR)

        handler.reject(conn)

        status, _, _ = parse_response(client_sock.recv(65536))
        assert status == 503
        assert conn.closed
        client_sock.close()

    def test_respond_without_socket(self, handler):
        response = handler.respond(HTTPRequest(method="GET", path="/style.css"))

        assert response.status == HTTPStatus.OK
