"""
Unit tests for HTTP response building.
"""

from datetime import datetime, timezone

import pytest

from tidepool.http.mime_types import get_content_type, get_mime_type
from tidepool.http.response import (
    HTTPResponse,
    ResponseBuilder,
    HTTPStatus,
    ok,
    error_page,
    error_response,
    not_found,
    bad_request,
    internal_error,
    method_not_allowed,
    service_unavailable,
    format_http_date,
)


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_status_line(self):
        """Test status line generation."""
        response = HTTPResponse(status=HTTPStatus.OK)
        assert response.status_line == "HTTP/1.1 200 OK"

        response = HTTPResponse(status=HTTPStatus.NOT_FOUND)
        assert response.status_line == "HTTP/1.1 404 Not Found"

    def test_to_bytes_includes_headers(self):
        """Test that to_bytes includes all headers."""
        response = HTTPResponse(
            status=HTTPStatus.OK,
            headers={"X-Custom": "value"},
            body=b"test",
        )

        result = response.to_bytes()

        assert result.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"X-Custom: value\r\n" in result
        assert b"Content-Length: 4\r\n" in result
        assert result.endswith(b"\r\n\r\ntest")

    def test_to_bytes_default_headers(self):
        """Date, Server and Connection: close are always present."""
        result = HTTPResponse(body=b"x").to_bytes(server_name="Test/0.1")

        assert b"Server: Test/0.1\r\n" in result
        assert b"Connection: close\r\n" in result
        assert b"Date: " in result
        assert b"Content-Type: text/plain; charset=utf-8\r\n" in result

    def test_to_bytes_sets_content_length(self):
        """Test that Content-Length is auto-set."""
        response = HTTPResponse(body=b"hello world")
        result = response.to_bytes()

        assert b"Content-Length: 11\r\n" in result

    def test_to_bytes_without_body(self):
        """HEAD: real Content-Length, no body bytes."""
        response = HTTPResponse(body=b"hello world")
        result = response.to_bytes(include_body=False)

        assert b"Content-Length: 11\r\n" in result
        assert result.endswith(b"\r\n\r\n")
        assert b"hello world" not in result

    def test_explicit_header_wins(self):
        """Headers already set are not overwritten."""
        response = HTTPResponse(headers={"Content-Type": "image/png"}, body=b"\x89PNG")

        assert b"Content-Type: image/png\r\n" in response.to_bytes()

    def test_set_header_chaining(self):
        """Test method chaining for headers."""
        response = (HTTPResponse()
            .set_header("X-One", "1")
            .set_header("X-Two", "2"))

        assert response.headers["X-One"] == "1"
        assert response.headers["X-Two"] == "2"


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_status(self):
        """Test setting status code."""
        response = ResponseBuilder().status(HTTPStatus.NOT_FOUND).build()
        assert response.status == HTTPStatus.NOT_FOUND

    def test_status_from_int(self):
        """Plain ints are converted to HTTPStatus."""
        response = ResponseBuilder().status(403).build()
        assert response.status is HTTPStatus.FORBIDDEN

    def test_html_body(self):
        """Test HTML body."""
        html = "<html><body>Hello</body></html>"
        response = ResponseBuilder().html(html).build()

        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert response.body == html.encode()

    def test_text_body(self):
        """Test plain text body."""
        text = "Hello, World!"
        response = ResponseBuilder().text(text).build()

        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert response.body == text.encode()

    def test_file_body(self):
        """Content-Type comes from the file name."""
        response = ResponseBuilder().file(b"body{}", "site.css").build()

        assert response.headers["Content-Type"] == "text/css; charset=utf-8"
        assert response.body == b"body{}"

    def test_close_connection(self):
        """Test connection close header."""
        response = ResponseBuilder().close_connection().build()
        assert response.headers["Connection"] == "close"

    def test_method_chaining(self):
        """Test fluent API chaining."""
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .header("X-Custom", "value")
            .text("hi")
            .build())

        assert response.status == HTTPStatus.OK
        assert response.headers["X-Custom"] == "value"
        assert response.body == b"hi"

    def test_build_copies_headers(self):
        """Responses from one builder do not share header dicts."""
        builder = ResponseBuilder().header("X-A", "1")
        first = builder.build()
        first.set_header("X-B", "2")

        assert "X-B" not in builder.build().headers


class TestConvenienceFunctions:
    """Tests for convenience response functions."""

    def test_ok(self):
        """Test ok() function."""
        response = ok("Hello")
        assert response.status == HTTPStatus.OK
        assert response.body == b"Hello"

    def test_ok_bytes_with_content_type(self):
        response = ok(b"\x00\x01", content_type="application/octet-stream")
        assert response.headers["Content-Type"] == "application/octet-stream"

    def test_not_found(self):
        """Test not_found() function."""
        response = not_found("Resource not found")
        assert response.status == HTTPStatus.NOT_FOUND
        assert b"Resource not found" in response.body

    def test_bad_request(self):
        """Test bad_request() function."""
        response = bad_request("Invalid input")
        assert response.status == HTTPStatus.BAD_REQUEST
        assert b"Invalid input" in response.body

    def test_internal_error(self):
        """Test internal_error() function."""
        response = internal_error()
        assert response.status == HTTPStatus.INTERNAL_SERVER_ERROR

    def test_method_not_allowed_sets_allow(self):
        """405 must carry the Allow header."""
        response = method_not_allowed(["GET", "HEAD"])

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD"

    def test_service_unavailable(self):
        response = service_unavailable()
        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE

    def test_error_page_escapes_message(self):
        """Messages that echo request data must not inject markup."""
        page = error_page(HTTPStatus.BAD_REQUEST, "<script>alert(1)</script>")

        assert "<script>" not in page
        assert "&lt;script&gt;" in page
        assert "400 Bad Request" in page

    def test_error_response_is_html(self):
        response = error_response(HTTPStatus.REQUEST_TIMEOUT)

        assert response.headers["Content-Type"] == "text/html; charset=utf-8"
        assert b"408 Request Timeout" in response.body


class TestHTTPStatus:
    """Tests for HTTPStatus enum."""

    def test_status_phrases(self):
        """Test that all statuses have phrases."""
        for status in HTTPStatus:
            assert status.phrase

        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.NOT_FOUND.phrase == "Not Found"
        assert HTTPStatus.INTERNAL_SERVER_ERROR.phrase == "Internal Server Error"

    def test_status_categories(self):
        """Test status category helpers."""
        assert HTTPStatus.OK.is_success
        assert HTTPStatus.NOT_FOUND.is_client_error
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_server_error

        assert HTTPStatus.NOT_FOUND.is_error
        assert HTTPStatus.INTERNAL_SERVER_ERROR.is_error
        assert not HTTPStatus.OK.is_error


class TestMimeTypes:
    """Tests for MIME type detection."""

    @pytest.mark.parametrize("name, expected", [
        ("index.html", "text/html"),
        ("STYLE.CSS", "text/css"),
        ("app.js", "text/javascript"),
        ("logo.png", "image/png"),
        ("archive.unknown", "application/octet-stream"),
        ("Makefile", "application/octet-stream"),
    ])
    def test_get_mime_type(self, name: str, expected: str):
        assert get_mime_type(name) == expected

    def test_charset_only_for_text(self):
        assert get_content_type("index.html") == "text/html; charset=utf-8"
        assert get_content_type("logo.png") == "image/png"


class TestFormatHTTPDate:
    """Tests for HTTP date formatting."""

    def test_format(self):
        """Test HTTP date format."""
        dt = datetime(2026, 1, 15, 12, 30, 45, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Thu, 15 Jan 2026 12:30:45 GMT"
