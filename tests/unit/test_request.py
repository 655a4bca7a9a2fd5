"""
Unit tests for HTTP request parsing.
"""

import pytest

from tidepool.http.request import (
    HTTPRequest,
    RequestParser,
    HTTPParseError,
    parse_request,
)


class TestRequestParser:
    """Tests for RequestParser class."""

    def test_parse_simple_get(self, sample_get_request: bytes):
        """Test parsing a simple GET request."""
        parser = RequestParser()
        request = parser.parse(sample_get_request, ("127.0.0.1", 12345))

        assert request.method == "GET"
        assert request.path == "/docs/page.html"
        assert request.version == "HTTP/1.1"
        assert request.target == "/docs/page.html?lang=en&lang=fr"
        assert request.client_address == ("127.0.0.1", 12345)

    def test_parse_headers(self, sample_get_request: bytes):
        """Test that headers are parsed correctly."""
        request = parse_request(sample_get_request)

        assert request.host == "localhost:7878"
        assert request.user_agent == "pytest"
        assert request.headers["accept"] == "text/html"

    def test_parse_query_params(self, sample_get_request: bytes):
        """Test query parameter parsing."""
        request = parse_request(sample_get_request)

        assert request.query_params["lang"] == ["en", "fr"]
        assert request.get_query("lang") == "en"
        assert request.get_query("missing") is None
        assert request.get_query("missing", "default") == "default"

    def test_parse_path_with_special_chars(self):
        """Test URL-encoded path parsing."""
        raw = b"GET /my%20file.txt?q=hello%20world HTTP/1.1\r\nHost: test\r\n\r\n"
        request = parse_request(raw)

        assert request.path == "/my file.txt"
        assert request.get_query("q") == "hello world"

    def test_parse_unknown_method(self):
        """Test that unknown methods are rejected with 405."""
        raw = b"BREW /pot HTTP/1.1\r\nHost: test\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 405

    def test_parse_post_is_accepted_by_parser(self):
        """POST is valid HTTP; refusing it is the handler's job."""
        raw = b"POST /form HTTP/1.1\r\nContent-Length: 3\r\n\r\nabc"
        request = parse_request(raw)

        assert request.method == "POST"
        assert request.body == b"abc"

    @pytest.mark.parametrize("raw", [
        b"GET\r\nHost: test\r\n\r\n",
        b"GET /\r\n\r\n",
        b"GET / HTTP/1.1 extra\r\n\r\n",
        b"\r\n\r\n",
    ])
    def test_parse_invalid_request_line(self, raw: bytes):
        """Test handling of malformed request lines."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_parse_without_terminator(self):
        """A head without the blank line is incomplete."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/1.1\r\nHost: test\r\n")

        assert exc_info.value.status_code == 400

    def test_parse_unsupported_version(self):
        """Only HTTP/1.0 and HTTP/1.1 are spoken."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/2.0\r\n\r\n")

        assert exc_info.value.status_code == 505

    def test_parse_absolute_target_rejected(self):
        """Targets must be origin-form ("/...")."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET index.html HTTP/1.1\r\n\r\n")

        assert exc_info.value.status_code == 400

    def test_parse_nul_byte_rejected(self):
        """Test that an encoded NUL byte in the path is rejected."""
        with pytest.raises(HTTPParseError):
            parse_request(b"GET /index.html%00.txt HTTP/1.1\r\n\r\n")

    def test_parse_missing_headers(self):
        """Test parsing request with no headers."""
        raw = b"GET / HTTP/1.1\r\n\r\n"
        request = parse_request(raw)

        assert request.method == "GET"
        assert request.path == "/"
        assert len(request.headers) == 0

    def test_parse_malformed_header(self):
        """A header line without a colon is a bad request."""
        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(b"GET / HTTP/1.1\r\nNoColonHere\r\n\r\n")

        assert exc_info.value.status_code == 400

    def test_parse_repeated_headers_are_joined(self):
        """Repeated headers are combined with ', '."""
        raw = b"GET / HTTP/1.1\r\nAccept: text/html\r\nAccept: text/plain\r\n\r\n"
        request = parse_request(raw)

        assert request.headers["accept"] == "text/html, text/plain"

    def test_parse_request_too_large(self):
        """Test that oversized requests are rejected."""
        parser = RequestParser(max_request_size=100)
        raw = b"GET / HTTP/1.1\r\n" + b"X-Large: " + b"A" * 200 + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parser.parse(raw)

        assert exc_info.value.status_code == 413

    def test_http_version_parsing(self):
        """Test HTTP/1.0 and HTTP/1.1 version handling."""
        assert parse_request(b"GET / HTTP/1.0\r\n\r\n").version == "HTTP/1.0"
        assert parse_request(b"GET / HTTP/1.1\r\n\r\n").version == "HTTP/1.1"

    def test_content_length_handling(self):
        """Test Content-Length validation."""
        body = b"test body"
        raw = (
            b"POST / HTTP/1.1\r\n"
            b"Content-Length: 9\r\n"
            b"\r\n"
        ) + body

        request = parse_request(raw)
        assert request.content_length == 9
        assert request.body == body

    @pytest.mark.parametrize("value", [b"abc", b"-1"])
    def test_invalid_content_length(self, value: bytes):
        """Non-numeric or negative Content-Length is a bad request."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: " + value + b"\r\n\r\n"

        with pytest.raises(HTTPParseError) as exc_info:
            parse_request(raw)

        assert exc_info.value.status_code == 400

    def test_short_body(self):
        """Fewer body bytes than announced is a bad request."""
        raw = b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\nabc"

        with pytest.raises(HTTPParseError):
            parse_request(raw)

    def test_case_insensitive_headers(self):
        """Test that header names are case-insensitive."""
        raw = b"GET / HTTP/1.1\r\nCONTENT-TYPE: text/html\r\n\r\n"
        request = parse_request(raw)

        assert request.get_header("Content-Type") == "text/html"
        assert request.get_header("content-type") == "text/html"


class TestHTTPRequest:
    """Tests for HTTPRequest dataclass."""

    def test_get_header_default(self):
        """Test get_header with default value."""
        request = HTTPRequest(method="GET", path="/")

        assert request.get_header("X-Missing") == ""
        assert request.get_header("X-Missing", "default") == "default"

    def test_content_length_invalid_is_zero(self):
        """The property never raises."""
        request = HTTPRequest(method="GET", path="/", headers={"content-length": "x"})

        assert request.content_length == 0
