"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Parses raw HTTP/1.1 request bytes into HTTPRequest objects (RFC 7230).

    ┌─ REQUEST LINE ─────────────────────────────────────────────────┐
    │    GET /index.html?lang=en HTTP/1.1\\r\\n                       │
    │    ─┬─ ─────────┬───────── ────┬───                            │
    │   Method       URI           Version                           │
    ├─ HEADERS ──────────────────────────────────────────────────────┤
    │    Host: localhost:7878\\r\\n                                   │
    │    User-Agent: curl/8.4.0\\r\\n                                 │
    ├─ EMPTY LINE ───────────────────────────────────────────────────┤
    │    \\r\\n                                                       │
    ├─ BODY (optional, Content-Length bytes) ────────────────────────┤
    └────────────────────────────────────────────────────────────────┘

=============================================================================
PARSE ERRORS → STATUS CODES
=============================================================================

    Problem                                 Status
    ──────────────────────────────────────  ──────
    Garbled request line / headers          400
    Unknown method (e.g. "BREW")            405
    Request larger than the limit           413
    Anything but HTTP/1.0 or HTTP/1.1       505

The parser recognises every standard method. Whether a method is SERVED
is the request handler's decision (GET and HEAD only).

Paths are URL-decoded here but NOT checked against the file system. The
static file handler resolves them and rejects anything outside its root.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple
from urllib.parse import parse_qs, urlparse, unquote
import re


class HTTPParseError(Exception):
    """
    Raised when a request cannot be parsed.

    Carries the HTTP status code that should be sent back to the client.
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class HTTPRequest:
    """
    A parsed HTTP request.

    Attributes:
        method: The HTTP method (GET, HEAD, POST, ...).
        path: URL-decoded path WITHOUT the query string.
        version: "HTTP/1.1" or "HTTP/1.0".
        headers: Header names are stored lowercase (they are case-insensitive).
        query_params: "?a=1&a=2" → {"a": ["1", "2"]}.
        body: Raw body bytes (Content-Length bytes).
        target: The request target exactly as sent, for the access log.
        client_address: (ip, port) of the client.
    """

    method: str
    path: str
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""
    target: str = ""
    client_address: Tuple[str, int] = ("", 0)

    @property
    def content_length(self) -> int:
        """Content-Length as an int, 0 if missing or invalid."""
        try:
            return int(self.headers.get("content-length", 0))
        except ValueError:
            return 0

    @property
    def host(self) -> str:
        return self.headers.get("host", "")

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def referer(self) -> str:
        return self.headers.get("referer", "")

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)

    def get_query(self, name: str, default: Optional[str] = None) -> Optional[str]:
        """First value of a query parameter."""
        values = self.query_params.get(name, [])
        return values[0] if values else default


class RequestParser:
    """
    Parses raw HTTP request bytes into HTTPRequest objects.

        Raw bytes
            │
            ├─ 1. Size check                → 413
            ├─ 2. Split head / body at \\r\\n\\r\\n
            ├─ 3. Request line              → 400 / 405 / 505
            ├─ 4. Headers (lowercased)
            ├─ 5. Body by Content-Length    → 400 if short or invalid
            ▼
        HTTPRequest
    """

    VALID_METHODS = {
        "GET",
        "HEAD",
        "POST",
        "PUT",
        "DELETE",
        "PATCH",
        "OPTIONS",
        "TRACE",
        "CONNECT",
    }

    REQUEST_LINE_PATTERN = re.compile(r"^([A-Za-z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:\s]+):\s*(.*)$")

    def __init__(self, max_request_size: int = 64 * 1024):
        """
        Args:
            max_request_size: Largest accepted request in bytes. Larger
                              requests are rejected with 413.
        """
        self.max_request_size = max_request_size

    def parse(self, data: bytes, client_address: Tuple[str, int] = ("", 0)) -> HTTPRequest:
        """
        Parse one raw HTTP request.

        Args:
            data: Raw request bytes (head and body).
            client_address: Client's (ip, port) tuple.

        Returns:
            The parsed request.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        if len(data) > self.max_request_size:
            raise HTTPParseError(f"Request too large: {len(data)} bytes", status_code=413)

        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        if not lines or not lines[0]:
            raise HTTPParseError("Empty request line")

        method, target, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        # ─────────────────────────────────────────────────────────────────
        # BODY
        # ─────────────────────────────────────────────────────────────────
        # Trust only Content-Length. A value that is not a non-negative
        # integer is a malformed request, not "no body".
        raw_length = headers.get("content-length", "0")
        try:
            content_length = int(raw_length)
        except ValueError:
            raise HTTPParseError(f"Invalid Content-Length: {raw_length}") from None
        if content_length < 0:
            raise HTTPParseError(f"Invalid Content-Length: {raw_length}")

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
            target=target,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str):
        """
        Parse "METHOD SP REQUEST-URI SP HTTP-VERSION".

        Returns:
            Tuple of (method, target, path, query_params, version).
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line[:100]!r}")

        method, target, version = match.groups()

        if method not in self.VALID_METHODS:
            raise HTTPParseError(f"Invalid method: {method}", status_code=405)

        if version not in ("HTTP/1.0", "HTTP/1.1"):
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)

        parsed = urlparse(target)
        path = unquote(parsed.path) or "/"
        if not path.startswith("/"):
            raise HTTPParseError(f"Invalid request target: {target[:100]!r}")
        if "\x00" in path:
            raise HTTPParseError("Invalid path: contains NUL byte")

        query_params = parse_qs(parsed.query, keep_blank_values=True)
        return method, target, path, query_params, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """
        Parse "Name: value" lines.

        Names are lowercased. Repeated headers are joined with ", ".
        A line without a colon is a malformed request.
        """
        headers: Dict[str, str] = {}

        for line in lines:
            if not line:
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise HTTPParseError(f"Malformed header line: {line[:100]!r}")

            name, value = match.groups()
            name = name.lower()
            value = value.strip()

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0),
    max_size: int = 64 * 1024,
) -> HTTPRequest:
    """Parse a request with a throwaway RequestParser."""
    return RequestParser(max_request_size=max_size).parse(data, client_address)
