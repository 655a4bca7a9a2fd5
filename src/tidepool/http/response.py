"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds HTTP/1.1 responses (RFC 7230).

    ┌─ STATUS LINE ──────────────────────────────────────────────────┐
    │    HTTP/1.1 200 OK\\r\\n                                         │
    ├─ HEADERS ──────────────────────────────────────────────────────┤
    │    Content-Type: text/html; charset=utf-8\\r\\n                  │
    │    Content-Length: 143\\r\\n          ← always, computed         │
    │    Date: Mon, 19 Oct 2026 12:00:00 GMT\\r\\n                     │
    │    Server: Tidepool/1.0\\r\\n                                    │
    │    Connection: close\\r\\n            ← one request per socket   │
    ├─ EMPTY LINE ───────────────────────────────────────────────────┤
    │    \\r\\n                                                        │
    ├─ BODY ─────────────────────────────────────────────────────────┤
    │    <!DOCTYPE html>...                 ← omitted for HEAD        │
    └────────────────────────────────────────────────────────────────┘

=============================================================================
BUILDER PATTERN
=============================================================================

    response = (ResponseBuilder()
        .status(HTTPStatus.OK)
        .file(content, "index.html")
        .build())

Each method returns `self`, so calls chain. build() produces the
HTTPResponse, to_bytes() serializes it for socket.sendall().

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from html import escape
from typing import Dict, Iterable, Optional, Union

from .status_codes import HTTPStatus
from .mime_types import get_content_type


DEFAULT_SERVER_NAME = "Tidepool/1.0"
DEFAULT_CONTENT_TYPE = "text/plain; charset=utf-8"


@dataclass
class HTTPResponse:
    """
    An HTTP response ready to be serialized.

    Use ResponseBuilder or the helper functions below to construct one.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"

    @property
    def status_line(self) -> str:
        """e.g. "HTTP/1.1 200 OK"."""
        return f"{self.version} {self.status.value} {self.status.phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME, include_body: bool = True) -> bytes:
        """
        Serialize the response.

        Content-Length, Content-Type, Date, Server and Connection are
        filled in unless already set. Tidepool always closes the
        connection after one response.

        Args:
            server_name: Value of the Server header.
            include_body: False for HEAD: headers (including the real
                          Content-Length) are sent, the body is not.

        Returns:
            The complete response as bytes.
        """
        response_headers = dict(self.headers)

        response_headers.setdefault("Content-Length", str(len(self.body)))
        response_headers.setdefault("Content-Type", DEFAULT_CONTENT_TYPE)
        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)
        response_headers.setdefault("Connection", "close")

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        # Header values are ASCII by construction. latin-1 is the
        # historical header charset and never fails on a byte.
        header_bytes = "\r\n".join(lines).encode("latin-1", errors="replace") + b"\r\n"

        if include_body:
            return header_bytes + self.body
        return header_bytes


class ResponseBuilder:
    """
    Fluent builder for HTTP responses.

        ResponseBuilder().status(HTTPStatus.NOT_FOUND).html(page).build()
    """

    def __init__(self, server_name: str = DEFAULT_SERVER_NAME):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._server_name = server_name

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        return self.header("Content-Type", content_type)

    def body(self, body: Union[str, bytes]) -> "ResponseBuilder":
        """Raw body. Strings are encoded as UTF-8."""
        self._body = body.encode("utf-8") if isinstance(body, str) else body
        return self

    def text(self, text: str, content_type: str = DEFAULT_CONTENT_TYPE) -> "ResponseBuilder":
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = content_type
        return self

    def html(self, html: Union[str, bytes]) -> "ResponseBuilder":
        self._body = html.encode("utf-8") if isinstance(html, str) else html
        self._headers["Content-Type"] = "text/html; charset=utf-8"
        return self

    def file(self, content: bytes, filename: str) -> "ResponseBuilder":
        """File body, Content-Type picked from the file name's extension."""
        self._body = content
        self._headers["Content-Type"] = get_content_type(filename)
        return self

    def close_connection(self) -> "ResponseBuilder":
        self._headers["Connection"] = "close"
        return self

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=dict(self._headers),
            body=self._body,
        )

    def to_bytes(self) -> bytes:
        """build() and serialize in one step."""
        return self.build().to_bytes(self._server_name)


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

_DAYS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
_MONTHS = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
           "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]


def format_http_date(dt: datetime) -> str:
    """
    Format a datetime as an HTTP-date (RFC 7231), always in GMT.

    Built by hand instead of strftime so the output never depends on the
    process locale.

    Example: Thu, 15 Jan 2026 12:30:45 GMT
    """
    dt = dt.astimezone(timezone.utc)
    return (
        f"{_DAYS[dt.weekday()]}, "
        f"{dt.day:02d} {_MONTHS[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


_ERROR_PAGE = """<!DOCTYPE html>
<html lang="en">
  <head>
    <meta charset="utf-8">
    <title>{code} {phrase}</title>
  </head>
  <body>
    <h1>{code} {phrase}</h1>
    <p>{message}</p>
  </body>
</html>
"""


def error_page(status: HTTPStatus, message: Optional[str] = None) -> str:
    """Small HTML page for an error status. The message is HTML-escaped."""
    status = HTTPStatus(status)
    return _ERROR_PAGE.format(
        code=status.value,
        phrase=status.phrase,
        message=escape(message or status.phrase),
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(body: Union[str, bytes] = "", content_type: Optional[str] = None) -> HTTPResponse:
    """200 OK. Strings default to text/plain."""
    builder = ResponseBuilder().status(HTTPStatus.OK)
    if isinstance(body, str):
        builder.text(body, content_type or DEFAULT_CONTENT_TYPE)
    else:
        builder.body(body)
        if content_type:
            builder.content_type(content_type)
    return builder.build()


def error_response(status: HTTPStatus, message: Optional[str] = None) -> HTTPResponse:
    """An error status with the built-in HTML error page as body."""
    return ResponseBuilder().status(status).html(error_page(status, message)).build()


def bad_request(message: str = "Bad Request") -> HTTPResponse:
    return error_response(HTTPStatus.BAD_REQUEST, message)


def forbidden(message: str = "Forbidden") -> HTTPResponse:
    return error_response(HTTPStatus.FORBIDDEN, message)


def not_found(message: str = "Not Found") -> HTTPResponse:
    return error_response(HTTPStatus.NOT_FOUND, message)


def method_not_allowed(allowed_methods: Iterable[str]) -> HTTPResponse:
    """
    405 with the Allow header RFC 7231 requires.
    """
    allowed = ", ".join(allowed_methods)
    response = error_response(HTTPStatus.METHOD_NOT_ALLOWED, f"Allowed methods: {allowed}")
    return response.set_header("Allow", allowed)


def internal_error(message: str = "Internal Server Error") -> HTTPResponse:
    """500. Never put exception details in the message."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)


def service_unavailable(message: str = "Server is busy or shutting down") -> HTTPResponse:
    return error_response(HTTPStatus.SERVICE_UNAVAILABLE, message)
