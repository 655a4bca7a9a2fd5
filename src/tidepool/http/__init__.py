"""
=============================================================================
HTTP PROTOCOL IMPLEMENTATION
=============================================================================

Translates raw bytes from TCP into structured HTTP messages and back.

    ┌─────────────────────────────────────────────────────────────────────┐
    │ REQUEST PARSER (request.py)                                         │
    │   b"GET /index.html HTTP/1.1\\r\\n..."  →  HTTPRequest(method="GET")  │
    ├─────────────────────────────────────────────────────────────────────┤
    │ RESPONSE BUILDER (response.py)                                      │
    │   ResponseBuilder().status(200).file(...)  →  b"HTTP/1.1 200 OK..." │
    ├─────────────────────────────────────────────────────────────────────┤
    │ STATUS CODES (status_codes.py), MIME TYPES (mime_types.py)          │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, HTTPParseError, RequestParser, parse_request
from .response import HTTPResponse, ResponseBuilder, format_http_date
from .status_codes import HTTPStatus
from .mime_types import get_content_type, get_mime_type

__all__ = [
    "HTTPRequest",
    "HTTPParseError",
    "RequestParser",
    "parse_request",
    "HTTPResponse",
    "ResponseBuilder",
    "format_http_date",
    "HTTPStatus",
    "get_content_type",
    "get_mime_type",
]
