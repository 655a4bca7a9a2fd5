"""
=============================================================================
STATIC FILE HANDLER
=============================================================================

Serves files from the document root (public/ by default).

    GET /               →  public/index.html
    GET /css/site.css   →  public/css/site.css
    GET /docs/          →  public/docs/index.html
    GET /missing.html   →  404, body = public/404.html (or a built-in page)

=============================================================================
SECURITY: PATH TRAVERSAL
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  GET /../../../etc/passwd HTTP/1.1                                  │
    │                                                                      │
    │  Unprotected:  public/../../../etc/passwd  →  /etc/passwd  (!)      │
    │                                                                      │
    │  Protection:                                                        │
    │  1. Resolve the full path (normalizes .. and follows symlinks)      │
    │  2. Check it is still inside the resolved root                      │
    │  3. If not → 403 Forbidden                                          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    full_path = (root_dir / user_input).resolve()
    full_path.relative_to(root_dir)     # raises ValueError if outside

=============================================================================
"""

import logging
from pathlib import Path

from ..http.request import HTTPRequest
from ..http.response import (
    HTTPResponse, ResponseBuilder, HTTPStatus,
    forbidden, internal_error, not_found,
)


logger = logging.getLogger(__name__)


class StaticFileHandler:
    """
    Maps request paths to files under a root directory.

    Usage:
        static = StaticFileHandler("public")
        response = static.handle(request)
    """

    def __init__(
        self,
        root_dir: str,
        index_file: str = "index.html",
        not_found_page: str = "404.html",
    ):
        """
        Args:
            root_dir: Directory to serve. Every served file MUST be inside it.
            index_file: File served for "/" and for directory paths.
            not_found_page: File (relative to root_dir) used as the body of
                            404 responses. A built-in page is used when it
                            does not exist.

        Raises:
            ValueError: If root_dir is not an existing directory.
        """
        self.root_dir = Path(root_dir).resolve()
        self.index_file = index_file
        self.not_found_page = not_found_page

        if not self.root_dir.is_dir():
            raise ValueError(f"Static root directory does not exist: {root_dir}")

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Serve the file named by request.path.

        Returns:
            200 with the file, 403 for paths outside the root, 404 for
            missing files, 500 if the file exists but cannot be read.
        """
        file_path = request.path.lstrip("/")

        # resolve() follows symlinks and normalizes .. components
        full_path = (self.root_dir / file_path).resolve()

        try:
            full_path.relative_to(self.root_dir)
        except ValueError:
            logger.warning(f"Path traversal attempt from {request.client_address[0]}: {request.path}")
            return forbidden("Access denied")

        try:
            if full_path.is_dir():
                full_path = full_path / self.index_file

            if not full_path.is_file():
                return self.not_found_response(request.path)
        except OSError as e:
            # e.g. ENAMETOOLONG: a name that cannot exist is simply not found
            logger.debug(f"Cannot stat {full_path}: {e}")
            return self.not_found_response(request.path)

        return self._serve_file(full_path)

    def _serve_file(self, path: Path) -> HTTPResponse:
        try:
            content = path.read_bytes()
        except OSError as e:
            logger.error(f"Error reading {path}: {e}")
            return internal_error("Failed to read file")

        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .file(content, path.name)
            .build())

    def not_found_response(self, url_path: str) -> HTTPResponse:
        """
        404 response, using the custom not-found page when the root has one.
        """
        page = self.root_dir / self.not_found_page
        try:
            content = page.read_bytes()
        except FileNotFoundError:
            return not_found(f"File not found: {url_path}")
        except OSError as e:
            logger.warning(f"Could not read not-found page {page}: {e}")
            return not_found(f"File not found: {url_path}")

        return (ResponseBuilder()
            .status(HTTPStatus.NOT_FOUND)
            .file(content, page.name)
            .build())
