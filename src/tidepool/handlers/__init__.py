"""
Request handlers.

    RequestHandler     one connection: read, parse, dispatch, respond, close
    StaticFileHandler  files under the document root
"""

from .request_handler import RequestHandler, ALLOWED_METHODS
from .static import StaticFileHandler

__all__ = ["RequestHandler", "StaticFileHandler", "ALLOWED_METHODS"]
