"""
=============================================================================
REQUEST HANDLER
=============================================================================

Runs inside a worker thread. Owns one Connection from the moment the
worker picks up its task until the socket is closed.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     handle(conn) Flow                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   read_request()  ── timeout ──────────────────────► 408            │
    │        │          ── too large ────────────────────► 413            │
    │        ▼                                                             │
    │   parse()         ── HTTPParseError ───────────────► 400/405/505    │
    │        │                                                             │
    │        ▼                                                             │
    │   method GET/HEAD? ── no ──────────────────────────► 405 + Allow    │
    │        │                                                             │
    │        ▼                                                             │
    │   path == /sleep? ── yes ── sleep(5s) ─────────────► 200 text       │
    │        │                                                             │
    │        ▼                                                             │
    │   StaticFileHandler ───────────────────────────────► 200/403/404/500│
    │        │                                                             │
    │        ▼                                                             │
    │   send response (body omitted for HEAD), access log, close          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Any unexpected exception while producing the response becomes a 500.
handle() itself never raises: a failure is answered, logged and the
connection closed.

=============================================================================
THE /sleep ROUTE
=============================================================================

/sleep blocks its worker for `sleep_seconds` before answering. It exists
to show the pool at work: with N workers, a slow request occupies one of
them while the other N-1 keep serving files.

    Worker 0: ──── GET /sleep ─────────── (5s) ────────────► 200
    Worker 1: ─ GET / ► 200 ─ GET /404 ► 404 ─ GET /a.css ► 200

=============================================================================
"""

import logging
import time
from typing import Optional

from ..config import ServerConfig
from ..core.connection import Connection, ConnectionState, RequestTooLarge
from ..http.request import HTTPRequest, HTTPParseError, RequestParser
from ..http.response import (
    HTTPResponse, HTTPStatus,
    error_response, internal_error, method_not_allowed, ok, service_unavailable,
)
from ..log import RequestLog, log_request
from .static import StaticFileHandler


logger = logging.getLogger(__name__)

ALLOWED_METHODS = ("GET", "HEAD")


class RequestHandler:
    """
    Reads, answers and closes one connection.

    Usage:
        handler = RequestHandler(config)
        pool.submit(handler.handle, args=(conn,), on_cancel=conn.close)
    """

    def __init__(self, config: ServerConfig, static: Optional[StaticFileHandler] = None):
        """
        Args:
            config: Server configuration.
            static: Static file handler. Built from config.static_dir if
                    not given (raises ValueError if the directory is missing).
        """
        self.config = config
        self.parser = RequestParser(max_request_size=config.max_request_size)
        self.static = static or StaticFileHandler(
            config.static_dir,
            index_file=config.index_file,
            not_found_page=config.not_found_page,
        )

    def handle(self, conn: Connection) -> None:
        """
        Serve exactly one request on the connection, then close it.
        """
        start_time = time.monotonic()
        request: Optional[HTTPRequest] = None

        with conn:
            try:
                raw_request = conn.read_request()
                if raw_request is None:
                    logger.debug(f"[{conn.id}] Client closed before sending a request")
                    return

                request = self.parser.parse(raw_request, conn.address)
                conn.state = ConnectionState.PROCESSING
                response = self.respond(request)

            except HTTPParseError as e:
                logger.info(f"[{conn.id}] Rejected request from {conn.client_ip}: {e}")
                if e.status_code == HTTPStatus.METHOD_NOT_ALLOWED:
                    response = method_not_allowed(ALLOWED_METHODS)
                else:
                    response = error_response(HTTPStatus(e.status_code), str(e))

            except RequestTooLarge as e:
                logger.info(f"[{conn.id}] {e}")
                response = error_response(HTTPStatus.PAYLOAD_TOO_LARGE)

            except TimeoutError:
                logger.info(f"[{conn.id}] Timed out waiting for request from {conn.client_ip}")
                response = error_response(HTTPStatus.REQUEST_TIMEOUT)

            except Exception as e:
                logger.exception(f"[{conn.id}] Error while handling request: {e}")
                response = internal_error()

            self._send(conn, request, response, start_time)

    def respond(self, request: HTTPRequest) -> HTTPResponse:
        """
        Produce the response for a parsed request.

        Raises whatever the handlers raise. handle() turns that into a 500.
        """
        if request.method not in ALLOWED_METHODS:
            return method_not_allowed(ALLOWED_METHODS)

        if request.path == self.config.sleep_path:
            return self._sleep()

        return self.static.handle(request)

    def _sleep(self) -> HTTPResponse:
        seconds = self.config.sleep_seconds
        time.sleep(seconds)
        return ok(f"Slept for {seconds:g} seconds\n")

    def reject(self, conn: Connection, reason: str = "Server is busy or shutting down") -> None:
        """
        Answer 503 without reading the request, then close.

        Used by the listener thread when the pool refuses a connection.
        """
        start_time = time.monotonic()
        with conn:
            self._send(conn, None, service_unavailable(reason), start_time)

    def _send(
        self,
        conn: Connection,
        request: Optional[HTTPRequest],
        response: HTTPResponse,
        start_time: float,
    ) -> None:
        include_body = request is None or request.method != "HEAD"
        data = response.to_bytes(self.config.server_name, include_body=include_body)
        conn.send_response(data)

        log_request(RequestLog(
            connection_id=conn.id,
            client_ip=conn.client_ip,
            method=request.method if request else "-",
            target=(request.target or request.path) if request else "-",
            version=request.version if request else "-",
            status_code=int(response.status),
            content_length=len(response.body),
            duration_ms=(time.monotonic() - start_time) * 1000,
            user_agent=(request.user_agent or "-") if request else "-",
        ))
