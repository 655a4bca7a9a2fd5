"""
=============================================================================
CONNECTION
=============================================================================

Wraps one accepted client socket. A Connection is created by the listener,
moved into a Task, and from then on owned by exactly one worker.

=============================================================================
TCP IS A BYTE STREAM, NOT A MESSAGE PROTOCOL
=============================================================================

    Client sends:                     Server might receive:
        GET / HTTP/1.1\\r\\n              recv() → "GET / HT"
        Host: x\\r\\n                     recv() → "TP/1.1\\r\\nHost: x\\r\\n\\r\\n"
        \\r\\n

We buffer received bytes until the blank line that ends the request head
(\\r\\n\\r\\n) shows up, then read exactly Content-Length more bytes.

=============================================================================
ONE REQUEST PER CONNECTION
=============================================================================

Tidepool does not do keep-alive. Every response carries Connection: close
and the socket is closed right after it is written:

    NEW ──► READING ──► PROCESSING ──► WRITING ──► CLOSING ──► CLOSED
              │                                        ▲
              └──────────── (error / timeout) ─────────┘

=============================================================================
"""

import socket
import threading
import time
import logging
import uuid
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Tuple


logger = logging.getLogger(__name__)

# Upper bounds on what close() reads from a client before giving up
CLOSE_DRAIN_TIMEOUT = 0.5
CLOSE_DRAIN_LIMIT = 16 * 1024


class ConnectionState(Enum):
    """Connection lifecycle states."""
    NEW = "new"                # Just accepted
    READING = "reading"        # Reading the request
    PROCESSING = "processing"  # Handler is building the response
    WRITING = "writing"        # Sending the response
    CLOSING = "closing"        # Close sequence in progress
    CLOSED = "closed"          # Socket released


class RequestTooLarge(ValueError):
    """The request exceeded max_request_size."""


@dataclass
class Connection:
    """
    A single accepted client connection.

    Attributes:
        socket: The client socket.
        address: Client's (ip, port) tuple.
        id: Short connection identifier (for logging).
        state: Current connection state.
        created_at: Monotonic time the connection was accepted.
        buffer_size: Bytes per recv() call.
        timeout: Socket read/write timeout in seconds.
        max_request_size: Upper bound on request head + body.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.monotonic)

    buffer_size: int = 8192
    timeout: Optional[float] = 30.0
    max_request_size: int = 64 * 1024

    bytes_sent: int = 0

    _buffer: bytes = field(default=b"", repr=False)
    _close_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        # Accepted sockets can inherit non-blocking mode from a listener
        # with a timeout on some platforms. Make the mode explicit.
        self.socket.setblocking(True)
        if self.timeout:
            self.socket.settimeout(self.timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    @property
    def client_port(self) -> int:
        return self.address[1]

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.monotonic() - self.created_at

    @property
    def closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete HTTP request from the socket.

        Returns:
            The raw request bytes (head and body), or None if the client
            closed the connection before sending a full request head.

        Raises:
            TimeoutError: The client did not send the request in time.
            RequestTooLarge: The request exceeds max_request_size.
        """
        self.state = ConnectionState.READING

        try:
            # STEP 1: read until the end of the request head
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk
                self._check_size()

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4

            # STEP 2: read the body, if the client announced one
            content_length = self._parse_content_length(self._buffer[:header_end])
            if body_start + content_length > self.max_request_size:
                raise RequestTooLarge(
                    f"Request too large: {body_start + content_length} bytes"
                )

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # Short body, the parser sees what arrived
                self._buffer += chunk

            request_end = body_start + content_length
            request_data = self._buffer[:request_end]
            self._buffer = b""
            return request_data

        except socket.timeout:
            raise TimeoutError("Request read timeout") from None

    def _check_size(self):
        if len(self._buffer) > self.max_request_size:
            raise RequestTooLarge(f"Request too large: {len(self._buffer)} bytes")

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except (ConnectionResetError, BrokenPipeError):
            return b""

    @staticmethod
    def _parse_content_length(headers: bytes) -> int:
        """
        Find Content-Length in the raw head.

        The full parser runs later. A missing or garbled value counts as 0
        here and is reported by the parser.
        """
        header_str = headers.decode("latin-1").lower()
        for line in header_str.split("\r\n")[1:]:
            if line.startswith("content-length:"):
                try:
                    return max(0, int(line.split(":", 1)[1].strip()))
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def send_response(self, data: bytes) -> bool:
        """
        Send a complete response.

        Uses sendall() so partial writes never truncate the response.

        Returns:
            True if every byte was handed to the OS, False if the client is gone.
        """
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
            self.bytes_sent += len(data)
            return True
        except OSError as e:
            logger.warning(f"[{self.id}] Send to {self.client_ip} failed: {e}")
            return False

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self):
        """
        Close the connection. Safe to call more than once and from any thread.

        Sends FIN first (shutdown SHUT_WR), briefly drains whatever the client
        still sends so the kernel does not answer with RST, then releases the
        file descriptor. The drain stops after CLOSE_DRAIN_TIMEOUT seconds or
        CLOSE_DRAIN_LIMIT bytes, whichever comes first.
        """
        with self._close_lock:
            if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
                return
            self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # Peer already gone

        deadline = time.monotonic() + CLOSE_DRAIN_TIMEOUT
        drained = 0
        try:
            while drained < CLOSE_DRAIN_LIMIT:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                chunk = self.socket.recv(1024)
                if not chunk:
                    break
                drained += len(chunk)
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
