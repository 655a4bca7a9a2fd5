"""
=============================================================================
CONNECTION LISTENER
=============================================================================

The listener owns the listening socket. It binds, accepts, wraps every
client socket in a Connection and hands it on. It never handles a request
itself: the callback it is given submits the connection to the pool.

    ┌───────────────────────┐
    │   Listening Socket    │ ◄── Created once at startup
    │   (bound, listening)  │     Never sends/receives data
    └───────────┬───────────┘
                │ accept()
    ┌───────────┼───────────────────────┐
    ▼           ▼                       ▼
  Connection  Connection   ...      Connection
      │           │                     │
      └───────────┴──── on_connection ──┘  → ThreadPool.submit()

=============================================================================
BIND WITH RETRY
=============================================================================

Right after a previous server process exits, its port can still be held
for a moment. Instead of failing on the first "Address already in use",
bind() retries every 300 ms until bind_retry_timeout has elapsed:

    t=0.0  bind() → EADDRINUSE   (warning logged)
    t=0.3  bind() → EADDRINUSE
    t=0.6  bind() → ok           → listen()

If the deadline passes, StartupError is raised and the process exits 1.

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR: bind even while old connections sit in TIME_WAIT.
TCP_NODELAY:  disable Nagle's algorithm, set on accepted sockets too.
              Responses are written in one sendall(); we want them on
              the wire immediately.

=============================================================================
INTERRUPTIBLE ACCEPT
=============================================================================

accept() blocks. To notice a shutdown request the listening socket has a
timeout (accept_poll_interval), giving the classic polling loop:

    while not shutdown_signal.is_set():
        try:
            accept()            # at most accept_poll_interval seconds
        except timeout:
            continue            # re-check the signal

=============================================================================
"""

import socket
import threading
import time
import logging
from typing import Callable, Optional, Tuple

from ..config import ServerConfig
from .connection import Connection
from .shutdown import ShutdownSignal


logger = logging.getLogger(__name__)

BIND_RETRY_INTERVAL = 0.3


class StartupError(RuntimeError):
    """The server could not start (bind failed, bad document root...)."""


class ConnectionListener:
    """
    Binds the listening socket and runs the accept loop.

    Usage:
        listener = ConnectionListener(config, shutdown_signal)
        listener.bind()                      # may raise StartupError
        listener.serve(handle_connection)    # blocks until shutdown
    """

    def __init__(self, config: ServerConfig, shutdown_signal: Optional[ShutdownSignal] = None):
        """
        Args:
            config: Server configuration (host, port, backlog, timeouts).
            shutdown_signal: Checked on every loop iteration. A private
                             one is created if not given.
        """
        self.config = config
        self.shutdown_signal = shutdown_signal or ShutdownSignal()

        self._socket: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None

        # RLock: close() can be re-entered from a signal handler
        self._lock = threading.RLock()
        self._closed = threading.Event()

        self.connections_accepted = 0

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port). Reports the real port when port 0 was requested."""
        if self._bound_address is not None:
            return self._bound_address
        return (self.config.host, self.config.port)

    @property
    def is_listening(self) -> bool:
        return self._socket is not None and not self._closed.is_set()

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        return sock

    def bind(self) -> Tuple[str, int]:
        """
        Bind and listen, retrying while the address is busy.

        Returns:
            The bound (host, port).

        Raises:
            StartupError: If the address could not be bound before
                          bind_retry_timeout elapsed.
        """
        host, port = self.config.host, self.config.port
        deadline = time.monotonic() + self.config.bind_retry_timeout
        attempt = 0

        while True:
            attempt += 1
            sock = self._create_socket()
            try:
                sock.bind((host, port))
                break
            except OSError as e:
                sock.close()
                if time.monotonic() + BIND_RETRY_INTERVAL > deadline:
                    logger.error(f"Failed to bind to {host}:{port} after {attempt} attempt(s): {e}")
                    raise StartupError(f"could not bind {host}:{port}: {e}") from e
                logger.warning(f"Bind to {host}:{port} failed ({e}), retrying...")
                time.sleep(BIND_RETRY_INTERVAL)

        sock.listen(self.config.backlog)
        sock.settimeout(self.config.accept_poll_interval)

        self._socket = sock
        self._bound_address = sock.getsockname()[:2]
        self._closed.clear()

        logger.info(f"Listening on {self._bound_address[0]}:{self._bound_address[1]}")
        return self._bound_address

    def serve(self, on_connection: Callable[[Connection], None]):
        """
        Accept connections until shutdown is requested.

        The listening socket is always closed when this returns.

        Args:
            on_connection: Receives every accepted Connection. Ownership of
                           the connection moves to the callback.

        Raises:
            RuntimeError: If bind() was not called first.
        """
        if self._socket is None:
            if self._closed.is_set() or self.shutdown_signal.is_set():
                return  # Shut down before the loop even started
            raise RuntimeError("bind() must be called before serve()")

        try:
            while not self.shutdown_signal.is_set():
                sock = self._socket
                if sock is None:
                    break

                try:
                    client_socket, client_address = sock.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    # A socket closed by close() lands here too
                    if self.shutdown_signal.is_set() or self._closed.is_set():
                        break
                    logger.warning(f"Accept failed: {e}")
                    # Errors like EMFILE persist; back off instead of spinning
                    self.shutdown_signal.wait(self.config.accept_poll_interval)
                    continue

                self.connections_accepted += 1
                logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

                try:
                    client_socket.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
                except OSError:
                    pass

                conn = Connection(
                    socket=client_socket,
                    address=client_address[:2],
                    buffer_size=self.config.buffer_size,
                    timeout=self.config.timeout,
                    max_request_size=self.config.max_request_size,
                )
                on_connection(conn)
        finally:
            self.close()

    def close(self):
        """Close the listening socket. Safe to call more than once, from any thread."""
        with self._lock:
            sock, self._socket = self._socket, None
            if sock is None:
                return

        try:
            sock.close()
        except OSError:
            pass

        self._closed.set()
        logger.info("Listener closed, no longer accepting connections")

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until the listening socket has been closed.

        Returns:
            True if closed, False on timeout.
        """
        return self._closed.wait(timeout)
