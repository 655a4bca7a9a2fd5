"""
=============================================================================
TIDEPOOL SERVER
=============================================================================

The orchestrator that wires the components together.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        TidepoolServer                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   main thread                         worker threads (N)            │
    │   ───────────                         ──────────────────            │
    │   ConnectionListener                  ThreadPool                    │
    │     accept() ──► Connection ──submit──► TaskQueue ──► Worker        │
    │                                                        │             │
    │                                                        ▼             │
    │                                                 RequestHandler      │
    │                                                   ├─ /sleep         │
    │                                                   └─ StaticFile     │
    │                                                                      │
    │   ShutdownCoordinator                                               │
    │     SIGINT/SIGTERM ──► close listener ──► drain pool ──► join       │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

    server = TidepoolServer(config)
    server.start()       # validate, bind (with retry), spawn workers
    server.run()         # accept loop in the calling thread; returns after
                         # a graceful shutdown has completed

    # from another thread, or a signal handler:
    server.shutdown("reason")

Connections the pool refuses (bounded queue full, or shutdown already
started) are answered 503 from the listener thread and closed.

=============================================================================
"""

import logging
from typing import Optional, Tuple

from .config import ServerConfig
from .core import (
    Connection,
    ConnectionListener,
    PoolShutdownError,
    QueueFull,
    ShutdownCoordinator,
    ShutdownSignal,
    StartupError,
    ThreadPool,
)
from .handlers import RequestHandler


logger = logging.getLogger(__name__)


class TidepoolServer:
    """
    Static file server on a fixed-size worker pool.

    Usage:
        server = TidepoolServer(ServerConfig(port=7878, workers=4))
        server.run()    # blocks until Ctrl+C / SIGTERM
    """

    def __init__(self, config: Optional[ServerConfig] = None):
        """
        Args:
            config: Server configuration. Defaults are used if not provided.

        Raises:
            ValueError: If the configuration is invalid.
        """
        self.config = config or ServerConfig()
        self.config.validate()

        self.shutdown_signal = ShutdownSignal()
        self.listener = ConnectionListener(self.config, self.shutdown_signal)
        self.coordinator = ShutdownCoordinator(
            listener=self.listener,
            shutdown_signal=self.shutdown_signal,
        )

        self.pool: Optional[ThreadPool] = None
        self.handler: Optional[RequestHandler] = None

    @property
    def address(self) -> Tuple[str, int]:
        """Bound (host, port). The real port once started with port=0."""
        return self.listener.address

    @property
    def is_started(self) -> bool:
        return self.pool is not None

    @property
    def stats(self) -> dict:
        """Pool statistics plus the number of accepted connections."""
        stats = self.pool.stats if self.pool else {}
        return {**stats, "connections_accepted": self.listener.connections_accepted}

    def start(self) -> Tuple[str, int]:
        """
        Prepare everything run() needs. Safe to call more than once.

        Returns:
            The bound (host, port).

        Raises:
            StartupError: Missing document root, or the address could not
                          be bound.
        """
        if self.is_started:
            return self.address

        try:
            self.handler = RequestHandler(self.config)
        except ValueError as e:
            raise StartupError(str(e)) from e

        self.listener.bind()

        self.pool = ThreadPool(
            num_workers=self.config.workers,
            queue_size=self.config.queue_size,
        )
        self.coordinator.pool = self.pool
        return self.address

    def run(self, install_signals: bool = True, banner: bool = True):
        """
        Serve until shutdown, then drain and join every worker.

        Args:
            install_signals: Route SIGINT/SIGTERM to a graceful shutdown.
                             Only possible from the main thread.
            banner: Print the startup banner to stdout.

        Raises:
            StartupError: If start() fails.
        """
        self.start()

        if banner:
            self._print_startup_banner()

        if install_signals:
            self.coordinator.install_signal_handlers()

        try:
            self.listener.serve(self._dispatch)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self.coordinator.request_shutdown("listener stopped")
            try:
                self.coordinator.drain()
            finally:
                if install_signals:
                    self.coordinator.restore_signal_handlers()

        logger.info(f"Server stopped ({self.coordinator.reason})")

    def shutdown(self, reason: str = "requested") -> bool:
        """
        Request a graceful shutdown. Returns immediately.

        Returns:
            True if this call started the shutdown.
        """
        return self.coordinator.request_shutdown(reason)

    def wait_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until the pool has been drained and joined."""
        return self.coordinator.wait_terminated(timeout)

    def _dispatch(self, conn: Connection):
        """Hand an accepted connection to the pool (listener thread)."""
        try:
            self.pool.submit(
                self.handler.handle,
                args=(conn,),
                on_cancel=conn.close,
                block=False,
            )
        except (QueueFull, PoolShutdownError) as e:
            logger.warning(f"[{conn.id}] Rejecting connection from {conn.client_ip}: {e}")
            self.handler.reject(conn)

    def _print_startup_banner(self):
        host, port = self.address
        print()
        print("╔══════════════════════════════════════════════════════════════╗")
        print(f"  {self.config.server_name} running")
        print(f"  http://{host}:{port}")
        print(f"  Serving: {self.handler.static.root_dir}")
        print(f"  Workers: {self.config.workers} threads")
        print("  Press Ctrl+C to stop")
        print("╚══════════════════════════════════════════════════════════════╝")
        print()
