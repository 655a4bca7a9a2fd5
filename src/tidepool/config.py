"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Every tunable of the server lives in one dataclass.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── tidepool --port 3000                                       │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── TIDEPOOL_PORT=3000 tidepool                                │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Configuration is validated eagerly at startup, before any socket or thread
exists. A typo in a port number should never surface as a traceback from
deep inside the accept loop.

=============================================================================
"""

import os
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Optional


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")


@dataclass
class ServerConfig:
    """
    Configuration for the Tidepool server.

    NETWORK:   host, port, backlog, buffer_size, timeout, max_request_size
    LISTENER:  bind_retry_timeout, accept_poll_interval
    POOL:      workers, queue_size
    CONTENT:   static_dir, index_file, not_found_page, sleep_path, sleep_seconds
    LOGGING:   log_level, log_format
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    """Address to bind. "0.0.0.0" listens on every interface."""

    port: int = 7878
    """Port to listen on. 0 lets the OS pick a free port."""

    backlog: int = 128
    """Kernel accept queue length. Connections beyond it are refused."""

    buffer_size: int = 8192
    """Bytes per recv() call."""

    timeout: Optional[float] = 30.0
    """Per-connection socket timeout in seconds. A slow client gets 408."""

    max_request_size: int = 64 * 1024
    """Upper bound on request head plus body. Larger requests get 413."""

    # ─────────────────────────────────────────────────────────────────────
    # LISTENER SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    bind_retry_timeout: float = 5.0
    """
    How long bind() keeps retrying while the port is busy (e.g. the previous
    process is still releasing it). Retries happen every 300 ms.
    """

    accept_poll_interval: float = 0.5
    """
    Accept timeout. Upper bound on how long the listener takes to notice
    a shutdown request.
    """

    # ─────────────────────────────────────────────────────────────────────
    # THREAD POOL SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    workers: int = 4
    """Number of worker threads. Fixed for the lifetime of the server."""

    queue_size: int = 0
    """
    Maximum connections waiting for a worker. 0 = unbounded.
    With a bound, connections beyond it are answered 503.
    """

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT
    # ─────────────────────────────────────────────────────────────────────

    static_dir: str = "public"
    """Directory served as the document root."""

    index_file: str = "index.html"
    """File served for "/"."""

    not_found_page: str = "404.html"
    """Body of 404 responses, relative to static_dir (built-in page if absent)."""

    sleep_path: str = "/sleep"
    """Route that simulates a slow request."""

    sleep_seconds: float = 5.0
    """How long the sleep route blocks its worker."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """DEBUG, INFO, WARNING, ERROR or CRITICAL."""

    log_format: str = "text"
    """'text' for humans, 'json' for log aggregators."""

    # ─────────────────────────────────────────────────────────────────────
    # SERVER IDENTITY
    # ─────────────────────────────────────────────────────────────────────

    server_name: str = "Tidepool/1.0"
    """Value of the Server response header."""

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "ServerConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        TIDEPOOL_HOST           Server host (default: 127.0.0.1)
        TIDEPOOL_PORT           Server port (default: 7878)
        TIDEPOOL_WORKERS        Worker threads (default: 4)
        TIDEPOOL_QUEUE_SIZE     Queue bound, 0 = unbounded (default: 0)
        TIDEPOOL_STATIC_DIR     Document root (default: public)
        TIDEPOOL_SLEEP_SECONDS  Delay of the sleep route (default: 5)
        TIDEPOOL_LOG_LEVEL      Logging level (default: INFO)
        TIDEPOOL_LOG_FORMAT     text or json (default: text)

        =====================================================================

        Args:
            environ: Mapping to read from. Defaults to os.environ.

        Raises:
            ValueError: If a numeric variable does not parse.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def read(name: str, convert: Callable, default):
            raw = env.get(f"TIDEPOOL_{name}")
            if raw is None or raw == "":
                return default
            try:
                return convert(raw)
            except ValueError:
                raise ValueError(f"Invalid TIDEPOOL_{name}: {raw!r}") from None

        return cls(
            host=read("HOST", str, defaults.host),
            port=read("PORT", int, defaults.port),
            workers=read("WORKERS", int, defaults.workers),
            queue_size=read("QUEUE_SIZE", int, defaults.queue_size),
            static_dir=read("STATIC_DIR", str, defaults.static_dir),
            sleep_seconds=read("SLEEP_SECONDS", float, defaults.sleep_seconds),
            log_level=read("LOG_LEVEL", str.upper, defaults.log_level),
            log_format=read("LOG_FORMAT", str.lower, defaults.log_format),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: On the first invalid value, with a message naming it.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")

        if self.queue_size < 0:
            raise ValueError(f"queue_size must be >= 0, got {self.queue_size}")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.max_request_size < self.buffer_size:
            raise ValueError("max_request_size must be >= buffer_size")

        if self.timeout is not None and self.timeout <= 0:
            raise ValueError("timeout must be > 0")

        if self.bind_retry_timeout < 0:
            raise ValueError("bind_retry_timeout must be >= 0")

        if self.accept_poll_interval <= 0:
            raise ValueError("accept_poll_interval must be > 0")

        if self.sleep_seconds < 0:
            raise ValueError("sleep_seconds must be >= 0")

        if not self.sleep_path.startswith("/"):
            raise ValueError(f"sleep_path must start with '/', got {self.sleep_path!r}")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")

    @property
    def log_level_value(self) -> int:
        """Numeric logging level, e.g. logging.INFO."""
        return getattr(logging, self.log_level.upper())
