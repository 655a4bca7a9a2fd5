"""
=============================================================================
TIDEPOOL - Static File HTTP/1.1 Server on a Fixed Worker Pool
=============================================================================

Tidepool serves the files of one directory over HTTP/1.1 using raw
sockets and a fixed number of worker threads. One request per
connection; the connection is closed after every response.

=============================================================================
PROJECT OVERVIEW
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      TIDEPOOL ARCHITECTURE                           │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. CONNECTION LISTENER                                            │
    │      - Bind with retry, accept loop on the main thread             │
    │                                                                      │
    │   2. THREAD POOL                                                    │
    │      - N workers created up front, never more, never fewer         │
    │      - Closable task queue: closing it is the stop signal          │
    │                                                                      │
    │   3. REQUEST HANDLER                                                │
    │      - Parse one request, serve a file or /sleep, close            │
    │                                                                      │
    │   4. GRACEFUL SHUTDOWN                                              │
    │      - SIGINT/SIGTERM: stop accepting, finish queued work, join    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    tidepool/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m tidepool)
    ├── server.py            # TidepoolServer orchestrator
    ├── config.py            # ServerConfig dataclass
    ├── log.py               # Logging setup and access log
    ├── core/                # Concurrency and networking
    │   ├── task_queue.py    # Closable FIFO queue
    │   ├── thread_pool.py   # Fixed-size worker pool
    │   ├── connection.py    # Client socket wrapper
    │   ├── listener.py      # Listening socket + accept loop
    │   └── shutdown.py      # Signals and drain sequence
    ├── http/                # HTTP protocol components
    │   ├── request.py       # Request parsing
    │   ├── response.py      # Response building
    │   ├── status_codes.py  # Status enum
    │   └── mime_types.py    # MIME type detection
    └── handlers/
        ├── request_handler.py  # Per-connection dispatch
        └── static.py           # Files under the document root

=============================================================================
QUICK START
=============================================================================

    from tidepool import TidepoolServer, ServerConfig

    server = TidepoolServer(ServerConfig(port=7878, static_dir="public"))
    server.run()    # Ctrl+C for a graceful shutdown

=============================================================================
"""

__version__ = "1.0.0"

from .config import ServerConfig
from .server import TidepoolServer

__all__ = ["TidepoolServer", "ServerConfig", "__version__"]
