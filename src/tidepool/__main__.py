"""
=============================================================================
TIDEPOOL CLI ENTRY POINT
=============================================================================

Command-line interface for running the server.

=============================================================================
USAGE
=============================================================================

    # Serve ./public on 127.0.0.1:7878 with 4 workers
    python -m tidepool

    # Custom port, more workers
    python -m tidepool --port 3000 --workers 8

    # Listen on all interfaces (for containers)
    python -m tidepool --host 0.0.0.0

    # Bounded queue: connections beyond 64 waiting get 503
    python -m tidepool --queue-size 64

Every option can also come from the environment (TIDEPOOL_PORT,
TIDEPOOL_WORKERS, ...). Command-line arguments win.

=============================================================================
EXIT CODES
=============================================================================

    0   Clean shutdown (Ctrl+C / SIGTERM, all in-flight requests finished)
    1   Startup failed (address in use, document root missing)
    2   Invalid arguments or configuration
    130 Interrupted (Ctrl+C) before startup finished

=============================================================================
"""

import argparse
import sys
from dataclasses import replace
from typing import List, Optional

from . import __version__
from .config import LOG_FORMATS, LOG_LEVELS, ServerConfig
from .core import StartupError
from .log import configure_logging
from .server import TidepoolServer


EXIT_INTERRUPTED = 130


def build_parser(defaults: ServerConfig) -> argparse.ArgumentParser:
    """Argument parser whose defaults come from `defaults` (environment)."""
    parser = argparse.ArgumentParser(
        prog="tidepool",
        description="Static file HTTP/1.1 server on a fixed-size worker pool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  tidepool                          # Serve ./public on 127.0.0.1:7878
  tidepool --port 3000              # Custom port
  tidepool --host 0.0.0.0           # Listen on all interfaces
  tidepool --workers 8              # 8 worker threads
  tidepool --static ./site          # Different document root
        """
    )

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--host", "-H",
        default=defaults.host,
        help=f"Host to bind to (default: {defaults.host})"
    )

    parser.add_argument(
        "--port", "-p",
        type=int,
        default=defaults.port,
        help=f"Port to listen on (default: {defaults.port})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # POOL ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=defaults.workers,
        help=f"Number of worker threads (default: {defaults.workers})"
    )

    parser.add_argument(
        "--queue-size", "-q",
        type=int,
        default=defaults.queue_size,
        help="Max connections waiting for a worker, 0 = unbounded "
             f"(default: {defaults.queue_size})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # CONTENT ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--static", "-s",
        default=defaults.static_dir,
        help=f"Document root (default: {defaults.static_dir})"
    )

    parser.add_argument(
        "--sleep-seconds",
        type=float,
        default=defaults.sleep_seconds,
        help=f"Delay of the {defaults.sleep_path} route (default: {defaults.sleep_seconds:g})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--log-level", "-l",
        type=str.upper,
        choices=LOG_LEVELS,
        default=defaults.log_level.upper(),
        help=f"Logging level (default: {defaults.log_level.upper()})"
    )

    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default=defaults.log_format,
        help=f"Log output format (default: {defaults.log_format})"
    )

    # ─────────────────────────────────────────────────────────────────────
    # META ARGUMENTS
    # ─────────────────────────────────────────────────────────────────────

    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"Tidepool {__version__}"
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Process exit code.
    """
    try:
        defaults = ServerConfig.from_env()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    args = build_parser(defaults).parse_args(argv)

    config = replace(
        defaults,
        host=args.host,
        port=args.port,
        workers=args.workers,
        queue_size=args.queue_size,
        static_dir=args.static,
        sleep_seconds=args.sleep_seconds,
        log_level=args.log_level,
        log_format=args.log_format,
    )

    try:
        config.validate()
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level, config.log_format)

    server = TidepoolServer(config)
    try:
        server.run()
    except StartupError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        # Ctrl+C before the signal handlers were installed (e.g. during bind retries)
        print("Interrupted during startup", file=sys.stderr)
        server.listener.close()
        if server.pool is not None:
            server.pool.shutdown(wait=True)
        return EXIT_INTERRUPTED

    return 0


# This allows running: python -m tidepool
if __name__ == "__main__":
    sys.exit(main())
