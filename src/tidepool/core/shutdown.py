"""
=============================================================================
GRACEFUL SHUTDOWN
=============================================================================

When you press Ctrl+C or run `docker stop`, the OS sends a SIGNAL to the
process. Tidepool catches it and shuts down in a fixed order instead of
dying mid-response.

SIGINT (2):   Sent when the user presses Ctrl+C
SIGTERM (15): Sent by docker stop, systemd stop, kill <pid>

Note: SIGKILL (9) cannot be caught. Nothing here helps against it.

=============================================================================
SHUTDOWN SEQUENCE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   RUNNING                                                            │
    │     │                                                                │
    │     │  SIGINT / SIGTERM / request_shutdown()                         │
    │     ▼                                                                │
    │   DRAINING                                                           │
    │     1. ShutdownSignal set (one-shot, first caller wins)              │
    │     2. Listening socket closed → new connections are refused         │
    │     3. Accept loop notices the signal and returns                    │
    │     4. Task queue closed → submit() raises                           │
    │     5. Workers finish in-flight AND queued tasks                     │
    │     6. Every worker joined                                           │
    │     │                                                                │
    │     ▼                                                                │
    │   TERMINATED                                                         │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

A second Ctrl+C while draining is logged and ignored. Running tasks are
never interrupted, so a slow request (e.g. /sleep) delays exit until it
has been answered.

=============================================================================
WHAT A SIGNAL HANDLER MAY DO
=============================================================================

Python runs signal handlers in the MAIN thread, between two bytecodes of
whatever the main thread happens to be doing. The handler therefore must
not block and must not take a non-reentrant lock the main thread could be
holding. Here it only flips the one-shot flag and closes the listening
socket. The heavy lifting (draining, joining) happens later in drain().

=============================================================================
"""

import signal
import threading
import logging
from enum import Enum
from typing import Dict, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from .listener import ConnectionListener
    from .thread_pool import ThreadPool


logger = logging.getLogger(__name__)


class ShutdownState(Enum):
    """Lifecycle of the process as seen by the coordinator."""
    RUNNING = "running"
    DRAINING = "draining"
    TERMINATED = "terminated"


class ShutdownSignal:
    """
    One-shot, thread-safe shutdown flag.

    Readable from any thread, set exactly once. Only the first trigger()
    returns True, so only one caller ever runs the shutdown sequence.
    """

    def __init__(self):
        self._event = threading.Event()
        # RLock: trigger() may be re-entered from a signal handler that
        # interrupted the main thread inside trigger().
        self._lock = threading.RLock()
        self.reason: Optional[str] = None

    def trigger(self, reason: str = "requested") -> bool:
        """
        Set the flag.

        Returns:
            True for the first caller, False if it was already set.
        """
        with self._lock:
            if self._event.is_set():
                return False
            self.reason = reason
            self._event.set()
            return True

    def is_set(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until triggered. Returns False on timeout."""
        return self._event.wait(timeout)


class ShutdownCoordinator:
    """
    Owns the shutdown sequence: signal handling, stopping the listener,
    draining and joining the pool.

    Usage:
        coordinator = ShutdownCoordinator(pool=pool, listener=listener)
        coordinator.install_signal_handlers()
        try:
            listener.serve(dispatch)      # returns once shutdown was requested
        finally:
            coordinator.request_shutdown("listener stopped")
            coordinator.drain()           # blocks until every worker exited
            coordinator.restore_signal_handlers()
    """

    def __init__(
        self,
        pool: Optional["ThreadPool"] = None,
        listener: Optional["ConnectionListener"] = None,
        shutdown_signal: Optional[ShutdownSignal] = None,
    ):
        self.pool = pool
        self.listener = listener
        self.shutdown_signal = shutdown_signal or ShutdownSignal()

        self._state = ShutdownState.RUNNING
        self._state_lock = threading.RLock()
        self._drain_lock = threading.Lock()
        self._terminated = threading.Event()

        # Previous handlers, restored by restore_signal_handlers()
        self._original_handlers: Dict[signal.Signals, object] = {}

    @property
    def state(self) -> ShutdownState:
        return self._state

    @property
    def reason(self) -> Optional[str]:
        """What started the shutdown, e.g. "SIGINT"."""
        return self.shutdown_signal.reason

    # =========================================================================
    # SIGNALS
    # =========================================================================

    def install_signal_handlers(self):
        """
        Route SIGINT and SIGTERM to request_shutdown().

        Must be called from the main thread (a Python restriction on
        signal.signal()).

        Raises:
            ValueError: If called from another thread.
        """
        signals = [signal.SIGINT]
        if hasattr(signal, "SIGTERM"):
            signals.append(signal.SIGTERM)

        for sig in signals:
            self._original_handlers[sig] = signal.signal(sig, self._handle_signal)

        logger.debug(f"Installed handlers for {', '.join(s.name for s in signals)}")

    def restore_signal_handlers(self):
        """Put back whatever handlers were installed before."""
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def _handle_signal(self, signum, frame):
        signal_name = signal.Signals(signum).name
        if not self.request_shutdown(signal_name):
            logger.warning(f"Received {signal_name} again, shutdown already in progress")

    # =========================================================================
    # SHUTDOWN
    # =========================================================================

    def request_shutdown(self, reason: str = "requested") -> bool:
        """
        Start the shutdown sequence. Safe from signal handlers and any thread.

        Returns:
            True if this call started the shutdown, False if it had already
            been started.
        """
        if not self.shutdown_signal.trigger(reason):
            return False

        with self._state_lock:
            self._state = ShutdownState.DRAINING

        logger.info(f"Shutdown requested ({reason}), draining in-flight requests...")

        if self.listener is not None:
            self.listener.close()
        return True

    def drain(self):
        """
        Wait for the shutdown signal, then drain and join the pool.

        Every task that was accepted before the queue closed still runs.
        Safe to call more than once; later calls return once the first
        drain has finished.
        """
        self.shutdown_signal.wait()

        with self._drain_lock:
            if self._state == ShutdownState.TERMINATED:
                return

            if self.pool is not None:
                self.pool.shutdown(wait=True)

            with self._state_lock:
                self._state = ShutdownState.TERMINATED
            self._terminated.set()

        logger.info("Shutdown complete")

    def wait_terminated(self, timeout: Optional[float] = None) -> bool:
        """
        Block until drain() has finished.

        Returns:
            True if terminated, False on timeout.
        """
        return self._terminated.wait(timeout)
