"""
=============================================================================
CORE SERVER COMPONENTS
=============================================================================

The concurrency and networking plumbing of Tidepool.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      CONNECTION LISTENER                             │
    │  • Binds the listening socket (retrying while the port is busy)     │
    │  • Runs the accept() loop in the main thread                        │
    │  • Wraps each client socket in a Connection                         │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ submit(handle, conn)
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                   TASK QUEUE  +  THREAD POOL                         │
    │  • Closable FIFO queue, each task delivered exactly once            │
    │  • N worker threads, fixed for the pool's lifetime                  │
    │  • Per-task error boundary: a failing task never kills a worker     │
    └─────────────────────────────────────────────────────────────────────┘
                                    │
                                    │ Ctrl+C / SIGTERM
                                    ▼
    ┌─────────────────────────────────────────────────────────────────────┐
    │                     SHUTDOWN COORDINATOR                             │
    │  • One-shot shutdown signal                                         │
    │  • Closes the listener, drains the queue, joins the workers         │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .connection import Connection, ConnectionState
from .listener import ConnectionListener, StartupError
from .shutdown import ShutdownCoordinator, ShutdownSignal, ShutdownState
from .task_queue import TaskQueue, QueueClosed, QueueFull
from .thread_pool import PoolShutdownError, Task, ThreadPool, Worker, WorkerState

__all__ = [
    "Connection",           # Wrapper for a client socket
    "ConnectionState",      # Connection lifecycle states
    "ConnectionListener",   # Listening socket + accept loop
    "StartupError",         # Startup-fatal error
    "ShutdownCoordinator",  # Signal handling and drain sequence
    "ShutdownSignal",       # One-shot shutdown flag
    "ShutdownState",        # RUNNING / DRAINING / TERMINATED
    "TaskQueue",            # Closable FIFO queue
    "QueueClosed",
    "QueueFull",
    "PoolShutdownError",
    "Task",
    "ThreadPool",           # Fixed-size worker pool
    "Worker",
    "WorkerState",
]
