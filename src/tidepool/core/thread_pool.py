"""
=============================================================================
FIXED-SIZE THREAD POOL
=============================================================================

A thread pool manages a group of worker threads that process tasks from
a shared queue. Tidepool uses it to handle accepted connections
concurrently without spawning a thread per connection.

=============================================================================
WHY USE A THREAD POOL?
=============================================================================

Without a thread pool, you might create a new thread for each connection:

    BAD APPROACH (Thread-per-connection):
    ─────────────────────────────────────

    for connection in accept_connections():
        thread = Thread(target=handle, args=(connection,))
        thread.start()

    Problems:
    1. No limit on concurrent threads → resource exhaustion
    2. An exception kills that thread and nobody notices
    3. Shutdown has no list of threads to join

    GOOD APPROACH (Thread pool):
    ────────────────────────────

    pool = ThreadPool(num_workers=4)

    for connection in accept_connections():
        pool.submit(handle, args=(connection,))

    pool.shutdown()   # drain queued work, join every worker

=============================================================================
THREAD POOL ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Thread Pool                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Listener ── submit() ──►  ┌──────────────────────────────────┐    │
    │                             │           TASK QUEUE             │    │
    │                             │  [Task 1] [Task 2] [Task 3] ...  │    │
    │                             │  • FIFO, closable                │    │
    │                             │  • exactly-once delivery         │    │
    │                             └────────────────┬─────────────────┘    │
    │                                              │ get()                 │
    │                                              ▼                       │
    │        ┌──────────┐ ┌──────────┐ ┌──────────┐ ┌──────────┐         │
    │        │ Worker 0 │ │ Worker 1 │ │ Worker 2 │ │ Worker 3 │         │
    │        │ (idle)   │ │(running) │ │(running) │ │ (idle)   │         │
    │        └──────────┘ └──────────┘ └──────────┘ └──────────┘         │
    │                                                                      │
    │   • Exactly N workers, spawned in the constructor                   │
    │   • No resizing for the lifetime of the pool                        │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WORKER LIFECYCLE
=============================================================================

    IDLE ──get()──► RUNNING(task) ──done/failed──► IDLE
     │
     └── get() returns end-of-stream ──► SHUTTING_DOWN ──► TERMINATED

    def run(self):
        while True:
            task = queue.get()      ← BLOCKS until task or end-of-stream
            if task is None:        ← queue closed AND empty
                break
            execute(task)           ← exceptions caught HERE, per task

=============================================================================
FAULT ISOLATION
=============================================================================

The single most important property of the pool: ONE BAD TASK NEVER KILLS
A WORKER. Every task runs inside its own try/except. The failure is logged
with its traceback, counted, and the worker goes back to the queue.

=============================================================================
COMMON INTERVIEW QUESTIONS
=============================================================================

Q: What happens to queued tasks when the pool shuts down?
A: shutdown() closes the queue. Workers keep pulling until it is empty,
   so every task that was accepted still runs. shutdown(cancel_pending=True)
   instead removes the queued tasks and cancels them explicitly (their
   on_cancel callback runs, e.g. closing the connection).

Q: Can a running task be interrupted?
A: No. Python threads cannot be killed safely. Shutdown only stops NEW
   tasks from being accepted and dequeued.

Q: Thread pool vs async/await?
A: For blocking socket and file I/O, threads keep the handler code plain
   and sequential. The GIL is released during I/O and sleep.

=============================================================================
"""

import itertools
import threading
import time
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from .task_queue import TaskQueue, QueueClosed, QueueFull


logger = logging.getLogger(__name__)

_task_ids = itertools.count(1)


class PoolShutdownError(RuntimeError):
    """Raised by submit() once the pool has started shutting down."""


class WorkerState(Enum):
    """
    Worker thread states.

    Used for monitoring and for the shutdown sequence.
    """
    IDLE = "idle"                    # Waiting for a task
    RUNNING = "running"              # Executing a task
    SHUTTING_DOWN = "shutting_down"  # Saw end-of-stream, leaving the loop
    TERMINATED = "terminated"        # Thread exited


@dataclass
class Task:
    """
    One unit of work: a deferred function call.

    A task is owned by exactly one party at a time:
    listener → queue → worker. It is executed at most once, or cancelled.

    Attributes:
        func: The function to execute.
        args: Positional arguments for the function.
        kwargs: Keyword arguments for the function.
        on_cancel: Called instead of func if the task is cancelled
                   (e.g. close the connection it captured).
        id: Sequential task id (for logging).
        submitted_at: Time the task was created (for queue-wait metrics).
    """
    func: Callable[..., Any]
    args: tuple = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)
    on_cancel: Optional[Callable[[], Any]] = None
    id: int = field(default_factory=lambda: next(_task_ids))
    submitted_at: float = field(default_factory=time.monotonic)

    _consumed: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def _claim(self) -> bool:
        with self._lock:
            if self._consumed:
                return False
            self._consumed = True
            return True

    @property
    def consumed(self) -> bool:
        """True once the task was run or cancelled."""
        return self._consumed

    def run(self) -> Any:
        """
        Execute the task.

        Raises:
            RuntimeError: If the task was already run or cancelled.
        """
        if not self._claim():
            raise RuntimeError(f"Task {self.id} was already consumed")
        return self.func(*self.args, **self.kwargs)

    def cancel(self) -> bool:
        """
        Cancel a task that never ran.

        Returns:
            True if the task was cancelled now, False if it was already consumed.
        """
        if not self._claim():
            return False
        if self.on_cancel is not None:
            try:
                self.on_cancel()
            except Exception as e:
                logger.exception(f"Cancel callback of task {self.id} failed: {e}")
        return True


class Worker(threading.Thread):
    """
    Worker thread that processes tasks from the queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        Worker Loop                                   │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   1. Wait for task from queue (blocking)                            │
    │          │                                                           │
    │          ├── None (end-of-stream) → exit loop, thread terminates    │
    │          │                                                           │
    │          └── Task → continue to step 2                              │
    │                                                                      │
    │   2. Execute the task                                               │
    │          │                                                           │
    │          ├── Try: task.run()                                         │
    │          │                                                           │
    │          └── Catch: Log the exception (don't crash worker)          │
    │                                                                      │
    │   3. Go back to step 1                                              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(self, task_queue: TaskQueue, worker_id: int, name_prefix: str = "tidepool-worker"):
        """
        Initialize the worker.

        Args:
            task_queue: Queue to pull tasks from.
            worker_id: Index of this worker, 0..N-1.
            name_prefix: Thread name prefix (shows up in logs and debuggers).
        """
        # daemon=True: a crashed main thread never hangs on workers.
        # Graceful shutdown joins them explicitly.
        super().__init__(name=f"{name_prefix}-{worker_id}", daemon=True)

        self.task_queue = task_queue
        self.worker_id = worker_id

        self.state = WorkerState.IDLE
        self.current_task: Optional[Task] = None

        # Written only by this thread
        self.tasks_completed = 0
        self.tasks_failed = 0

    def run(self):
        """Main worker loop."""
        logger.debug(f"Worker {self.worker_id} started")

        while True:
            task = self.task_queue.get()

            if task is None:
                # Queue closed and fully drained
                break

            self._execute_task(task)

        self.state = WorkerState.SHUTTING_DOWN
        logger.debug(
            f"Worker {self.worker_id} shutting down "
            f"({self.tasks_completed} completed, {self.tasks_failed} failed)"
        )
        self.state = WorkerState.TERMINATED

    def _execute_task(self, task: Task) -> bool:
        """
        Execute a single task inside its own error boundary.

        Returns:
            True if the task completed, False if it raised.
        """
        self.state = WorkerState.RUNNING
        self.current_task = task
        start_time = time.monotonic()
        waited = start_time - task.submitted_at
        logger.debug(f"Worker {self.worker_id} got task {task.id}; executing")

        try:
            task.run()

            elapsed = time.monotonic() - start_time
            logger.debug(
                f"Worker {self.worker_id} completed task {task.id} in {elapsed:.3f}s "
                f"(queued {waited:.3f}s)"
            )
            self.tasks_completed += 1
            return True

        except Exception as e:
            # ─────────────────────────────────────────────────────────────
            # PER-TASK ERROR BOUNDARY
            # ─────────────────────────────────────────────────────────────
            # Nothing raised by a task may unwind past this point.
            # The worker logs it and goes back to the queue.

            elapsed = time.monotonic() - start_time
            logger.exception(
                f"Worker {self.worker_id} task {task.id} failed after {elapsed:.3f}s: {e}"
            )
            self.tasks_failed += 1
            return False

        finally:
            self.current_task = None
            self.state = WorkerState.IDLE


class ThreadPool:
    """
    Fixed-size thread pool.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      ThreadPool Usage                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   # Create pool (workers start immediately)                          │
    │   pool = ThreadPool(num_workers=4)                                   │
    │                                                                      │
    │   # Submit tasks                                                     │
    │   pool.submit(handle_connection, args=(conn,), on_cancel=conn.close) │
    │                                                                      │
    │   # Check status                                                     │
    │   print(pool.stats)  # {"workers": {"busy": 3, ...}, ...}           │
    │                                                                      │
    │   # Shutdown (drains queued tasks, joins every worker)              │
    │   pool.shutdown()                                                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘
    """

    def __init__(
        self,
        num_workers: int = 4,
        queue_size: int = 0,
        name_prefix: str = "tidepool-worker",
    ):
        """
        Create the pool and spawn its workers.

        Args:
            num_workers: Number of worker threads. Fixed for the pool's lifetime.
            queue_size: Maximum queued tasks. 0 = unbounded.
            name_prefix: Prefix for worker thread names.

        Raises:
            ValueError: If num_workers < 1 or queue_size < 0.
        """
        if num_workers < 1:
            raise ValueError(f"num_workers must be >= 1, got {num_workers}")

        self._task_queue: TaskQueue[Task] = TaskQueue(maxsize=queue_size)

        self._shutdown_lock = threading.Lock()
        self._shutdown = False
        self._tasks_cancelled = 0

        logger.info(f"Starting thread pool with {num_workers} workers")

        self._workers: List[Worker] = [
            Worker(self._task_queue, worker_id=i, name_prefix=name_prefix)
            for i in range(num_workers)
        ]
        for worker in self._workers:
            worker.start()

    def __enter__(self) -> "ThreadPool":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.shutdown(wait=True)
        return False

    def submit(
        self,
        func: Callable[..., Any],
        args: tuple = (),
        kwargs: Optional[Dict[str, Any]] = None,
        on_cancel: Optional[Callable[[], Any]] = None,
        block: bool = True,
        timeout: Optional[float] = None,
    ) -> Task:
        """
        Submit a task for execution.

        Args:
            func: The function to execute.
            args: Positional arguments for the function.
            kwargs: Keyword arguments for the function.
            on_cancel: Called if the task is cancelled instead of executed.
            block: Wait for a free slot if the queue is bounded and full.
            timeout: How long to wait for a free slot.

        Returns:
            The enqueued Task.

        Raises:
            PoolShutdownError: Shutdown has started; the caller must reject
                               the work itself.
            QueueFull: Bounded queue had no free slot.
        """
        task = Task(func=func, args=args, kwargs=kwargs or {}, on_cancel=on_cancel)

        try:
            self._task_queue.submit(task, block=block, timeout=timeout)
        except QueueClosed:
            raise PoolShutdownError("Thread pool is shutting down") from None

        logger.debug(f"Task {task.id} queued ({self._task_queue.qsize()} waiting)")
        return task

    def shutdown(self, wait: bool = True, cancel_pending: bool = False) -> None:
        """
        Shutdown the thread pool.

        ┌─────────────────────────────────────────────────────────────────┐
        │                    shutdown() Flow                               │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │   1. Close the queue (submit() now raises)                      │
        │          │                                                       │
        │          ▼                                                       │
        │   2. cancel_pending? remove queued tasks and cancel them        │
        │          │                                                       │
        │          ▼                                                       │
        │   3. Workers drain the rest, get() returns end-of-stream        │
        │          │                                                       │
        │          ▼                                                       │
        │   4. wait? join every worker                                    │
        │                                                                  │
        └─────────────────────────────────────────────────────────────────┘

        Safe to call more than once: later calls skip steps 1-2 and only
        join (when wait=True).

        Args:
            wait: Block until every worker has terminated.
            cancel_pending: Cancel tasks that are still queued instead of
                            running them.
        """
        with self._shutdown_lock:
            first_call = not self._shutdown
            self._shutdown = True

        if first_call:
            logger.info("Shutting down thread pool...")
            self._task_queue.close()

            if cancel_pending:
                pending = self._task_queue.cancel_pending()
                for task in pending:
                    if task.cancel():
                        self._tasks_cancelled += 1
                if pending:
                    logger.warning(f"Cancelled {len(pending)} queued task(s)")

        if wait:
            current = threading.current_thread()
            for worker in self._workers:
                if worker is current:
                    continue  # A task calling shutdown() cannot join itself
                worker.join()

            if first_call:
                logger.info("Thread pool shutdown complete")

    # =========================================================================
    # MONITORING: Check pool status
    # =========================================================================

    @property
    def num_workers(self) -> int:
        """Configured (and actual) number of workers."""
        return len(self._workers)

    @property
    def workers(self) -> tuple:
        """The worker threads, in index order."""
        return tuple(self._workers)

    @property
    def is_shutdown(self) -> bool:
        """True once shutdown() has been called."""
        return self._shutdown

    @property
    def alive_workers(self) -> int:
        """Count of worker threads still running their loop."""
        return sum(1 for w in self._workers if w.is_alive())

    @property
    def busy_workers(self) -> int:
        """Count of workers executing a task."""
        return sum(1 for w in self._workers if w.state == WorkerState.RUNNING)

    @property
    def idle_workers(self) -> int:
        """Count of workers waiting for a task."""
        return sum(1 for w in self._workers if w.state == WorkerState.IDLE)

    @property
    def queue_size(self) -> int:
        """Current task queue size."""
        return self._task_queue.qsize()

    @property
    def stats(self) -> dict:
        """
        Get thread pool statistics.

        Returns a dict with worker and task counts.
        """
        return {
            "workers": {
                "total": len(self._workers),
                "alive": self.alive_workers,
                "busy": self.busy_workers,
                "idle": self.idle_workers,
            },
            "tasks": {
                "queued": self._task_queue.qsize(),
                "completed": sum(w.tasks_completed for w in self._workers),
                "failed": sum(w.tasks_failed for w in self._workers),
                "cancelled": self._tasks_cancelled,
            },
        }


__all__ = [
    "PoolShutdownError",
    "QueueFull",
    "Task",
    "ThreadPool",
    "Worker",
    "WorkerState",
]
