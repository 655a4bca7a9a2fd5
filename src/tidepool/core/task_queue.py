"""
=============================================================================
CLOSABLE TASK QUEUE
=============================================================================

The task queue is the ONLY shared mutable structure between the listener
and the worker threads. The listener pushes tasks in, workers pull them out.

=============================================================================
WHY NOT JUST queue.Queue?
=============================================================================

queue.Queue is thread-safe, but it has no notion of being CLOSED. The usual
workaround is the "poison pill": put one None per worker into the queue.

    Poison pills:
    ─────────────
        pool.shutdown()
            └─ for each worker: queue.put(None)

    Problems:
    1. A producer can still put() real tasks AFTER the pills
       └─ those tasks are never executed (silently dropped!)
    2. With a bounded queue, put(None) can block or fail when full
    3. The number of pills must match the number of consumers exactly

A closable queue fixes all three:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        TaskQueue States                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   OPEN                                                               │
    │     submit() → task appended (FIFO)                                  │
    │     get()    → blocks while empty                                    │
    │          │                                                           │
    │          │ close()                                                   │
    │          ▼                                                           │
    │   CLOSED                                                             │
    │     submit() → raises QueueClosed (caller must reject the work)      │
    │     get()    → returns queued tasks until empty,                     │
    │                then None (end-of-stream) - never blocks forever      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
SYNCHRONIZATION
=============================================================================

One lock, two condition variables (the same layout queue.Queue uses):

    _lock ──┬── _not_empty   consumers wait here while the queue is empty
            └── _not_full    producers wait here while a bounded queue is full

Every task is popped from the deque while holding the lock, so each task
is delivered to exactly ONE consumer.

=============================================================================
"""

import threading
import logging
from collections import deque
from typing import Deque, Generic, List, Optional, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


class QueueClosed(Exception):
    """Raised by submit() once the queue no longer accepts tasks."""


class QueueFull(Exception):
    """Raised by submit() when a bounded queue has no free slot."""


class TaskQueue(Generic[T]):
    """
    FIFO channel with close() semantics.

    Safe for any number of producers and consumers.

    Usage:
        q = TaskQueue()
        q.submit(task)

        # consumer
        while (task := q.get()) is not None:
            task.run()

        # shutdown
        q.close()   # consumers drain what is left, then get() returns None
    """

    def __init__(self, maxsize: int = 0):
        """
        Args:
            maxsize: Maximum number of queued tasks. 0 means unbounded.
        """
        if maxsize < 0:
            raise ValueError(f"maxsize must be >= 0, got {maxsize}")

        self.maxsize = maxsize
        self._items: Deque[T] = deque()
        self._closed = False

        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)

    @property
    def closed(self) -> bool:
        """True once close() has been called."""
        with self._lock:
            return self._closed

    def qsize(self) -> int:
        """Number of tasks waiting to be picked up."""
        with self._lock:
            return len(self._items)

    def __len__(self) -> int:
        return self.qsize()

    def _is_full(self) -> bool:
        return self.maxsize > 0 and len(self._items) >= self.maxsize

    def submit(self, item: T, block: bool = True, timeout: Optional[float] = None) -> None:
        """
        Enqueue a task.

        Args:
            item: The task to enqueue. Must not be None (None is end-of-stream).
            block: If the queue is bounded and full, wait for a free slot.
            timeout: Max seconds to wait for a free slot (None = forever).

        Raises:
            QueueClosed: The queue was closed before or while waiting.
            QueueFull: No free slot (non-blocking, or timeout expired).
        """
        if item is None:
            raise ValueError("None is reserved as the end-of-stream marker")

        with self._not_full:
            if self._closed:
                raise QueueClosed("task queue is closed")

            if self._is_full():
                if not block:
                    raise QueueFull(f"task queue is full ({self.maxsize} tasks)")

                # wait_for re-checks the predicate after every wake-up.
                # close() notifies _not_full so blocked producers bail out.
                ready = self._not_full.wait_for(
                    lambda: self._closed or not self._is_full(),
                    timeout=timeout,
                )
                if self._closed:
                    raise QueueClosed("task queue was closed while waiting")
                if not ready:
                    raise QueueFull(f"task queue is full ({self.maxsize} tasks)")

            self._items.append(item)
            self._not_empty.notify()

    def get(self, timeout: Optional[float] = None) -> Optional[T]:
        """
        Dequeue the oldest task.

        Blocks while the queue is open and empty.

        Returns:
            The next task, or None once the queue is closed AND empty
            (end-of-stream). Also None if timeout expires on an open queue.
        """
        with self._not_empty:
            self._not_empty.wait_for(
                lambda: self._items or self._closed,
                timeout=timeout,
            )
            if not self._items:
                return None

            item = self._items.popleft()
            self._not_full.notify()
            return item

    def close(self) -> bool:
        """
        Stop accepting new tasks. Already queued tasks stay drainable.

        Safe to call more than once.

        Returns:
            True if this call closed the queue, False if it was already closed.
        """
        with self._lock:
            if self._closed:
                return False
            self._closed = True
            pending = len(self._items)
            # Wake EVERYONE: consumers must re-check for end-of-stream,
            # producers blocked on a full queue must raise QueueClosed.
            self._not_empty.notify_all()
            self._not_full.notify_all()

        logger.debug(f"Task queue closed with {pending} task(s) pending")
        return True

    def cancel_pending(self) -> List[T]:
        """
        Remove and return every task that has not been picked up yet.

        The caller owns the returned tasks and must cancel them explicitly.
        """
        with self._lock:
            items = list(self._items)
            self._items.clear()
            self._not_full.notify_all()
        return items
