"""
Unit tests for the closable task queue.
"""

import threading
import time

import pytest

from tidepool.core.task_queue import TaskQueue, QueueClosed, QueueFull


class TestTaskQueue:
    """Tests for TaskQueue class."""

    def test_fifo_order(self):
        """Tasks come out in submission order."""
        q = TaskQueue()
        for i in range(5):
            q.submit(i)

        assert [q.get() for _ in range(5)] == [0, 1, 2, 3, 4]

    def test_get_timeout_on_open_queue(self):
        """An empty open queue returns None only after the timeout."""
        q = TaskQueue()
        start = time.monotonic()

        assert q.get(timeout=0.1) is None
        assert time.monotonic() - start >= 0.09
        assert not q.closed

    def test_none_is_reserved(self):
        with pytest.raises(ValueError):
            TaskQueue().submit(None)

    def test_negative_maxsize(self):
        with pytest.raises(ValueError):
            TaskQueue(maxsize=-1)

    def test_close_drains_then_end_of_stream(self):
        """Queued tasks survive close(); then get() signals end-of-stream."""
        q = TaskQueue()
        q.submit("a")
        q.submit("b")

        assert q.close() is True
        assert q.get() == "a"
        assert q.get() == "b"
        assert q.get() is None
        assert q.get() is None

    def test_close_is_idempotent(self):
        q = TaskQueue()

        assert q.close() is True
        assert q.close() is False
        assert q.closed

    def test_submit_after_close(self):
        q = TaskQueue()
        q.close()

        with pytest.raises(QueueClosed):
            q.submit("late")

    def test_close_wakes_blocked_consumers(self):
        """Every consumer blocked in get() returns None after close()."""
        q = TaskQueue()
        results = []

        def consume():
            results.append(q.get())

        threads = [threading.Thread(target=consume) for _ in range(3)]
        for t in threads:
            t.start()

        time.sleep(0.1)
        q.close()

        for t in threads:
            t.join(timeout=2.0)
            assert not t.is_alive()

        assert results == [None, None, None]

    def test_bounded_non_blocking_full(self):
        """A full bounded queue refuses non-blocking submits."""
        q = TaskQueue(maxsize=2)
        q.submit(1)
        q.submit(2)

        with pytest.raises(QueueFull):
            q.submit(3, block=False)

        assert q.qsize() == 2

    def test_bounded_blocking_timeout(self):
        q = TaskQueue(maxsize=1)
        q.submit(1)

        with pytest.raises(QueueFull):
            q.submit(2, timeout=0.05)

    def test_bounded_blocking_waits_for_slot(self):
        """A blocked producer proceeds once a consumer frees a slot."""
        q = TaskQueue(maxsize=1)
        q.submit(1)

        producer = threading.Thread(target=q.submit, args=(2,))
        producer.start()
        time.sleep(0.05)

        assert q.get() == 1
        producer.join(timeout=2.0)

        assert not producer.is_alive()
        assert q.get() == 2

    def test_close_wakes_blocked_producer(self):
        """A producer waiting on a full queue gets QueueClosed."""
        q = TaskQueue(maxsize=1)
        q.submit(1)
        errors = []

        def produce():
            try:
                q.submit(2)
            except QueueClosed as e:
                errors.append(e)

        producer = threading.Thread(target=produce)
        producer.start()
        time.sleep(0.05)
        q.close()
        producer.join(timeout=2.0)

        assert len(errors) == 1

    def test_cancel_pending(self):
        """cancel_pending() hands back everything not yet picked up."""
        q = TaskQueue()
        for i in range(3):
            q.submit(i)
        q.close()

        assert q.cancel_pending() == [0, 1, 2]
        assert len(q) == 0
        assert q.get() is None

    def test_every_task_delivered_once(self):
        """Concurrent producers and consumers neither lose nor duplicate tasks."""
        q = TaskQueue(maxsize=8)
        received = []
        lock = threading.Lock()

        def consume():
            while (item := q.get()) is not None:
                with lock:
                    received.append(item)

        def produce(start):
            for i in range(start, start + 100):
                q.submit(i)

        consumers = [threading.Thread(target=consume) for _ in range(4)]
        producers = [threading.Thread(target=produce, args=(n * 100,)) for n in range(3)]
        for t in consumers + producers:
            t.start()
        for t in producers:
            t.join(timeout=5.0)

        q.close()
        for t in consumers:
            t.join(timeout=5.0)

        assert sorted(received) == list(range(300))
