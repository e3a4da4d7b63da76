"""
Tests for the single-flight ProcessingLock.
"""

import threading
import time

from capture.lock import ProcessingLock


class TestProcessingLock:
    def test_acquire_and_release(self):
        lock = ProcessingLock()
        assert lock.locked is False
        assert lock.acquire() is True
        assert lock.locked is True
        lock.release()
        assert lock.locked is False

    def test_second_acquire_fails_while_held(self):
        lock = ProcessingLock()
        assert lock.acquire()
        assert lock.acquire() is False
        lock.release()
        assert lock.acquire() is True

    def test_release_when_free_is_noop(self):
        lock = ProcessingLock()
        transitions = []
        lock.add_listener(transitions.append)
        lock.release()
        assert lock.locked is False
        assert transitions == []

    def test_listener_sees_every_transition(self):
        lock = ProcessingLock()
        transitions = []
        lock.add_listener(transitions.append)

        lock.acquire()
        lock.acquire()
        lock.release()
        lock.acquire()
        lock.release()

        assert transitions == [True, False, True, False]

    def test_failing_listener_does_not_break_lock(self):
        lock = ProcessingLock()

        def bad_listener(held):
            raise ValueError("boom")

        lock.add_listener(bad_listener)
        assert lock.acquire()
        lock.release()
        assert lock.locked is False

    def test_wait_released_returns_immediately_when_free(self):
        assert ProcessingLock().wait_released(timeout=0.01) is True

    def test_wait_released_times_out_while_held(self):
        lock = ProcessingLock()
        lock.acquire()
        assert lock.wait_released(timeout=0.05) is False

    def test_wait_released_wakes_on_release(self):
        lock = ProcessingLock()
        lock.acquire()

        def release_later():
            time.sleep(0.05)
            lock.release()

        threading.Thread(target=release_later).start()
        start = time.monotonic()
        assert lock.wait_released(timeout=5.0) is True
        assert time.monotonic() - start < 5.0
