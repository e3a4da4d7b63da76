"""
Single-flight processing lock.

Held from the moment a frame is submitted to the detection pipeline until the
pipeline has finished with it. Waiters are woken on release, so the capture
scheduler can re-arm as soon as a frame completes instead of polling.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

LockListener = Callable[[bool], None]


class ProcessingLock:
    def __init__(self):
        self._cond = threading.Condition()
        self._held = False
        self._listeners: List[LockListener] = []

    @property
    def locked(self) -> bool:
        with self._cond:
            return self._held

    def add_listener(self, listener: LockListener) -> None:
        """Register a callback invoked with the new state on every transition."""
        with self._cond:
            self._listeners.append(listener)

    def acquire(self) -> bool:
        """Take the lock without blocking. Returns False if a frame is in flight."""
        with self._cond:
            if self._held:
                return False
            self._held = True
            self._notify(True)
            return True

    def release(self) -> None:
        """Release the lock and wake waiters. Releasing a free lock is a no-op."""
        with self._cond:
            if not self._held:
                logging.debug("ProcessingLock.release() called while not held")
                return
            self._held = False
            self._notify(False)
            self._cond.notify_all()

    def wait_released(self, timeout: Optional[float] = None) -> bool:
        """Block until the lock is free. Returns False on timeout."""
        with self._cond:
            return self._cond.wait_for(lambda: not self._held, timeout=timeout)

    def _notify(self, held: bool) -> None:
        for listener in list(self._listeners):
            try:
                listener(held)
            except Exception as e:
                logging.warning(f"ProcessingLock listener error: {e}")

    def __repr__(self) -> str:
        return f"ProcessingLock(locked={self._held})"
