"""
Bounded, FIFO concurrency limiter.

Callers that cannot get a slot wait in arrival order; nothing is dropped.
The limiter can share its lock with an owner (the scheduler) so that all
scheduling state is guarded by a single mutex.
"""

import threading
import time
from collections import deque
from contextlib import contextmanager
from typing import Any, Deque, Dict, Optional


class ConcurrencyLimiter:
    """Semaphore with FIFO hand-off and occupancy telemetry.

    Usage::

        limiter = ConcurrencyLimiter(3)
        with limiter.slot():
            run_validation()
    """

    def __init__(self, max_concurrent: int, lock: Optional[threading.Lock] = None):
        if max_concurrent < 1:
            raise ValueError(f"max_concurrent must be >= 1, got {max_concurrent}")
        self._max = max_concurrent
        self._cond = threading.Condition(lock or threading.Lock())
        self._waiters: Deque[object] = deque()
        self._active = 0

        # Telemetry counters
        self.acquired = 0
        self.queued = 0
        self.peak_active = 0

    @property
    def max_concurrent(self) -> int:
        return self._max

    @property
    def active(self) -> int:
        return self._active

    @property
    def waiting(self) -> int:
        return len(self._waiters)

    def acquire(self, timeout: Optional[float] = None) -> bool:
        """Block until a slot is free.

        Args:
            timeout: Seconds to wait; None waits forever.

        Returns:
            True when a slot was taken, False on timeout.
        """
        with self._cond:
            if self._active < self._max and not self._waiters:
                self._take()
                return True

            ticket = object()
            self._waiters.append(ticket)
            self.queued += 1
            deadline = None if timeout is None else time.monotonic() + timeout

            while not (self._waiters[0] is ticket and self._active < self._max):
                remaining = None if deadline is None else deadline - time.monotonic()
                if remaining is not None and remaining <= 0:
                    self._waiters.remove(ticket)
                    self._cond.notify_all()
                    return False
                self._cond.wait(remaining)

            self._waiters.popleft()
            self._take()
            # The next waiter may also fit if several slots opened at once
            self._cond.notify_all()
            return True

    def release(self) -> None:
        with self._cond:
            if self._active == 0:
                raise RuntimeError("release() called without a matching acquire()")
            self._active -= 1
            self._cond.notify_all()

    def _take(self) -> None:
        self._active += 1
        self.acquired += 1
        self.peak_active = max(self.peak_active, self._active)

    @contextmanager
    def slot(self):
        self.acquire()
        try:
            yield
        finally:
            self.release()

    def get_telemetry(self) -> Dict[str, Any]:
        with self._cond:
            return {
                'max_concurrent': self._max,
                'active': self._active,
                'waiting': len(self._waiters),
                'acquired': self.acquired,
                'queued': self.queued,
                'peak_active': self.peak_active,
            }
