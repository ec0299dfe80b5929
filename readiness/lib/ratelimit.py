"""
Token bucket shared by every worker calling the source host.

The bucket is the only mutable state shared across workers on the repo
context path; all reads and writes happen under one lock so concurrent
callers can never overdraw the host quota.
"""

import logging
import threading
import time
from typing import Callable

logger = logging.getLogger(__name__)


class TokenBucket:
    """Token bucket with continuous refill.

    Args:
        capacity: Maximum tokens (burst size)
        refill_per_second: Tokens added per second
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        capacity: int,
        refill_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.refill_per_second = refill_per_second
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(capacity)
        self._updated = clock()
        self._lock = threading.Lock()

    @classmethod
    def per_hour(cls, requests_per_hour: int, burst: int) -> "TokenBucket":
        """Build a bucket matching an hourly quota (GitHub publishes 5000/h)."""
        return cls(capacity=max(1, burst), refill_per_second=requests_per_hour / 3600.0)

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.refill_per_second)
        self._updated = now

    @property
    def available(self) -> float:
        with self._lock:
            self._refill()
            return self._tokens

    def try_acquire(self, tokens: int = 1) -> bool:
        """Take tokens if available right now. Never blocks."""
        with self._lock:
            self._refill()
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False

    def acquire(self, tokens: int = 1, timeout: float = 0.0) -> bool:
        """Take tokens, waiting up to timeout seconds for a refill.

        Returns False if the wait budget is exceeded. The lock is not held
        while sleeping.
        """
        deadline = self._clock() + timeout
        while True:
            with self._lock:
                self._refill()
                if self._tokens >= tokens:
                    self._tokens -= tokens
                    return True
                deficit = tokens - self._tokens
                wait = deficit / self.refill_per_second if self.refill_per_second > 0 else timeout

            remaining = deadline - self._clock()
            if remaining <= 0 or wait > remaining:
                logger.info(f"[RATE] Bucket exhausted, needed {wait:.2f}s but budget is {max(remaining, 0):.2f}s")
                return False
            self._sleep(wait)
