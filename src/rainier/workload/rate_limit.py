# src/rainier/workload/rate_limit.py
"""Shared throttles for statement issuance.

Every limiter is safe to share between any number of threads. ``acquire``
blocks until the caller may issue one statement; when a stop event is given
and gets set while waiting, ``RunCancelled`` is raised instead.

All limiters reserve permits under a lock before sleeping, so concurrent
callers are served in the order they arrived.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from threading import Event, Lock
from typing import Deque, Dict, Optional, Type
import time
import logging

from ..core.errors import ConfigurationError, RunCancelled

logger = logging.getLogger(__name__)


def _sleep(seconds: float, stop_event: Optional[Event]) -> None:
    if seconds <= 0:
        if stop_event is not None and stop_event.is_set():
            raise RunCancelled("Stopped while waiting for a rate limit permit")
        return
    if stop_event is None:
        time.sleep(seconds)
    elif stop_event.wait(seconds):
        raise RunCancelled("Stopped while waiting for a rate limit permit")


class RateLimiter(ABC):
    """Bounds the aggregate rate of ``acquire`` calls."""

    def __init__(self, rate: float):
        if rate is None or rate <= 0:
            raise ConfigurationError(f"rate ({rate}) must be greater than 0.")
        self.rate = float(rate)
        self.interval = 1.0 / self.rate

    @abstractmethod
    def acquire(self, stop_event: Optional[Event] = None) -> None:
        """Block until one permit is available."""


class LeakyBucketRateLimiter(RateLimiter):
    """Hands out evenly spaced time slots.

    Each caller reserves the next free slot under the lock and sleeps
    outside it, so callers are served in reservation order. Slots left
    unused while idle are not banked.
    """

    def __init__(self, rate: float):
        super().__init__(rate)
        self._lock = Lock()
        self._next_slot = time.monotonic()

    def acquire(self, stop_event: Optional[Event] = None) -> None:
        with self._lock:
            now = time.monotonic()
            slot = max(now, self._next_slot)
            self._next_slot = slot + self.interval
        _sleep(slot - now, stop_event)


class TokenBucketRateLimiter(RateLimiter):
    """Token bucket allowing bursts of up to ``burst`` permits."""

    def __init__(self, rate: float, burst: Optional[float] = None):
        super().__init__(rate)
        self.capacity = float(burst) if burst is not None else max(1.0, self.rate / 10.0)
        self._tokens = self.capacity
        self._last_refill = time.monotonic()
        self._lock = Lock()

    def acquire(self, stop_event: Optional[Event] = None) -> None:
        with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_refill
            self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
            self._last_refill = now
            # Tokens may go negative: the deficit is this caller's wait and
            # later callers queue behind it.
            self._tokens -= 1.0
            wait = -self._tokens / self.rate if self._tokens < 0 else 0.0
        _sleep(wait, stop_event)


class SlidingWindowRateLimiter(RateLimiter):
    """At most ``rate * window_seconds`` permits in any trailing window.

    Like the leaky bucket, each caller reserves its slot under the lock, so
    waiters are served in arrival order.
    """

    def __init__(self, rate: float, window_seconds: float = 1.0):
        super().__init__(rate)
        self.window_seconds = window_seconds
        self.max_calls = max(1, int(self.rate * window_seconds))
        # Granted slots in ascending order, reserved ones may lie in the future
        self._slots: Deque[float] = deque()
        self._lock = Lock()

    def acquire(self, stop_event: Optional[Event] = None) -> None:
        if stop_event is not None and stop_event.is_set():
            raise RunCancelled("Stopped while waiting for a rate limit permit")

        with self._lock:
            now = time.monotonic()
            cutoff = now - self.window_seconds
            while self._slots and self._slots[0] <= cutoff:
                self._slots.popleft()

            slot = max(now, self._slots[-1]) if self._slots else now
            if len(self._slots) >= self.max_calls:
                slot = max(slot, self._slots[-self.max_calls] + self.window_seconds)
            self._slots.append(slot)
        _sleep(slot - now, stop_event)


RATE_LIMITERS: Dict[str, Type[RateLimiter]] = {
    "leaky_bucket": LeakyBucketRateLimiter,
    "token_bucket": TokenBucketRateLimiter,
    "sliding_window": SlidingWindowRateLimiter,
}


def create_rate_limiter(kind: str, rate: float) -> RateLimiter:
    """Create a rate limiter by name."""
    if kind not in RATE_LIMITERS:
        available = ", ".join(sorted(RATE_LIMITERS))
        raise ConfigurationError(f"Rate limiter '{kind}' not found. Available: {available}")

    limiter = RATE_LIMITERS[kind](rate)
    logger.info(f"Using {kind} rate limiter at {rate} statements/sec")
    return limiter
