"""
Simple in-memory fixed-window rate limiter.

One instance per process, owned by the app (``app.state.rate_limiter``);
keys are "<purpose>:<user id>".
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable

from subtrack.errors import RateLimitedError

logger = logging.getLogger(__name__)


@dataclass
class _Bucket:
    count: int
    reset_at: float


class RateLimiter:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._buckets: dict[str, _Bucket] = {}

    def consume(self, key: str, limit: int, window_seconds: float) -> bool:
        """Count one hit; False once `limit` hits are used in the current window."""
        now = self._clock()
        self._prune(now)
        bucket = self._buckets.get(key)
        if bucket is None or now > bucket.reset_at:
            self._buckets[key] = _Bucket(count=1, reset_at=now + window_seconds)
            return True
        if bucket.count >= limit:
            return False
        bucket.count += 1
        return True

    def _prune(self, now: float) -> None:
        expired = [k for k, b in self._buckets.items() if now > b.reset_at]
        for k in expired:
            del self._buckets[k]

    def check(self, key: str, limit: int, window_seconds: float, message: str = "Too many requests") -> None:
        """
        Raises:
            RateLimitedError: limit exceeded for this window
        """
        if not self.consume(key, limit, window_seconds):
            logger.warning("Rate limit exceeded for %s (%d per %ss)", key, limit, window_seconds)
            raise RateLimitedError(message)
