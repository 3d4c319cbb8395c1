"""
Rate limiting for POST /token. In-memory sliding window per key (client IP).
Runs in front of the policy engine; a limited caller never reaches it.
"""
import math
import threading
import time
from typing import Callable

_WINDOW_SECONDS = 60


class SlidingWindowLimiter:
    def __init__(
        self,
        limit: int,
        window_seconds: int = _WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self.window_seconds = window_seconds
        self._clock = clock
        self._store: dict[str, list[float]] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _sweep(self, cutoff: float) -> None:
        """Drop keys with no request inside the window. Caller holds the lock."""
        stale = [k for k, timestamps in self._store.items() if not timestamps or timestamps[-1] <= cutoff]
        for k in stale:
            del self._store[k]

    def check_and_consume(self, key: str) -> tuple[bool, int | None]:
        """
        Check if the key is under the limit for the sliding window; if so, record this request.
        Returns (allowed, retry_after_seconds). When not allowed, retry_after_seconds is the
        suggested Retry-After value (>= 1).
        """
        if self.limit <= 0:
            return True, None
        now = self._clock()
        with self._lock:
            cutoff = now - self.window_seconds
            if now - self._last_sweep >= self.window_seconds:
                self._sweep(cutoff)
                self._last_sweep = now
            timestamps = self._store.setdefault(key, [])
            timestamps[:] = [t for t in timestamps if t > cutoff]
            if len(timestamps) >= self.limit:
                oldest = min(timestamps)
                retry_after = max(1, math.ceil(self.window_seconds - (now - oldest)))
                return False, retry_after
            timestamps.append(now)
            return True, None
