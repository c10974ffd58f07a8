"""
Thinking Monitor - Rate Limiter
================================

Sliding-window request limiter keyed by client address.
"""

import math
import threading
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Deque, Dict, Optional

from thinking_monitor.core.config import settings


@dataclass
class RateLimitResult:
    allowed: bool
    remaining: int
    retry_after_seconds: int = 0


class RateLimiter:
    """
    Allows at most ``max_requests`` per ``window_seconds`` per key.

    Idle keys are purged lazily once they have been silent for ten windows.
    """

    def __init__(
        self,
        max_requests: Optional[int] = None,
        window_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_requests = max_requests or settings.RATE_LIMIT_PER_SECOND
        self.window_seconds = window_seconds or settings.RATE_LIMIT_WINDOW_SECONDS
        self._clock = clock
        self._records: Dict[str, Deque[float]] = {}
        self._last_access: Dict[str, float] = {}
        self._last_cleanup = clock()
        self._lock = threading.Lock()

    def check(self, key: str) -> RateLimitResult:
        now = self._clock()
        window_start = now - self.window_seconds

        with self._lock:
            self._cleanup(now)

            timestamps = self._records.setdefault(key, deque())
            while timestamps and timestamps[0] <= window_start:
                timestamps.popleft()
            self._last_access[key] = now

            if len(timestamps) < self.max_requests:
                timestamps.append(now)
                return RateLimitResult(allowed=True, remaining=self.max_requests - len(timestamps))

            retry_after = timestamps[0] + self.window_seconds - now
            return RateLimitResult(
                allowed=False,
                remaining=0,
                retry_after_seconds=max(1, math.ceil(retry_after)),
            )

    def request_count(self, key: str) -> int:
        window_start = self._clock() - self.window_seconds
        with self._lock:
            return sum(1 for ts in self._records.get(key, ()) if ts > window_start)

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._records.clear()
                self._last_access.clear()
            else:
                self._records.pop(key, None)
                self._last_access.pop(key, None)

    def _cleanup(self, now: float) -> None:
        stale_after = self.window_seconds * 10
        if now - self._last_cleanup < stale_after:
            return
        self._last_cleanup = now
        for key, last in list(self._last_access.items()):
            if now - last > stale_after:
                self._records.pop(key, None)
                self._last_access.pop(key, None)
