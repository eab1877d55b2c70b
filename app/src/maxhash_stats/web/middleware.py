"""Shared request-path state: the global token bucket and the response cache.

Both are shared by every request thread and lock internally. Neither holds
its lock while anything else happens.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable

from cachetools import TTLCache

from .routing import Response

Clock = Callable[[], float]


class TokenBucket:
    """Token bucket shared by all routes and clients.

    Refills continuously at ``rate`` tokens per second up to ``burst``.
    ``allow`` never waits: a request either takes a token or is refused.
    """

    def __init__(self, rate: float, burst: int, *, clock: Clock = time.monotonic):
        if rate <= 0:
            raise ValueError("rate limiter rps must be greater than 0")
        if burst < 1:
            raise ValueError("rate limiter burst must be at least 1")
        self.rate = float(rate)
        self.burst = int(burst)
        self._clock = clock
        self._lock = threading.Lock()
        self._tokens = float(burst)
        self._updated = clock()

    def allow(self) -> bool:
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._updated)
            self._updated = now
            self._tokens = min(float(self.burst), self._tokens + elapsed * self.rate)
            if self._tokens >= 1.0:
                self._tokens -= 1.0
                return True
            return False


class ResponseCache:
    """In-memory response store keyed by request target with one global TTL.

    There is no size bound; expired entries are dropped as new ones are written.
    """

    def __init__(self, ttl: float, *, clock: Clock = time.monotonic):
        if ttl <= 0:
            raise ValueError("http.cache.ttl must be greater than 0 when caching is enabled")
        self.ttl = float(ttl)
        self._lock = threading.Lock()
        self._store: TTLCache[str, Response] = TTLCache(maxsize=math.inf, ttl=self.ttl, timer=clock)

    def get(self, key: str) -> Response | None:
        with self._lock:
            return self._store.get(key)

    def set(self, key: str, response: Response) -> None:
        with self._lock:
            self._store[key] = response

    def __len__(self) -> int:
        with self._lock:
            self._store.expire()
            return len(self._store)
