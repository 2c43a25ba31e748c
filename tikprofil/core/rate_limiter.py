from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from threading import Lock

from tikprofil.core.config import (
    CHECKOUT_RATE_BLOCK_SECONDS,
    CHECKOUT_RATE_LIMIT,
    CHECKOUT_RATE_WINDOW_SECONDS,
    RATE_LIMIT_MAX_TRACKED,
)


@dataclass
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    retry_after_seconds: int


@dataclass
class _Bucket:
    hits: deque[float] = field(default_factory=deque)
    blocked_until: float = 0.0


class RateLimiterService(ABC):
    @abstractmethod
    def check(self, *, subject: str, action: str) -> RateLimitDecision:
        """Decide whether `subject` (client IP) may perform `action` now."""


class InMemoryRateLimiterService(RateLimiterService):
    """Sliding-window limiter keyed by subject+action.

    Once the limit is hit the subject stays blocked for `block_seconds`
    (0 means only until the window frees a slot). Idle buckets are swept
    once per window, or as soon as `max_tracked` keys are held.
    """

    def __init__(
        self,
        *,
        limit: int = CHECKOUT_RATE_LIMIT,
        window_seconds: int = CHECKOUT_RATE_WINDOW_SECONDS,
        block_seconds: int = 0,
        max_tracked: int = RATE_LIMIT_MAX_TRACKED,
        clock=time.monotonic,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self.block_seconds = block_seconds
        self.max_tracked = max_tracked
        self._clock = clock
        self._store: dict[tuple[str, str], _Bucket] = {}
        self._lock = Lock()
        self._last_sweep = clock()

    def tracked_count(self) -> int:
        with self._lock:
            return len(self._store)

    def check(self, *, subject: str, action: str) -> RateLimitDecision:
        now = self._clock()
        key = (subject, action)

        with self._lock:
            if key not in self._store and (
                len(self._store) >= self.max_tracked or now - self._last_sweep >= self.window_seconds
            ):
                self._sweep(now)
            bucket = self._store.setdefault(key, _Bucket())
            if bucket.blocked_until > now:
                return self._deny(int(bucket.blocked_until - now))
            if bucket.blocked_until:
                bucket.blocked_until = 0.0
                bucket.hits.clear()

            cutoff = now - self.window_seconds
            while bucket.hits and bucket.hits[0] <= cutoff:
                bucket.hits.popleft()

            if len(bucket.hits) >= self.limit:
                if self.block_seconds:
                    bucket.blocked_until = now + self.block_seconds
                    return self._deny(self.block_seconds)
                return self._deny(int(self.window_seconds - (now - bucket.hits[0])))

            bucket.hits.append(now)
            return RateLimitDecision(
                allowed=True,
                limit=self.limit,
                remaining=max(0, self.limit - len(bucket.hits)),
                retry_after_seconds=0,
            )

    def reset(self) -> None:
        with self._lock:
            self._store.clear()

    def _sweep(self, now: float) -> None:
        # caller holds the lock
        cutoff = now - self.window_seconds
        idle = [
            key
            for key, bucket in self._store.items()
            if bucket.blocked_until <= now and (not bucket.hits or bucket.hits[-1] <= cutoff)
        ]
        for key in idle:
            del self._store[key]
        self._last_sweep = now

    def _deny(self, retry_after: int) -> RateLimitDecision:
        return RateLimitDecision(
            allowed=False,
            limit=self.limit,
            remaining=0,
            retry_after_seconds=max(1, retry_after),
        )


checkout_rate_limiter = InMemoryRateLimiterService(block_seconds=CHECKOUT_RATE_BLOCK_SECONDS)
