"""Fixed-window rate limiting over a shared counter store."""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

import limits

from auth.exceptions import CounterStoreUnavailable
from auth.interfaces.rate_limiter import CounterStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitRule:
    limit: int
    window_seconds: int

    @classmethod
    def parse(cls, value: str) -> "RateLimitRule":
        """Build a rule from ``limits`` notation, e.g. ``"5/15 minutes"``."""
        item = limits.parse(value)
        return cls(limit=item.amount, window_seconds=item.get_expiry())


@dataclass(frozen=True)
class RateLimitDecision:
    limit: int
    current: int
    reset_time: int  # ms since epoch, end of the current window
    retry_after: int  # seconds

    @property
    def allowed(self) -> bool:
        return self.current <= self.limit

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.current)

    def headers(self) -> dict[str, str]:
        headers = {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(self.reset_time),
        }
        if not self.allowed:
            headers["Retry-After"] = str(self.retry_after)
        return headers

    def to_body(self) -> dict:
        return {
            "error": "Too many requests",
            "code": "ERR_RATE_LIMITED",
            "limit": self.limit,
            "current": self.current,
            "resetTime": self.reset_time,
            "retryAfter": self.retry_after,
        }


class RateLimitExceeded(Exception):
    def __init__(self, decision: RateLimitDecision):
        super().__init__("Too many requests")
        self.decision = decision


class RateLimiter:
    """
    Counts hits per ``{scope}:{identity}:{windowIndex}`` key.

    Windows are aligned to the epoch, so every process sharing the counter
    store agrees on window boundaries. When the store is unavailable the
    request is let through uncounted.
    """

    def __init__(self, counter_store: CounterStore, clock: Callable[[], float] = time.time):
        self._store = counter_store
        self._clock = clock

    async def hit(
        self, scope: str, identity: str, limit: int, window_seconds: int
    ) -> RateLimitDecision | None:
        """Count one request. Returns None when the counter store could not be reached."""
        now_ms = int(self._clock() * 1000)
        window_ms = window_seconds * 1000
        window_index = now_ms // window_ms
        key = f"{scope}:{identity}:{window_index}"

        try:
            current = await self._store.incr(key, math.ceil(window_ms / 1000))
        except CounterStoreUnavailable as exc:
            logger.warning("Rate limiting skipped, counter store unavailable: %s", exc)
            return None

        reset_time = (window_index + 1) * window_ms
        decision = RateLimitDecision(
            limit=limit,
            current=current,
            reset_time=reset_time,
            retry_after=max(0, math.ceil((reset_time - now_ms) / 1000)),
        )
        if not decision.allowed:
            logger.warning("Rate limit exceeded: scope=%s identity=%s", scope, identity)
            raise RateLimitExceeded(decision)
        return decision

    async def hit_rule(self, scope: str, identity: str, rule: RateLimitRule) -> RateLimitDecision | None:
        return await self.hit(scope, identity, rule.limit, rule.window_seconds)
