"""Redis-backed rate-limit counters shared across processes."""

from __future__ import annotations

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from auth.exceptions import CounterStoreUnavailable

logger = logging.getLogger(__name__)


class RedisCounterStore:
    """Fixed-window counters kept in Redis under the ``ratelimit:`` namespace."""

    KEY_PREFIX = "ratelimit:"

    def __init__(self, redis_url: str, *, socket_timeout: float = 2.0, client=None):
        self.redis_url = redis_url
        self.client = client or aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )

    async def incr(self, key: str, ttl_seconds: int) -> int:
        namespaced = f"{self.KEY_PREFIX}{key}"
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                # NX keeps the TTL from the window's first hit
                count, _ = await pipe.incr(namespaced).expire(namespaced, ttl_seconds, nx=True).execute()
            return int(count)
        except (RedisError, OSError) as exc:
            raise CounterStoreUnavailable(str(exc)) from exc

    async def ping(self) -> bool:
        try:
            return bool(await self.client.ping())
        except (RedisError, OSError) as exc:
            logger.warning("Redis ping failed: %s", exc)
            return False

    async def close(self) -> None:
        await self.client.aclose()
