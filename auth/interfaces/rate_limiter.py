"""Rate limiter counter store interface."""

from __future__ import annotations

from typing import Protocol


class CounterStore(Protocol):
    async def incr(self, key: str, ttl_seconds: int) -> int:
        """Atomically increment ``key`` and return the new value.

        The TTL is applied when the increment created the key. Raises
        CounterStoreUnavailable when the backing store cannot be reached.
        """
        ...
