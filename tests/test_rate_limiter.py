import asyncio
import unittest

import fakeredis

from auth.exceptions import CounterStoreUnavailable
from auth.services.rate_limiter import RateLimiter, RateLimitExceeded, RateLimitRule
from auth.stores.memory_store import MemoryCounterStore
from auth.stores.redis_store import RedisCounterStore

from support import FakeClock

# Aligned to a 60 s window boundary
WINDOW_START = 1_700_000_040.0


class RecordingStore:
    def __init__(self):
        self.calls = []
        self.counts = {}

    async def incr(self, key, ttl_seconds):
        self.calls.append((key, ttl_seconds))
        self.counts[key] = self.counts.get(key, 0) + 1
        return self.counts[key]


class UnavailableStore:
    async def incr(self, key, ttl_seconds):
        raise CounterStoreUnavailable("connection refused")


class TestRateLimitRule(unittest.TestCase):
    def test_parse(self):
        self.assertEqual(RateLimitRule.parse("5/15 minutes"), RateLimitRule(5, 900))
        self.assertEqual(RateLimitRule.parse("100/hour"), RateLimitRule(100, 3600))
        self.assertEqual(RateLimitRule.parse("10/minute"), RateLimitRule(10, 60))


class TestRateLimiter(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.clock = FakeClock(WINDOW_START)

    async def test_key_and_ttl(self):
        store = RecordingStore()
        limiter = RateLimiter(store, clock=self.clock)

        await limiter.hit("ip", "10.0.0.1", 5, 60)

        window_index = int(WINDOW_START * 1000) // 60_000
        self.assertEqual(store.calls, [(f"ip:10.0.0.1:{window_index}", 60)])

    async def test_decision_fields(self):
        limiter = RateLimiter(MemoryCounterStore(clock=self.clock), clock=self.clock)
        self.clock.advance(15)

        decision = await limiter.hit("auth", "10.0.0.1", 5, 60)

        self.assertEqual(decision.current, 1)
        self.assertEqual(decision.remaining, 4)
        self.assertEqual(decision.reset_time, int((WINDOW_START + 60) * 1000))
        self.assertEqual(decision.retry_after, 45)
        self.assertEqual(
            decision.headers(),
            {
                "X-RateLimit-Limit": "5",
                "X-RateLimit-Remaining": "4",
                "X-RateLimit-Reset": str(decision.reset_time),
            },
        )

    async def test_rejects_over_limit(self):
        limiter = RateLimiter(MemoryCounterStore(clock=self.clock), clock=self.clock)
        for _ in range(3):
            await limiter.hit("auth", "10.0.0.1", 3, 60)

        with self.assertRaises(RateLimitExceeded) as ctx:
            await limiter.hit("auth", "10.0.0.1", 3, 60)

        decision = ctx.exception.decision
        self.assertEqual(decision.current, 4)
        self.assertEqual(decision.remaining, 0)
        self.assertEqual(decision.headers()["Retry-After"], "60")
        self.assertEqual(
            decision.to_body(),
            {
                "error": "Too many requests",
                "code": "ERR_RATE_LIMITED",
                "limit": 3,
                "current": 4,
                "resetTime": decision.reset_time,
                "retryAfter": 60,
            },
        )

    async def test_identities_are_independent(self):
        limiter = RateLimiter(MemoryCounterStore(clock=self.clock), clock=self.clock)
        await limiter.hit("auth", "10.0.0.1", 1, 60)
        decision = await limiter.hit("auth", "10.0.0.2", 1, 60)
        self.assertEqual(decision.current, 1)

    async def test_new_window_resets_count(self):
        limiter = RateLimiter(MemoryCounterStore(clock=self.clock), clock=self.clock)
        await limiter.hit("auth", "10.0.0.1", 1, 60)
        with self.assertRaises(RateLimitExceeded):
            await limiter.hit("auth", "10.0.0.1", 1, 60)

        self.clock.advance(60)
        decision = await limiter.hit("auth", "10.0.0.1", 1, 60)
        self.assertEqual(decision.current, 1)

    async def test_concurrent_hits_admit_exactly_limit(self):
        limiter = RateLimiter(MemoryCounterStore(clock=self.clock), clock=self.clock)
        results = await asyncio.gather(
            *(limiter.hit("endpoint:oauth/token", "10.0.0.1", 20, 60) for _ in range(50)),
            return_exceptions=True,
        )
        admitted = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, RateLimitExceeded)]
        self.assertEqual(len(admitted), 20)
        self.assertEqual(len(rejected), 30)

    async def test_fails_open_when_store_unavailable(self):
        limiter = RateLimiter(UnavailableStore(), clock=self.clock)
        with self.assertLogs("auth.services.rate_limiter", level="WARNING"):
            for _ in range(10):
                self.assertIsNone(await limiter.hit("auth", "10.0.0.1", 1, 60))


class TestRedisCounterStore(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.server = fakeredis.FakeServer()
        self.client = fakeredis.FakeAsyncRedis(server=self.server, decode_responses=True)
        self.store = RedisCounterStore("redis://unused", client=self.client)

    async def asyncTearDown(self):
        await self.store.close()

    async def test_namespaces_key_and_sets_ttl_with_first_hit(self):
        self.assertEqual(await self.store.incr("ip:1.2.3.4:7", 900), 1)
        self.assertEqual(await self.client.ttl("ratelimit:ip:1.2.3.4:7"), 900)

        self.assertEqual(await self.store.incr("ip:1.2.3.4:7", 600), 2)
        self.assertEqual(await self.client.get("ratelimit:ip:1.2.3.4:7"), "2")
        # Later hits in the window do not extend it
        self.assertEqual(await self.client.ttl("ratelimit:ip:1.2.3.4:7"), 900)

    async def test_concurrent_hits_admit_exactly_limit(self):
        clock = FakeClock(WINDOW_START)
        limiter = RateLimiter(self.store, clock=clock)
        results = await asyncio.gather(
            *(limiter.hit("endpoint:oauth/token", "10.0.0.1", 20, 60) for _ in range(50)),
            return_exceptions=True,
        )
        admitted = [r for r in results if not isinstance(r, Exception)]
        rejected = [r for r in results if isinstance(r, RateLimitExceeded)]
        self.assertEqual((len(admitted), len(rejected)), (20, 30))
        self.assertEqual(sorted(d.current for d in admitted), list(range(1, 21)))

    async def test_ping(self):
        self.assertTrue(await self.store.ping())

    async def test_unreachable_server(self):
        self.server.connected = False

        with self.assertRaises(CounterStoreUnavailable):
            await self.store.incr("ip:1.2.3.4:7", 900)
        with self.assertLogs("auth.stores.redis_store", level="WARNING"):
            self.assertFalse(await self.store.ping())

    async def test_limiter_fails_open_on_unreachable_server(self):
        self.server.connected = False
        limiter = RateLimiter(self.store, clock=FakeClock(WINDOW_START))
        with self.assertLogs("auth.services.rate_limiter", level="WARNING"):
            self.assertIsNone(await limiter.hit("auth", "10.0.0.1", 1, 60))


if __name__ == "__main__":
    unittest.main()
