"""Tests for rate-limit stores, client identity and the 429 helper."""

import fakeredis.aioredis
import pytest
from fastapi import HTTPException

from app.core.rate_limit import (
    InMemoryRateLimitStore,
    RedisRateLimitStore,
    client_identity,
    enforce_rate_limit,
)

pytestmark = pytest.mark.unit


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


async def test_in_memory_allows_up_to_limit_then_blocks():
    store = InMemoryRateLimitStore(clock=FakeClock())

    decisions = [await store.hit("k", 3, 60) for _ in range(4)]

    assert [d.allowed for d in decisions] == [True, True, True, False]
    assert decisions[-1].count == 4
    assert decisions[-1].retry_after_seconds == 60


async def test_in_memory_window_resets():
    clock = FakeClock()
    store = InMemoryRateLimitStore(clock=clock)
    for _ in range(3):
        await store.hit("k", 2, 60)

    clock.now += 60
    decision = await store.hit("k", 2, 60)

    assert decision.allowed
    assert decision.count == 1


async def test_in_memory_keys_are_independent():
    store = InMemoryRateLimitStore(clock=FakeClock())
    await store.hit("a", 1, 60)
    assert not (await store.hit("a", 1, 60)).allowed
    assert (await store.hit("b", 1, 60)).allowed


async def test_in_memory_cleans_expired_buckets():
    clock = FakeClock()
    store = InMemoryRateLimitStore(clock=clock)
    for i in range(10):
        await store.hit(f"k{i}", 5, 10)
    assert len(store) == 10

    clock.now += 11
    await store.hit("fresh", 5, 10)

    assert len(store) == 1


async def test_redis_store_counts_and_sets_expiry():
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    store = RedisRateLimitStore(redis)

    first = await store.hit("login:1.2.3.4", 2, 600)
    await store.hit("login:1.2.3.4", 2, 600)
    third = await store.hit("login:1.2.3.4", 2, 600)

    assert first.allowed and first.count == 1
    assert not third.allowed and third.count == 3
    ttl = await redis.ttl("formgate:ratelimit:login:1.2.3.4")
    assert 0 < ttl <= 600
    assert 0 < third.retry_after_seconds <= 600


async def test_redis_store_restores_lost_expiry():
    redis = fakeredis.aioredis.FakeRedis(decode_responses=True)
    await redis.set("formgate:ratelimit:k", 5)  # no TTL
    store = RedisRateLimitStore(redis)

    decision = await store.hit("k", 10, 30)

    assert decision.count == 6
    assert await redis.ttl("formgate:ratelimit:k") > 0


class TestClientIdentity:
    def test_untrusted_proxy_ignores_forwarding_headers(self):
        headers = {"x-real-ip": "9.9.9.9", "x-forwarded-for": "1.1.1.1", "user-agent": "ua"}
        identity = client_identity(headers, trusted_proxy=False)
        assert identity.startswith("fp:")
        assert len(identity) == len("fp:") + 16

    def test_fingerprint_depends_on_user_agent_and_language(self):
        a = client_identity({"user-agent": "ua", "accept-language": "ja"}, trusted_proxy=False)
        b = client_identity({"user-agent": "ua", "accept-language": "en"}, trusted_proxy=False)
        assert a != b
        assert a == client_identity({"user-agent": "ua", "accept-language": "ja"}, trusted_proxy=False)

    def test_trusted_proxy_prefers_real_ip(self):
        headers = {"x-real-ip": " 9.9.9.9 ", "x-forwarded-for": "1.1.1.1, 2.2.2.2"}
        assert client_identity(headers, trusted_proxy=True) == "9.9.9.9"

    def test_trusted_proxy_uses_last_forwarded_hop(self):
        headers = {"x-forwarded-for": "spoofed, 1.1.1.1 , 2.2.2.2"}
        assert client_identity(headers, trusted_proxy=True) == "2.2.2.2"

    def test_trusted_proxy_without_headers_falls_back(self):
        assert client_identity({}, trusted_proxy=True).startswith("fp:")


async def test_enforce_rate_limit_raises_429_with_retry_after():
    store = InMemoryRateLimitStore(clock=FakeClock())
    await enforce_rate_limit(store, "k", limit=1, window_seconds=120)

    with pytest.raises(HTTPException) as exc_info:
        await enforce_rate_limit(store, "k", limit=1, window_seconds=120)

    assert exc_info.value.status_code == 429
    assert exc_info.value.headers == {"Retry-After": "120"}
