"""Best-effort fixed-window rate limiting behind a swappable counter store.

``InMemoryRateLimitStore`` keeps counters in the current process only; with
several replicas every replica enforces its own budget. ``RedisRateLimitStore``
shares counters through Redis. Neither is a correctness mechanism.
"""

import hashlib
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Protocol

from fastapi import HTTPException
from redis.asyncio import Redis


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    count: int
    retry_after_seconds: int


class RateLimitStore(Protocol):
    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        """Count one request against ``key`` and report whether it is within ``limit``."""
        ...


@dataclass
class _Bucket:
    count: int
    reset_at: float


class InMemoryRateLimitStore:
    """Process-local fixed windows with opportunistic cleanup of expired buckets."""

    def __init__(self, clock: Callable[[], float] = time.monotonic, cleanup_batch: int = 200):
        self._buckets: dict[str, _Bucket] = {}
        self._clock = clock
        self._cleanup_batch = cleanup_batch

    def _cleanup_some(self, now: float) -> None:
        expired = []
        for i, (key, bucket) in enumerate(self._buckets.items()):
            if i >= self._cleanup_batch:
                break
            if bucket.reset_at <= now:
                expired.append(key)
        for key in expired:
            del self._buckets[key]

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        now = self._clock()
        self._cleanup_some(now)

        bucket = self._buckets.get(key)
        if bucket is None or bucket.reset_at <= now:
            bucket = _Bucket(count=0, reset_at=now + window_seconds)
            self._buckets[key] = bucket

        bucket.count += 1
        retry_after = max(1, math.ceil(bucket.reset_at - now))
        return RateLimitDecision(
            allowed=bucket.count <= limit,
            count=bucket.count,
            retry_after_seconds=retry_after,
        )

    def __len__(self) -> int:
        return len(self._buckets)


class RedisRateLimitStore:
    """Fixed windows shared across processes: INCR + expiry on first hit."""

    KEY_PREFIX = "formgate:ratelimit:"

    def __init__(self, redis: Redis):
        self.redis = redis

    async def hit(self, key: str, limit: int, window_seconds: int) -> RateLimitDecision:
        redis_key = f"{self.KEY_PREFIX}{key}"
        count = await self.redis.incr(redis_key)

        ttl = await self.redis.ttl(redis_key)
        if ttl < 0:  # new key, or a key that lost its expiry
            await self.redis.expire(redis_key, window_seconds)
            ttl = window_seconds

        return RateLimitDecision(
            allowed=count <= limit,
            count=count,
            retry_after_seconds=max(1, ttl),
        )


def client_identity(headers: Mapping[str, str], *, trusted_proxy: bool) -> str:
    """Best-effort client key for rate limiting.

    Proxy headers are only honoured when ``trusted_proxy`` is set; the last
    X-Forwarded-For hop is the one our own proxy appended. Otherwise a
    fingerprint of user agent and accept-language is used.
    """
    if trusted_proxy:
        real_ip = (headers.get("x-real-ip") or "").strip()
        if real_ip:
            return real_ip

        forwarded = headers.get("x-forwarded-for") or ""
        hops = [hop.strip() for hop in forwarded.split(",") if hop.strip()]
        if hops:
            return hops[-1]

    ua = headers.get("user-agent") or ""
    accept_language = headers.get("accept-language") or ""
    digest = hashlib.sha256(f"{ua}\n{accept_language}".encode("utf-8")).hexdigest()[:16]
    return f"fp:{digest}"


async def enforce_rate_limit(store: RateLimitStore, key: str, *, limit: int, window_seconds: int) -> None:
    """Raise HTTP 429 with Retry-After when ``key`` is over budget."""
    decision = await store.hit(key, limit, window_seconds)
    if not decision.allowed:
        raise HTTPException(
            status_code=429,
            detail="rate_limited",
            headers={"Retry-After": str(decision.retry_after_seconds)},
        )
