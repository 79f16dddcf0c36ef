"""Shared Redis connection pool (used by the shared rate-limit store)."""

import redis.asyncio as redis

from app.core.config import get_settings

_redis: redis.Redis | None = None


async def init_redis(url: str | None = None) -> redis.Redis:
    """Initialize the shared Redis connection pool and verify connectivity."""
    global _redis

    if _redis is not None:
        return _redis

    settings = get_settings()
    redis_url = url or settings.redis_url

    _redis = redis.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
    )
    await _redis.ping()
    return _redis


async def close_redis() -> None:
    """Close the Redis connection pool if one was opened."""
    global _redis

    if _redis is not None:
        await _redis.aclose()
        _redis = None

