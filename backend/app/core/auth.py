"""Session-cookie authentication for FastAPI.

The token codec, session guard, secret box and rate-limit store are built
once at startup (``build_security``) and kept on ``app.state``; request
dependencies read them from there.
"""

import secrets
from dataclasses import dataclass

import structlog
from fastapi import HTTPException, Request
from redis.asyncio import Redis

from app.core.config import Settings
from app.core.exceptions import ConfigurationError
from app.core.rate_limit import InMemoryRateLimitStore, RateLimitStore, RedisRateLimitStore
from app.core.secret_box import SecretBox
from app.core.session import SessionGuard, UserExists
from app.core.tokens import TokenCodec

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Security:
    codec: TokenCodec
    guard: SessionGuard
    secret_box: SecretBox
    rate_limiter: RateLimitStore


def _secret_or_ephemeral(value: str, name: str, settings: Settings) -> str:
    if value:
        return value
    if not settings.debug:
        raise ConfigurationError(f"{name} must be set outside debug mode")
    logger.warning("ephemeral_secret_generated", setting=name)
    return secrets.token_hex(32)


def build_rate_limiter(settings: Settings, redis: Redis | None = None) -> RateLimitStore:
    if settings.rate_limit_backend == "redis":
        if redis is None:
            raise ConfigurationError("RATE_LIMIT_BACKEND=redis requires a Redis connection")
        return RedisRateLimitStore(redis)
    if settings.rate_limit_backend != "memory":
        raise ConfigurationError(f"Unknown RATE_LIMIT_BACKEND: {settings.rate_limit_backend!r}")
    return InMemoryRateLimitStore()


def build_security(
    settings: Settings,
    *,
    user_exists: UserExists | None = None,
    redis: Redis | None = None,
) -> Security:
    """Build the shared security components.

    Raises ConfigurationError when AUTH_SECRET or APP_ENC_KEY is missing and
    debug mode is off. In debug mode a random per-process secret is used, so
    sessions and stored API keys do not survive a restart.
    """
    codec = TokenCodec(_secret_or_ephemeral(settings.auth_secret, "AUTH_SECRET", settings))
    guard = SessionGuard(
        codec,
        cookie_name=settings.session_cookie_name,
        max_age_seconds=settings.session_max_age_seconds,
        user_exists=user_exists,
    )
    box = SecretBox.from_secret(_secret_or_ephemeral(settings.app_enc_key, "APP_ENC_KEY", settings))
    return Security(codec=codec, guard=guard, secret_box=box, rate_limiter=build_rate_limiter(settings, redis))


def get_security(request: Request) -> Security:
    return request.app.state.security


async def optional_user(request: Request) -> str | None:
    """FastAPI dependency: the signed-in e-mail, or None."""
    guard = get_security(request).guard
    return await guard.authenticate(request.headers.get("cookie"))


async def require_user(request: Request) -> str:
    """FastAPI dependency that requires a valid session cookie.

    Usage::

        @router.get("/forms")
        async def list_forms(email: str = Depends(require_user)):
            ...
    """
    email = await optional_user(request)
    if email is None:
        raise HTTPException(status_code=401, detail="unauthorized")
    return email
