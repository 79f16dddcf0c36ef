"""Passwordless login links.

Raw tokens are only ever handed to the sender; the database stores their
sha256 hex digest. A link is valid for 15 minutes and can be used once.
"""

import hashlib
import secrets
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.magic_link import MagicLink

logger = structlog.get_logger(__name__)

TOKEN_BYTES = 32
LINK_EXPIRY = timedelta(minutes=15)
MAX_LINKS_PER_EMAIL = 3
RATE_WINDOW = timedelta(minutes=10)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class MagicLinkSender(Protocol):
    async def send(self, email: str, url: str) -> None: ...


class LoggingMagicLinkSender:
    """Default sender: records that a link was issued, never the link itself."""

    async def send(self, email: str, url: str) -> None:
        logger.info("magic_link_issued", email_domain=email.rsplit("@", 1)[-1])


class MagicLinkService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ):
        self.session_factory = session_factory
        self.clock = clock

    async def generate(self, email: str) -> str | None:
        """Create a link for ``email`` and return the raw token.

        Returns None when the address already received MAX_LINKS_PER_EMAIL
        links within RATE_WINDOW.
        """
        email = email.strip().lower()
        now = self.clock()

        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count())
                .select_from(MagicLink)
                .where(MagicLink.email == email, MagicLink.created_at >= now - RATE_WINDOW)
            )
            if result.scalar_one() >= MAX_LINKS_PER_EMAIL:
                logger.info("magic_link_rate_limited")
                return None

            token = secrets.token_hex(TOKEN_BYTES)
            session.add(
                MagicLink(
                    email=email,
                    token_hash=hash_token(token),
                    expires_at=now + LINK_EXPIRY,
                    created_at=now,
                )
            )
            await session.commit()

        return token

    async def verify(self, token: str | None) -> str | None:
        """Consume a token; return its e-mail, or None if unknown, expired or used.

        The conditional update makes consumption single-use even when two
        requests race on the same token.
        """
        if not token:
            return None

        token_hash = hash_token(token)
        now = self.clock()

        async with self.session_factory() as session:
            result = await session.execute(
                select(MagicLink.id, MagicLink.email).where(
                    MagicLink.token_hash == token_hash,
                    MagicLink.used_at.is_(None),
                    MagicLink.expires_at > now,
                )
            )
            row = result.first()
            if row is None:
                return None

            consumed = await session.execute(
                update(MagicLink)
                .where(MagicLink.id == row.id, MagicLink.used_at.is_(None))
                .values(used_at=now)
            )
            await session.commit()

        if consumed.rowcount != 1:
            return None
        return row.email
