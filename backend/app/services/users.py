"""User identity rows: created on first login, checked by the session guard."""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models.user import User


class UserService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def exists(self, email: str) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(select(User.id).where(User.email == email.strip().lower()))
            return result.scalar_one_or_none() is not None

    async def ensure(self, email: str) -> None:
        """Insert the user if missing. Concurrent first logins are tolerated."""
        email = email.strip().lower()
        if await self.exists(email):
            return

        async with self.session_factory() as session:
            session.add(User(email=email))
            try:
                await session.commit()
            except IntegrityError:
                # Created by a concurrent request
                await session.rollback()
