"""Shared test fixtures for all test groups."""

import os

# Secrets must exist before app.core.config.get_settings() is first called
os.environ.setdefault("AUTH_SECRET", "test-auth-secret-0123456789abcdef")
os.environ.setdefault("APP_ENC_KEY", "test-app-enc-key-0123456789abcdef")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from app.db.base import Base, create_engine_for


@pytest.fixture
def db_url(tmp_path) -> str:
    """Database for one test: TEST_DATABASE_URL if set, else a fresh SQLite file."""
    return os.getenv("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'formgate-test.db'}"


@pytest.fixture
async def engine(db_url: str) -> AsyncEngine:
    """Create the schema and point the global session factory at it.

    Services under test receive ``session_factory`` explicitly; routes use
    the global one. TestClient-based tests re-initialize the global in
    their own loop (see tests/api/conftest.py).
    """
    import app.db.base as db_mod

    # Import all models so metadata is populated
    import app.db.models  # noqa: F401

    engine = create_engine_for(db_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    db_mod._engine = engine
    db_mod._session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    yield engine

    db_mod._engine = None
    db_mod._session_factory = None
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db_session(session_factory) -> AsyncSession:
    async with session_factory() as session:
        yield session
