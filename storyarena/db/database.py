"""
Engine and session plumbing.

Production runs on PostgreSQL through asyncpg. Local runs and the test suite
use SQLite through aiosqlite; an in-memory SQLite database only exists on a
single connection, so it is pinned to a StaticPool.
"""

from collections.abc import AsyncGenerator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from storyarena.config import settings
from storyarena.models.db import Base


def build_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine with pool options suited to the backend."""
    if database_url.startswith("sqlite"):
        if ":memory:" in database_url:
            return create_async_engine(database_url, echo=echo, poolclass=StaticPool)
        return create_async_engine(database_url, echo=echo)
    return create_async_engine(database_url, echo=echo, pool_pre_ping=True)


def build_session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Match and queue rows are read back after commit, so keep them loaded
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.debug)
async_session_factory = build_session_factory(engine)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Request-scoped session dependency.

    Services commit their own units of work (a queue claim, a match
    transition, one player's settlement); whatever is still pending when the
    route returns is committed here. A database error rolls everything back.
    """
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except SQLAlchemyError:
            await session.rollback()
            raise


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Dependency that provides the session factory itself.

    Used by long-running operations (matchmaking search) that open a fresh
    session per poll instead of holding one for the whole request.
    """
    return async_session_factory


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Create any missing tables. Safe to run on every startup."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(bind: AsyncEngine | None = None) -> None:
    """Drop every table. Test and local use only."""
    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
