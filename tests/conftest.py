import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storyarena.api.ai_battles import get_ai_registry
from storyarena.db.database import (
    build_engine,
    build_session_factory,
    drop_db,
    get_session,
    get_session_factory,
    init_db,
)
from storyarena.db.operations import upsert_card
from storyarena.main import app
from storyarena.services.ai_opponent import AIBattleRegistry
from storyarena.services.card_catalog import CATALOG
from storyarena.services.change_feed import ChangeFeed, get_change_feed


@pytest.fixture
async def async_engine():
    """Create an in-memory SQLite engine for testing."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await init_db(engine)
    yield engine
    await drop_db(engine)
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(async_engine)


@pytest.fixture
async def session(session_factory) -> AsyncSession:
    """Provide a database session for tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def seeded_catalog(session_factory) -> dict[str, int]:
    """Seed the built-in catalog. Returns card ids by name."""
    async with session_factory() as session:
        ids = {}
        for card in CATALOG:
            db_card = await upsert_card(session, card)
            ids[card.name] = db_card.id
        await session.commit()
    return ids


@pytest.fixture
def feed() -> ChangeFeed:
    return ChangeFeed()


@pytest.fixture
def ai_registry() -> AIBattleRegistry:
    return AIBattleRegistry(seed=7)


@pytest.fixture
async def client(session_factory, feed, ai_registry):
    """Provide an async test client with overridden database session."""

    async def override_get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_change_feed] = lambda: feed
    app.dependency_overrides[get_ai_registry] = lambda: ai_registry

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
