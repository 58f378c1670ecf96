"""Tests for health check endpoints."""

from httpx import AsyncClient
from sqlalchemy.exc import OperationalError

from storyarena.db.database import get_session
from storyarena.main import app
from storyarena.services.ai_opponent import AIBattleRegistry


class TestHealthEndpoint:
    async def test_health_returns_healthy(self, client: AsyncClient) -> None:
        """Liveness check returns healthy."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data.get("database") is None


class TestReadyEndpoint:
    async def test_ready_returns_ready(self, client: AsyncClient) -> None:
        """Readiness check returns ready when DB is connected."""
        response = await client.get("/ready")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ready"
        assert data["database"] == "connected"
        assert data["ai_battles"] == 0

    async def test_ready_counts_ai_battles(
        self, client: AsyncClient, ai_registry: AIBattleRegistry
    ) -> None:
        ai_registry.start("kid", [])

        response = await client.get("/ready")

        assert response.json()["ai_battles"] == 1

    async def test_ready_database_down(self, client: AsyncClient) -> None:
        """Readiness returns 503 when the database cannot be reached."""

        class UnreachableSession:
            async def execute(self, *args, **kwargs):
                raise OperationalError("SELECT 1", {}, Exception("connection refused"))

        async def broken_session():
            yield UnreachableSession()

        app.dependency_overrides[get_session] = broken_session

        response = await client.get("/ready")

        assert response.status_code == 503
        assert response.json()["database"] == "disconnected"
