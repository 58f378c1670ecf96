"""Tests for card API endpoints."""

from httpx import AsyncClient


class TestCatalogEndpoint:
    async def test_empty_catalog(self, client: AsyncClient) -> None:
        response = await client.get("/cards")

        assert response.status_code == 200
        assert response.json() == {"cards": [], "count": 0}

    async def test_catalog_order(self, client: AsyncClient, seeded_catalog: dict[str, int]) -> None:
        """Commons come first, cheapest first."""
        response = await client.get("/cards")

        data = response.json()
        assert data["count"] == len(seeded_catalog)
        assert data["cards"][0]["rarity"] == "common"
        assert data["cards"][-1]["rarity"] == "legendary"
        common_costs = [c["cost"] for c in data["cards"] if c["rarity"] == "common"]
        assert common_costs == sorted(common_costs)


class TestStarterUnlock:
    async def test_unlock_then_deck(
        self, client: AsyncClient, seeded_catalog: dict[str, int]
    ) -> None:
        """A new player receives the starters, which then form the deck."""
        response = await client.post("/cards/kid/unlock-starter")

        assert response.status_code == 200
        unlocked = response.json()
        assert unlocked["count"] > 0

        deck = (await client.get("/cards/kid/deck")).json()
        assert deck["count"] == unlocked["count"]
        assert all(c["card"]["rarity"] == "common" for c in deck["cards"])
        assert all(c["level"] == 1 for c in deck["cards"])

    async def test_unlock_is_idempotent(
        self, client: AsyncClient, seeded_catalog: dict[str, int]
    ) -> None:
        await client.post("/cards/kid/unlock-starter")

        response = await client.post("/cards/kid/unlock-starter")

        assert response.json()["count"] == 0

    async def test_deck_limit(self, client: AsyncClient, seeded_catalog: dict[str, int]) -> None:
        await client.post("/cards/kid/unlock-starter")

        response = await client.get("/cards/kid/deck", params={"limit": 2})

        assert response.json()["count"] == 2


class TestUpgradeEndpoint:
    async def test_upgrade(self, client: AsyncClient, seeded_catalog: dict[str, int]) -> None:
        """Ten copies take a level-1 card to level 2."""
        granted = await client.post(
            "/cards/kid/grant",
            json={"card_id": seeded_catalog["Brave Knight"], "quantity": 10},
        )
        player_card = granted.json()
        assert player_card["can_upgrade"] is True

        response = await client.post(f"/cards/kid/upgrade/{player_card['id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["level"] == 2
        assert data["quantity"] == 0
        assert data["upgrade_cost"] == 20
        assert data["can_upgrade"] is False

    async def test_insufficient_cards(
        self, client: AsyncClient, seeded_catalog: dict[str, int]
    ) -> None:
        """Upgrading without enough copies is a known failure."""
        granted = await client.post(
            "/cards/kid/grant",
            json={"card_id": seeded_catalog["Brave Knight"], "quantity": 3},
        )

        response = await client.post(f"/cards/kid/upgrade/{granted.json()['id']}")

        assert response.status_code == 400
        data = response.json()
        assert data["outcome"] == "known_failure"
        assert data["failure"]["kind"] == "insufficient_cards"

    async def test_unknown_card(self, client: AsyncClient) -> None:
        response = await client.post("/cards/kid/upgrade/999")

        assert response.status_code == 404
        assert response.json()["failure"]["kind"] == "not_found"


class TestGrantEndpoint:
    async def test_rejects_zero_quantity(
        self, client: AsyncClient, seeded_catalog: dict[str, int]
    ) -> None:
        response = await client.post(
            "/cards/kid/grant",
            json={"card_id": seeded_catalog["Brave Knight"], "quantity": 0},
        )

        assert response.status_code == 422

    async def test_unknown_card(self, client: AsyncClient) -> None:
        response = await client.post("/cards/kid/grant", json={"card_id": 999})

        assert response.status_code == 404
