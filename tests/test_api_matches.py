"""Tests for matchmaking and live match API endpoints."""

from httpx import AsyncClient


async def _bolt_id(client: AsyncClient, user_id: str) -> int:
    """Unlock a player's starters and return their Lightning Bolt."""
    await client.post(f"/cards/{user_id}/unlock-starter")
    deck = (await client.get(f"/cards/{user_id}/deck")).json()
    return next(c["id"] for c in deck["cards"] if c["card"]["name"] == "Lightning Bolt")


async def _paired_match(client: AsyncClient) -> dict:
    await client.post("/matchmaking/alice/queue", json={"trophies": 500})
    await client.post("/matchmaking/bob/queue", json={"trophies": 550})
    response = await client.post("/matchmaking/alice/search")
    return response.json()["match"]


class TestMatchmakingEndpoints:
    async def test_idle_by_default(self, client: AsyncClient) -> None:
        response = await client.get("/matchmaking/alice")

        assert response.status_code == 200
        assert response.json()["status"] == "idle"

    async def test_enqueue(self, client: AsyncClient) -> None:
        response = await client.post("/matchmaking/alice/queue", json={"trophies": 500})

        data = response.json()
        assert data["status"] == "waiting"
        assert data["trophy_range_min"] == 300
        assert data["trophy_range_max"] == 700

    async def test_enqueue_without_body_uses_stats(self, client: AsyncClient) -> None:
        """A new player queues with 0 trophies."""
        response = await client.post("/matchmaking/alice/queue")

        assert response.json()["trophy_count"] == 0

    async def test_search_pairs_players(self, client: AsyncClient) -> None:
        """Both players see the same match; the searcher goes first."""
        match = await _paired_match(client)

        assert match["current_turn"] == "alice"
        assert match["player1_health"] == match["player2_health"] == 1000
        bob = (await client.get("/matchmaking/bob")).json()
        assert bob["status"] == "matched"
        assert bob["match"]["id"] == match["id"]

    async def test_requeue_with_unfinished_match(self, client: AsyncClient) -> None:
        """Queueing again while an old match is open pairs with someone new."""
        old = await _paired_match(client)
        await client.post("/matchmaking/alice/queue", json={"trophies": 500})

        assert (await client.get("/matchmaking/alice")).json()["status"] == "waiting"

        await client.post("/matchmaking/carol/queue", json={"trophies": 520})
        response = await client.post("/matchmaking/alice/search")

        match = response.json()["match"]
        assert match["id"] != old["id"]
        assert match["player2_id"] == "carol"

    async def test_search_without_opponent(self, client: AsyncClient) -> None:
        await client.post("/matchmaking/alice/queue", json={"trophies": 500})

        response = await client.post("/matchmaking/alice/search")

        assert response.json()["status"] == "waiting"
        assert response.json()["match"] is None

    async def test_cancel(self, client: AsyncClient) -> None:
        await client.post("/matchmaking/alice/queue", json={"trophies": 500})

        response = await client.delete("/matchmaking/alice/queue")

        assert response.json()["removed"] is True
        assert (await client.get("/matchmaking/alice")).json()["status"] == "idle"

    async def test_cancel_when_idle(self, client: AsyncClient) -> None:
        response = await client.delete("/matchmaking/alice/queue")

        assert response.status_code == 200
        assert response.json()["removed"] is False

    async def test_wait_times_out_waiting(self, client: AsyncClient) -> None:
        """A bounded wait with nobody to play returns the queue status."""
        await client.post("/matchmaking/alice/queue", json={"trophies": 500})

        response = await client.post("/matchmaking/alice/wait", params={"timeout": 0.1})

        assert response.status_code == 200
        assert response.json()["status"] == "waiting"

    async def test_wait_finds_opponent(self, client: AsyncClient) -> None:
        await client.post("/matchmaking/alice/queue", json={"trophies": 500})
        await client.post("/matchmaking/bob/queue", json={"trophies": 550})

        response = await client.post("/matchmaking/alice/wait", params={"timeout": 1.0})

        assert response.json()["status"] == "matched"

    async def test_wait_timeout_bounded(self, client: AsyncClient) -> None:
        response = await client.post("/matchmaking/alice/wait", params={"timeout": 600})

        assert response.status_code == 422


class TestPlayEndpoint:
    async def test_play_card(self, client: AsyncClient, seeded_catalog: dict[str, int]) -> None:
        """A bolt hits the opponent for 300 and passes the turn."""
        bolt = await _bolt_id(client, "alice")
        match = await _paired_match(client)

        response = await client.post(
            f"/matches/{match['id']}/play",
            json={"user_id": "alice", "player_card_id": bolt, "expected_turn": 0},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["match"]["player2_health"] == 700
        assert data["match"]["player1_elixir"] == 6
        assert data["match"]["current_turn"] == "bob"
        assert data["match"]["turn_number"] == 1
        assert data["settlement"] is None

    async def test_not_your_turn(self, client: AsyncClient, seeded_catalog: dict[str, int]) -> None:
        bolt = await _bolt_id(client, "bob")
        match = await _paired_match(client)

        response = await client.post(
            f"/matches/{match['id']}/play",
            json={"user_id": "bob", "player_card_id": bolt},
        )

        assert response.status_code == 409
        failure = response.json()["failure"]
        assert failure["kind"] == "not_your_turn"
        assert failure["retryable"] is False

    async def test_stale_view(self, client: AsyncClient, seeded_catalog: dict[str, int]) -> None:
        """Playing against an outdated turn number is retryable."""
        bolt = await _bolt_id(client, "alice")
        match = await _paired_match(client)

        response = await client.post(
            f"/matches/{match['id']}/play",
            json={"user_id": "alice", "player_card_id": bolt, "expected_turn": 5},
        )

        assert response.status_code == 409
        failure = response.json()["failure"]
        assert failure["kind"] == "stale_match"
        assert failure["retryable"] is True

    async def test_outsider(self, client: AsyncClient, seeded_catalog: dict[str, int]) -> None:
        bolt = await _bolt_id(client, "carol")
        match = await _paired_match(client)

        response = await client.post(
            f"/matches/{match['id']}/play",
            json={"user_id": "carol", "player_card_id": bolt},
        )

        assert response.status_code == 403

    async def test_unknown_match(self, client: AsyncClient) -> None:
        response = await client.get("/matches/404")

        assert response.status_code == 404
        assert response.json()["failure"]["kind"] == "match_not_found"


class TestFollowingAMatch:
    async def test_wait_sees_new_turn(
        self, client: AsyncClient, seeded_catalog: dict[str, int]
    ) -> None:
        bolt = await _bolt_id(client, "alice")
        match = await _paired_match(client)
        await client.post(
            f"/matches/{match['id']}/play",
            json={"user_id": "alice", "player_card_id": bolt},
        )

        response = await client.get(
            f"/matches/{match['id']}/wait", params={"after_turn": 0, "timeout": 1.0}
        )

        assert response.json()["turn_number"] == 1
        assert response.json()["current_turn"] == "bob"

    async def test_wait_timeout_returns_current(self, client: AsyncClient) -> None:
        match = await _paired_match(client)

        response = await client.get(
            f"/matches/{match['id']}/wait", params={"after_turn": 0, "timeout": 0.05}
        )

        assert response.status_code == 200
        assert response.json()["turn_number"] == 0

    async def test_emote(self, client: AsyncClient) -> None:
        match = await _paired_match(client)

        response = await client.post(
            f"/matches/{match['id']}/emote",
            json={"user_id": "bob", "emote_type": "wow"},
        )

        assert response.status_code == 200
        assert response.json()["emoji"] == "😮"

    async def test_unknown_emote(self, client: AsyncClient) -> None:
        match = await _paired_match(client)

        response = await client.post(
            f"/matches/{match['id']}/emote",
            json={"user_id": "bob", "emote_type": "taunt"},
        )

        assert response.status_code == 400
        assert response.json()["failure"]["kind"] == "invalid_input"

    async def test_settle_active_match(self, client: AsyncClient) -> None:
        """An unfinished match cannot be settled."""
        match = await _paired_match(client)

        response = await client.post(f"/matches/{match['id']}/settle")

        assert response.status_code == 409
        assert response.json()["failure"]["kind"] == "conflict"
