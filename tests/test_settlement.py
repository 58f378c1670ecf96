"""Tests for outcome settlement."""

import pytest
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.db.operations import (
    create_live_match,
    get_player_stats,
    get_recent_matches,
    save_player_stats,
    stats_to_model,
)
from storyarena.models.battle import AIBattle, LiveMatch, MatchStatus
from storyarena.models.failure import ConflictError, PersistenceFailureError
from storyarena.models.stats import MatchResult, OpponentType, PlayerBattleStats
from storyarena.services import settlement
from storyarena.services.settlement import (
    apply_outcome,
    settle_ai_battle,
    settle_live_match,
)


async def _completed_match(session: AsyncSession, winner: str | None = "player-a") -> LiveMatch:
    match = LiveMatch(
        player1_id="player-a",
        player2_id="player-b",
        current_turn="player-b",
        turn_number=7,
        status=MatchStatus.COMPLETED,
        winner_id=winner,
    )
    await create_live_match(session, match)
    await session.commit()
    return match


class TestApplyOutcome:
    def test_win(self) -> None:
        """A win adds 30 trophies and extends the streak."""
        stats = PlayerBattleStats(user_id="u", trophies=100, win_streak=2, best_win_streak=2)

        updated, change = apply_outcome(stats, MatchResult.WIN)

        assert updated.trophies == 130
        assert updated.total_wins == 1
        assert updated.win_streak == 3
        assert updated.best_win_streak == 3
        assert updated.highest_trophies == 130
        assert change.gained == 30
        assert change.lost == 0

    def test_loss_resets_streak(self) -> None:
        """A loss costs 15 trophies and resets the streak, keeping the best."""
        stats = PlayerBattleStats(
            user_id="u", trophies=100, win_streak=4, best_win_streak=4, highest_trophies=120
        )

        updated, change = apply_outcome(stats, MatchResult.LOSS)

        assert updated.trophies == 85
        assert updated.win_streak == 0
        assert updated.best_win_streak == 4
        assert updated.highest_trophies == 120
        assert change.lost == 15

    def test_trophies_clamped_at_zero(self) -> None:
        """A loss below zero leaves exactly 0 trophies."""
        stats = PlayerBattleStats(user_id="u", trophies=10)

        updated, change = apply_outcome(stats, MatchResult.LOSS)

        assert updated.trophies == 0
        assert change.lost == 10

    def test_draw(self) -> None:
        """A draw changes no trophies and resets the streak."""
        stats = PlayerBattleStats(user_id="u", trophies=50, win_streak=2)

        updated, change = apply_outcome(stats, MatchResult.DRAW)

        assert updated.trophies == 50
        assert updated.total_draws == 1
        assert updated.win_streak == 0
        assert change.gained == change.lost == 0

    def test_arena_follows_trophies(self) -> None:
        """Crossing a threshold raises the arena level."""
        updated, _ = apply_outcome(PlayerBattleStats(user_id="u", trophies=290), MatchResult.WIN)

        assert updated.arena_level == 1


class TestSettleLiveMatch:
    async def test_settles_both_players(self, session: AsyncSession) -> None:
        """Winner and loser each get stats and one history entry."""
        match = await _completed_match(session)

        report = await settle_live_match(session, match)

        assert sorted(report.settled) == ["player-a", "player-b"]
        assert report.complete
        winner = await get_player_stats(session, "player-a")
        loser = await get_player_stats(session, "player-b")
        assert winner.trophies == 30
        assert loser.trophies == 0
        history = await get_recent_matches(session, "player-a")
        assert len(history) == 1
        assert history[0].opponent_id == "player-b"
        assert history[0].opponent_type == OpponentType.PLAYER.value
        assert history[0].duration_seconds == 7 * settlement.SECONDS_PER_TURN

    async def test_retry_does_not_double_count(self, session: AsyncSession) -> None:
        """Settling twice leaves stats as after the first settlement."""
        match = await _completed_match(session)
        await settle_live_match(session, match)

        report = await settle_live_match(session, match)

        assert report.settled == []
        assert sorted(report.already_settled) == ["player-a", "player-b"]
        winner = await get_player_stats(session, "player-a")
        assert winner.trophies == 30
        assert winner.total_wins == 1
        assert len(await get_recent_matches(session, "player-a")) == 1

    async def test_draw(self, session: AsyncSession) -> None:
        """A match without a winner is a draw for both."""
        match = await _completed_match(session, winner=None)

        await settle_live_match(session, match)

        for player in ("player-a", "player-b"):
            stats = await get_player_stats(session, player)
            assert stats.total_draws == 1

    async def test_partial_failure_is_retryable(
        self, session: AsyncSession, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """One failed participant is reported and can be settled later."""
        match = await _completed_match(session)
        original = settlement.record_outcome

        async def flaky(session, player_id, *args, **kwargs):
            if player_id == "player-b":
                raise SQLAlchemyError("connection lost")
            return await original(session, player_id, *args, **kwargs)

        monkeypatch.setattr(settlement, "record_outcome", flaky)
        report = await settle_live_match(session, match)

        assert report.settled == ["player-a"]
        assert report.failed == ["player-b"]
        assert not report.complete
        assert (await get_player_stats(session, "player-a")).trophies == 30

        monkeypatch.setattr(settlement, "record_outcome", original)
        retry = await settle_live_match(session, match)

        assert retry.settled == ["player-b"]
        assert retry.already_settled == ["player-a"]
        assert (await get_player_stats(session, "player-a")).trophies == 30

    async def test_unrelated_constraint_violation_fails(
        self, session: AsyncSession, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A constraint error without a stored record is a failure, not a settlement."""
        match = await _completed_match(session)

        async def violating(*args, **kwargs):
            raise IntegrityError("insert", {}, Exception("CHECK constraint failed"))

        monkeypatch.setattr(settlement, "record_outcome", violating)
        report = await settle_live_match(session, match)

        assert sorted(report.failed) == ["player-a", "player-b"]
        assert report.already_settled == []
        assert not report.complete

    async def test_concurrent_settlement_counts_as_done(
        self, session: AsyncSession, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A duplicate-record error after another writer succeeded is already settled."""
        match = await _completed_match(session)
        original = settlement.record_outcome

        async def raced(session, player_id, *args, **kwargs):
            await original(session, player_id, *args, **kwargs)
            await session.commit()
            raise IntegrityError("insert", {}, Exception("UNIQUE constraint failed"))

        monkeypatch.setattr(settlement, "record_outcome", raced)
        report = await settle_live_match(session, match)

        assert sorted(report.already_settled) == ["player-a", "player-b"]
        assert report.complete
        assert (await get_player_stats(session, "player-a")).trophies == 30

    async def test_active_match_rejected(self, session: AsyncSession) -> None:
        """Active matches cannot be settled."""
        match = LiveMatch(player1_id="a", player2_id="b", current_turn="a")
        await create_live_match(session, match)

        with pytest.raises(ConflictError):
            await settle_live_match(session, match)


class TestSettleAIBattle:
    async def test_win_against_ai(self, session: AsyncSession) -> None:
        """A win against the AI is recorded with opponent type ai."""
        await save_player_stats(session, PlayerBattleStats(user_id="kid", trophies=5))
        battle = AIBattle(id="b1", user_id="kid", round=4, is_game_over=True, winner="player")
        battle.cards_played = [1, 4]

        stats = await settle_ai_battle(session, battle)

        assert stats.trophies == 35
        assert battle.settled is True
        history = await get_recent_matches(session, "kid")
        assert history[0].opponent_type == OpponentType.AI.value
        assert history[0].live_match_id is None
        assert history[0].cards_played == [1, 4]
        assert history[0].duration_seconds == 20

    async def test_loss_at_zero(self, session: AsyncSession) -> None:
        """Losing with no trophies stays at 0."""
        battle = AIBattle(id="b2", user_id="kid", is_game_over=True, winner="opponent")

        await settle_ai_battle(session, battle)

        stats = stats_to_model(await get_player_stats(session, "kid"))
        assert stats.trophies == 0
        assert stats.total_losses == 1

    async def test_unfinished_battle(self, session: AsyncSession) -> None:
        with pytest.raises(ConflictError):
            await settle_ai_battle(session, AIBattle(id="b3", user_id="kid"))

    async def test_write_failure(
        self, session: AsyncSession, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Write failures surface as retryable persistence failures."""

        async def broken(*args, **kwargs):
            raise SQLAlchemyError("disk full")

        monkeypatch.setattr(settlement, "record_outcome", broken)
        battle = AIBattle(id="b4", user_id="kid", is_game_over=True, winner="player")

        with pytest.raises(PersistenceFailureError):
            await settle_ai_battle(session, battle)
        assert battle.settled is False
