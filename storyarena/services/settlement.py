"""
Outcome Settlement: trophies, stats and history after a battle.

Each participant is settled independently and committed on its own. A
failure for one player is logged and reported, never rolled back into the
match result, which was already recorded when the match completed. Settling
again later only fills in the players that are missing, so a retry can
never count the same match twice.

INVARIANT: trophies never go below 0.
"""

import logging
from dataclasses import dataclass, field, replace

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.db.operations import (
    get_or_create_player_stats,
    has_match_record,
    record_battle_match,
    save_player_stats,
    stats_to_model,
)
from storyarena.models.battle import AIBattle, LiveMatch
from storyarena.models.failure import ConflictError, PersistenceFailureError
from storyarena.models.stats import (
    TROPHIES_PER_LOSS,
    TROPHIES_PER_WIN,
    BattleMatchRecord,
    MatchResult,
    OpponentType,
    PlayerBattleStats,
    arena_for_trophies,
)
from storyarena.services.ai_opponent import AI_TEAM, PLAYER_TEAM, SECONDS_PER_ROUND

logger = logging.getLogger(__name__)

# Seconds of play credited per multiplayer turn in match history
SECONDS_PER_TURN = 30


@dataclass(frozen=True)
class TrophyChange:
    """Trophies before and after a result, already clamped at 0."""

    before: int
    after: int

    @property
    def gained(self) -> int:
        return max(0, self.after - self.before)

    @property
    def lost(self) -> int:
        return max(0, self.before - self.after)


def trophy_delta(result: MatchResult) -> int:
    """Nominal trophy change for a result."""
    if result == MatchResult.WIN:
        return TROPHIES_PER_WIN
    if result == MatchResult.LOSS:
        return -TROPHIES_PER_LOSS
    return 0


def apply_outcome(
    stats: PlayerBattleStats, result: MatchResult
) -> tuple[PlayerBattleStats, TrophyChange]:
    """
    Return the stats after one result, plus the applied trophy change.

    Wins extend the streak; losses and draws reset it. Best streak and
    highest trophies are running maxima.
    """
    change = TrophyChange(
        before=stats.trophies,
        after=max(0, stats.trophies + trophy_delta(result)),
    )
    win_streak = stats.win_streak + 1 if result == MatchResult.WIN else 0

    updated = replace(
        stats,
        trophies=change.after,
        arena_level=max(stats.arena_level, arena_for_trophies(change.after)),
        total_wins=stats.total_wins + (result == MatchResult.WIN),
        total_losses=stats.total_losses + (result == MatchResult.LOSS),
        total_draws=stats.total_draws + (result == MatchResult.DRAW),
        win_streak=win_streak,
        best_win_streak=max(stats.best_win_streak, win_streak),
        highest_trophies=max(stats.highest_trophies, change.after),
    )
    return updated, change


def result_for(match: LiveMatch, player_id: str) -> MatchResult:
    """A participant's result in a completed match."""
    if match.winner_id is None:
        return MatchResult.DRAW
    return MatchResult.WIN if match.winner_id == player_id else MatchResult.LOSS


async def record_outcome(
    session: AsyncSession,
    player_id: str,
    result: MatchResult,
    *,
    opponent_type: OpponentType,
    opponent_id: str | None = None,
    live_match_id: int | None = None,
    duration_seconds: int = 0,
    cards_played: list[int] | None = None,
) -> PlayerBattleStats:
    """
    Update one player's stats and append their history entry.

    Flushes but does not commit; the caller owns the transaction.
    """
    db_stats, _ = await get_or_create_player_stats(session, player_id)
    updated, change = apply_outcome(stats_to_model(db_stats), result)
    await save_player_stats(session, updated)

    await record_battle_match(
        session,
        BattleMatchRecord(
            player_id=player_id,
            opponent_type=opponent_type,
            opponent_id=opponent_id,
            live_match_id=live_match_id,
            result=result,
            trophies_gained=change.gained,
            trophies_lost=change.lost,
            duration_seconds=duration_seconds,
            cards_played=list(cards_played or []),
        ),
    )

    logger.info(
        "Settled %s for %s: trophies %d -> %d",
        result.value,
        player_id,
        change.before,
        change.after,
        extra={"player_id": player_id, "live_match_id": live_match_id},
    )
    return updated


@dataclass
class SettlementReport:
    """Which participants of a match were settled by this call."""

    match_id: int | None
    settled: list[str] = field(default_factory=list)
    already_settled: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


async def settle_live_match(session: AsyncSession, match: LiveMatch) -> SettlementReport:
    """
    Settle both participants of a completed multiplayer match.

    Each player is committed separately. Failures are logged and listed in
    the report so the caller can retry.
    """
    if match.is_active or match.id is None:
        raise ConflictError(
            "The battle is still in progress.",
            detail=f"match {match.id} is not completed",
        )

    report = SettlementReport(match_id=match.id)
    for player_id in (match.player1_id, match.player2_id):
        if await has_match_record(session, player_id, match.id):
            report.already_settled.append(player_id)
            continue

        try:
            await record_outcome(
                session,
                player_id,
                result_for(match, player_id),
                opponent_type=OpponentType.PLAYER,
                opponent_id=match.opponent_of(player_id),
                live_match_id=match.id,
                duration_seconds=match.turn_number * SECONDS_PER_TURN,
            )
            await session.commit()
            report.settled.append(player_id)
        except IntegrityError:
            await session.rollback()
            # Only a record written by a concurrent settlement counts as done
            if await has_match_record(session, player_id, match.id):
                report.already_settled.append(player_id)
            else:
                logger.exception(
                    "Constraint violation settling %s in match %s", player_id, match.id
                )
                report.failed.append(player_id)
        except SQLAlchemyError:
            await session.rollback()
            logger.exception("Settlement failed for %s in match %s", player_id, match.id)
            report.failed.append(player_id)

    return report


def ai_battle_result(battle: AIBattle) -> MatchResult:
    if battle.winner == PLAYER_TEAM:
        return MatchResult.WIN
    if battle.winner == AI_TEAM:
        return MatchResult.LOSS
    return MatchResult.DRAW


async def settle_ai_battle(session: AsyncSession, battle: AIBattle) -> PlayerBattleStats:
    """
    Settle the human side of a finished AI battle.

    Raises:
        ConflictError: the battle is still running
        PersistenceFailureError: the write failed; the battle stays unsettled
    """
    if not battle.is_game_over:
        raise ConflictError("The battle is still in progress.", detail=f"AI battle {battle.id}")

    try:
        stats = await record_outcome(
            session,
            battle.user_id,
            ai_battle_result(battle),
            opponent_type=OpponentType.AI,
            duration_seconds=battle.round * SECONDS_PER_ROUND,
            cards_played=battle.cards_played,
        )
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("Settlement failed for AI battle %s", battle.id)
        raise PersistenceFailureError("settle_ai_battle", str(e)) from e

    battle.settled = True
    return stats
