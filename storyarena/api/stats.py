"""
Stats API endpoints.

Provides player stats, match history, the leaderboard and a player's rank.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.db import (
    count_players_above,
    get_leaderboard,
    get_player_stats,
    get_recent_matches,
    match_record_to_model,
    stats_to_model,
)
from storyarena.db.database import get_session
from storyarena.models.stats import PlayerBattleStats, arena_name

router = APIRouter(prefix="/stats", tags=["stats"])


class StatsResponse(BaseModel):
    """A player's aggregate stats. Players who never played get zeros."""

    user_id: str
    trophies: int
    arena_level: int
    arena_name: str
    total_wins: int
    total_losses: int
    total_draws: int
    total_matches: int
    win_rate: int
    win_streak: int
    best_win_streak: int
    highest_trophies: int
    total_cards_unlocked: int

    @classmethod
    def from_model(cls, stats: PlayerBattleStats) -> "StatsResponse":
        return cls(
            user_id=stats.user_id,
            trophies=stats.trophies,
            arena_level=stats.arena_level,
            arena_name=arena_name(stats.arena_level),
            total_wins=stats.total_wins,
            total_losses=stats.total_losses,
            total_draws=stats.total_draws,
            total_matches=stats.total_matches,
            win_rate=stats.win_rate(),
            win_streak=stats.win_streak,
            best_win_streak=stats.best_win_streak,
            highest_trophies=stats.highest_trophies,
            total_cards_unlocked=stats.total_cards_unlocked,
        )


class MatchHistoryEntry(BaseModel):
    opponent_type: str
    opponent_id: str | None = None
    live_match_id: int | None = None
    result: str
    trophies_gained: int
    trophies_lost: int
    duration_seconds: int
    cards_played: list[int]
    played_at: datetime | None = None


class MatchHistoryResponse(BaseModel):
    user_id: str
    matches: list[MatchHistoryEntry]
    count: int


class LeaderboardEntry(BaseModel):
    rank: int
    user_id: str
    trophies: int
    arena_level: int
    total_wins: int


class LeaderboardResponse(BaseModel):
    entries: list[LeaderboardEntry]
    count: int


class RankResponse(BaseModel):
    user_id: str
    rank: int
    trophies: int


async def _load_stats(session: AsyncSession, user_id: str) -> PlayerBattleStats:
    db_stats = await get_player_stats(session, user_id)
    return stats_to_model(db_stats) if db_stats else PlayerBattleStats(user_id=user_id)


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int, Query(ge=1, le=100)] = 100,
) -> LeaderboardResponse:
    """Top players by trophies, ranked from 1."""
    entries = [
        LeaderboardEntry(
            rank=index,
            user_id=s.user_id,
            trophies=s.trophies,
            arena_level=s.arena_level,
            total_wins=s.total_wins,
        )
        for index, s in enumerate(await get_leaderboard(session, limit=limit), start=1)
    ]
    return LeaderboardResponse(entries=entries, count=len(entries))


@router.get("/{user_id}", response_model=StatsResponse)
async def get_stats(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> StatsResponse:
    """Get a player's stats."""
    return StatsResponse.from_model(await _load_stats(session, user_id))


@router.get("/{user_id}/history", response_model=MatchHistoryResponse)
async def get_history(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> MatchHistoryResponse:
    """Get a player's recent matches, newest first."""
    matches = []
    for record in await get_recent_matches(session, user_id, limit=limit):
        model = match_record_to_model(record)
        matches.append(
            MatchHistoryEntry(
                opponent_type=model.opponent_type.value,
                opponent_id=model.opponent_id,
                live_match_id=model.live_match_id,
                result=model.result.value,
                trophies_gained=model.trophies_gained,
                trophies_lost=model.trophies_lost,
                duration_seconds=model.duration_seconds,
                cards_played=model.cards_played,
                played_at=model.played_at,
            )
        )
    return MatchHistoryResponse(user_id=user_id, matches=matches, count=len(matches))


@router.get("/{user_id}/rank", response_model=RankResponse)
async def get_rank(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> RankResponse:
    """A player's rank: one more than the number of players with more trophies."""
    stats = await _load_stats(session, user_id)
    above = await count_players_above(session, stats.trophies)
    return RankResponse(user_id=user_id, rank=above + 1, trophies=stats.trophies)
