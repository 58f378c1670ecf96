"""
Live match API endpoints.

Players submit intents (play this card); the server validates them against
the authoritative match record and returns the new state. Opponents follow
the match with the long-poll `wait` endpoint.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.config import MAX_WAIT_SECONDS
from storyarena.db.database import get_session
from storyarena.models.battle import BattleUnit, LiveMatch
from storyarena.services.change_feed import ChangeFeed, get_change_feed
from storyarena.services.live_match import (
    EMOTES,
    load_match,
    play_card,
    send_emote,
    settle_match,
    wait_for_update,
)
from storyarena.services.settlement import SettlementReport

router = APIRouter(prefix="/matches", tags=["matches"])


class UnitResponse(BaseModel):
    id: str
    card_id: int
    card_name: str
    emoji: str
    team: str
    level: int
    attack: int
    current_health: int
    max_health: int
    defeated: bool

    @classmethod
    def from_model(cls, unit: BattleUnit) -> "UnitResponse":
        return cls(**unit.to_dict())


class MatchResponse(BaseModel):
    """Full state of a live match."""

    id: int
    player1_id: str
    player2_id: str
    current_turn: str
    turn_number: int
    player1_health: int
    player2_health: int
    player1_elixir: int
    player2_elixir: int
    units: list[UnitResponse] = Field(default_factory=list)
    battle_log: list[str] = Field(default_factory=list)
    status: str
    winner_id: str | None = None
    origin: str
    created_at: datetime | None = None
    last_action_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_model(cls, match: LiveMatch) -> "MatchResponse":
        return cls(
            id=match.id or 0,
            player1_id=match.player1_id,
            player2_id=match.player2_id,
            current_turn=match.current_turn,
            turn_number=match.turn_number,
            player1_health=match.player1_health,
            player2_health=match.player2_health,
            player1_elixir=match.player1_elixir,
            player2_elixir=match.player2_elixir,
            units=[UnitResponse.from_model(u) for u in match.units],
            battle_log=list(match.battle_log),
            status=match.status.value,
            winner_id=match.winner_id,
            origin=match.origin.value,
            created_at=match.created_at,
            last_action_at=match.last_action_at,
            completed_at=match.completed_at,
        )


class SettlementResponse(BaseModel):
    match_id: int | None
    settled: list[str]
    already_settled: list[str]
    failed: list[str]
    complete: bool

    @classmethod
    def from_report(cls, report: SettlementReport) -> "SettlementResponse":
        return cls(
            match_id=report.match_id,
            settled=report.settled,
            already_settled=report.already_settled,
            failed=report.failed,
            complete=report.complete,
        )


class PlayCardRequest(BaseModel):
    """A card-play intent."""

    user_id: str
    player_card_id: int
    expected_turn: int | None = Field(
        default=None,
        description="Turn number the client last saw; rejected as stale if the match moved on",
    )


class PlayCardResponse(BaseModel):
    match: MatchResponse
    settlement: SettlementResponse | None = None


class EmoteRequest(BaseModel):
    user_id: str
    emote_type: str = Field(..., examples=list(EMOTES))


class EmoteResponse(BaseModel):
    match_id: int
    user_id: str
    emote_type: str
    emoji: str


@router.get("/{match_id}", response_model=MatchResponse)
async def get_match(
    match_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> MatchResponse:
    """Get the current state of a match."""
    return MatchResponse.from_model(await load_match(session, match_id))


@router.post("/{match_id}/play", response_model=PlayCardResponse)
async def play(
    match_id: int,
    request: PlayCardRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
) -> PlayCardResponse:
    """
    Play a card.

    Only the player holding the turn may play. A rejected play changes
    nothing and the player keeps the turn.
    """
    result = await play_card(
        session,
        feed,
        match_id,
        request.user_id,
        request.player_card_id,
        expected_turn=request.expected_turn,
    )
    return PlayCardResponse(
        match=MatchResponse.from_model(result.match),
        settlement=(
            SettlementResponse.from_report(result.settlement) if result.settlement else None
        ),
    )


@router.get("/{match_id}/wait", response_model=MatchResponse)
async def wait(
    match_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
    after_turn: Annotated[int, Query(ge=0)] = 0,
    timeout: Annotated[float, Query(gt=0, le=MAX_WAIT_SECONDS)] = 10.0,
) -> MatchResponse:
    """
    Long-poll for the next move.

    Returns as soon as the turn number exceeds `after_turn`, or the current
    state after `timeout` seconds.
    """
    match = await wait_for_update(session, feed, match_id, after_turn, timeout)
    return MatchResponse.from_model(match)


@router.post("/{match_id}/emote", response_model=EmoteResponse)
async def emote(
    match_id: int,
    request: EmoteRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    feed: Annotated[ChangeFeed, Depends(get_change_feed)],
) -> EmoteResponse:
    """Send an emote to the other player."""
    emoji = await send_emote(session, feed, match_id, request.user_id, request.emote_type)
    return EmoteResponse(
        match_id=match_id,
        user_id=request.user_id,
        emote_type=request.emote_type,
        emoji=emoji,
    )


@router.post("/{match_id}/settle", response_model=SettlementResponse)
async def settle(
    match_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> SettlementResponse:
    """
    Settle a completed match.

    Safe to retry: players already settled are skipped.
    """
    return SettlementResponse.from_report(await settle_match(session, match_id))
