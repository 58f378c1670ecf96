"""
AI battle API endpoints.

Single-player battles run in process. Each turn request plays the human's
card, lets the AI answer and resolves combat; a finished battle is settled
and dropped from the registry.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.api.cards import OwnedCardResponse
from storyarena.api.matches import UnitResponse
from storyarena.config import settings
from storyarena.db.database import get_session
from storyarena.models.battle import AIBattle
from storyarena.models.failure import InvalidInputError, NotAParticipantError
from storyarena.services.ai_opponent import AIBattleRegistry, AIBattleSession, take_turn
from storyarena.services.card_catalog import get_player_deck
from storyarena.services.settlement import settle_ai_battle

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ai-battles", tags=["ai-battles"])

ai_registry = AIBattleRegistry(
    seed=settings.ai_random_seed, idle_seconds=settings.ai_battle_idle_seconds
)


def get_ai_registry() -> AIBattleRegistry:
    """Dependency that provides the process-wide AI battle registry."""
    return ai_registry


class StartRequest(BaseModel):
    user_id: str


class SettleRequest(BaseModel):
    user_id: str


class TurnRequest(BaseModel):
    user_id: str
    player_card_id: int | None = Field(
        default=None,
        description="Card to play; omit to pass the turn",
    )


class AIBattleResponse(BaseModel):
    id: str
    user_id: str
    player_health: int
    opponent_health: int
    player_elixir: int
    opponent_elixir: int
    turn: str
    round: int
    units: list[UnitResponse] = Field(default_factory=list)
    battle_log: list[str] = Field(default_factory=list)
    is_game_over: bool
    winner: str | None = None
    settled: bool
    hand: list[OwnedCardResponse] = Field(default_factory=list)

    @classmethod
    def from_session(cls, ai_session: AIBattleSession) -> "AIBattleResponse":
        battle: AIBattle = ai_session.battle
        return cls(
            id=battle.id,
            user_id=battle.user_id,
            player_health=battle.player_health,
            opponent_health=battle.opponent_health,
            player_elixir=battle.player_elixir,
            opponent_elixir=battle.opponent_elixir,
            turn=battle.turn,
            round=battle.round,
            units=[UnitResponse.from_model(u) for u in battle.units],
            battle_log=list(battle.battle_log),
            is_game_over=battle.is_game_over,
            winner=battle.winner,
            settled=battle.settled,
            hand=[OwnedCardResponse.from_owned(owned) for owned in ai_session.player_hand],
        )


def _owned_session(
    registry: AIBattleRegistry, battle_id: str, user_id: str
) -> AIBattleSession:
    ai_session = registry.get(battle_id)
    if ai_session.battle.user_id != user_id:
        raise NotAParticipantError(user_id, battle_id)
    return ai_session


@router.post("", response_model=AIBattleResponse)
async def start_battle(
    request: StartRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    registry: Annotated[AIBattleRegistry, Depends(get_ai_registry)],
) -> AIBattleResponse:
    """Start a battle against the AI with the player's deck."""
    deck = await get_player_deck(session, request.user_id, limit=settings.battle_deck_size)
    if not deck:
        raise InvalidInputError(
            "You need cards to battle!",
            detail=f"{request.user_id} owns no cards",
        )
    return AIBattleResponse.from_session(registry.start(request.user_id, deck))


@router.get("/{battle_id}", response_model=AIBattleResponse)
async def get_battle(
    battle_id: str,
    user_id: str,
    registry: Annotated[AIBattleRegistry, Depends(get_ai_registry)],
) -> AIBattleResponse:
    """Get the state of a running AI battle."""
    return AIBattleResponse.from_session(_owned_session(registry, battle_id, user_id))


async def _settle_finished(
    session: AsyncSession, registry: AIBattleRegistry, ai_session: AIBattleSession
) -> None:
    battle = ai_session.battle
    await settle_ai_battle(session, battle)
    registry.remove(battle.id)
    logger.info("AI battle %s finished, winner %s", battle.id, battle.winner)


@router.post("/{battle_id}/turn", response_model=AIBattleResponse)
async def play_turn(
    battle_id: str,
    request: TurnRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    registry: Annotated[AIBattleRegistry, Depends(get_ai_registry)],
) -> AIBattleResponse:
    """
    Play a card (or pass); the AI answers in the same request.

    When the battle ends it is settled and removed from the registry; the
    response carries the final state. A battle whose settlement failed stays
    registered, and the next turn request settles it without playing.
    """
    ai_session = _owned_session(registry, battle_id, request.user_id)
    if ai_session.battle.is_game_over and not ai_session.battle.settled:
        await _settle_finished(session, registry, ai_session)
        return AIBattleResponse.from_session(ai_session)

    battle = take_turn(ai_session, request.player_card_id)
    if battle.is_game_over and not battle.settled:
        await _settle_finished(session, registry, ai_session)

    return AIBattleResponse.from_session(ai_session)


@router.post("/{battle_id}/settle", response_model=AIBattleResponse)
async def settle_battle(
    battle_id: str,
    request: SettleRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
    registry: Annotated[AIBattleRegistry, Depends(get_ai_registry)],
) -> AIBattleResponse:
    """
    Retry settlement of a finished battle.

    Raises ConflictError while the battle is still running.
    """
    ai_session = _owned_session(registry, battle_id, request.user_id)
    await _settle_finished(session, registry, ai_session)
    return AIBattleResponse.from_session(ai_session)
