"""
Card API endpoints.

Provides the catalog, player decks, the starter unlock, upgrades and the
card reward path.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.config import settings
from storyarena.db import card_to_model, list_cards
from storyarena.db.database import get_session
from storyarena.models.card import BattleCard, OwnedCard, PlayerCard
from storyarena.services.card_catalog import (
    get_player_deck,
    grant_copies,
    unlock_starter_cards,
    upgrade_player_card,
)

router = APIRouter(prefix="/cards", tags=["cards"])


class CardResponse(BaseModel):
    """A catalog card."""

    id: int
    name: str
    emoji: str
    card_type: str
    rarity: str
    cost: int
    health: int
    attack: int
    special_ability: str | None = None
    effect: str
    description: str = ""
    unlock_arena: int = 0

    @classmethod
    def from_model(cls, card: BattleCard) -> "CardResponse":
        return cls(
            id=card.id,
            name=card.name,
            emoji=card.emoji,
            card_type=card.card_type.value,
            rarity=card.rarity.value,
            cost=card.cost,
            health=card.health,
            attack=card.attack,
            special_ability=card.special_ability,
            effect=card.effect.value,
            description=card.description,
            unlock_arena=card.unlock_arena,
        )


class CatalogResponse(BaseModel):
    cards: list[CardResponse]
    count: int


class PlayerCardResponse(BaseModel):
    """An owned card."""

    id: int
    card_id: int
    level: int
    quantity: int
    upgrade_cost: int
    can_upgrade: bool

    @classmethod
    def from_model(cls, player_card: PlayerCard) -> "PlayerCardResponse":
        return cls(
            id=player_card.id,
            card_id=player_card.card_id,
            level=player_card.level,
            quantity=player_card.quantity,
            upgrade_cost=player_card.upgrade_cost,
            can_upgrade=player_card.can_upgrade(),
        )


class OwnedCardResponse(PlayerCardResponse):
    """An owned card joined with its catalog definition."""

    card: CardResponse

    @classmethod
    def from_owned(cls, owned: OwnedCard) -> "OwnedCardResponse":
        base = PlayerCardResponse.from_model(owned.player_card)
        return cls(**base.model_dump(), card=CardResponse.from_model(owned.card))


class DeckResponse(BaseModel):
    user_id: str
    cards: list[OwnedCardResponse]
    count: int


class UnlockResponse(BaseModel):
    user_id: str
    unlocked: list[PlayerCardResponse]
    count: int


class GrantRequest(BaseModel):
    card_id: int
    quantity: int = Field(default=1, ge=1, le=1000)


@router.get("", response_model=CatalogResponse)
async def get_catalog(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> CatalogResponse:
    """Get every catalog card, ordered by rarity then cost."""
    cards = [CardResponse.from_model(card_to_model(c)) for c in await list_cards(session)]
    return CatalogResponse(cards=cards, count=len(cards))


@router.get("/{user_id}/deck", response_model=DeckResponse)
async def get_deck(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
    limit: Annotated[int | None, Query(ge=1, le=100)] = None,
) -> DeckResponse:
    """
    Get a player's battle deck.

    Defaults to the configured deck size.
    """
    deck = await get_player_deck(session, user_id, limit=limit or settings.battle_deck_size)
    cards = [OwnedCardResponse.from_owned(owned) for owned in deck]
    return DeckResponse(user_id=user_id, cards=cards, count=len(cards))


@router.post("/{user_id}/unlock-starter", response_model=UnlockResponse)
async def unlock_starter(
    user_id: str,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> UnlockResponse:
    """
    Grant the starter cards.

    Only the first call for a player grants anything.
    """
    unlocked = await unlock_starter_cards(session, user_id)
    return UnlockResponse(
        user_id=user_id,
        unlocked=[PlayerCardResponse.from_model(pc) for pc in unlocked],
        count=len(unlocked),
    )


@router.post("/{user_id}/upgrade/{player_card_id}", response_model=PlayerCardResponse)
async def upgrade(
    user_id: str,
    player_card_id: int,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PlayerCardResponse:
    """Upgrade an owned card, consuming level x 10 copies."""
    return PlayerCardResponse.from_model(
        await upgrade_player_card(session, user_id, player_card_id)
    )


@router.post("/{user_id}/grant", response_model=PlayerCardResponse)
async def grant(
    user_id: str,
    request: GrantRequest,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> PlayerCardResponse:
    """Add copies of a card to a player's inventory."""
    return PlayerCardResponse.from_model(
        await grant_copies(session, user_id, request.card_id, request.quantity)
    )
