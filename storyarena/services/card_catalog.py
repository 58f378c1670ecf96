"""
Card catalog and inventory service.

Holds the seed catalog and the inventory operations that carry business
rules: reading a battle deck, the one-time starter unlock and upgrades.
"""

import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.db.operations import (
    add_player_cards,
    apply_card_upgrade,
    card_to_model,
    count_player_cards,
    get_card,
    get_or_create_player_stats,
    get_player_card,
    get_player_cards,
    grant_card_copies,
    list_cards,
    player_card_to_model,
)
from storyarena.models.card import (
    BattleCard,
    CardRarity,
    CardType,
    OwnedCard,
    PlayerCard,
    upgrade_card,
)
from storyarena.models.failure import (
    ConflictError,
    InvalidInputError,
    PersistenceFailureError,
    ResourceNotFoundError,
)

logger = logging.getLogger(__name__)

# Seed catalog. Ids are placeholders; the database assigns real keys by name.
CATALOG: list[BattleCard] = [
    BattleCard(
        id=0,
        name="Brave Knight",
        card_type=CardType.CHARACTER,
        rarity=CardRarity.COMMON,
        cost=3,
        health=150,
        attack=100,
        emoji="🛡️",
        description="A loyal knight who never gives up.",
    ),
    BattleCard(
        id=0,
        name="Forest Archer",
        card_type=CardType.CHARACTER,
        rarity=CardRarity.COMMON,
        cost=2,
        health=80,
        attack=60,
        emoji="🏹",
        description="Shoots arrows from behind the trees.",
    ),
    BattleCard(
        id=0,
        name="Friendly Goblin",
        card_type=CardType.CHARACTER,
        rarity=CardRarity.COMMON,
        cost=2,
        health=60,
        attack=50,
        emoji="👺",
        description="Small, quick and a little cheeky.",
    ),
    BattleCard(
        id=0,
        name="Lightning Bolt",
        card_type=CardType.SPELL,
        rarity=CardRarity.COMMON,
        cost=4,
        health=0,
        attack=300,
        special_ability="direct_damage",
        emoji="⚡",
        description="Zaps the opposing castle.",
    ),
    BattleCard(
        id=0,
        name="Healing Wave",
        card_type=CardType.SPELL,
        rarity=CardRarity.COMMON,
        cost=3,
        health=0,
        attack=50,
        special_ability="heal",
        emoji="💚",
        description="Heals your castle and your units.",
    ),
    BattleCard(
        id=0,
        name="Stone Tower",
        card_type=CardType.BUILDING,
        rarity=CardRarity.COMMON,
        cost=4,
        health=300,
        attack=40,
        emoji="🏰",
        description="A sturdy tower that holds the line.",
    ),
    BattleCard(
        id=0,
        name="Baby Dragon",
        card_type=CardType.CHARACTER,
        rarity=CardRarity.RARE,
        cost=4,
        health=200,
        attack=120,
        unlock_arena=1,
        emoji="🐉",
        description="Breathes tiny but hot flames.",
    ),
    BattleCard(
        id=0,
        name="Meteor Storm",
        card_type=CardType.SPELL,
        rarity=CardRarity.RARE,
        cost=6,
        health=0,
        attack=200,
        special_ability="area_damage",
        unlock_arena=1,
        emoji="☄️",
        description="Rains meteors on every enemy unit.",
    ),
    BattleCard(
        id=0,
        name="Crystal Golem",
        card_type=CardType.CHARACTER,
        rarity=CardRarity.EPIC,
        cost=6,
        health=500,
        attack=80,
        unlock_arena=2,
        emoji="💎",
        description="Slow, shiny and very tough.",
    ),
    BattleCard(
        id=0,
        name="Wizard Owl",
        card_type=CardType.CHARACTER,
        rarity=CardRarity.EPIC,
        cost=5,
        health=180,
        attack=160,
        unlock_arena=3,
        emoji="🦉",
        description="Knows every spell in the book.",
    ),
    BattleCard(
        id=0,
        name="Rainbow Unicorn",
        card_type=CardType.CHARACTER,
        rarity=CardRarity.LEGENDARY,
        cost=7,
        health=400,
        attack=220,
        unlock_arena=4,
        emoji="🦄",
        description="Gallops across the sky.",
    ),
    BattleCard(
        id=0,
        name="Magic Castle",
        card_type=CardType.BUILDING,
        rarity=CardRarity.LEGENDARY,
        cost=8,
        health=800,
        attack=100,
        unlock_arena=5,
        emoji="🏯",
        description="Guards the Rainbow Kingdom.",
    ),
]


async def get_player_deck(
    session: AsyncSession, user_id: str, limit: int | None = None
) -> list[OwnedCard]:
    """Up to `limit` owned cards joined with their catalog definitions."""
    records = await get_player_cards(session, user_id, limit=limit)
    return [OwnedCard(player_card_to_model(r), card_to_model(r.card)) for r in records]


async def get_owned_card(session: AsyncSession, user_id: str, player_card_id: int) -> OwnedCard:
    """
    One of the player's cards with its catalog definition.

    Raises:
        ResourceNotFoundError: the card does not exist or belongs to someone else
    """
    record = await get_player_card(session, player_card_id)
    if record is None or record.user_id != user_id:
        raise ResourceNotFoundError("Player card", player_card_id)
    return OwnedCard(player_card_to_model(record), card_to_model(record.card))


async def unlock_starter_cards(session: AsyncSession, user_id: str) -> list[PlayerCard]:
    """
    Grant one copy of every arena-0 common card, once per player.

    A player who already owns cards gets nothing. If two requests race, the
    (user, card) unique constraint rejects the second insert and it also
    gets nothing.
    """
    if await count_player_cards(session, user_id) > 0:
        logger.info("Starter cards already unlocked for %s", user_id)
        return []

    starters = [c for c in await list_cards(session) if card_to_model(c).is_starter]
    try:
        records = await add_player_cards(session, user_id, [c.id for c in starters])
        stats, _ = await get_or_create_player_stats(session, user_id)
        stats.total_cards_unlocked += len(records)
        await session.flush()
    except IntegrityError:
        await session.rollback()
        logger.info("Concurrent starter unlock for %s lost the race", user_id)
        return []
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error("Failed to unlock starter cards for %s: %s", user_id, e)
        raise PersistenceFailureError("unlock_starter_cards", str(e)) from e

    logger.info("Unlocked %d starter cards for %s", len(records), user_id)
    return [player_card_to_model(r) for r in records]


async def upgrade_player_card(
    session: AsyncSession, user_id: str, player_card_id: int
) -> PlayerCard:
    """
    Upgrade one of the player's cards.

    Raises:
        ResourceNotFoundError: unknown card or not owned by the player
        MaxLevelReachedError: the card is at the level cap
        InsufficientCardsError: not enough copies; nothing is consumed
        ConflictError: a concurrent upgrade changed the card first
    """
    owned = await get_owned_card(session, user_id, player_card_id)
    current = owned.player_card
    upgraded = upgrade_card(current)

    try:
        applied = await apply_card_upgrade(session, current)
    except SQLAlchemyError as e:
        logger.error("Failed to upgrade card %s for %s: %s", player_card_id, user_id, e)
        raise PersistenceFailureError("upgrade_card", str(e)) from e

    if not applied:
        # Lost a race with another upgrade: report against the fresh row
        latest = await get_owned_card(session, user_id, player_card_id)
        upgrade_card(latest.player_card)
        raise ConflictError(
            "This card was just upgraded. Please try again.",
            detail=f"player card {player_card_id} changed from level {current.level}",
        )

    logger.info(
        "Upgraded %s to level %d for %s",
        owned.card.name,
        upgraded.level,
        user_id,
    )
    return upgraded


async def grant_copies(
    session: AsyncSession, user_id: str, card_id: int, quantity: int
) -> PlayerCard:
    """
    Reward path: add copies of a catalog card to the player's inventory.

    Raises:
        InvalidInputError: quantity is not positive
        ResourceNotFoundError: unknown catalog card
    """
    if quantity < 1:
        raise InvalidInputError("Quantity must be at least 1.", detail=f"quantity={quantity}")
    if await get_card(session, card_id) is None:
        raise ResourceNotFoundError("Card", card_id)

    try:
        record = await grant_card_copies(session, user_id, card_id, quantity)
    except SQLAlchemyError as e:
        logger.error("Failed to grant card %s to %s: %s", card_id, user_id, e)
        raise PersistenceFailureError("grant_card_copies", str(e)) from e
    return player_card_to_model(record)
