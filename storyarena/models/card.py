"""
Card catalog and ownership models.

A `BattleCard` is an immutable catalog entry. A `PlayerCard` records how many
copies of a catalog card a player owns and at which level.

INVARIANT: An upgrade consumes exactly `level * UPGRADE_COPIES_PER_LEVEL`
copies and raises the level by exactly one. A refused upgrade changes nothing.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum

from storyarena.models.failure import InsufficientCardsError, MaxLevelReachedError

MAX_CARD_LEVEL = 13
UPGRADE_COPIES_PER_LEVEL = 10


class CardType(str, Enum):
    CHARACTER = "character"
    SPELL = "spell"
    BUILDING = "building"


class CardRarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"


# Catalog listing order
RARITY_ORDER = [CardRarity.COMMON, CardRarity.RARE, CardRarity.EPIC, CardRarity.LEGENDARY]


class EffectKind(str, Enum):
    """What playing a card does to the battle."""

    SPAWN_UNIT = "spawn_unit"
    DIRECT_DAMAGE = "direct_damage"
    HEAL = "heal"
    AREA_DAMAGE = "area_damage"


# Spell ability tags that select a non-default effect
_SPELL_EFFECTS = {
    "heal": EffectKind.HEAL,
    "area_damage": EffectKind.AREA_DAMAGE,
    "direct_damage": EffectKind.DIRECT_DAMAGE,
}


@dataclass(frozen=True, slots=True)
class BattleCard:
    """
    A catalog card definition.

    Attributes:
        id: Catalog identifier
        name: Display name (e.g., "Lightning Bolt")
        card_type: character, spell or building
        rarity: common, rare, epic or legendary
        cost: Elixir needed to play the card
        health: Base health of the spawned unit (0 for spells)
        attack: Base attack, or the spell's damage/heal amount
        special_ability: Optional ability tag; selects the spell effect
        unlock_arena: Arena level at which the card becomes available
    """

    id: int
    name: str
    card_type: CardType
    rarity: CardRarity
    cost: int
    health: int
    attack: int
    special_ability: str | None = None
    unlock_arena: int = 0
    emoji: str = ""
    description: str = ""

    @property
    def effect(self) -> EffectKind:
        """Effect dispatched when this card is played."""
        if self.card_type != CardType.SPELL:
            return EffectKind.SPAWN_UNIT
        return _SPELL_EFFECTS.get(self.special_ability or "", EffectKind.DIRECT_DAMAGE)

    @property
    def is_starter(self) -> bool:
        """True for cards granted by the starter unlock."""
        return self.unlock_arena == 0 and self.rarity == CardRarity.COMMON


@dataclass(frozen=True, slots=True)
class PlayerCard:
    """A player's ownership record for one catalog card."""

    id: int
    user_id: str
    card_id: int
    level: int = 1
    quantity: int = 1
    unlocked_at: datetime | None = None

    @property
    def upgrade_cost(self) -> int:
        """Copies consumed by the next upgrade."""
        return self.level * UPGRADE_COPIES_PER_LEVEL

    def can_upgrade(self) -> bool:
        return self.level < MAX_CARD_LEVEL and self.quantity >= self.upgrade_cost


def upgrade_card(player_card: PlayerCard) -> PlayerCard:
    """
    Return the upgraded ownership record.

    Raises:
        MaxLevelReachedError: level is already at the cap
        InsufficientCardsError: fewer than level*10 copies are held
    """
    if player_card.level >= MAX_CARD_LEVEL:
        raise MaxLevelReachedError(player_card.level)

    required = player_card.upgrade_cost
    if player_card.quantity < required:
        raise InsufficientCardsError(required, player_card.quantity)

    return replace(
        player_card,
        level=player_card.level + 1,
        quantity=player_card.quantity - required,
    )


@dataclass(frozen=True, slots=True)
class OwnedCard:
    """A player card joined with its catalog definition."""

    player_card: PlayerCard
    card: BattleCard

    @property
    def level(self) -> int:
        return self.player_card.level
