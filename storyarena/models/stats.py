from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

TROPHIES_PER_WIN = 30
TROPHIES_PER_LOSS = 15

# Minimum trophies for each arena, indexed by arena level
ARENA_THRESHOLDS = [0, 300, 600, 1000, 1500, 2000]

ARENA_NAMES = [
    "Training Ground",
    "Enchanted Forest",
    "Crystal Mountains",
    "Mystic Valley",
    "Dragon Peak",
    "Rainbow Kingdom",
]


class MatchResult(str, Enum):
    WIN = "win"
    LOSS = "loss"
    DRAW = "draw"


class OpponentType(str, Enum):
    AI = "ai"
    PLAYER = "player"


def arena_for_trophies(trophies: int) -> int:
    """Highest arena level whose threshold the trophy count reaches."""
    level = 0
    for index, threshold in enumerate(ARENA_THRESHOLDS):
        if trophies >= threshold:
            level = index
    return level


def arena_name(level: int) -> str:
    if 0 <= level < len(ARENA_NAMES):
        return ARENA_NAMES[level]
    return ARENA_NAMES[-1]


@dataclass
class PlayerBattleStats:
    """
    Aggregate battle statistics for one player.

    Attributes:
        trophies: Current ranking currency, never below 0
        win_streak: Consecutive wins, reset by a loss or draw
        best_win_streak: Running maximum of win_streak
        highest_trophies: Running maximum of trophies
    """

    user_id: str
    trophies: int = 0
    arena_level: int = 0
    total_wins: int = 0
    total_losses: int = 0
    total_draws: int = 0
    win_streak: int = 0
    best_win_streak: int = 0
    highest_trophies: int = 0
    total_cards_unlocked: int = 0
    favorite_card_id: int | None = None

    @property
    def total_matches(self) -> int:
        return self.total_wins + self.total_losses + self.total_draws

    def win_rate(self) -> int:
        """Win percentage over decided matches, rounded."""
        decided = self.total_wins + self.total_losses
        if decided == 0:
            return 0
        return round(self.total_wins / decided * 100)


@dataclass(frozen=True)
class BattleMatchRecord:
    """One player's immutable history entry for a finished match."""

    player_id: str
    opponent_type: OpponentType
    result: MatchResult
    trophies_gained: int
    trophies_lost: int
    duration_seconds: int
    opponent_id: str | None = None
    live_match_id: int | None = None
    cards_played: list[int] = field(default_factory=list)
    played_at: datetime | None = None
