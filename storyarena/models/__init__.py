from storyarena.models.battle import (
    ELIXIR_REGEN,
    MAX_ELIXIR,
    MAX_HEALTH,
    STARTING_ELIXIR,
    STARTING_HEALTH,
    AIBattle,
    BattleUnit,
    LiveMatch,
    MatchOrigin,
    MatchStatus,
)
from storyarena.models.card import (
    MAX_CARD_LEVEL,
    UPGRADE_COPIES_PER_LEVEL,
    BattleCard,
    CardRarity,
    CardType,
    EffectKind,
    OwnedCard,
    PlayerCard,
    upgrade_card,
)
from storyarena.models.failure import (
    ApiResponse,
    ConflictError,
    FailureDetail,
    FailureKind,
    InsufficientCardsError,
    InsufficientElixirError,
    InvalidInputError,
    KnownError,
    MatchNotActiveError,
    MatchNotFoundError,
    MaxLevelReachedError,
    NotAParticipantError,
    NotYourTurnError,
    OutcomeType,
    PersistenceFailureError,
    ResourceNotFoundError,
    StaleMatchError,
)
from storyarena.models.stats import (
    TROPHIES_PER_LOSS,
    TROPHIES_PER_WIN,
    BattleMatchRecord,
    MatchResult,
    OpponentType,
    PlayerBattleStats,
    arena_for_trophies,
)

__all__ = [
    "AIBattle",
    "ApiResponse",
    "BattleCard",
    "BattleMatchRecord",
    "BattleUnit",
    "CardRarity",
    "CardType",
    "ConflictError",
    "ELIXIR_REGEN",
    "EffectKind",
    "FailureDetail",
    "FailureKind",
    "InsufficientCardsError",
    "InsufficientElixirError",
    "InvalidInputError",
    "KnownError",
    "LiveMatch",
    "MAX_CARD_LEVEL",
    "MAX_ELIXIR",
    "MAX_HEALTH",
    "MatchNotActiveError",
    "MatchNotFoundError",
    "MatchOrigin",
    "MatchResult",
    "MatchStatus",
    "MaxLevelReachedError",
    "NotAParticipantError",
    "NotYourTurnError",
    "OpponentType",
    "OutcomeType",
    "OwnedCard",
    "PersistenceFailureError",
    "PlayerBattleStats",
    "PlayerCard",
    "ResourceNotFoundError",
    "STARTING_ELIXIR",
    "STARTING_HEALTH",
    "StaleMatchError",
    "TROPHIES_PER_LOSS",
    "TROPHIES_PER_WIN",
    "UPGRADE_COPIES_PER_LEVEL",
    "arena_for_trophies",
    "upgrade_card",
]
