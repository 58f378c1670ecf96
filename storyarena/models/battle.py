"""
Battle state models.

`LiveMatch` is the authoritative record of a two-player battle. Exactly one of
the two players holds the turn at any time; that ownership is the
`current_turn` field itself.

INVARIANT: health is never negative and elixir stays within [0, MAX_ELIXIR].
INVARIANT: a completed match never becomes active again.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

STARTING_HEALTH = 1000
MAX_HEALTH = 1000
STARTING_ELIXIR = 10
MAX_ELIXIR = 10
ELIXIR_REGEN = 2

# Entries kept in the rolling battle log
BATTLE_LOG_SIZE = 5


class MatchStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"


class MatchOrigin(str, Enum):
    MATCHMAKING = "matchmaking"
    FRIEND_CHALLENGE = "friend_challenge"


@dataclass
class BattleUnit:
    """A character or building on the battlefield."""

    id: str
    card_id: int
    card_name: str
    team: str
    level: int
    attack: int
    current_health: int
    max_health: int
    emoji: str = ""
    defeated: bool = False

    def take_damage(self, amount: int) -> None:
        self.current_health -= amount
        if self.current_health <= 0:
            self.defeated = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "card_id": self.card_id,
            "card_name": self.card_name,
            "team": self.team,
            "level": self.level,
            "attack": self.attack,
            "current_health": self.current_health,
            "max_health": self.max_health,
            "emoji": self.emoji,
            "defeated": self.defeated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BattleUnit":
        return cls(
            id=data["id"],
            card_id=data["card_id"],
            card_name=data["card_name"],
            team=data["team"],
            level=data.get("level", 1),
            attack=data["attack"],
            current_health=data["current_health"],
            max_health=data["max_health"],
            emoji=data.get("emoji", ""),
            defeated=data.get("defeated", False),
        )


@dataclass
class LiveMatch:
    """
    Shared state of an in-progress two-player battle.

    Attributes:
        player1_id: Player who initiated the match (holds the first turn)
        player2_id: The paired opponent
        current_turn: Id of the only player allowed to act
        turn_number: Incremented by every accepted action; also the
            optimistic-concurrency version of the record
        units: Every unit spawned so far, including defeated ones
    """

    player1_id: str
    player2_id: str
    current_turn: str
    id: int | None = None
    turn_number: int = 0
    player1_health: int = STARTING_HEALTH
    player2_health: int = STARTING_HEALTH
    player1_elixir: int = STARTING_ELIXIR
    player2_elixir: int = STARTING_ELIXIR
    units: list[BattleUnit] = field(default_factory=list)
    battle_log: list[str] = field(default_factory=list)
    status: MatchStatus = MatchStatus.ACTIVE
    winner_id: str | None = None
    origin: MatchOrigin = MatchOrigin.MATCHMAKING
    created_at: datetime | None = None
    last_action_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status == MatchStatus.ACTIVE

    def is_participant(self, player_id: str) -> bool:
        return player_id in (self.player1_id, self.player2_id)

    def opponent_of(self, player_id: str) -> str:
        return self.player2_id if player_id == self.player1_id else self.player1_id

    def health_of(self, player_id: str) -> int:
        return self.player1_health if player_id == self.player1_id else self.player2_health

    def elixir_of(self, player_id: str) -> int:
        return self.player1_elixir if player_id == self.player1_id else self.player2_elixir

    def set_health(self, player_id: str, value: int) -> None:
        if player_id == self.player1_id:
            self.player1_health = value
        else:
            self.player2_health = value

    def set_elixir(self, player_id: str, value: int) -> None:
        if player_id == self.player1_id:
            self.player1_elixir = value
        else:
            self.player2_elixir = value

    def living_units(self, team: str) -> list[BattleUnit]:
        return [u for u in self.units if u.team == team and not u.defeated]

    def add_log(self, message: str) -> None:
        self.battle_log = [*self.battle_log, message][-BATTLE_LOG_SIZE:]

    def clone(self) -> "LiveMatch":
        """Deep copy, so transitions never touch the state they were given."""
        return copy.deepcopy(self)


@dataclass
class AIBattle:
    """
    Single-player battle against the AI opponent.

    Teams are the literal strings "player" and "opponent".
    """

    id: str
    user_id: str
    player_health: int = STARTING_HEALTH
    opponent_health: int = STARTING_HEALTH
    player_elixir: int = STARTING_ELIXIR
    opponent_elixir: int = STARTING_ELIXIR
    turn: str = "player"
    units: list[BattleUnit] = field(default_factory=list)
    round: int = 1
    is_game_over: bool = False
    winner: str | None = None  # "player", "opponent", or None for a draw
    battle_log: list[str] = field(default_factory=lambda: ["Battle started!"])
    cards_played: list[int] = field(default_factory=list)
    settled: bool = False

    def living_units(self, team: str) -> list[BattleUnit]:
        return [u for u in self.units if u.team == team and not u.defeated]

    def add_log(self, message: str) -> None:
        self.battle_log = [*self.battle_log, message][-BATTLE_LOG_SIZE - 1 :]
