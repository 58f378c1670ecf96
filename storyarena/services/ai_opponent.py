"""
AI Opponent: single-player battles against a simple computer player.

A round is: the human plays a card (or passes), then the AI answers with a
random affordable card, then every surviving unit fights, then both sides
regenerate elixir. Unlike multiplayer, unit combat resolves automatically
each round.

Combat order is fixed: player units attack first, then opponent units that
survived. Each unit hits the front-most living enemy unit, or the enemy
player when no enemy units remain.
"""

import logging
import random
import time
from dataclasses import dataclass, field
from uuid import uuid4

from storyarena.models.battle import ELIXIR_REGEN, MAX_ELIXIR, AIBattle
from storyarena.models.card import OwnedCard
from storyarena.models.failure import (
    InsufficientElixirError,
    MatchNotActiveError,
    MatchNotFoundError,
    NotYourTurnError,
    ResourceNotFoundError,
)
from storyarena.services.battle_engine import clamp_health, resolve_effect

logger = logging.getLogger(__name__)

PLAYER_TEAM = "player"
AI_TEAM = "opponent"

# Seconds of play credited per round in match history
SECONDS_PER_ROUND = 5


@dataclass
class AIBattleSession:
    """An AI battle plus the hands both sides draw from."""

    battle: AIBattle
    player_hand: list[OwnedCard]
    ai_hand: list[OwnedCard]
    rng: random.Random = field(default_factory=random.Random)
    last_active: float = field(default_factory=time.monotonic)

    def find_player_card(self, player_card_id: int) -> OwnedCard:
        for owned in self.player_hand:
            if owned.player_card.id == player_card_id:
                return owned
        raise ResourceNotFoundError("Card in hand", player_card_id)


def _apply(battle: AIBattle, owned: OwnedCard, team: str) -> str:
    """Apply a card for `team` and return the log message."""
    enemy = AI_TEAM if team == PLAYER_TEAM else PLAYER_TEAM
    actor_health = battle.player_health if team == PLAYER_TEAM else battle.opponent_health
    enemy_health = battle.opponent_health if team == PLAYER_TEAM else battle.player_health

    outcome = resolve_effect(
        owned.card,
        owned.level,
        actor_team=team,
        enemy_team=enemy,
        units=battle.units,
        actor_health=actor_health,
        enemy_health=enemy_health,
        unit_id=f"{team}-{battle.round}-{len(battle.units)}",
    )

    if team == PLAYER_TEAM:
        battle.player_health = clamp_health(outcome.actor_health)
        battle.opponent_health = clamp_health(outcome.enemy_health)
    else:
        battle.opponent_health = clamp_health(outcome.actor_health)
        battle.player_health = clamp_health(outcome.enemy_health)
    return outcome.message


def check_game_over(battle: AIBattle) -> bool:
    """End the battle if a side is down. Both down is a draw."""
    if battle.is_game_over:
        return True

    player_down = battle.player_health <= 0
    opponent_down = battle.opponent_health <= 0
    if not (player_down or opponent_down):
        return False

    battle.is_game_over = True
    if player_down and opponent_down:
        battle.winner = None
        battle.add_log("It's a draw!")
    elif player_down:
        battle.winner = AI_TEAM
        battle.add_log("💔 Defeat! Better luck next time!")
    else:
        battle.winner = PLAYER_TEAM
        battle.add_log("🎉 Victory! You won the battle!")
    return True


def process_combat(battle: AIBattle) -> None:
    """Resolve one round of unit combat, player units first."""
    for team, enemy in ((PLAYER_TEAM, AI_TEAM), (AI_TEAM, PLAYER_TEAM)):
        for unit in battle.living_units(team):
            targets = battle.living_units(enemy)
            if targets:
                target = targets[0]
                target.take_damage(unit.attack)
                battle.add_log(f"{unit.emoji} attacked for {unit.attack}!")
                if target.defeated:
                    battle.add_log(f"{target.emoji} {target.card_name} was defeated!")
            elif team == PLAYER_TEAM:
                battle.opponent_health = clamp_health(battle.opponent_health - unit.attack)
                battle.add_log(f"{unit.emoji} hit the opponent for {unit.attack}!")
            else:
                battle.player_health = clamp_health(battle.player_health - unit.attack)
                battle.add_log(f"Enemy {unit.emoji} hit you for {unit.attack}!")


def choose_ai_card(hand: list[OwnedCard], elixir: int, rng: random.Random) -> OwnedCard | None:
    """Pick uniformly among the cards the AI can afford."""
    affordable = [owned for owned in hand if owned.card.cost <= elixir]
    if not affordable:
        return None
    return rng.choice(affordable)


def run_ai_turn(session: AIBattleSession) -> None:
    """The AI's answer: play, fight, regenerate, next round."""
    battle = session.battle
    battle.turn = AI_TEAM

    choice = choose_ai_card(session.ai_hand, battle.opponent_elixir, session.rng)
    if choice is not None:
        battle.opponent_elixir -= choice.card.cost
        battle.add_log(f"AI: {_apply(battle, choice, AI_TEAM)}")

    process_combat(battle)

    battle.player_elixir = min(battle.player_elixir + ELIXIR_REGEN, MAX_ELIXIR)
    battle.opponent_elixir = min(battle.opponent_elixir + ELIXIR_REGEN, MAX_ELIXIR)
    battle.round += 1
    battle.turn = PLAYER_TEAM

    check_game_over(battle)


def take_turn(session: AIBattleSession, player_card_id: int | None) -> AIBattle:
    """
    Play the human's card (None passes), then let the AI answer.

    Raises:
        MatchNotActiveError: the battle is over
        NotYourTurnError: the AI is still playing
        ResourceNotFoundError: the card is not in the player's hand
        InsufficientElixirError: the player cannot afford the card
    """
    battle = session.battle
    if battle.is_game_over:
        raise MatchNotActiveError(battle.id)
    if battle.turn != PLAYER_TEAM:
        raise NotYourTurnError(battle.user_id, AI_TEAM)

    if player_card_id is not None:
        owned = session.find_player_card(player_card_id)
        if battle.player_elixir < owned.card.cost:
            raise InsufficientElixirError(owned.card.cost, battle.player_elixir)

        battle.player_elixir -= owned.card.cost
        battle.cards_played.append(owned.card.id)
        battle.add_log(_apply(battle, owned, PLAYER_TEAM))
        if check_game_over(battle):
            return battle
    else:
        battle.add_log("You passed.")

    run_ai_turn(session)
    return battle


class AIBattleRegistry:
    """
    In-process store of running AI battles.

    Battles idle for longer than `idle_seconds` are dropped the next time a
    battle is started or fetched. None keeps them until they are removed.
    """

    def __init__(self, seed: int | None = None, idle_seconds: float | None = None):
        self._sessions: dict[str, AIBattleSession] = {}
        self._seed = seed
        self._idle_seconds = idle_seconds

    def _evict_idle(self) -> None:
        if self._idle_seconds is None:
            return
        cutoff = time.monotonic() - self._idle_seconds
        for battle_id in [k for k, s in self._sessions.items() if s.last_active < cutoff]:
            del self._sessions[battle_id]
            logger.info("Dropped idle AI battle %s", battle_id)

    def start(
        self,
        user_id: str,
        player_hand: list[OwnedCard],
        ai_hand: list[OwnedCard] | None = None,
    ) -> AIBattleSession:
        """Start a battle. The AI mirrors the player's hand unless given its own."""
        self._evict_idle()
        battle = AIBattle(id=uuid4().hex, user_id=user_id)
        session = AIBattleSession(
            battle=battle,
            player_hand=list(player_hand),
            ai_hand=list(ai_hand if ai_hand is not None else player_hand),
            rng=random.Random(self._seed),
        )
        self._sessions[battle.id] = session
        logger.info("Started AI battle %s for %s", battle.id, user_id)
        return session

    def get(self, battle_id: str) -> AIBattleSession:
        """Fetch a running battle and mark it active."""
        self._evict_idle()
        session = self._sessions.get(battle_id)
        if session is None:
            raise MatchNotFoundError(battle_id)
        session.last_active = time.monotonic()
        return session

    def remove(self, battle_id: str) -> bool:
        return self._sessions.pop(battle_id, None) is not None

    def __len__(self) -> int:
        return len(self._sessions)
