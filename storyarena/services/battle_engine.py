"""
Battle State Machine: the authoritative turn transition.

`apply_action(state, action, actor)` is a pure function of the current match
state. It re-validates every precondition (participant, active, turn
ownership, elixir) and returns a NEW state; the input is never modified.
Clients only submit intents; they never compute the next state themselves.

INVARIANTS:
- An accepted play flips `current_turn` to the other player exactly once
  and increments `turn_number` by exactly one.
- A rejected play changes nothing; the actor keeps the turn.
- Elixir stays within [0, MAX_ELIXIR]; health stays within [0, MAX_HEALTH].
- The match completes on the same transition that takes a side to 0 health.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from storyarena.models.battle import (
    ELIXIR_REGEN,
    MAX_ELIXIR,
    MAX_HEALTH,
    BattleUnit,
    LiveMatch,
    MatchStatus,
)
from storyarena.models.card import BattleCard, EffectKind
from storyarena.models.failure import (
    InsufficientElixirError,
    MatchNotActiveError,
    NotAParticipantError,
    NotYourTurnError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlayCard:
    """Intent to play one owned card at its current level."""

    card: BattleCard
    level: int = 1


@dataclass
class EffectOutcome:
    """Health totals after a card's effect, before clamping."""

    actor_health: int
    enemy_health: int
    message: str
    spawned: BattleUnit | None = None


def resolve_effect(
    card: BattleCard,
    level: int,
    *,
    actor_team: str,
    enemy_team: str,
    units: list[BattleUnit],
    actor_health: int,
    enemy_health: int,
    unit_id: str,
) -> EffectOutcome:
    """
    Apply a card's effect.

    Shared by the multiplayer transition and the AI battle. Unit effects
    (spawn, heal, area damage) are applied to `units` in place; player health
    changes are returned so the caller can clamp and store them.
    """
    effect = card.effect
    label = f"{card.emoji} {card.name}".strip()

    if effect == EffectKind.DIRECT_DAMAGE:
        return EffectOutcome(
            actor_health=actor_health,
            enemy_health=enemy_health - card.attack,
            message=f"{label} dealt {card.attack} damage!",
        )

    if effect == EffectKind.HEAL:
        for unit in units:
            if unit.team == actor_team and not unit.defeated:
                unit.current_health = min(unit.current_health + card.attack, unit.max_health)
        return EffectOutcome(
            actor_health=min(actor_health + card.attack, MAX_HEALTH),
            enemy_health=enemy_health,
            message=f"{label} healed for {card.attack}!",
        )

    if effect == EffectKind.AREA_DAMAGE:
        defeated = 0
        for unit in units:
            if unit.team == enemy_team and not unit.defeated:
                unit.take_damage(card.attack)
                if unit.defeated:
                    defeated += 1
        message = f"{label} dealt {card.attack} to all enemies!"
        if defeated:
            message += f" {defeated} defeated!"
        return EffectOutcome(actor_health=actor_health, enemy_health=enemy_health, message=message)

    unit = BattleUnit(
        id=unit_id,
        card_id=card.id,
        card_name=card.name,
        team=actor_team,
        level=level,
        attack=card.attack * level,
        current_health=card.health * level,
        max_health=card.health * level,
        emoji=card.emoji,
    )
    units.append(unit)
    return EffectOutcome(
        actor_health=actor_health,
        enemy_health=enemy_health,
        message=f"Played {label}!",
        spawned=unit,
    )


def clamp_health(value: int) -> int:
    return max(0, min(value, MAX_HEALTH))


def check_game_over(match: LiveMatch, now: datetime | None = None) -> bool:
    """
    Complete the match if either side is down. Returns True if it completed.

    The winner is the surviving side; if both sides are down, nobody wins.
    """
    if not match.is_active:
        return False

    player1_down = match.player1_health <= 0
    player2_down = match.player2_health <= 0
    if not (player1_down or player2_down):
        return False

    match.player1_health = clamp_health(match.player1_health)
    match.player2_health = clamp_health(match.player2_health)
    match.status = MatchStatus.COMPLETED
    match.completed_at = now or datetime.now(UTC)
    if player1_down and player2_down:
        match.winner_id = None
        match.add_log("It's a draw!")
    else:
        match.winner_id = match.player2_id if player1_down else match.player1_id
        match.add_log("Battle over!")
    return True


def validate_play(state: LiveMatch, action: PlayCard, actor: str) -> None:
    """
    Check every precondition of a card play without changing anything.

    Raises:
        NotAParticipantError: actor is not one of the two players
        MatchNotActiveError: the match already completed
        NotYourTurnError: actor does not hold the turn
        InsufficientElixirError: actor cannot afford the card
    """
    match_ref = state.id if state.id is not None else "new"
    if not state.is_participant(actor):
        raise NotAParticipantError(actor, match_ref)
    if not state.is_active:
        raise MatchNotActiveError(match_ref)
    if state.current_turn != actor:
        raise NotYourTurnError(actor, state.current_turn)

    available = state.elixir_of(actor)
    if available < action.card.cost:
        raise InsufficientElixirError(action.card.cost, available)


def apply_action(
    state: LiveMatch,
    action: PlayCard,
    actor: str,
    now: datetime | None = None,
) -> LiveMatch:
    """
    Compute the match state after `actor` plays `action.card`.

    Steps:
        1. Validate preconditions (raises without side effects)
        2. Apply the card's effect
        3. Spend the actor's elixir; the opponent regenerates ELIXIR_REGEN
        4. Advance the turn to the opponent
        5. Complete the match if a side is down
    """
    validate_play(state, action, actor)

    now = now or datetime.now(UTC)
    card = action.card
    new = state.clone()
    opponent = new.opponent_of(actor)

    outcome = resolve_effect(
        card,
        action.level,
        actor_team=actor,
        enemy_team=opponent,
        units=new.units,
        actor_health=new.health_of(actor),
        enemy_health=new.health_of(opponent),
        unit_id=f"{actor}-{new.turn_number + 1}",
    )
    new.set_health(actor, clamp_health(outcome.actor_health))
    new.set_health(opponent, clamp_health(outcome.enemy_health))
    new.add_log(outcome.message)

    new.set_elixir(actor, new.elixir_of(actor) - card.cost)
    new.set_elixir(opponent, min(MAX_ELIXIR, new.elixir_of(opponent) + ELIXIR_REGEN))

    new.turn_number += 1
    new.current_turn = opponent
    new.last_action_at = now

    if check_game_over(new, now):
        logger.info(
            "Match %s completed on turn %d, winner %s",
            new.id,
            new.turn_number,
            new.winner_id,
        )

    return new
