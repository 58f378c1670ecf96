"""Tests for the battle state machine transition."""

from datetime import UTC, datetime

import pytest

from storyarena.models.battle import MAX_ELIXIR, BattleUnit, LiveMatch, MatchStatus
from storyarena.models.card import BattleCard, CardRarity, CardType
from storyarena.models.failure import (
    InsufficientElixirError,
    MatchNotActiveError,
    NotAParticipantError,
    NotYourTurnError,
)
from storyarena.services.battle_engine import PlayCard, apply_action, check_game_over

LIGHTNING_BOLT = BattleCard(
    id=4,
    name="Lightning Bolt",
    card_type=CardType.SPELL,
    rarity=CardRarity.COMMON,
    cost=4,
    health=0,
    attack=300,
    special_ability="direct_damage",
)
HEALING_WAVE = BattleCard(
    id=5,
    name="Healing Wave",
    card_type=CardType.SPELL,
    rarity=CardRarity.COMMON,
    cost=3,
    health=0,
    attack=50,
    special_ability="heal",
)
METEOR_STORM = BattleCard(
    id=8,
    name="Meteor Storm",
    card_type=CardType.SPELL,
    rarity=CardRarity.RARE,
    cost=6,
    health=0,
    attack=200,
    special_ability="area_damage",
)
KNIGHT = BattleCard(
    id=1,
    name="Brave Knight",
    card_type=CardType.CHARACTER,
    rarity=CardRarity.COMMON,
    cost=3,
    health=150,
    attack=100,
)


@pytest.fixture
def match() -> LiveMatch:
    return LiveMatch(id=1, player1_id="player-a", player2_id="player-b", current_turn="player-a")


class TestLightningBoltScenario:
    def test_bolt_on_full_elixir(self, match: LiveMatch) -> None:
        """Bolt takes B to 700, A to 6 elixir, B stays capped at 10, turn flips."""
        new = apply_action(match, PlayCard(LIGHTNING_BOLT), "player-a")

        assert new.player2_health == 700
        assert new.player1_elixir == 6
        assert new.player2_elixir == 10
        assert new.current_turn == "player-b"
        assert new.turn_number == 1
        assert new.is_active

    def test_input_state_untouched(self, match: LiveMatch) -> None:
        """The transition returns a new state and never modifies its input."""
        apply_action(match, PlayCard(LIGHTNING_BOLT), "player-a")

        assert match.player2_health == 1000
        assert match.player1_elixir == 10
        assert match.current_turn == "player-a"
        assert match.turn_number == 0


class TestPreconditions:
    def test_not_your_turn(self, match: LiveMatch) -> None:
        """Only the turn holder may play."""
        with pytest.raises(NotYourTurnError):
            apply_action(match, PlayCard(LIGHTNING_BOLT), "player-b")

    def test_insufficient_elixir_keeps_turn(self, match: LiveMatch) -> None:
        """An unaffordable card is rejected and the actor keeps the turn."""
        match.player1_elixir = 3

        with pytest.raises(InsufficientElixirError) as exc_info:
            apply_action(match, PlayCard(LIGHTNING_BOLT), "player-a")

        assert exc_info.value.cost == 4
        assert exc_info.value.available == 3
        assert match.current_turn == "player-a"
        assert match.player1_elixir == 3

    def test_completed_match(self, match: LiveMatch) -> None:
        """Completed matches accept no plays."""
        match.status = MatchStatus.COMPLETED

        with pytest.raises(MatchNotActiveError):
            apply_action(match, PlayCard(LIGHTNING_BOLT), "player-a")

    def test_outsider(self, match: LiveMatch) -> None:
        """Players outside the match are rejected before anything else."""
        with pytest.raises(NotAParticipantError):
            apply_action(match, PlayCard(LIGHTNING_BOLT), "player-c")


class TestTurnAlternation:
    def test_turns_alternate(self, match: LiveMatch) -> None:
        """Each accepted play flips the turn exactly once."""
        state = match
        actors = ["player-a", "player-b", "player-a", "player-b"]
        for expected_turn, actor in enumerate(actors, start=1):
            state = apply_action(state, PlayCard(KNIGHT), actor)
            assert state.turn_number == expected_turn
            assert state.current_turn == state.opponent_of(actor)

    def test_elixir_stays_in_bounds(self, match: LiveMatch) -> None:
        """Elixir never leaves [0, MAX_ELIXIR] across many plays."""
        state = match
        actor = "player-a"
        for _ in range(12):
            card = KNIGHT if state.elixir_of(actor) >= KNIGHT.cost else None
            if card is None:
                break
            state = apply_action(state, PlayCard(card), actor)
            for value in (state.player1_elixir, state.player2_elixir):
                assert 0 <= value <= MAX_ELIXIR
            actor = state.current_turn


class TestEffects:
    def test_spawn_scales_with_level(self, match: LiveMatch) -> None:
        """Spawned units get health and attack multiplied by level."""
        new = apply_action(match, PlayCard(KNIGHT, level=3), "player-a")

        unit = new.units[-1]
        assert unit.team == "player-a"
        assert unit.current_health == 450
        assert unit.max_health == 450
        assert unit.attack == 300
        assert unit.id == "player-a-1"

    def test_heal_capped(self, match: LiveMatch) -> None:
        """Healing never exceeds max health."""
        match.player1_health = 980

        new = apply_action(match, PlayCard(HEALING_WAVE), "player-a")

        assert new.player1_health == 1000

    def test_heal_restores(self, match: LiveMatch) -> None:
        """Healing restores the actor's own health."""
        match.player1_health = 500

        new = apply_action(match, PlayCard(HEALING_WAVE), "player-a")

        assert new.player1_health == 550
        assert new.player2_health == 1000

    def test_area_damage_hits_enemy_units(self, match: LiveMatch) -> None:
        """Area damage hits every living enemy unit and spares friendly ones."""
        match.units = [
            BattleUnit("b-1", 1, "Knight", "player-b", 1, 100, 150, 150),
            BattleUnit("b-2", 1, "Knight", "player-b", 1, 100, 300, 300),
            BattleUnit("a-1", 1, "Knight", "player-a", 1, 100, 150, 150),
        ]
        match.player1_elixir = 10

        new = apply_action(match, PlayCard(METEOR_STORM), "player-a")

        enemy_one, enemy_two, friendly = new.units
        assert enemy_one.defeated is True
        assert enemy_two.current_health == 100
        assert enemy_two.defeated is False
        assert friendly.current_health == 150


class TestGameOver:
    def test_completes_on_lethal_play(self, match: LiveMatch) -> None:
        """The match completes on the same transition that reaches 0 health."""
        match.player2_health = 250
        now = datetime(2026, 1, 1, tzinfo=UTC)

        new = apply_action(match, PlayCard(LIGHTNING_BOLT), "player-a", now=now)

        assert new.status == MatchStatus.COMPLETED
        assert new.winner_id == "player-a"
        assert new.player2_health == 0
        assert new.completed_at == now

    def test_no_plays_after_completion(self, match: LiveMatch) -> None:
        """The loser cannot act on a completed match."""
        match.player2_health = 100
        new = apply_action(match, PlayCard(LIGHTNING_BOLT), "player-a")

        with pytest.raises(MatchNotActiveError):
            apply_action(new, PlayCard(KNIGHT), "player-b")

    def test_double_knockout_is_draw(self, match: LiveMatch) -> None:
        """Both sides down means nobody wins."""
        match.player1_health = 0
        match.player2_health = -5

        assert check_game_over(match) is True
        assert match.winner_id is None
        assert match.player2_health == 0

    def test_healthy_match_stays_active(self, match: LiveMatch) -> None:
        """No side down leaves the match active."""
        assert check_game_over(match) is False
        assert match.is_active
