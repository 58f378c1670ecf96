"""Tests for card, battle and stats domain models."""

import pytest

from storyarena.models.battle import BATTLE_LOG_SIZE, BattleUnit, LiveMatch
from storyarena.models.card import (
    MAX_CARD_LEVEL,
    BattleCard,
    CardRarity,
    CardType,
    EffectKind,
    PlayerCard,
    upgrade_card,
)
from storyarena.models.failure import (
    FailureKind,
    InsufficientCardsError,
    MaxLevelReachedError,
    OutcomeType,
    PersistenceFailureError,
    StaleMatchError,
)
from storyarena.models.stats import PlayerBattleStats, arena_for_trophies, arena_name


def _card(card_type: CardType, ability: str | None = None) -> BattleCard:
    return BattleCard(
        id=1,
        name="Test",
        card_type=card_type,
        rarity=CardRarity.COMMON,
        cost=3,
        health=100,
        attack=50,
        special_ability=ability,
    )


class TestBattleCard:
    def test_units_spawn(self) -> None:
        """Characters and buildings spawn units."""
        assert _card(CardType.CHARACTER).effect == EffectKind.SPAWN_UNIT
        assert _card(CardType.BUILDING).effect == EffectKind.SPAWN_UNIT

    def test_spell_effect_from_ability(self) -> None:
        """A spell's ability tag selects its effect."""
        assert _card(CardType.SPELL, "heal").effect == EffectKind.HEAL
        assert _card(CardType.SPELL, "area_damage").effect == EffectKind.AREA_DAMAGE
        assert _card(CardType.SPELL, "direct_damage").effect == EffectKind.DIRECT_DAMAGE

    def test_spell_defaults_to_direct_damage(self) -> None:
        """Untagged spells deal direct damage."""
        assert _card(CardType.SPELL).effect == EffectKind.DIRECT_DAMAGE

    def test_starter_is_arena_zero_common(self) -> None:
        """Only arena-0 commons are starter cards."""
        assert _card(CardType.CHARACTER).is_starter is True


class TestUpgradeCard:
    def test_upgrade_with_exact_copies(self) -> None:
        """Level 1 with exactly 10 copies upgrades to level 2 with 0 left."""
        upgraded = upgrade_card(PlayerCard(id=1, user_id="u", card_id=1, level=1, quantity=10))

        assert upgraded.level == 2
        assert upgraded.quantity == 0

    def test_repeat_upgrade_needs_twenty(self) -> None:
        """Immediately upgrading again fails and reports 20 needed."""
        upgraded = upgrade_card(PlayerCard(id=1, user_id="u", card_id=1, level=1, quantity=10))

        with pytest.raises(InsufficientCardsError) as exc_info:
            upgrade_card(upgraded)

        assert exc_info.value.required == 20
        assert exc_info.value.available == 0

    def test_consumes_level_times_ten(self) -> None:
        """An upgrade consumes exactly level x 10 copies."""
        card = PlayerCard(id=1, user_id="u", card_id=1, level=4, quantity=55)

        upgraded = upgrade_card(card)

        assert upgraded.level == 5
        assert upgraded.quantity == 15

    def test_insufficient_leaves_card_unchanged(self) -> None:
        """A failed upgrade leaves level and quantity unchanged."""
        card = PlayerCard(id=1, user_id="u", card_id=1, level=2, quantity=19)

        with pytest.raises(InsufficientCardsError):
            upgrade_card(card)

        assert card.level == 2
        assert card.quantity == 19

    def test_max_level(self) -> None:
        """Cards at the level cap cannot be upgraded."""
        card = PlayerCard(id=1, user_id="u", card_id=1, level=MAX_CARD_LEVEL, quantity=1000)

        with pytest.raises(MaxLevelReachedError):
            upgrade_card(card)
        assert card.can_upgrade() is False


class TestFailureEnvelope:
    def test_known_failure_response(self) -> None:
        """Known errors render into the known_failure envelope."""
        response = InsufficientCardsError(20, 0).to_response()

        assert response.outcome == OutcomeType.KNOWN_FAILURE
        assert response.failure is not None
        assert response.failure.kind == FailureKind.INSUFFICIENT_CARDS
        assert response.failure.retryable is False

    def test_retryable_kinds(self) -> None:
        """Stale matches and persistence failures are retryable."""
        assert StaleMatchError(1, 3).to_response().failure.retryable is True
        persistence = PersistenceFailureError("save_match")
        assert persistence.status_code == 503
        assert persistence.to_response().failure.retryable is True


class TestLiveMatch:
    def test_battle_log_is_bounded(self) -> None:
        """Only the most recent log entries are kept."""
        match = LiveMatch(player1_id="a", player2_id="b", current_turn="a")
        for i in range(BATTLE_LOG_SIZE + 3):
            match.add_log(f"entry {i}")

        assert len(match.battle_log) == BATTLE_LOG_SIZE
        assert match.battle_log[-1] == f"entry {BATTLE_LOG_SIZE + 2}"

    def test_clone_is_independent(self) -> None:
        """Cloning copies units so the original is never touched."""
        match = LiveMatch(player1_id="a", player2_id="b", current_turn="a")
        match.units.append(BattleUnit("a-1", 1, "Knight", "a", 1, 100, 150, 150))

        clone = match.clone()
        clone.units[0].take_damage(100)

        assert match.units[0].current_health == 150

    def test_unit_round_trip(self) -> None:
        """Units survive JSON serialization."""
        unit = BattleUnit("a-1", 1, "Knight", "a", 2, 200, 300, 300, emoji="🛡️")

        assert BattleUnit.from_dict(unit.to_dict()) == unit


class TestStatsModel:
    @pytest.mark.parametrize(
        ("trophies", "arena"),
        [(0, 0), (299, 0), (300, 1), (999, 2), (1000, 3), (1999, 4), (5000, 5)],
    )
    def test_arena_for_trophies(self, trophies: int, arena: int) -> None:
        """Arena level follows the trophy thresholds."""
        assert arena_for_trophies(trophies) == arena

    def test_arena_name_out_of_range(self) -> None:
        """Unknown arena levels fall back to the top arena."""
        assert arena_name(0) == "Training Ground"
        assert arena_name(99) == "Rainbow Kingdom"

    def test_win_rate(self) -> None:
        """Win rate is computed over decided matches."""
        stats = PlayerBattleStats(user_id="u", total_wins=3, total_losses=1, total_draws=4)

        assert stats.win_rate() == 75
        assert stats.total_matches == 8
        assert PlayerBattleStats(user_id="v").win_rate() == 0
