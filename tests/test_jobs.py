"""Tests for the catalog seeding job."""

from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.db.operations import get_card_by_name, list_cards
from storyarena.jobs.seed_cards import seed_catalog
from storyarena.models.card import BattleCard, CardRarity, CardType
from storyarena.services.card_catalog import CATALOG


class TestSeedCatalog:
    async def test_creates_catalog(self, session: AsyncSession) -> None:
        counts = await seed_catalog(session)

        assert counts == {"created": len(CATALOG), "updated": 0}
        assert len(await list_cards(session)) == len(CATALOG)

    async def test_rerun_is_idempotent(self, session: AsyncSession) -> None:
        """Seeding twice updates in place instead of duplicating."""
        await seed_catalog(session)

        counts = await seed_catalog(session)

        assert counts == {"created": 0, "updated": len(CATALOG)}
        assert len(await list_cards(session)) == len(CATALOG)

    async def test_updates_changed_stats(self, session: AsyncSession) -> None:
        """A rebalanced card overwrites the stored one."""
        await seed_catalog(session)
        rebalanced = BattleCard(
            id=0,
            name="Brave Knight",
            card_type=CardType.CHARACTER,
            rarity=CardRarity.COMMON,
            cost=4,
            health=180,
            attack=90,
        )

        await seed_catalog(session, [rebalanced])

        stored = await get_card_by_name(session, "Brave Knight")
        assert stored.cost == 4
        assert stored.health == 180
