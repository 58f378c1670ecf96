"""
Job to seed the battle card catalog.

Upserts every card in the built-in catalog by name, so it can be run on
every deploy without creating duplicates.
"""

import asyncio
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storyarena.db.database import async_session_factory, init_db
from storyarena.db.operations import get_card_by_name, upsert_card
from storyarena.models.card import BattleCard
from storyarena.services.card_catalog import CATALOG

logger = logging.getLogger(__name__)


async def seed_catalog(
    session: AsyncSession, cards: list[BattleCard] | None = None
) -> dict[str, int]:
    """
    Upsert catalog cards into an open session.

    Returns:
        Dict with counts of "created" and "updated" cards
    """
    counts = {"created": 0, "updated": 0}
    for card in CATALOG if cards is None else cards:
        existed = await get_card_by_name(session, card.name) is not None
        await upsert_card(session, card)
        counts["updated" if existed else "created"] += 1
    return counts


async def run_seed() -> dict[str, int]:
    """Create tables if needed and seed the catalog."""
    await init_db()

    async with async_session_factory() as session:
        try:
            counts = await seed_catalog(session)
            await session.commit()
        except SQLAlchemyError as e:
            await session.rollback()
            logger.error("Catalog seeding failed: %s", e)
            raise

    logger.info(
        "Catalog seeded: %d created, %d updated",
        counts["created"],
        counts["updated"],
    )
    return counts


def main() -> None:
    """CLI entry point for seeding the catalog."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    asyncio.run(run_seed())


if __name__ == "__main__":
    main()
