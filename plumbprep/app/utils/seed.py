"""
Seed default bulk enrollment tiers

Run once after migrating:
    python -m app.utils.seed

Safe to run repeatedly or concurrently: rows are inserted with
ON CONFLICT (tier_name) DO NOTHING, so the unique tier name decides.
"""

import asyncio
import logging

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from app.config.pricing import DEFAULT_BULK_TIERS
from app.models.bulk_enrollment import BulkEnrollmentTier
from app.utils.database import get_async_session, engine

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def seed_bulk_tiers(db: AsyncSession) -> int:
    """Insert any missing default tiers; returns how many were added"""
    dialect = db.bind.dialect.name
    insert = _DIALECT_INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Seeding is not supported on {dialect}")

    added = 0
    for tier in DEFAULT_BULK_TIERS:
        stmt = (
            insert(BulkEnrollmentTier)
            .values(is_active=True, **tier)
            .on_conflict_do_nothing(index_elements=["tier_name"])
        )
        result = await db.execute(stmt)
        added += result.rowcount or 0

    await db.commit()

    logger.info(f"Seeded {added} bulk enrollment tiers ({len(DEFAULT_BULK_TIERS) - added} already present)")
    return added


async def main():
    async with get_async_session() as db:
        await seed_bulk_tiers(db)
    await engine.dispose()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    asyncio.run(main())
