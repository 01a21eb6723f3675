"""
RefMan Backend — Seed the Relational Store from Flat Files
============================================================

What:  Rebuilds the `entries` and `keywords` tables from the JSON item store.
Why:   The flat-file collection is the historical source of truth; this is
       how a fresh database gets its content.
How:   Wipes both tables in one transaction, then creates every item through
       EntryService (one unit of work per item), so each item goes through
       the same validation, normalization and keyword reconciliation as an
       API submission. The item's own id ends up as the entry's `label`.

Usage:
    cd backend && python -m refman.seed
"""

import asyncio
import logging

from sqlalchemy import delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from refman.database import async_session_factory, dispose_engine, init_models, unit_of_work
from refman.models.entry import Entry, Keyword
from refman.schemas.entry import BatchCreateResponse
from refman.services.entry_service import EntryService, entry_service
from refman.services.json_store import JsonItemStore, json_item_store

logger = logging.getLogger(__name__)


async def seed_from_json_store(
    session_factory: async_sessionmaker,
    json_store: JsonItemStore,
    service: EntryService = entry_service,
) -> BatchCreateResponse:
    """
    Replace the relational collection with the contents of `json_store`.

    Returns:
        The batch result: ids created and items that were rejected.
    """
    items = await json_store.list_items()

    async with unit_of_work(session_factory) as session:
        await session.execute(delete(Keyword))
        await session.execute(delete(Entry))
    logger.info("Cleared entries and keywords, seeding %d items", len(items))

    result = await service.create_entries(session_factory, items)
    for failure in result.failures:
        logger.warning(
            "Item %s not seeded: %s",
            items[failure.index].get("id"),
            failure.message,
        )
    logger.info("Seeded %d entries (%d rejected)", len(result.ids), len(result.failures))
    return result


async def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    await init_models()
    try:
        await seed_from_json_store(async_session_factory, json_item_store)
    finally:
        await dispose_engine()


if __name__ == "__main__":
    asyncio.run(main())
