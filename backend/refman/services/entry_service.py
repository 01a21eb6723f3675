"""
RefMan Backend — Entry Service (Relational Backend Orchestrator)
=================================================================

What:  Business logic for entries and keywords stored in the relational backend.
Why:   Keeps route handlers thin; composes the normalizer, the SQL stores and
       the keyword reconciler into entry-level units of work.
How:   Every method receives the AsyncSession that owns its transaction
       (request-scoped via get_db_session, or one per entry for batches).
Who:   Called by routes/entries.py, routes/keywords.py and the seeder.

Create flow (one unit of work per submitted entry):
    ┌──────────┐   ┌────────────┐   ┌──────────────┐   ┌─────────────────┐
    │ validate │──▶│ normalize  │──▶│ insert head  │──▶│ reconcile       │
    │ payload  │   │ (no nulls) │   │ + details    │   │ keywords (add)  │
    └──────────┘   └────────────┘   └──────────────┘   └─────────────────┘

Overwrite vs patch:
    overwrite  absent head fields → NULL, details replaced, keyword set replaced
    patch      only sent fields change; detail keys merged (null deletes);
               sent keywords are added, never removed
"""

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from refman.config import settings
from refman.database import unit_of_work
from refman.exceptions import NotFoundError, RefmanError, ValidationError
from refman.schemas.entry import BatchCreateResponse, EntryFailure
from refman.services.keyword_reconciler import KeywordReconciler
from refman.services.normalizer import (
    AUTHOR_DELIMITER,
    HEAD_FIELDS,
    decode_details,
    encode_details,
    from_storage_shape,
    merge_details,
    normalize_keywords,
    to_storage_shape,
)
from refman.services.sql_store import SqlKeywordStore, SqlRecordStore
from refman.services.store_base import Row

logger = logging.getLogger(__name__)


def validate_record(record: Mapping[str, Any]) -> None:
    """
    Business validation shared by create, overwrite and patch.

    Raises:
        ValidationError: empty record, author name containing the delimiter,
                         keywords that are not a list
    """
    if not record:
        raise ValidationError(message="Entry must contain at least one field")

    author = record.get("author")
    if isinstance(author, (list, tuple)):
        for name in author:
            if not isinstance(name, str):
                raise ValidationError(message="Author names must be strings", field="author")
            if AUTHOR_DELIMITER in name:
                raise ValidationError(
                    message=f"Author names must not contain '{AUTHOR_DELIMITER}': {name!r}",
                    field="author",
                )

    keywords = record.get("keywords")
    if keywords is not None and not isinstance(keywords, (list, tuple)):
        raise ValidationError(message="Keywords must be a list of strings", field="keywords")


class EntryService:
    """
    Stateless orchestrator for the relational backend.

    Error Handling Strategy:
        Domain errors (NotFoundError, ValidationError) are raised here; storage
        errors arrive already translated by the SQL stores and propagate
        unchanged. Only batch creation catches, to report per-entry failures.
    """

    def __init__(self, max_concurrency: int = 8):
        self.max_concurrency = max_concurrency

    @staticmethod
    def _stores(db: AsyncSession) -> Tuple[SqlRecordStore, SqlKeywordStore, KeywordReconciler]:
        records = SqlRecordStore(db)
        keywords = SqlKeywordStore(db)
        return records, keywords, KeywordReconciler(records, keywords)

    async def _require_row(self, records: SqlRecordStore, entry_id: int) -> Row:
        rows = await records.get_by_id([entry_id])
        if not rows:
            raise NotFoundError(resource="entry", resource_id=str(entry_id))
        return rows[0]

    # ── Create ────────────────────────────────────────────────────────────

    async def create_entry(self, db: AsyncSession, record: Mapping[str, Any]) -> int:
        """Insert one entry and its keywords inside the caller's transaction."""
        validate_record(record)
        records, _, reconciler = self._stores(db)

        shape = to_storage_shape(record, null_fill_missing=False)
        entry_id = await records.insert(shape.head, shape.details_blob)

        keywords = normalize_keywords(shape.keywords or [])
        if keywords:
            await reconciler.reconcile_entry_keywords(entry_id, keywords)

        logger.info("Entry %s created with %d keywords", entry_id, len(keywords))
        return entry_id

    async def create_entries(
        self,
        session_factory: async_sessionmaker,
        records: Sequence[Mapping[str, Any]],
    ) -> BatchCreateResponse:
        """
        Create a batch of entries, each in its own unit of work.

        Units run concurrently (bounded by max_concurrency). A failure in one
        unit rolls back that entry only and is reported in `failures`; the
        siblings are unaffected.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def create_one(index: int, record: Mapping[str, Any]):
            async with semaphore:
                try:
                    async with unit_of_work(session_factory) as session:
                        entry_id = await self.create_entry(session, record)
                    return entry_id, None
                except RefmanError as e:
                    logger.warning("Batch entry %d rejected: %s", index, e.message)
                    return None, EntryFailure(index=index, error=e.code, message=e.message)
                except Exception as e:
                    logger.error("Batch entry %d failed: %s", index, str(e), exc_info=True)
                    return None, EntryFailure(
                        index=index,
                        error="internal_error",
                        message="The entry could not be stored.",
                    )

        outcomes = await asyncio.gather(
            *(create_one(index, record) for index, record in enumerate(records))
        )

        response = BatchCreateResponse(ids=[], failures=[])
        for entry_id, failure in outcomes:
            if failure is not None:
                response.failures.append(failure)
            else:
                response.ids.append(entry_id)
        return response

    # ── Read ──────────────────────────────────────────────────────────────

    async def _assemble(self, keywords: SqlKeywordStore, rows: List[Row]) -> List[Dict[str, Any]]:
        tags = await keywords.list_by_entries(row["id"] for row in rows)
        return [from_storage_shape({**row, "keywords": tags.get(row["id"])}) for row in rows]

    async def get_entry(self, db: AsyncSession, entry_id: int) -> Dict[str, Any]:
        records, keywords, _ = self._stores(db)
        row = await self._require_row(records, entry_id)
        return from_storage_shape({**row, "keywords": await keywords.list_by_entry(entry_id)})

    async def get_entries(self, db: AsyncSession, entry_ids: Sequence[int]) -> List[Dict[str, Any]]:
        """Multi-id lookup; ids that do not exist are skipped."""
        records, keywords, _ = self._stores(db)
        return await self._assemble(keywords, await records.get_by_id(entry_ids))

    async def dump(self, db: AsyncSession) -> List[Dict[str, Any]]:
        """Every entry in wire shape, keywords included."""
        records, keywords, _ = self._stores(db)
        return await self._assemble(keywords, await records.get_all())

    async def list_heads(self, db: AsyncSession) -> List[Dict[str, Any]]:
        records, _, _ = self._stores(db)
        return [
            from_storage_shape({name: row[name] for name in ("id",) + HEAD_FIELDS})
            for row in await records.get_all()
        ]

    async def search(
        self,
        db: AsyncSession,
        keywords: Iterable[str] = (),
        author: Optional[str] = None,
        title: Optional[str] = None,
    ) -> List[int]:
        """
        Ids matching any criterion: tagged with one of `keywords`, author or
        publisher containing `author`, title containing `title`.
        """
        wanted = normalize_keywords(keywords)
        if not wanted and not author and not title:
            raise ValidationError(message="no search query submitted")

        records, keyword_store, _ = self._stores(db)
        ids: List[int] = []
        for keyword in wanted:
            ids.extend(await keyword_store.list_entry_ids_by_keyword(keyword))
        if author:
            ids.extend(await records.search_by_substring("author", author))
            ids.extend(await records.search_by_substring("publisher", author))
        if title:
            ids.extend(await records.search_by_substring("title", title))

        return list(dict.fromkeys(ids))

    # ── Update ────────────────────────────────────────────────────────────

    async def overwrite_entry(
        self, db: AsyncSession, entry_id: int, record: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """Full replacement: head fields not sent are cleared, keyword set replaced."""
        validate_record(record)
        records, _, reconciler = self._stores(db)
        await self._require_row(records, entry_id)

        shape = to_storage_shape(record, null_fill_missing=True)
        await records.update(entry_id, shape.head, shape.details_blob)
        await reconciler.replace_entry_keyword_set(
            entry_id, normalize_keywords(shape.keywords or [])
        )

        logger.info("Entry %s overwritten", entry_id)
        return await self.get_entry(db, entry_id)

    async def patch_entry(
        self, db: AsyncSession, entry_id: int, record: Mapping[str, Any]
    ) -> Dict[str, Any]:
        """Partial update: merge sent head fields and detail keys, add sent keywords."""
        validate_record(record)
        records, _, reconciler = self._stores(db)
        row = await self._require_row(records, entry_id)

        shape = to_storage_shape(record, null_fill_missing=False)
        details_blob = None
        if shape.details:
            details_blob = encode_details(
                merge_details(decode_details(row["details"]), shape.details)
            )

        await records.update(entry_id, shape.head, details_blob)
        if shape.keywords:
            await reconciler.reconcile_entry_keywords(
                entry_id, normalize_keywords(shape.keywords)
            )

        logger.info("Entry %s patched (%s)", entry_id, ", ".join(sorted(record)))
        return await self.get_entry(db, entry_id)

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete_entry(self, db: AsyncSession, entry_id: int) -> None:
        """Deletes the entry and its keyword associations in one transaction."""
        records, _, reconciler = self._stores(db)
        await self._require_row(records, entry_id)

        removed = await reconciler.remove_all_keywords_for_entry(entry_id)
        await records.delete(entry_id)
        logger.info("Entry %s deleted with %d keyword associations", entry_id, removed)

    # ── Keywords ──────────────────────────────────────────────────────────

    async def list_keywords(self, db: AsyncSession) -> List[str]:
        _, keywords, _ = self._stores(db)
        return await keywords.list_distinct()

    async def keywords_for_entry(self, db: AsyncSession, entry_id: int) -> List[str]:
        records, keywords, _ = self._stores(db)
        await self._require_row(records, entry_id)
        return await keywords.list_by_entry(entry_id)

    async def add_keywords(self, db: AsyncSession, entry_id: int, keywords: Iterable[str]) -> int:
        """Additive tagging; returns 0 when every keyword was already present."""
        wanted = normalize_keywords(keywords)
        if not wanted:
            raise ValidationError(message="no usable keywords received", field="keyword")

        records, _, reconciler = self._stores(db)
        await self._require_row(records, entry_id)
        return await reconciler.reconcile_entry_keywords(entry_id, wanted)

    async def replace_keywords(
        self, db: AsyncSession, entry_id: int, keywords: Iterable[str]
    ) -> List[str]:
        records, keyword_store, reconciler = self._stores(db)
        await self._require_row(records, entry_id)
        await reconciler.replace_entry_keyword_set(entry_id, normalize_keywords(keywords))
        return await keyword_store.list_by_entry(entry_id)

    async def remove_keywords(
        self, db: AsyncSession, entry_id: int, keywords: Optional[Iterable[str]] = None
    ) -> int:
        """
        Remove all associations of the entry (keywords=None) or only the listed ones.
        Removing keywords the entry does not carry is a no-op.
        """
        _, _, reconciler = self._stores(db)
        if keywords is None:
            return await reconciler.remove_all_keywords_for_entry(entry_id)

        wanted = normalize_keywords(keywords)
        if not wanted:
            raise ValidationError(message="no keywords received", field="keyword")
        return await reconciler.remove_specific_keywords(entry_id, wanted)

    async def prune_keywords(self, db: AsyncSession) -> int:
        _, _, reconciler = self._stores(db)
        return await reconciler.prune_orphaned_keywords()

    async def rename_keyword(self, db: AsyncSession, old: Optional[str], new: Optional[str]) -> int:
        old = (old or "").strip()
        new = (new or "").strip()
        if not old or not new:
            raise ValidationError(message='Missing query field ("from", "to")')
        if old == new:
            raise ValidationError(message='"from" and "to" must differ')

        _, _, reconciler = self._stores(db)
        return await reconciler.rename_keyword_globally(old, new)


# ── Singleton Instance ────────────────────────────────────────────────────
entry_service = EntryService(max_concurrency=settings.batch_max_concurrency)


def get_entry_service() -> EntryService:
    """FastAPI dependency; tests override it with a service bound to one worker."""
    return entry_service
