"""
RefMan Backend — SQLAlchemy Stores
====================================

What:  RecordStore and KeywordStore implementations over an AsyncSession.
Why:   Keeps every SQL statement of the relational backend in one module;
       the reconciler and entry service only see plain rows and keywords.
How:   Each store wraps the request's (or batch unit's) session. Writes are
       flushed, never committed; the owner of the session decides commit or
       rollback, so one entry-level mutation stays atomic.

Error translation (at this boundary only):
    IntegrityError   → ConflictError (duplicate (entry_id, keyword) pair,
                       typically two requests tagging the same entry at once)
    SQLAlchemyError  → DatabaseError
"""

import functools
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from refman.exceptions import ConflictError, DatabaseError, ValidationError
from refman.models.entry import Entry, Keyword
from refman.services.normalizer import HEAD_FIELDS
from refman.services.store_base import KeywordStore, RecordStore, Row

logger = logging.getLogger(__name__)


def _translate_errors(method):
    """Converts driver exceptions raised by a store method into app exceptions."""

    @functools.wraps(method)
    async def wrapper(self, *args, **kwargs):
        try:
            return await method(self, *args, **kwargs)
        except IntegrityError as e:
            logger.warning("Integrity violation in %s: %s", method.__qualname__, e.orig)
            raise ConflictError(
                message="The change conflicts with an existing keyword association.",
                context={"operation": method.__qualname__},
            ) from e
        except SQLAlchemyError as e:
            logger.error("Database error in %s: %s", method.__qualname__, str(e), exc_info=True)
            raise DatabaseError(
                context={"operation": method.__qualname__, "error_type": type(e).__name__},
            ) from e

    return wrapper


class SqlRecordStore(RecordStore):
    """`entries` table access."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def insert(self, head: Mapping[str, Any], details_blob: str) -> int:
        entry = Entry(
            **{name: head.get(name) for name in HEAD_FIELDS},
            details=details_blob,
        )
        self.session.add(entry)
        await self.session.flush()  # assigns the autoincrement id
        return entry.id

    @_translate_errors
    async def get_by_id(self, ids: Sequence[int]) -> List[Row]:
        if not ids:
            return []
        result = await self.session.execute(select(Entry).where(Entry.id.in_(ids)))
        rows = {entry.id: entry.to_row() for entry in result.scalars().all()}
        return [rows[entry_id] for entry_id in dict.fromkeys(ids) if entry_id in rows]

    @_translate_errors
    async def get_all(self) -> List[Row]:
        result = await self.session.execute(select(Entry).order_by(Entry.id))
        return [entry.to_row() for entry in result.scalars().all()]

    @_translate_errors
    async def all_ids(self) -> List[int]:
        result = await self.session.execute(select(Entry.id).order_by(Entry.id))
        return list(result.scalars().all())

    @_translate_errors
    async def search_by_substring(self, field: str, needle: str) -> List[int]:
        if field not in HEAD_FIELDS:
            raise ValidationError(
                message=f"Cannot search on field '{field}'",
                field=field,
                context={"searchable_fields": list(HEAD_FIELDS)},
            )
        column = getattr(Entry, field)
        result = await self.session.execute(
            select(Entry.id)
            .where(column.icontains(needle, autoescape=True))
            .order_by(Entry.id)
        )
        return list(result.scalars().all())

    @_translate_errors
    async def update(
        self,
        entry_id: int,
        head: Mapping[str, Any],
        details_blob: Optional[str] = None,
    ) -> int:
        values: Dict[str, Any] = {name: head[name] for name in HEAD_FIELDS if name in head}
        if details_blob is not None:
            values["details"] = details_blob

        if not values:
            # Nothing to write; still report whether the entry exists
            return len(await self.get_by_id([entry_id]))

        result = await self.session.execute(
            update(Entry).where(Entry.id == entry_id).values(**values)
        )
        return result.rowcount

    @_translate_errors
    async def delete(self, entry_id: int) -> int:
        result = await self.session.execute(delete(Entry).where(Entry.id == entry_id))
        return result.rowcount


class SqlKeywordStore(KeywordStore):
    """`keywords` table access."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @_translate_errors
    async def list_by_entry(self, entry_id: int) -> List[str]:
        result = await self.session.execute(
            select(Keyword.keyword)
            .where(Keyword.entry_id == entry_id)
            .order_by(Keyword.keyword)
        )
        return list(result.scalars().all())

    @_translate_errors
    async def list_by_entries(self, entry_ids: Iterable[int]) -> Dict[int, List[str]]:
        ids = list(entry_ids)
        if not ids:
            return {}
        result = await self.session.execute(
            select(Keyword.entry_id, Keyword.keyword)
            .where(Keyword.entry_id.in_(ids))
            .order_by(Keyword.entry_id, Keyword.keyword)
        )
        grouped: Dict[int, List[str]] = {}
        for entry_id, keyword in result.all():
            grouped.setdefault(entry_id, []).append(keyword)
        return grouped

    @_translate_errors
    async def list_distinct(self) -> List[str]:
        result = await self.session.execute(
            select(Keyword.keyword).distinct().order_by(Keyword.keyword)
        )
        return list(result.scalars().all())

    @_translate_errors
    async def list_entry_ids_by_keyword(self, keyword: str) -> List[int]:
        result = await self.session.execute(
            select(Keyword.entry_id)
            .where(Keyword.keyword == keyword)
            .distinct()
            .order_by(Keyword.entry_id)
        )
        return list(result.scalars().all())

    @_translate_errors
    async def list_entry_ids(self) -> List[int]:
        result = await self.session.execute(
            select(Keyword.entry_id).distinct().order_by(Keyword.entry_id)
        )
        return list(result.scalars().all())

    @_translate_errors
    async def insert(self, entry_id: int, keyword: str) -> None:
        self.session.add(Keyword(entry_id=entry_id, keyword=keyword))
        await self.session.flush()

    @_translate_errors
    async def rename(self, entry_id: int, old: str, new: str) -> int:
        result = await self.session.execute(
            update(Keyword)
            .where(Keyword.entry_id == entry_id, Keyword.keyword == old)
            .values(keyword=new)
        )
        return result.rowcount

    @_translate_errors
    async def delete_by_entry_and_keyword(self, entry_id: int, keyword: str) -> int:
        result = await self.session.execute(
            delete(Keyword).where(Keyword.entry_id == entry_id, Keyword.keyword == keyword)
        )
        return result.rowcount

    @_translate_errors
    async def delete_by_entry(self, entry_id: int) -> int:
        result = await self.session.execute(
            delete(Keyword).where(Keyword.entry_id == entry_id)
        )
        return result.rowcount
