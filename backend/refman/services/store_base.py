"""
RefMan Backend — Store Interfaces
===================================

What:  Abstract interfaces for the two storage collaborators of the keyword
       reconciler and entry service.
Why:   The reconciliation logic must not depend on a global database handle.
       Stores are passed in explicitly, so the same logic runs against
       SQLAlchemy (SqlRecordStore/SqlKeywordStore) or in-memory fakes in tests.
How:   Python ABCs with async abstract methods. Implementations translate
       their own driver errors into StorageError subclasses.

Rows are plain dicts, never ORM objects:
    record row   {"id", "title", "author", "publisher", "url", "details"}
    keyword      str
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

Row = Dict[str, Any]


class RecordStore(ABC):
    """
    Persists head fields + details blob, one row per entry id.

    Contract:
        - insert() assigns and returns the id; ids are immutable afterwards
        - lookups return only rows that exist (missing ids are skipped)
        - update()/delete() return the number of rows affected (0 or 1)
    """

    @abstractmethod
    async def insert(self, head: Mapping[str, Any], details_blob: str) -> int:
        """Store a new entry and return its assigned id."""
        ...

    @abstractmethod
    async def get_by_id(self, ids: Sequence[int]) -> List[Row]:
        """Rows for the given ids, in the order requested."""
        ...

    @abstractmethod
    async def get_all(self) -> List[Row]:
        """Every row, ordered by id."""
        ...

    @abstractmethod
    async def all_ids(self) -> List[int]:
        """Every live entry id."""
        ...

    @abstractmethod
    async def search_by_substring(self, field: str, needle: str) -> List[int]:
        """Ids whose head `field` contains `needle` (case-insensitive)."""
        ...

    @abstractmethod
    async def update(self, entry_id: int, head: Mapping[str, Any], details_blob: Optional[str] = None) -> int:
        """Set the given head fields (and the details blob when provided)."""
        ...

    @abstractmethod
    async def delete(self, entry_id: int) -> int:
        ...


class KeywordStore(ABC):
    """
    Persists (entry_id, keyword) associations.

    Contract:
        - a given (entry_id, keyword) pair exists at most once
        - deletes of non-existent associations affect 0 rows and are not errors
    """

    @abstractmethod
    async def list_by_entry(self, entry_id: int) -> List[str]:
        """Keywords of one entry, sorted."""
        ...

    @abstractmethod
    async def list_by_entries(self, entry_ids: Iterable[int]) -> Dict[int, List[str]]:
        """Sorted keywords for each of several entries (entries without any are absent)."""
        ...

    @abstractmethod
    async def list_distinct(self) -> List[str]:
        """Every keyword in use, sorted, without duplicates."""
        ...

    @abstractmethod
    async def list_entry_ids_by_keyword(self, keyword: str) -> List[int]:
        ...

    @abstractmethod
    async def list_entry_ids(self) -> List[int]:
        """Every entry id referenced by at least one association."""
        ...

    @abstractmethod
    async def insert(self, entry_id: int, keyword: str) -> None:
        ...

    @abstractmethod
    async def rename(self, entry_id: int, old: str, new: str) -> int:
        """Rewrite one association's keyword value in place."""
        ...

    @abstractmethod
    async def delete_by_entry_and_keyword(self, entry_id: int, keyword: str) -> int:
        ...

    @abstractmethod
    async def delete_by_entry(self, entry_id: int) -> int:
        ...
