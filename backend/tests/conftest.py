"""
RefMan Backend — Test Configuration (conftest.py)
===================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Every database fixture runs against a throwaway SQLite file under
       tmp_path (aiosqlite), so tests never touch a real collection.

Fixture Hierarchy:
    engine → session_factory → db_session     SQLite file per test
    fake_records / fake_keywords               in-memory stores (no database)
    item_store                                 JsonItemStore rooted in tmp_path
    service                                    EntryService with one worker
    test_client                                HTTPX AsyncClient with dependency overrides
"""

import os
import tempfile

# Override settings before any refman import reads them
_test_root = tempfile.mkdtemp(prefix="refman_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_test_root}/refman.sqlite3"
os.environ["JSON_STORAGE_ROOT"] = os.path.join(_test_root, "items")
os.environ["JSON_TRASH_ROOT"] = os.path.join(_test_root, "trash")
os.environ["STORAGE_BACKEND"] = "sqlite"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RETRY_MAX_ATTEMPTS"] = "2"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "1"

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from refman.database import build_engine, get_db_session, get_session_factory, init_models, unit_of_work
from refman.exceptions import ConflictError
from refman.services.entry_service import EntryService, get_entry_service
from refman.services.json_store import JsonItemStore, get_item_store
from refman.services.normalizer import HEAD_FIELDS
from refman.services.store_base import KeywordStore, RecordStore, Row


# ══════════════════════════════════════════════════════════════════════════
# In-Memory Stores
# ══════════════════════════════════════════════════════════════════════════

class InMemoryRecordStore(RecordStore):
    def __init__(self):
        self.rows: Dict[int, Row] = {}
        self._next_id = 1

    async def insert(self, head: Mapping[str, Any], details_blob: str) -> int:
        entry_id = self._next_id
        self._next_id += 1
        self.rows[entry_id] = {
            "id": entry_id,
            **{name: head.get(name) for name in HEAD_FIELDS},
            "details": details_blob,
        }
        return entry_id

    async def get_by_id(self, ids: Sequence[int]) -> List[Row]:
        return [dict(self.rows[i]) for i in dict.fromkeys(ids) if i in self.rows]

    async def get_all(self) -> List[Row]:
        return [dict(row) for _, row in sorted(self.rows.items())]

    async def all_ids(self) -> List[int]:
        return sorted(self.rows)

    async def search_by_substring(self, field: str, needle: str) -> List[int]:
        return [
            entry_id
            for entry_id, row in sorted(self.rows.items())
            if row.get(field) and needle.lower() in row[field].lower()
        ]

    async def update(self, entry_id: int, head: Mapping[str, Any], details_blob: Optional[str] = None) -> int:
        if entry_id not in self.rows:
            return 0
        self.rows[entry_id].update({k: v for k, v in head.items() if k in HEAD_FIELDS})
        if details_blob is not None:
            self.rows[entry_id]["details"] = details_blob
        return 1

    async def delete(self, entry_id: int) -> int:
        return 1 if self.rows.pop(entry_id, None) else 0


class InMemoryKeywordStore(KeywordStore):
    """Keeps (entry_id, keyword) pairs; duplicates raise like the UNIQUE constraint."""

    def __init__(self):
        self.pairs: List[Tuple[int, str]] = []

    async def list_by_entry(self, entry_id: int) -> List[str]:
        return sorted(k for e, k in self.pairs if e == entry_id)

    async def list_by_entries(self, entry_ids: Iterable[int]) -> Dict[int, List[str]]:
        wanted = set(entry_ids)
        grouped: Dict[int, List[str]] = {}
        for e, k in sorted(self.pairs):
            if e in wanted:
                grouped.setdefault(e, []).append(k)
        return grouped

    async def list_distinct(self) -> List[str]:
        return sorted({k for _, k in self.pairs})

    async def list_entry_ids_by_keyword(self, keyword: str) -> List[int]:
        return sorted({e for e, k in self.pairs if k == keyword})

    async def list_entry_ids(self) -> List[int]:
        return sorted({e for e, _ in self.pairs})

    async def insert(self, entry_id: int, keyword: str) -> None:
        if (entry_id, keyword) in self.pairs:
            raise ConflictError(context={"entry_id": entry_id, "keyword": keyword})
        self.pairs.append((entry_id, keyword))

    async def rename(self, entry_id: int, old: str, new: str) -> int:
        if (entry_id, old) not in self.pairs:
            return 0
        self.pairs[self.pairs.index((entry_id, old))] = (entry_id, new)
        return 1

    async def delete_by_entry_and_keyword(self, entry_id: int, keyword: str) -> int:
        if (entry_id, keyword) not in self.pairs:
            return 0
        self.pairs.remove((entry_id, keyword))
        return 1

    async def delete_by_entry(self, entry_id: int) -> int:
        before = len(self.pairs)
        self.pairs = [(e, k) for e, k in self.pairs if e != entry_id]
        return before - len(self.pairs)


@pytest.fixture
def fake_records():
    return InMemoryRecordStore()


@pytest.fixture
def fake_keywords():
    return InMemoryKeywordStore()


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def engine(tmp_path):
    """A fresh SQLite file with the refman tables created."""
    test_engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'collection.sqlite3'}")
    await init_models(test_engine)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    """
    One session for the whole test; stores only flush, so every write is
    visible to later reads in the same test.
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def service():
    return EntryService(max_concurrency=1)


@pytest.fixture
def item_store(tmp_path):
    store = JsonItemStore(root=str(tmp_path / "items"), trash=str(tmp_path / "trash"))
    store.ensure_directories()
    return store


@pytest.fixture
def sample_record() -> Dict[str, Any]:
    return {
        "id": "eloquent-js",
        "title": "Eloquent JavaScript",
        "author": ["Marijn Haverbeke"],
        "publisher": "No Starch Press",
        "url": "https://eloquentjavascript.net/",
        "year": 2018,
        "keywords": ["javascript", "programming"],
    }


# ══════════════════════════════════════════════════════════════════════════
# HTTP Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory, item_store, service):
    """
    HTTPX AsyncClient talking to the app through ASGITransport.

    Database, item store and entry service dependencies point at the
    per-test fixtures.
    """
    from refman.main import app

    async def override_db_session():
        async with unit_of_work(session_factory) as session:
            yield session

    app.dependency_overrides[get_db_session] = override_db_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_item_store] = lambda: item_store
    app.dependency_overrides[get_entry_service] = lambda: service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
