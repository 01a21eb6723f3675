"""
RefMan Backend — Database Session Management
==============================================

What:  Async SQLAlchemy engine, session factory, and FastAPI dependency.
Why:   Centralizes all database connection logic in one place.
How:   Creates an async engine, provides a session dependency that
       auto-commits on success and auto-rolls-back on error.
Who:   Used by route handlers via FastAPI's dependency injection system,
       and by EntryService for per-entry batch units of work.
When:  Engine is created at module import; sessions are created per-request.

Unit of Work:
    Every entry-level mutation (create, overwrite, patch, delete) runs inside
    exactly one session/transaction, so head-field writes and keyword
    association writes are never observed half-applied:

        request ──▶ get_db_session() ──▶ service call ──▶ commit
                                     └── exception ──▶ rollback

    Batch creation opens one unit_of_work() per submitted entry instead, so a
    failure in one entry does not roll back its siblings.
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from refman.config import settings


def build_engine(database_url: str) -> AsyncEngine:
    """
    Create an async engine for the given URL.

    SQLite gets SQLAlchemy's default pool for aiosqlite; pool sizing options
    only make sense (and are only accepted) for server databases.
    """
    kwargs: Dict[str, Any] = {"echo": settings.log_level == "DEBUG"}
    if not database_url.startswith("sqlite"):
        kwargs.update(
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_pre_ping=settings.db_pool_pre_ping,
            pool_recycle=3600,
        )
    return create_async_engine(database_url, **kwargs)


# ── Engine & Session Factory ──────────────────────────────────────────────
engine = build_engine(settings.database_url)

# expire_on_commit=False: ORM rows stay readable after the request commits
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """
    Base class for all SQLAlchemy ORM models.

    Registers models with a single metadata object, which Alembic reads
    for migrations and `init_models()` uses for local SQLite databases.
    """
    pass


# ── Session Dependency ────────────────────────────────────────────────────
@asynccontextmanager
async def unit_of_work(
    session_factory: async_sessionmaker = async_session_factory,
) -> AsyncGenerator[AsyncSession, None]:
    """
    One transaction: commit if the block completes, roll back if it raises.

    Used directly for batch entry creation and seeding, and wrapped by
    get_db_session() for request-scoped work.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            # Roll back for ANY failure, then let the error handlers respond
            await session.rollback()
            raise


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    FastAPI dependency that provides a database session per request.

    How it works:
        1. Opens a session from the factory
        2. Yields it to the route handler
        3. On success: commits the transaction
        4. On error: rolls back and re-raises to the global error handlers
        5. Always: closes the session (returns connection to pool)

    Example usage in a route:
        @router.get("/entries/{entry_id}")
        async def get_entry(entry_id: int, db: AsyncSession = Depends(get_db_session)):
            return await entry_service.get_entry(db, entry_id)
    """
    async with unit_of_work() as session:
        yield session


def get_session_factory() -> async_sessionmaker:
    """
    FastAPI dependency returning the session factory.

    Batch endpoints need a factory (one session per entry) rather than a
    single request session; tests override this to point at a temp database.
    """
    return async_session_factory


# ── Lifecycle Helpers ─────────────────────────────────────────────────────
async def init_models(target: AsyncEngine = engine) -> None:
    """
    Create missing tables on SQLite databases.

    When:  App startup and test fixtures. PostgreSQL deployments use
           `alembic upgrade head` instead.
    """
    url = make_url(str(target.url))
    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    # Import models so they register with Base.metadata
    from refman.models import entry  # noqa: F401

    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    """Closes every pooled connection; called during application shutdown."""
    await engine.dispose()
