"""
RefMan Backend — Application Package Initializer
=================================================

What: Marks the `refman` directory as a Python package.
Why:  Enables module imports like `from refman.config import settings`.
Who:  Used implicitly by Python's import system and explicitly by Alembic, pytest, and uvicorn.

Architecture Note:
    The backend is a reference/bookmark manager organised in layers:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP verbs → service calls
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Normalizer, keyword reconciler,
    │                                     │    entry orchestration, JSON item store
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    The normalizer and the keyword reconciler never talk to SQLAlchemy directly.
    They receive RecordStore / KeywordStore objects, so the same logic runs
    against the relational store in production and against in-memory fakes in tests.
"""

__version__ = "1.0.0"
