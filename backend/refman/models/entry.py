"""
RefMan Backend — Entry & Keyword SQLAlchemy Models
====================================================

What:  ORM models for the `entries` and `keywords` tables.
Why:   Maps the relational storage shape (head fields + JSON details blob,
       plus one association row per tag) to Python objects.
Who:   Used by the SQL stores for CRUD and by Alembic for schema management.

Table Design:
    entries
        id          INTEGER PK, assigned by the store, immutable
        title       VARCHAR(255)   nullable
        author      VARCHAR(255)   nullable, authors joined with ","
        publisher   VARCHAR(255)   nullable
        url         VARCHAR(2048)  nullable
        details     TEXT           JSON object text of every non-head field

    keywords
        id          INTEGER PK
        entry_id    INTEGER        references entries.id (no FK constraint)
        keyword     VARCHAR(255)
        UNIQUE (entry_id, keyword): an entry is tagged with a keyword at most once

    Association rows carry no foreign key: entries removed out of band leave
    orphans behind, and KeywordReconciler.prune_orphaned_keywords() clears them.
"""

from typing import Optional

from sqlalchemy import Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from refman.database import Base


class Entry(Base):
    """
    One bibliographic record in its relational shape.

    Lifecycle:
        1. Created from a submitted wire record (id assigned on flush)
        2. Overwritten (absent head fields nulled) or patched (merged)
        3. Deleted together with its keyword associations
    """

    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    author: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    publisher: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    url: Mapped[Optional[str]] = mapped_column(String(2048), nullable=True)
    details: Mapped[str] = mapped_column(Text, nullable=False, default="{}")

    def to_row(self) -> dict:
        """Plain-dict view handed to the normalizer (no ORM types leak upward)."""
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "publisher": self.publisher,
            "url": self.url,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return f"<Entry(id={self.id}, title={self.title!r})>"


class Keyword(Base):
    """An (entry_id, keyword) association row."""

    __tablename__ = "keywords"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entry_id: Mapped[int] = mapped_column(Integer, nullable=False)
    keyword: Mapped[str] = mapped_column(String(255), nullable=False)

    __table_args__ = (
        UniqueConstraint("entry_id", "keyword", name="uq_keywords_entry_keyword"),
        Index("idx_keywords_entry_id", "entry_id"),
        Index("idx_keywords_keyword", "keyword"),
    )

    def __repr__(self) -> str:
        return f"<Keyword(entry_id={self.entry_id}, keyword={self.keyword!r})>"
