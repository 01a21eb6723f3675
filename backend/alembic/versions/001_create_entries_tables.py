"""Create entries and keywords tables

Revision ID: 001
Revises: None
Create Date: 2024-01-15 00:00:00.000000+00:00

What:  The relational backend: `entries` (head fields + JSON details blob)
       and `keywords` (one row per entry/keyword association).
How:   Portable column types only, so the same revision runs on SQLite and
       PostgreSQL.

Rollback: downgrade() drops both tables (destructive, all data lost).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "entries",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("author", sa.String(255), nullable=True, comment="Authors joined with ','"),
        sa.Column("publisher", sa.String(255), nullable=True),
        sa.Column("url", sa.String(2048), nullable=True),
        sa.Column(
            "details",
            sa.Text(),
            nullable=False,
            server_default=sa.text("'{}'"),
            comment="JSON object holding every non-head field",
        ),
        sa.PrimaryKeyConstraint("id"),
    )

    # No foreign key to entries: orphaned rows are cleaned by the prune operation
    op.create_table(
        "keywords",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("entry_id", sa.Integer(), nullable=False),
        sa.Column("keyword", sa.String(255), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("entry_id", "keyword", name="uq_keywords_entry_keyword"),
    )
    op.create_index("idx_keywords_entry_id", "keywords", ["entry_id"])
    op.create_index("idx_keywords_keyword", "keywords", ["keyword"])


def downgrade() -> None:
    op.drop_index("idx_keywords_keyword", table_name="keywords")
    op.drop_index("idx_keywords_entry_id", table_name="keywords")
    op.drop_table("keywords")
    op.drop_table("entries")
