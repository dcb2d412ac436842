"""Add deleted_at columns for soft-deleted tasks and notes

Revision ID: 002
Revises: 001
Create Date: 2025-07-14

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    for table in ("task", "note"):
        columns = {row[1] for row in conn.execute(text(f"PRAGMA table_info({table})")).fetchall()}
        if "deleted_at" not in columns:
            conn.execute(text(f"ALTER TABLE {table} ADD COLUMN deleted_at TEXT"))


def downgrade() -> None:
    # SQLite doesn't support DROP COLUMN easily, so we'd need to recreate the table
    # For simplicity, downgrade is a no-op (columns remain but are unused)
    pass
