"""Initial schema - tasks, template notes, dispatches and dispatch links

Revision ID: 001
Revises: None
Create Date: 2025-06-02

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS task (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            status TEXT NOT NULL DEFAULT 'open'
                CHECK (status IN ('open', 'in_progress', 'done')),
            priority TEXT NOT NULL DEFAULT 'medium'
                CHECK (priority IN ('low', 'medium', 'high')),
            due_date TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))
    conn.execute(text("CREATE INDEX IF NOT EXISTS task_owner_idx ON task (owner_id)"))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS note (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            title TEXT NOT NULL,
            content TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))
    conn.execute(text("CREATE INDEX IF NOT EXISTS note_owner_title_idx ON note (owner_id, title)"))

    # One dispatch per owner per calendar day
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS dispatch (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            date TEXT NOT NULL,
            summary TEXT,
            finalized INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE (owner_id, date)
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS dispatch_task (
            dispatch_id TEXT NOT NULL REFERENCES dispatch(id) ON DELETE CASCADE,
            task_id TEXT NOT NULL REFERENCES task(id) ON DELETE CASCADE,
            PRIMARY KEY (dispatch_id, task_id)
        )
    """))
    conn.execute(text("CREATE INDEX IF NOT EXISTS dispatch_task_task_idx ON dispatch_task (task_id)"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP TABLE IF EXISTS dispatch_task"))
    conn.execute(text("DROP TABLE IF EXISTS dispatch"))
    conn.execute(text("DROP TABLE IF EXISTS note"))
    conn.execute(text("DROP TABLE IF EXISTS task"))
