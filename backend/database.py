import sqlite3
import logging
import uuid
from datetime import datetime
from typing import Any, Optional
from contextlib import contextmanager

import config
from errors import DuplicateDispatchError
from models import Dispatch, Task, TemplateNote

logger = logging.getLogger(__name__)

DATABASE_PATH = config.DATABASE_PATH

# Columns update_dispatch / update_task_db are allowed to touch
DISPATCH_FIELDS = {"summary", "finalized"}
TASK_FIELDS = {"title", "description", "status", "priority", "due_date"}


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH, timeout=30.0)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )


def _now() -> str:
    return datetime.now().isoformat()


def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    return Task(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        description=row["description"],
        status=row["status"],
        priority=row["priority"],
        due_date=row["due_date"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        deleted_at=row["deleted_at"],
    )


def _row_to_dispatch(row) -> Dispatch:
    return Dispatch(
        id=row["id"],
        owner_id=row["owner_id"],
        date=row["date"],
        summary=row["summary"],
        finalized=bool(row["finalized"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _row_to_note(row) -> TemplateNote:
    return TemplateNote(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        content=row["content"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


# Dispatch operations

def find_dispatch(owner_id: str, date: str) -> Optional[Dispatch]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM dispatch WHERE owner_id = ? AND date = ?",
            (owner_id, date)
        ).fetchone()
        return _row_to_dispatch(row) if row else None


def get_dispatch(dispatch_id: str) -> Optional[Dispatch]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM dispatch WHERE id = ?", (dispatch_id,)).fetchone()
        return _row_to_dispatch(row) if row else None


def create_dispatch(owner_id: str, date: str) -> Dispatch:
    """
    Insert a new open dispatch.
    Raises DuplicateDispatchError when the (owner_id, date) unique index rejects it.
    """
    dispatch_id = str(uuid.uuid4())
    now = _now()
    with get_db() as conn:
        try:
            conn.execute(
                """INSERT INTO dispatch (id, owner_id, date, summary, finalized, created_at, updated_at)
                   VALUES (?, ?, ?, NULL, 0, ?, ?)""",
                (dispatch_id, owner_id, date, now, now)
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            raise DuplicateDispatchError(owner_id, date) from e

    return Dispatch(
        id=dispatch_id,
        owner_id=owner_id,
        date=date,
        summary=None,
        finalized=False,
        created_at=now,
        updated_at=now,
    )


def update_dispatch(
    dispatch_id: str,
    fields: dict[str, Any],
    expected_finalized: Optional[bool] = None
) -> Optional[Dispatch]:
    """
    Update dispatch columns and stamp updated_at.
    With expected_finalized, the UPDATE is conditional on the current flag,
    so concurrent finalize/unfinalize calls can't both win.
    Returns None if no row matched.
    """
    changes = {k: v for k, v in fields.items() if k in DISPATCH_FIELDS}
    changes["updated_at"] = _now()
    if "finalized" in changes:
        changes["finalized"] = int(bool(changes["finalized"]))

    set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
    sql = f"UPDATE dispatch SET {set_clause} WHERE id = ?"
    values = list(changes.values()) + [dispatch_id]
    if expected_finalized is not None:
        sql += " AND finalized = ?"
        values.append(int(expected_finalized))

    with get_db() as conn:
        cursor = conn.execute(sql, values)
        conn.commit()
        if cursor.rowcount != 1:
            return None
        row = conn.execute("SELECT * FROM dispatch WHERE id = ?", (dispatch_id,)).fetchone()
        return _row_to_dispatch(row)


def list_dispatches_db(owner_id: str, date: Optional[str] = None) -> list[Dispatch]:
    query = "SELECT * FROM dispatch WHERE owner_id = ?"
    params: list[Any] = [owner_id]
    if date:
        query += " AND date = ?"
        params.append(date)
    query += " ORDER BY date"
    with get_db() as conn:
        return [_row_to_dispatch(row) for row in conn.execute(query, params).fetchall()]


def list_dispatches_between(owner_id: str, start: str, end: str) -> list[Dispatch]:
    with get_db() as conn:
        rows = conn.execute(
            "SELECT * FROM dispatch WHERE owner_id = ? AND date >= ? AND date <= ? ORDER BY date",
            (owner_id, start, end)
        ).fetchall()
        return [_row_to_dispatch(row) for row in rows]


# Dispatch-task links

def link_exists(dispatch_id: str, task_id: str) -> bool:
    with get_db() as conn:
        row = conn.execute(
            "SELECT 1 FROM dispatch_task WHERE dispatch_id = ? AND task_id = ?",
            (dispatch_id, task_id)
        ).fetchone()
        return row is not None


def create_link(dispatch_id: str, task_id: str) -> bool:
    """Link a task to a dispatch. Returns False if the link already existed."""
    with get_db() as conn:
        cursor = conn.execute(
            "INSERT OR IGNORE INTO dispatch_task (dispatch_id, task_id) VALUES (?, ?)",
            (dispatch_id, task_id)
        )
        conn.commit()
        return cursor.rowcount > 0


def delete_link(dispatch_id: str, task_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute(
            "DELETE FROM dispatch_task WHERE dispatch_id = ? AND task_id = ?",
            (dispatch_id, task_id)
        )
        conn.commit()
        return cursor.rowcount > 0


def count_links(dispatch_ids: list[str]) -> dict[str, int]:
    """Number of non-deleted linked tasks per dispatch id."""
    if not dispatch_ids:
        return {}
    placeholders = ",".join("?" for _ in dispatch_ids)
    with get_db() as conn:
        rows = conn.execute(
            f"""SELECT dt.dispatch_id, COUNT(*) AS count
                FROM dispatch_task dt
                JOIN task t ON t.id = dt.task_id
                WHERE dt.dispatch_id IN ({placeholders}) AND t.deleted_at IS NULL
                GROUP BY dt.dispatch_id""",
            dispatch_ids
        ).fetchall()
        return {row["dispatch_id"]: row["count"] for row in rows}


# Task operations

def create_task(
    owner_id: str,
    title: str,
    due_date: Optional[str] = None,
    status: str = "open",
    priority: str = "medium",
    description: Optional[str] = None
) -> Task:
    task_id = str(uuid.uuid4())
    now = _now()
    with get_db() as conn:
        conn.execute(
            """INSERT INTO task
               (id, owner_id, title, description, status, priority, due_date, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (task_id, owner_id, title, description, status, priority, due_date, now, now)
        )
        conn.commit()

    return Task(
        id=task_id,
        owner_id=owner_id,
        title=title,
        description=description,
        status=status,
        priority=priority,
        due_date=due_date,
        created_at=now,
        updated_at=now,
    )


def get_task(task_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute("SELECT * FROM task WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(row) if row else None


def find_tasks_linked_to_dispatch(dispatch_id: str) -> list[Task]:
    with get_db() as conn:
        rows = conn.execute(
            """SELECT t.* FROM dispatch_task dt
               JOIN task t ON t.id = dt.task_id
               WHERE dt.dispatch_id = ? AND t.deleted_at IS NULL
               ORDER BY t.created_at, t.rowid""",
            (dispatch_id,)
        ).fetchall()
        return [_row_to_task(row) for row in rows]


def get_all_tasks(owner_id: str) -> list[Task]:
    with get_db() as conn:
        rows = conn.execute(
            """SELECT * FROM task
               WHERE owner_id = ? AND deleted_at IS NULL
               ORDER BY
                   CASE status
                       WHEN 'in_progress' THEN 1
                       WHEN 'open' THEN 2
                       ELSE 3
                   END,
                   due_date IS NULL,
                   due_date,
                   created_at,
                   rowid""",
            (owner_id,)
        ).fetchall()
        return [_row_to_task(row) for row in rows]


def update_task_db(task_id: str, **updates) -> Optional[Task]:
    """
    Update a task with any fields provided.
    Only updates fields that differ from current values.
    Returns None for missing or soft-deleted tasks.
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM task WHERE id = ? AND deleted_at IS NULL", (task_id,)
        ).fetchone()
        if not row:
            return None

        changes = {
            field: value for field, value in updates.items()
            if field in TASK_FIELDS and row[field] != value
        }

        if changes:
            changes["updated_at"] = _now()
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [task_id]
            conn.execute(f"UPDATE task SET {set_clause} WHERE id = ?", values)
            conn.commit()

        updated_row = conn.execute("SELECT * FROM task WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(updated_row)


def delete_task_db(task_id: str) -> bool:
    """Soft-delete a task. Its dispatch links stay but are ignored on read."""
    now = _now()
    with get_db() as conn:
        cursor = conn.execute(
            "UPDATE task SET deleted_at = ?, updated_at = ? WHERE id = ? AND deleted_at IS NULL",
            (now, now, task_id)
        )
        conn.commit()
        return cursor.rowcount > 0


# Template note

def find_template_note(owner_id: str, title: str) -> Optional[TemplateNote]:
    with get_db() as conn:
        row = conn.execute(
            """SELECT * FROM note
               WHERE owner_id = ? AND title = ? AND deleted_at IS NULL
               ORDER BY created_at LIMIT 1""",
            (owner_id, title)
        ).fetchone()
        return _row_to_note(row) if row else None


def upsert_template_note(owner_id: str, title: str, content: str) -> TemplateNote:
    """Create the owner's template note, or replace its content."""
    existing = find_template_note(owner_id, title)
    now = _now()
    with get_db() as conn:
        if existing:
            conn.execute(
                "UPDATE note SET content = ?, updated_at = ? WHERE id = ?",
                (content, now, existing.id)
            )
            note_id = existing.id
        else:
            note_id = str(uuid.uuid4())
            conn.execute(
                """INSERT INTO note (id, owner_id, title, content, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (note_id, owner_id, title, content, now, now)
            )
        conn.commit()
        row = conn.execute("SELECT * FROM note WHERE id = ?", (note_id,)).fetchone()
        logger.info("Template note saved owner=%s note=%s", owner_id, note_id)
        return _row_to_note(row)
