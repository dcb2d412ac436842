"""
Shared pytest fixtures for backend tests.
Each test gets its own SQLite file so module-level connections stay isolated.
"""
import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database

TEST_OWNER = "user-1"
OTHER_OWNER = "user-2"


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript("""
        CREATE TABLE task (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            status TEXT NOT NULL DEFAULT 'open',
            priority TEXT NOT NULL DEFAULT 'medium',
            due_date TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            deleted_at TEXT
        );

        CREATE TABLE note (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            title TEXT NOT NULL,
            content TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            deleted_at TEXT
        );

        CREATE TABLE dispatch (
            id TEXT PRIMARY KEY,
            owner_id TEXT NOT NULL,
            date TEXT NOT NULL,
            summary TEXT,
            finalized INTEGER NOT NULL DEFAULT 0,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL,
            UNIQUE (owner_id, date)
        );

        CREATE TABLE dispatch_task (
            dispatch_id TEXT NOT NULL REFERENCES dispatch(id) ON DELETE CASCADE,
            task_id TEXT NOT NULL REFERENCES task(id) ON DELETE CASCADE,
            PRIMARY KEY (dispatch_id, task_id)
        );
    """)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def manager(test_db):
    """DispatchManager backed by the test database."""
    from dispatches import DispatchManager
    return DispatchManager(database, template_title="TasklistTemplate")


@pytest.fixture
def app_client(test_db, monkeypatch):
    """
    Create a test client for the FastAPI app, acting as TEST_OWNER.
    Mocks init_db to skip alembic migrations.
    """
    from fastapi.testclient import TestClient
    import main

    # Skip alembic in tests - tables already created by test_db fixture
    monkeypatch.setattr(database, "init_db", lambda: None)

    with TestClient(main.app, headers={"X-Owner-Id": TEST_OWNER}) as client:
        yield client
