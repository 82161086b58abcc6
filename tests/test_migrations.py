"""Tests for database migrations."""

import pytest
import sqlite3
import tempfile
from pathlib import Path


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    db_path.unlink(missing_ok=True)


def _tables(db_path):
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute("SELECT name FROM sqlite_master WHERE type='table'")
        return {row[0] for row in cursor.fetchall()}
    finally:
        conn.close()


def test_run_migrations_creates_tables(temp_db):
    from hive_build.db.migrations import run_migrations

    run_migrations(temp_db)

    assert {"projects", "build_plans", "build_audit"} <= _tables(temp_db)


def test_run_migrations_is_idempotent(temp_db):
    from hive_build.db.migrations import run_migrations

    run_migrations(temp_db)
    run_migrations(temp_db)

    assert "build_plans" in _tables(temp_db)


def test_run_migrations_creates_parent_directory(tmp_path):
    from hive_build.db.migrations import run_migrations

    db_path = tmp_path / "nested" / "hive.db"
    run_migrations(db_path)

    assert db_path.exists()


def test_build_plans_columns(temp_db):
    from hive_build.db.migrations import run_migrations

    run_migrations(temp_db)

    conn = sqlite3.connect(temp_db)
    columns = {row[1] for row in conn.execute("PRAGMA table_info(build_plans)")}
    conn.close()
    assert {"id", "project_id", "status", "current_phase", "phases", "session_id", "warnings", "updated"} <= columns
