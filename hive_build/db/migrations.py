"""Database migrations for build engine tables."""

import sqlite3
from pathlib import Path


MIGRATIONS = [
    # Projects and their architecture (component graph)
    """
    CREATE TABLE IF NOT EXISTS projects (
        id TEXT PRIMARY KEY,
        slug TEXT UNIQUE NOT NULL,
        name TEXT NOT NULL,
        description TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'planning',
        architecture JSON NOT NULL DEFAULT '{}',
        created TEXT NOT NULL,
        updated TEXT NOT NULL
    )
    """,

    # Build plans - one record per plan, phases stored as a JSON array
    """
    CREATE TABLE IF NOT EXISTS build_plans (
        id TEXT PRIMARY KEY,
        project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
        description TEXT NOT NULL DEFAULT '',
        status TEXT NOT NULL DEFAULT 'planning',
        current_phase INTEGER NOT NULL DEFAULT 0,
        phases JSON NOT NULL DEFAULT '[]',
        session_id TEXT NOT NULL,
        warnings JSON,
        created TEXT NOT NULL,
        updated TEXT NOT NULL
    )
    """,

    # Audit trail of status-changing actions
    """
    CREATE TABLE IF NOT EXISTS build_audit (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        plan_id TEXT NOT NULL,
        project_id TEXT,
        action TEXT NOT NULL,
        actor TEXT NOT NULL,
        reason TEXT,
        task_id TEXT,
        before_state JSON,
        after_state JSON,
        session_id TEXT,
        performed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_build_plans_project ON build_plans(project_id, created)",
    "CREATE INDEX IF NOT EXISTS idx_build_plans_session ON build_plans(session_id)",
    "CREATE INDEX IF NOT EXISTS idx_build_audit_plan ON build_audit(plan_id)",
    "CREATE INDEX IF NOT EXISTS idx_build_audit_action ON build_audit(action, performed_at)",
    "CREATE INDEX IF NOT EXISTS idx_build_audit_session ON build_audit(session_id)",
]


def run_migrations(db_path: Path) -> None:
    """Run all migrations to set up build engine tables."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(db_path, timeout=10)
    try:
        cursor = conn.cursor()

        # Enable WAL mode for concurrent read/write access
        cursor.execute("PRAGMA journal_mode = WAL")

        for migration in MIGRATIONS:
            cursor.execute(migration)

        for index in INDEXES:
            cursor.execute(index)

        conn.commit()
    finally:
        conn.close()
