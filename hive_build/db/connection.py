"""Shared database connection context manager for hive_build.

Every repository opens one short-lived connection per operation through
``get_build_db`` so the plan record is read, rewritten and committed as a
unit.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional

from .config import get_db_path


@contextmanager
def get_build_db(db_path: Optional[str] = None) -> Generator[sqlite3.Connection, None, None]:
    """Context manager for build database connections.

    Args:
        db_path: Optional database path override. Uses get_db_path() if None.

    Yields:
        sqlite3.Connection with row_factory set to sqlite3.Row

    Example:
        with get_build_db() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM build_plans")
    """
    if db_path is None:
        db_path = str(get_db_path())

    conn = None
    try:
        conn = sqlite3.connect(str(db_path), timeout=10)
        conn.row_factory = sqlite3.Row
        yield conn
    finally:
        if conn:
            conn.close()
