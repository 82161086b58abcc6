"""Database configuration."""

import os
from pathlib import Path

# Default path to the shared hive database (override with HIVE_BUILD_DB env var)
HIVE_ROOT = Path.home() / ".hive"
DEFAULT_DB_PATH = HIVE_ROOT / "hive.db"


def get_db_path() -> Path:
    """Get the database path, with environment override support."""
    env_path = os.environ.get("HIVE_BUILD_DB")
    if env_path:
        return Path(env_path)
    return DEFAULT_DB_PATH
