"""Configuration for the build engine."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from hive_build.db.config import HIVE_ROOT, get_db_path

DEFAULT_SNAPSHOTS_DIR = HIVE_ROOT / "meta" / "versions"


def get_snapshots_dir() -> Path:
    env_path = os.environ.get("HIVE_BUILD_SNAPSHOTS")
    return Path(env_path) if env_path else DEFAULT_SNAPSHOTS_DIR


@dataclass
class EngineConfig:
    """Configuration for the build engine."""

    # Paths
    db_path: Path = field(default_factory=get_db_path)
    snapshots_dir: Path = field(default_factory=get_snapshots_dir)

    # Recorded on audit entries when a caller does not name itself
    default_actor: str = "agent:unknown"

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create configuration from environment variables."""
        return cls(
            db_path=get_db_path(),
            snapshots_dir=get_snapshots_dir(),
            default_actor=os.environ.get("HIVE_BUILD_ACTOR", "agent:unknown"),
        )
