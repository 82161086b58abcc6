"""Build engine: orchestrates planning, execution, checkpoints and rollback."""

from hive_build.engine.engine import BuildEngine
from hive_build.engine.logging import BuildLogger

__all__ = ["BuildEngine", "BuildLogger"]
