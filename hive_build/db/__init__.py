"""Persistence for projects, build plans and the audit trail."""

from hive_build.db.config import get_db_path
from hive_build.db.migrations import run_migrations
from hive_build.db.plans import BuildPlanRepository
from hive_build.db.projects import ProjectRepository

__all__ = ["get_db_path", "run_migrations", "BuildPlanRepository", "ProjectRepository"]
