"""Project repository: the architecture store the build planner reads from."""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from hive_build.db.connection import get_build_db
from hive_build.errors import NotFoundError
from hive_build.plan.models import Component


def _row_to_project(row) -> dict:
    project = dict(row)
    project["architecture"] = json.loads(project.get("architecture") or "{}")
    return project


class ProjectRepository:
    """Repository for project records."""

    def __init__(self, db_path: Path):
        self.db_path = str(db_path)

    def create(
        self,
        slug: str,
        name: str,
        description: str = "",
        components: Optional[list[Component]] = None,
    ) -> str:
        """Create a project with an optional component list. Returns the project id."""
        project_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        architecture = {
            "project": name,
            "description": description,
            "components": [c.to_dict() for c in components or []],
        }

        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO projects (id, slug, name, description, architecture, created, updated)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (project_id, slug, name, description, json.dumps(architecture), now, now)
            )
            conn.commit()

        return project_id

    def get(self, project_id: str) -> Optional[dict]:
        """Get a project by ID."""
        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM projects WHERE id = ?", (project_id,))
            row = cursor.fetchone()
            return _row_to_project(row) if row else None

    def get_by_slug(self, slug: str) -> Optional[dict]:
        """Get a project by slug."""
        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM projects WHERE slug = ?", (slug,))
            row = cursor.fetchone()
            return _row_to_project(row) if row else None

    def require(self, slug: str) -> dict:
        """Get a project by slug or raise NotFoundError."""
        project = self.get_by_slug(slug)
        if not project:
            raise NotFoundError(f"Project not found: {slug}", kind="project", ref=slug)
        return project

    def get_architecture(self, slug: str) -> list[Component]:
        """Return the project's component graph."""
        project = self.require(slug)
        return [
            Component.from_dict(c)
            for c in project["architecture"].get("components", [])
        ]

    def set_components(self, slug: str, components: list[Component]) -> None:
        """Replace the component list of a project's architecture."""
        project = self.require(slug)
        architecture = project["architecture"]
        architecture["components"] = [c.to_dict() for c in components]

        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                "UPDATE projects SET architecture = ?, updated = ? WHERE id = ?",
                (json.dumps(architecture), datetime.now(timezone.utc).isoformat(), project["id"])
            )
            conn.commit()

    def list_all(self) -> list[dict]:
        """List all projects, newest first."""
        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM projects ORDER BY created DESC")
            return [_row_to_project(row) for row in cursor.fetchall()]
