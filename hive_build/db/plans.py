"""Build plan repository.

One record per plan, overwritten in place on every mutation. A project may
have older plans on record, but only its most recent plan is active:
creating a plan supersedes every earlier one for that project.
"""

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from hive_build.db.connection import get_build_db
from hive_build.errors import ConcurrentUpdateError, NotFoundError
from hive_build.plan.models import BuildPhase, BuildPlan, PlanStatus

_LATEST_FOR_PROJECT = """
    SELECT rowid FROM build_plans AS latest
    WHERE latest.project_id = {alias}.project_id
    ORDER BY latest.created DESC, latest.rowid DESC
    LIMIT 1
"""
_LATEST_PLAN = _LATEST_FOR_PROJECT.format(alias="bp")


def _row_to_plan(row) -> BuildPlan:
    return BuildPlan(
        id=row["id"],
        project_id=row["project_id"],
        description=row["description"],
        status=PlanStatus(row["status"]),
        current_phase=row["current_phase"],
        phases=[BuildPhase.from_dict(p) for p in json.loads(row["phases"] or "[]")],
        session_id=row["session_id"],
        created=row["created"],
        updated=row["updated"],
        warnings=json.loads(row["warnings"] or "[]"),
    )


class BuildPlanRepository:
    """Repository for build plan records."""

    def __init__(self, db_path: Path):
        self.db_path = str(db_path)

    def create(self, plan: BuildPlan) -> BuildPlan:
        """Persist a new plan. Returns a copy carrying its new id and timestamps."""
        plan = plan.copy()
        plan.id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        plan.created = plan.created or now
        plan.updated = plan.updated or now
        plan.session_id = plan.session_id or str(uuid.uuid4())

        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT INTO build_plans
                (id, project_id, description, status, current_phase, phases,
                 session_id, warnings, created, updated)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    plan.id,
                    plan.project_id,
                    plan.description,
                    plan.status.value,
                    plan.current_phase,
                    json.dumps([p.to_dict() for p in plan.phases]),
                    plan.session_id,
                    json.dumps(plan.warnings),
                    plan.created,
                    plan.updated,
                )
            )
            conn.commit()

        return plan

    def get(self, plan_id: str) -> Optional[BuildPlan]:
        """Get a plan by ID."""
        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT * FROM build_plans WHERE id = ?", (plan_id,))
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None

    def get_by_project(self, project_id: str) -> Optional[BuildPlan]:
        """Get the active (most recent) plan of a project."""
        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT * FROM build_plans
                WHERE project_id = ?
                ORDER BY created DESC, rowid DESC
                LIMIT 1
                """,
                (project_id,)
            )
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None

    def get_by_session(self, session_id: str) -> Optional[BuildPlan]:
        """Find the active plan driven by a session.

        Superseded plans are not addressable by session.
        """
        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                f"""
                SELECT * FROM build_plans AS bp
                WHERE bp.session_id = ?
                AND bp.rowid = ({_LATEST_PLAN})
                """,
                (session_id,)
            )
            row = cursor.fetchone()
            return _row_to_plan(row) if row else None

    def list_latest(self, include_completed: bool = True) -> list[BuildPlan]:
        """List the active plan of every project, most recently updated first."""
        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()

            query = f"""
                SELECT * FROM build_plans AS bp
                WHERE bp.rowid = ({_LATEST_PLAN})
            """
            params = []
            if not include_completed:
                query += " AND bp.status != ?"
                params.append(PlanStatus.COMPLETED.value)
            query += " ORDER BY bp.updated DESC"

            cursor.execute(query, params)
            return [_row_to_plan(row) for row in cursor.fetchall()]

    def save(self, plan: BuildPlan, expected_updated: Optional[str] = None) -> BuildPlan:
        """Overwrite a plan record in place.

        ``expected_updated`` is the ``updated`` stamp the plan was loaded
        with; if the stored record has moved on since, nothing is written and
        ConcurrentUpdateError is raised. Returns a copy with the new stamp.
        """
        if not plan.id:
            raise ValueError("Cannot save a plan without an id")

        plan = plan.copy()
        expected = expected_updated if expected_updated is not None else plan.updated
        now = datetime.now(timezone.utc).isoformat()
        plan.updated = now

        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                UPDATE build_plans
                SET status = ?, current_phase = ?, phases = ?, session_id = ?,
                    warnings = ?, updated = ?
                WHERE id = ? AND updated = ?
                """,
                (
                    plan.status.value,
                    plan.current_phase,
                    json.dumps([p.to_dict() for p in plan.phases]),
                    plan.session_id,
                    json.dumps(plan.warnings),
                    plan.updated,
                    plan.id,
                    expected,
                )
            )

            if cursor.rowcount == 0:
                cursor.execute("SELECT updated FROM build_plans WHERE id = ?", (plan.id,))
                row = cursor.fetchone()
                if not row:
                    raise NotFoundError(f"Build plan not found: {plan.id}", kind="plan", ref=plan.id)
                raise ConcurrentUpdateError(
                    f"Build plan {plan.id} was modified concurrently; reload and retry"
                )

            conn.commit()

        return plan
