"""Audit trail for tracking every status-changing build action."""

import json
from pathlib import Path
from typing import Optional

from hive_build.db.connection import get_build_db


class AuditTrail:
    """Immutable append-only log of build plan actions."""

    def __init__(self, db_path: Path):
        self.db_path = str(db_path)

    def log(
        self,
        plan_id: str,
        action: str,
        actor: str,
        project_id: str = None,
        reason: str = None,
        task_id: str = None,
        before_state: dict = None,
        after_state: dict = None,
        session_id: str = None,
    ) -> int:
        """Log an audit entry. Returns the entry ID."""
        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()

            cursor.execute("""
                INSERT INTO build_audit
                (plan_id, project_id, action, actor, reason, task_id,
                 before_state, after_state, session_id)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                plan_id,
                project_id,
                action,
                actor,
                reason,
                task_id,
                json.dumps(before_state) if before_state else None,
                json.dumps(after_state) if after_state else None,
                session_id,
            ))

            entry_id = cursor.lastrowid
            conn.commit()
            return entry_id

    def query(
        self,
        plan_id: str = None,
        project_id: str = None,
        actor: str = None,
        action: str = None,
        last_days: Optional[int] = None,
        limit: int = 100,
    ) -> list[dict]:
        """Query audit entries, newest first."""
        with get_build_db(self.db_path) as conn:
            cursor = conn.cursor()

            conditions = []
            params = []

            if plan_id:
                conditions.append("plan_id = ?")
                params.append(plan_id)

            if project_id:
                conditions.append("project_id = ?")
                params.append(project_id)

            if actor:
                conditions.append("actor = ?")
                params.append(actor)

            if action:
                conditions.append("action = ?")
                params.append(action)

            if last_days:
                conditions.append("performed_at > datetime('now', ?)")
                params.append(f"-{last_days} days")

            where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

            cursor.execute(f"""
                SELECT * FROM build_audit
                {where}
                ORDER BY performed_at DESC, id DESC
                LIMIT ?
            """, params + [limit])

            results = []
            for row in cursor.fetchall():
                entry = dict(row)
                for field in ["before_state", "after_state"]:
                    if entry.get(field):
                        entry[field] = json.loads(entry[field])
                results.append(entry)

            return results
