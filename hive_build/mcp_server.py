"""MCP tool functions for planning and driving builds.

Each tool returns a plain dict. Engine errors are reported as
``{"success": False, "error": ..., "error_type": ...}`` rather than raised so
the calling agent always gets a readable answer.
"""

from pathlib import Path
from typing import Optional

from hive_build.config import EngineConfig
from hive_build.db.migrations import run_migrations
from hive_build.engine import BuildEngine
from hive_build.errors import BuildEngineError
from hive_build.plan.models import Component


def _engine(db_path: Optional[str] = None) -> BuildEngine:
    config = EngineConfig.from_env()
    if db_path:
        config.db_path = Path(db_path)
    run_migrations(config.db_path)
    return BuildEngine(config)


def _error(e: Exception) -> dict:
    return {"success": False, "error": str(e), "error_type": type(e).__name__}


def register_project_tool(
    db_path: Optional[str] = None,
    slug: str = "",
    name: str = "",
    description: str = "",
    components: Optional[list[dict]] = None,
) -> dict:
    """
    Register a project and its component graph, or replace the components
    of an existing project.

    Args:
        slug: Project slug used by every other tool
        name: Human readable project name
        description: What the project is
        components: [{"name", "dependencies", "files", "type", "description"}]
    """
    engine = _engine(db_path)
    repo = engine.projects
    try:
        parsed = [Component.from_dict(c) for c in components or []]
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        return _error(e)

    existing = repo.get_by_slug(slug)
    if existing:
        repo.set_components(slug, parsed)
        return {
            "success": True,
            "message": f"Updated {len(parsed)} components of project {slug}.",
            "project_id": existing["id"],
            "created": False,
        }

    project_id = repo.create(slug, name or slug, description, parsed)
    return {
        "success": True,
        "message": f"Registered project {slug} with {len(parsed)} components.",
        "project_id": project_id,
        "created": True,
    }


def plan_build_tool(
    db_path: Optional[str] = None,
    project_slug: str = "",
    description: str = "",
    actor: Optional[str] = None,
) -> dict:
    """
    Generate a phased build plan from a project's component graph.

    Components are layered by dependency; each layer becomes a phase that
    ends in a checkpoint.
    """
    try:
        return _engine(db_path).create_plan(project_slug, description, actor=actor)
    except BuildEngineError as e:
        return _error(e)


def execute_step_tool(
    db_path: Optional[str] = None,
    project_slug: str = "",
    task_id: Optional[str] = None,
    outcome: Optional[str] = None,
    error: Optional[str] = None,
    files_changed: Optional[list[dict]] = None,
    project_path: Optional[str] = None,
    dry_run: bool = False,
    actor: Optional[str] = None,
) -> dict:
    """
    Report the last task's outcome (optional) and get the next task.

    Args:
        project_slug: Project whose plan to drive
        task_id: Task being reported
        outcome: "completed" or "failed"
        error: Failure description
        files_changed: [{"path", "action", "previous_content"}]
        project_path: Project root; when given a rollback point is captured
            before the next task is handed out
        dry_run: Preview only, nothing is saved
    """
    try:
        return _engine(db_path).get_next_step(
            project_slug,
            task_id=task_id,
            outcome=outcome,
            error=error,
            file_changes=files_changed,
            project_path=project_path,
            dry_run=dry_run,
            actor=actor,
        )
    except BuildEngineError as e:
        return _error(e)


def review_checkpoint_tool(
    db_path: Optional[str] = None,
    project_slug: str = "",
    action: str = "review",
    reason: Optional[str] = None,
    actor: Optional[str] = None,
) -> dict:
    """
    Review, approve, or reject the current checkpoint.

    Args:
        action: "review" (summary), "approve" (continue), "reject" (revert
            the last completed task)
        reason: Why the checkpoint was rejected
    """
    try:
        return _engine(db_path).review_checkpoint(project_slug, action, reason=reason, actor=actor)
    except BuildEngineError as e:
        return _error(e)


def session_control_tool(
    db_path: Optional[str] = None,
    action: str = "status",
    session_id: Optional[str] = None,
    reason: Optional[str] = None,
    actor: Optional[str] = None,
) -> dict:
    """
    Inspect or control build sessions.

    Args:
        action: "status", "approve", "reject", "pause" or "resume"
        session_id: Required for everything except "status"
    """
    try:
        return _engine(db_path).control_session(action, session_id, reason=reason, actor=actor)
    except BuildEngineError as e:
        return _error(e)


def resume_build_tool(
    db_path: Optional[str] = None,
    project_slug: str = "",
    actor: Optional[str] = None,
) -> dict:
    """Resume a build in a new session."""
    try:
        return _engine(db_path).resume_build(project_slug, actor=actor)
    except BuildEngineError as e:
        return _error(e)


def rollback_step_tool(
    db_path: Optional[str] = None,
    project_slug: str = "",
    task_id: Optional[str] = None,
    project_path: Optional[str] = None,
    actor: Optional[str] = None,
) -> dict:
    """
    Roll back the last completed or failed step and restore its files.

    Files the step created are only flagged; they are never deleted.
    """
    try:
        return _engine(db_path).rollback_last_step(
            project_slug, task_id=task_id, project_path=project_path, actor=actor
        )
    except BuildEngineError as e:
        return _error(e)


def list_rollback_points_tool(db_path: Optional[str] = None, project_slug: str = "") -> list[dict] | dict:
    """List the file snapshots recorded for a project's current plan, newest first."""
    try:
        return _engine(db_path).list_rollback_points(project_slug)
    except BuildEngineError as e:
        return _error(e)


def get_build_status(db_path: Optional[str] = None, project_slug: str = "") -> dict:
    """Get progress, phases, and file changes of a project's build plan."""
    try:
        return _engine(db_path).get_plan_status(project_slug)
    except BuildEngineError as e:
        return _error(e)


def get_build_audit_log(
    db_path: Optional[str] = None,
    project_slug: Optional[str] = None,
    actor: Optional[str] = None,
    action: Optional[str] = None,
    last_days: int = 7,
    limit: int = 100,
) -> list[dict] | dict:
    """
    Query the build audit trail.

    Args:
        project_slug: Filter by project
        actor: Filter by actor
        action: Filter by action type
        last_days: Only return entries from last N days
        limit: Maximum entries to return
    """
    try:
        return _engine(db_path).audit_log(
            project_slug=project_slug,
            action=action,
            actor=actor,
            last_days=last_days,
            limit=limit,
        )
    except BuildEngineError as e:
        return _error(e)
