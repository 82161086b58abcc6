#!/usr/bin/env python3
"""
MCP Server wrapper for the Hive build engine.

Exposes build planning, step execution, checkpoint review, session control
and rollback tools to coding agents via MCP.
"""
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from fastmcp import FastMCP

from hive_build.mcp_server import (
    register_project_tool,
    plan_build_tool,
    execute_step_tool,
    review_checkpoint_tool,
    session_control_tool,
    resume_build_tool,
    rollback_step_tool,
    list_rollback_points_tool,
    get_build_status,
    get_build_audit_log,
)

# Create MCP server
mcp = FastMCP("hive-build")


@mcp.tool()
def hive_register_project(
    slug: str,
    name: str = "",
    description: str = "",
    components: list[dict] = None,
) -> dict:
    """Register a project and its components (name, dependencies, files, type, description)."""
    return register_project_tool(slug=slug, name=name, description=description, components=components)


@mcp.tool()
def hive_plan_build(project_slug: str, description: str, actor: str = "mcp:agent") -> dict:
    """Generate a phased build plan from the project's architecture. Each phase ends in a checkpoint."""
    return plan_build_tool(project_slug=project_slug, description=description, actor=actor)


@mcp.tool()
def hive_execute_step(
    project_slug: str,
    task_id: str = None,
    outcome: str = None,
    error: str = None,
    files_changed: list[dict] = None,
    project_path: str = None,
    dry_run: bool = False,
    actor: str = "mcp:agent",
) -> dict:
    """
    Report the previous task (task_id + outcome "completed"/"failed") and get the next one.
    Pass project_path to snapshot the task's files before it starts.
    """
    return execute_step_tool(
        project_slug=project_slug,
        task_id=task_id,
        outcome=outcome,
        error=error,
        files_changed=files_changed,
        project_path=project_path,
        dry_run=dry_run,
        actor=actor,
    )


@mcp.tool()
def hive_review_checkpoint(
    project_slug: str,
    action: str = "review",
    reason: str = None,
    actor: str = "mcp:agent",
) -> dict:
    """Review a checkpoint, or approve/reject it. Reject reverts the last completed task."""
    return review_checkpoint_tool(project_slug=project_slug, action=action, reason=reason, actor=actor)


@mcp.tool()
def hive_autonomy_status(
    action: str = "status",
    session_id: str = None,
    reason: str = None,
    actor: str = "mcp:agent",
) -> dict:
    """Session overview, or approve/reject/pause/resume a session by session_id."""
    return session_control_tool(action=action, session_id=session_id, reason=reason, actor=actor)


@mcp.tool()
def hive_resume_build(project_slug: str, actor: str = "mcp:agent") -> dict:
    """Resume a build in a new session: progress, failed tasks and what to do next."""
    return resume_build_tool(project_slug=project_slug, actor=actor)


@mcp.tool()
def hive_rollback_step(
    project_slug: str,
    task_id: str = None,
    project_path: str = None,
    actor: str = "mcp:agent",
) -> dict:
    """Roll back the last finished step and restore its files. Created files are only flagged."""
    return rollback_step_tool(
        project_slug=project_slug, task_id=task_id, project_path=project_path, actor=actor
    )


@mcp.tool()
def hive_rollback_points(project_slug: str) -> list | dict:
    """List the rollback points (file snapshots) of a project's current build plan."""
    return list_rollback_points_tool(project_slug=project_slug)


@mcp.tool()
def hive_build_status(project_slug: str) -> dict:
    """Get build progress, phase statuses, failed tasks and file changes."""
    return get_build_status(project_slug=project_slug)


@mcp.tool()
def hive_build_audit(
    project_slug: str = None,
    actor: str = None,
    action: str = None,
    last_days: int = 7,
    limit: int = 100,
) -> list | dict:
    """Query the build audit trail. Filter by project, actor, action, or time range."""
    return get_build_audit_log(
        project_slug=project_slug,
        actor=actor,
        action=action,
        last_days=last_days,
        limit=limit,
    )


if __name__ == "__main__":
    mcp.run()
