"""Hive build CLI."""

import json
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from hive_build.errors import BuildEngineError

console = Console()

CLI_ACTOR = "human:cli"

STATUS_STYLES = {
    "completed": "green",
    "in_progress": "cyan",
    "paused": "yellow",
    "failed": "red",
    "rolled_back": "magenta",
    "pending": "dim",
    "planning": "blue",
}


def _engine():
    from .config import EngineConfig
    from .db.migrations import run_migrations
    from .engine import BuildEngine

    config = EngineConfig.from_env()
    run_migrations(config.db_path)
    return BuildEngine(config)


def _fail(message: str):
    console.print(f"[red]Failed: {message}[/red]")
    sys.exit(1)


def _styled(status: str) -> str:
    style = STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


def _read_json(path: str):
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        _fail(f"{path} is not valid JSON: {e}")


@click.group()
def main():
    """Hive Build - checkpointed build plans for coding agents."""
    pass


@main.command()
def version():
    """Show version."""
    from . import __version__
    console.print(f"hive-build v{__version__}")


@main.command()
def init():
    """Initialize the database with build engine tables."""
    from .db.config import get_db_path
    from .db.migrations import run_migrations

    db_path = get_db_path()
    console.print(f"[blue]Initializing database at {db_path}[/blue]")

    run_migrations(db_path)

    console.print("[green]Database initialized successfully![/green]")


@main.group()
def project():
    """Manage projects and their architecture."""
    pass


@project.command("add")
@click.argument("slug")
@click.option("--name", "-n", help="Project name (defaults to the slug)")
@click.option("--description", "-d", default="", help="Project description")
@click.option(
    "--components", "-c", "components_file",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file with a component list (or an object with a 'components' key)",
)
def project_add(slug: str, name: str, description: str, components_file: str):
    """Register a project, or replace the components of an existing one."""
    from .mcp_server import register_project_tool
    from .config import EngineConfig

    components = []
    if components_file:
        data = _read_json(components_file)
        components = data.get("components", []) if isinstance(data, dict) else data

    result = register_project_tool(
        db_path=str(EngineConfig.from_env().db_path),
        slug=slug,
        name=name or slug,
        description=description,
        components=components,
    )
    if not result["success"]:
        _fail(result["error"])
    console.print(f"[green]{result['message']}[/green]")


@project.command("list")
def project_list():
    """List registered projects."""
    engine = _engine()
    projects = engine.projects.list_all()

    if not projects:
        console.print("[yellow]No projects registered[/yellow]")
        return

    table = Table()
    table.add_column("Slug", style="cyan")
    table.add_column("Name")
    table.add_column("Components", justify="right")
    table.add_column("Created", style="dim")

    for p in projects:
        table.add_row(
            p["slug"],
            p["name"],
            str(len(p["architecture"].get("components", []))),
            p["created"][:19],
        )

    console.print(table)


@main.command()
@click.argument("slug")
@click.option("--description", "-d", default="", help="What this build delivers")
def plan(slug: str, description: str):
    """Generate a phased build plan for a project."""
    try:
        result = _engine().create_plan(slug, description, actor=CLI_ACTOR)
    except BuildEngineError as e:
        _fail(str(e))

    console.print(f"[green]{result['message']}[/green]")
    console.print(f"  Session: [dim]{result['session_id']}[/dim]\n")

    for phase in result["phases"]:
        console.print(f"[bold]{phase['name']}[/bold] - {phase['description']}")
        for task in phase["tasks"]:
            deps = f" [dim](after {', '.join(task['depends_on'])})[/dim]" if task["depends_on"] else ""
            console.print(f"  {task['id']}: {task['name']}{deps}")

    for warning in result["warnings"]:
        console.print(f"[yellow]Warning: {warning}[/yellow]")


@main.command("next")
@click.argument("slug")
@click.option("--task-id", "-t", help="Task being reported")
@click.option("--outcome", "-o", type=click.Choice(["completed", "failed"]), help="Outcome of the reported task")
@click.option("--error", "-e", help="Failure description")
@click.option(
    "--files", "files_file",
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file listing changed files [{path, action, previous_content}]",
)
@click.option("--project-path", "-p", type=click.Path(file_okay=False), help="Project root for rollback snapshots")
@click.option("--dry-run", is_flag=True, help="Preview without saving anything")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def next_step(slug, task_id, outcome, error, files_file, project_path, dry_run, as_json):
    """Report the last task (optional) and show the next one."""
    file_changes = _read_json(files_file) if files_file else None

    try:
        result = _engine().get_next_step(
            slug,
            task_id=task_id,
            outcome=outcome,
            error=error,
            file_changes=file_changes,
            project_path=project_path,
            dry_run=dry_run,
            actor=CLI_ACTOR,
        )
    except BuildEngineError as e:
        _fail(str(e))

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    if dry_run:
        console.print("[dim](dry run - nothing saved)[/dim]")

    kind = result["type"]
    if kind == "task":
        task = result["task"]
        label = "Continue" if result["resumed"] else "Next"
        console.print(f"\n[bold]{label}: {task['id']} - {task['name']}[/bold] ({result['phase']['name']})")
        console.print(f"  {task['description']}")
        if task["expected_files"]:
            console.print(f"  Files: {', '.join(task['expected_files'])}")
        if result.get("rollback_version"):
            console.print(f"  Rollback point: [dim]{result['rollback_version']}[/dim]")
    elif kind == "checkpoint":
        console.print(f"[yellow]{result['message']}[/yellow]")
        console.print(f"  {result['action']}")
        console.print(f"  Session: [dim]{result['session_id']}[/dim]")
    elif kind == "paused":
        console.print(f"[yellow]Paused: {result['message']}[/yellow]")
        console.print(f"  {result['action']}")
    elif kind == "complete":
        console.print(f"[green]{result['message']}[/green]")
    elif kind == "conflict":
        console.print(f"[yellow]{result['message']}[/yellow]")
        console.print(f"  {result['action']}")
    else:
        console.print(f"[red]{result['message']}[/red]")
        for t in result["failed_tasks"]:
            console.print(f"  [red]failed[/red] {t['id']}: {t['error'] or 'no error given'}")
        for t in result["rolled_back_tasks"]:
            console.print(f"  [magenta]rolled back[/magenta] {t['id']}: {t['name']}")
        for t in result["blocked_tasks"]:
            console.print(f"  [dim]blocked[/dim] {t['id']} by {', '.join(t['blocked_by'])}")


def _print_summary(result: dict):
    console.print(f"\n[bold]Build Status: {result['project']}[/bold]")
    console.print("-" * 35)
    console.print(f"  Status:   {_styled(result['status'])}")
    console.print(f"  Progress: {result['progress']}")
    console.print(f"  Phase:    {result['current_phase']}")
    console.print(f"  Risk:     {result['risk_level']}")
    console.print(f"  Session:  [dim]{result['session_id']}[/dim]")
    console.print("-" * 35)

    table = Table()
    table.add_column("Phase")
    table.add_column("Status")
    table.add_column("Tasks", justify="right")
    for p in result["phases"]:
        table.add_row(p["name"], _styled(p["status"]), f"{p['tasks_completed']}/{p['tasks_total']}")
    console.print(table)

    if result["failed_tasks"]:
        console.print("\n[red]Failed tasks:[/red]")
        for t in result["failed_tasks"]:
            console.print(f"  {t['id']}: {t['name']} - {t['error'] or 'no error given'}")

    for warning in result["warnings"]:
        console.print(f"[yellow]Warning: {warning}[/yellow]")

    console.print(f"\n{result['instructions']}")


@main.command()
@click.argument("slug")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def status(slug: str, as_json: bool):
    """Show the build status of a project."""
    try:
        result = _engine().get_plan_status(slug)
    except BuildEngineError as e:
        _fail(str(e))

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return
    _print_summary(result)


@main.command()
@click.argument("slug")
@click.option("--approve", "decision", flag_value="approve", help="Approve the checkpoint")
@click.option("--reject", "decision", flag_value="reject", help="Reject the checkpoint")
@click.option("--reason", "-r", help="Reason for rejection")
def review(slug: str, decision: str, reason: str):
    """Review a project's checkpoint, optionally approving or rejecting it."""
    try:
        result = _engine().review_checkpoint(
            slug, action=decision or "review", reason=reason, actor=CLI_ACTOR
        )
    except BuildEngineError as e:
        _fail(str(e))

    if decision:
        console.print(f"[green]{result['message']}[/green]")
        return

    _print_summary(result)
    if result["file_changes"]:
        console.print("\n[bold]File changes:[/bold]")
        for fc in result["file_changes"]:
            console.print(f"  {fc['task']}: {fc['action']} {fc['path']}")


@main.command()
@click.argument("session_id")
def approve(session_id: str):
    """Approve the checkpoint of a session and continue."""
    try:
        result = _engine().approve(session_id, actor=CLI_ACTOR)
    except BuildEngineError as e:
        _fail(str(e))

    console.print(f"[green]{result['message']}[/green]")
    if result["next_phase"]:
        console.print(f"  Next: {result['next_phase']['name']} - {result['next_phase']['description']}")


@main.command()
@click.argument("session_id")
@click.option("--reason", "-r", required=True, help="Reason for rejection")
def reject(session_id: str, reason: str):
    """Reject a session's checkpoint, reverting its last completed task."""
    try:
        result = _engine().reject(session_id, reason=reason, actor=CLI_ACTOR)
    except BuildEngineError as e:
        _fail(str(e))

    console.print(f"[yellow]{result['message']}[/yellow]")
    console.print(f"  Reverted: {result['reverted_task']['id']} - {result['reverted_task']['name']}")


@main.command()
@click.argument("session_id")
def pause(session_id: str):
    """Pause a running session."""
    try:
        result = _engine().pause(session_id, actor=CLI_ACTOR)
    except BuildEngineError as e:
        _fail(str(e))

    console.print(f"[yellow]{result['message']}[/yellow]")


@main.command()
@click.argument("slug")
def resume(slug: str):
    """Resume a project's build in a new session."""
    try:
        result = _engine().resume_build(slug, actor=CLI_ACTOR)
    except BuildEngineError as e:
        _fail(str(e))

    console.print(f"[green]{result['message']}[/green]")
    if "new_session" not in result:
        return

    console.print(f"  Status:   {_styled(result['status'])}")
    console.print(f"  Progress: {result['progress']}")
    console.print(f"  Session:  [dim]{result['new_session']}[/dim]")
    if result["failed_tasks"]:
        console.print(f"  [red]Failed tasks: {len(result['failed_tasks'])}[/red]")
    console.print(f"\n{result['instructions']}")


@main.command()
def sessions():
    """List unfinished build sessions."""
    result = _engine().session_status()

    if not result["sessions"]:
        console.print("[yellow]No active build sessions[/yellow]")
        return

    console.print(
        f"\n[bold]Sessions:[/bold] {result['active_sessions']} active, "
        f"{result['paused_sessions']} paused, {result['awaiting_approval']} awaiting approval\n"
    )

    table = Table()
    table.add_column("Project", style="cyan")
    table.add_column("Session", style="dim")
    table.add_column("Status")
    table.add_column("Progress")
    table.add_column("Risk")
    table.add_column("Pending")

    for s in result["sessions"]:
        table.add_row(
            s["project"],
            s["session_id"][:8] + "...",
            _styled(s["status"]),
            s["progress"],
            s["risk_level"],
            s["pending_action"] or "",
        )

    console.print(table)


@main.command()
@click.argument("slug")
@click.option("--task-id", "-t", help="Task to roll back (defaults to the last finished one)")
@click.option("--project-path", "-p", type=click.Path(file_okay=False), help="Project root to restore files into")
def rollback(slug: str, task_id: str, project_path: str):
    """Roll back the last finished step and restore its files."""
    try:
        result = _engine().rollback_last_step(
            slug, task_id=task_id, project_path=project_path, actor=CLI_ACTOR
        )
    except BuildEngineError as e:
        _fail(str(e))

    console.print(f"[yellow]{result['message']}[/yellow]")
    for path in result["reverted_files"]:
        console.print(f"  [green]restored[/green] {path}")
    for path in result["flagged_for_deletion"]:
        console.print(f"  [yellow]delete manually[/yellow] {path}")
    for err in result["revert_errors"]:
        console.print(f"  [red]{err}[/red]")


@main.command()
@click.argument("slug")
def snapshots(slug: str):
    """List the rollback points recorded for a project's build."""
    try:
        points = _engine().list_rollback_points(slug)
    except BuildEngineError as e:
        _fail(str(e))

    if not points:
        console.print("[yellow]No rollback points recorded[/yellow]")
        return

    table = Table()
    table.add_column("Version", style="dim")
    table.add_column("Time")
    table.add_column("Files", justify="right")

    for point in points:
        table.add_row(point["version"], point["timestamp"][:19], str(len(point["files"])))

    console.print(table)


@main.command()
@click.option("--last", default=50, help="Number of recent entries")
@click.option("--project", "project_slug", help="Filter by project slug")
@click.option("--actor", help="Filter by actor")
@click.option("--action", help="Filter by action type")
@click.option("--days", type=int, help="Only entries from the last N days")
def audit(last: int, project_slug: str, actor: str, action: str, days: int):
    """Query the build audit trail."""
    try:
        entries = _engine().audit_log(
            project_slug=project_slug,
            action=action,
            actor=actor,
            last_days=days,
            limit=last,
        )
    except BuildEngineError as e:
        _fail(str(e))

    if not entries:
        console.print("[yellow]No audit entries found[/yellow]")
        return

    console.print(f"\n[bold]Audit Trail ({len(entries)} entries)[/bold]\n")

    table = Table()
    table.add_column("Time", style="dim")
    table.add_column("Action")
    table.add_column("Actor")
    table.add_column("Task")
    table.add_column("Status")

    for entry in entries:
        after = entry.get("after_state") or {}
        table.add_row(
            entry["performed_at"][:19] if entry.get("performed_at") else "?",
            entry["action"],
            entry["actor"],
            entry.get("task_id") or "",
            after.get("status", ""),
        )

    console.print(table)


if __name__ == "__main__":
    main()
