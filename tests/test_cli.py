"""Tests for the hive-build CLI."""

import json

import pytest
from click.testing import CliRunner


@pytest.fixture(autouse=True)
def engine_logger():
    # Bind the log handler to stderr before CliRunner swaps the streams
    from hive_build.engine.logging import BuildLogger

    BuildLogger()


@pytest.fixture
def components_file(tmp_path):
    path = tmp_path / "components.json"
    path.write_text(json.dumps({
        "components": [
            {"name": "A", "files": ["a.py"]},
            {"name": "B", "dependencies": ["A"], "files": ["b.py"]},
        ]
    }))
    return path


@pytest.fixture
def cli_project(db_path, snapshots_dir, components_file):
    from hive_build.cli import main

    runner = CliRunner()
    result = runner.invoke(main, ["project", "add", "demo", "--components", str(components_file)])
    assert result.exit_code == 0, result.output
    return runner


def test_main_help():
    from hive_build.cli import main

    runner = CliRunner()
    result = runner.invoke(main, ["--help"])

    assert result.exit_code == 0
    assert "Hive Build" in result.output


@pytest.mark.parametrize("command", ["plan", "next", "status", "review", "rollback", "audit", "sessions"])
def test_command_exists(command):
    from hive_build.cli import main

    runner = CliRunner()
    result = runner.invoke(main, [command, "--help"])

    assert result.exit_code == 0


def test_version():
    from hive_build import __version__
    from hive_build.cli import main

    runner = CliRunner()
    result = runner.invoke(main, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_init_creates_database(tmp_path, monkeypatch):
    from hive_build.cli import main

    db = tmp_path / "hive.db"
    monkeypatch.setenv("HIVE_BUILD_DB", str(db))

    result = CliRunner().invoke(main, ["init"])

    assert result.exit_code == 0
    assert db.exists()


def test_project_add_and_list(cli_project):
    from hive_build.cli import main

    result = cli_project.invoke(main, ["project", "list"])

    assert result.exit_code == 0
    assert "demo" in result.output


def test_project_add_rejects_bad_json(db_path, tmp_path):
    from hive_build.cli import main

    bad = tmp_path / "bad.json"
    bad.write_text("{not json")

    result = CliRunner().invoke(main, ["project", "add", "demo", "--components", str(bad)])

    assert result.exit_code == 1
    assert "Failed" in result.output


def test_plan_prints_phases(cli_project):
    from hive_build.cli import main

    result = cli_project.invoke(main, ["plan", "demo", "-d", "first build"])

    assert result.exit_code == 0
    assert "Phase 1" in result.output
    assert "p2t1" in result.output


def test_plan_unknown_project_fails(db_path):
    from hive_build.cli import main

    result = CliRunner().invoke(main, ["plan", "ghost"])

    assert result.exit_code == 1
    assert "Failed" in result.output


def test_next_json_and_report(cli_project):
    from hive_build.cli import main

    cli_project.invoke(main, ["plan", "demo"])

    first = cli_project.invoke(main, ["next", "demo", "--json"])
    assert first.exit_code == 0
    step = json.loads(first.output)
    assert step["type"] == "task"
    assert step["task"]["id"] == "p1t1"

    reported = cli_project.invoke(
        main, ["next", "demo", "--task-id", "p1t1", "--outcome", "completed", "--json"]
    )
    assert json.loads(reported.output)["type"] == "checkpoint"


def test_next_task_without_outcome_fails(cli_project):
    from hive_build.cli import main

    cli_project.invoke(main, ["plan", "demo"])

    result = cli_project.invoke(main, ["next", "demo", "--task-id", "p1t1"])

    assert result.exit_code == 1
    assert "Failed" in result.output


def test_status_json(cli_project):
    from hive_build.cli import main

    cli_project.invoke(main, ["plan", "demo"])

    result = cli_project.invoke(main, ["status", "demo", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.output)
    assert data["project"] == "demo"
    assert data["progress"] == "0/2 tasks (0%)"


def test_review_approve_flow(cli_project):
    from hive_build.cli import main

    cli_project.invoke(main, ["plan", "demo"])
    cli_project.invoke(main, ["next", "demo"])
    cli_project.invoke(main, ["next", "demo", "-t", "p1t1", "-o", "completed"])

    result = cli_project.invoke(main, ["review", "demo", "--approve"])

    assert result.exit_code == 0
    status = json.loads(cli_project.invoke(main, ["status", "demo", "--json"]).output)
    assert status["status"] == "in_progress"


def test_sessions_empty(db_path):
    from hive_build.cli import main

    result = CliRunner().invoke(main, ["sessions"])

    assert result.exit_code == 0
    assert "No active build sessions" in result.output


def test_sessions_lists_paused_build(cli_project):
    from hive_build.cli import main

    cli_project.invoke(main, ["plan", "demo"])
    cli_project.invoke(main, ["next", "demo"])
    cli_project.invoke(main, ["next", "demo", "-t", "p1t1", "-o", "completed"])

    result = cli_project.invoke(main, ["sessions"])

    assert result.exit_code == 0
    assert "demo" in result.output
    assert "1 awaiting approval" in result.output


def test_rollback_without_finished_task_fails(cli_project):
    from hive_build.cli import main

    cli_project.invoke(main, ["plan", "demo"])

    result = cli_project.invoke(main, ["rollback", "demo"])

    assert result.exit_code == 1


def test_audit_lists_actions(cli_project):
    from hive_build.cli import main

    cli_project.invoke(main, ["plan", "demo"])

    result = cli_project.invoke(main, ["audit", "--project", "demo"])

    assert result.exit_code == 0
    assert "Audit Trail (1 entries)" in result.output


def test_snapshots_lists_rollback_points(cli_project, tmp_path):
    from hive_build.cli import main

    project_dir = tmp_path / "project"
    project_dir.mkdir()
    (project_dir / "a.py").write_text("v1\n")
    cli_project.invoke(main, ["plan", "demo"])

    empty = cli_project.invoke(main, ["snapshots", "demo"])
    assert "No rollback points recorded" in empty.output

    cli_project.invoke(main, ["next", "demo", "--project-path", str(project_dir)])
    result = cli_project.invoke(main, ["snapshots", "demo"])

    assert result.exit_code == 0
    assert "No rollback points recorded" not in result.output
