"""Tests for rollback snapshots."""

import json

import pytest


@pytest.fixture
def project_dir(tmp_path):
    root = tmp_path / "project"
    (root / "src").mkdir(parents=True)
    (root / "src" / "app.py").write_text("original app\n")
    (root / "README.md").write_text("original readme\n")
    return root


def test_snapshot_name_flattens_paths():
    from hive_build.rollback.recorder import snapshot_name

    assert snapshot_name("src/pkg/app.py") == "src__pkg__app.py"
    assert snapshot_name("/README.md") == "README.md"


def test_create_writes_snapshots_and_manifest(tmp_path, project_dir):
    from hive_build.plan.models import FileChange
    from hive_build.rollback import RollbackRecorder

    recorder = RollbackRecorder(tmp_path / "versions")
    point = recorder.create("plan-1/p1t1", project_dir, [
        FileChange("src/app.py", "modified"),
        FileChange("src/new.py", "created"),
    ])

    assert point.version.startswith("plan-1/p1t1/")
    assert recorder.has_manifest(point.version)

    point_dir = tmp_path / "versions" / point.version
    assert (point_dir / "src__app.py").read_text() == "original app\n"

    manifest = json.loads((point_dir / "manifest.json").read_text())
    assert manifest["scope"] == "plan-1/p1t1"
    assert [(f["path"], f["action"]) for f in manifest["files"]] == [
        ("src/app.py", "modified"),
        ("src/new.py", "created"),
    ]


def test_restore_rewrites_modified_and_flags_created(tmp_path, project_dir):
    from hive_build.plan.models import FileChange
    from hive_build.rollback import RollbackRecorder

    recorder = RollbackRecorder(tmp_path / "versions")
    point = recorder.create("scope", project_dir, [
        FileChange("src/app.py", "modified"),
        FileChange("README.md", "deleted"),
        FileChange("src/new.py", "created"),
    ])

    (project_dir / "src" / "app.py").write_text("broken\n")
    (project_dir / "README.md").unlink()
    (project_dir / "src" / "new.py").write_text("new file\n")

    report = recorder.restore(point.version)

    assert sorted(report.restored) == ["README.md", "src/app.py"]
    assert report.flagged == ["src/new.py"]
    assert report.errors == []
    assert (project_dir / "src" / "app.py").read_text() == "original app\n"
    assert (project_dir / "README.md").read_text() == "original readme\n"
    # Created files are never deleted
    assert (project_dir / "src" / "new.py").exists()


def test_restore_into_other_base_dir(tmp_path, project_dir):
    from hive_build.plan.models import FileChange
    from hive_build.rollback import RollbackRecorder

    recorder = RollbackRecorder(tmp_path / "versions")
    point = recorder.create("scope", project_dir, [FileChange("src/app.py", "modified")])

    other = tmp_path / "checkout"
    report = recorder.restore(point.version, base_dir=other)

    assert report.restored == ["src/app.py"]
    assert (other / "src" / "app.py").read_text() == "original app\n"


def test_restore_reports_missing_snapshot(tmp_path, project_dir):
    from hive_build.plan.models import FileChange
    from hive_build.rollback import RollbackRecorder

    recorder = RollbackRecorder(tmp_path / "versions")
    # The file does not exist, so nothing can be snapshotted
    point = recorder.create("scope", project_dir, [FileChange("missing.py", "modified")])

    report = recorder.restore(point.version)

    assert report.restored == []
    assert len(report.errors) == 1
    assert "missing.py" in report.errors[0]


def test_restore_refuses_paths_outside_root(tmp_path, project_dir):
    from hive_build.rollback import RollbackRecorder

    recorder = RollbackRecorder(tmp_path / "versions")
    point_dir = tmp_path / "versions" / "evil"
    point_dir.mkdir(parents=True)
    (point_dir / "x").write_text("payload")
    (point_dir / "manifest.json").write_text(json.dumps({
        "version": "evil",
        "scope": "evil",
        "base_dir": str(project_dir),
        "timestamp": "2026-01-01T00:00:00+00:00",
        "files": [{"path": "../escape.txt", "action": "modified", "snapshot": "x"}],
    }))

    report = recorder.restore("evil")

    assert report.restored == []
    assert "Refusing" in report.errors[0]
    assert not (tmp_path / "escape.txt").exists()


def test_load_without_manifest_is_not_found(tmp_path):
    from hive_build.errors import NotFoundError
    from hive_build.rollback import RollbackRecorder

    recorder = RollbackRecorder(tmp_path / "versions")
    (tmp_path / "versions" / "partial").mkdir(parents=True)

    assert not recorder.has_manifest("partial")
    with pytest.raises(NotFoundError):
        recorder.load("partial")


def test_create_failure_removes_partial_point(tmp_path, project_dir, monkeypatch):
    import shutil

    from hive_build.errors import RollbackError
    from hive_build.plan.models import FileChange
    from hive_build.rollback import RollbackRecorder

    def broken_copy(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(shutil, "copyfile", broken_copy)
    recorder = RollbackRecorder(tmp_path / "versions")

    with pytest.raises(RollbackError):
        recorder.create("scope", project_dir, [FileChange("src/app.py", "modified")])

    assert recorder.list_points() == []


def test_list_points_newest_first(tmp_path, project_dir):
    from hive_build.plan.models import FileChange
    from hive_build.rollback import RollbackRecorder

    recorder = RollbackRecorder(tmp_path / "versions")
    first = recorder.create("plan-1/p1t1", project_dir, [FileChange("src/app.py", "modified")])
    second = recorder.create("plan-1/p2t1", project_dir, [FileChange("README.md", "modified")])

    assert [p.version for p in recorder.list_points()] == [second.version, first.version]
    assert [p.version for p in recorder.list_points("plan-1/p1t1")] == [first.version]
