"""Shared test helpers."""

import tempfile
from pathlib import Path

import pytest

from hive_build.plan.models import Component


def component(name: str, *deps: str, files=None, description: str = "") -> Component:
    """Shorthand for a component with dependencies."""
    return Component(
        name=name,
        dependencies=list(deps),
        files=list(files or []),
        description=description,
    )


# A -> (B, C) -> D
DIAMOND = [
    component("A", files=["a.py"]),
    component("B", "A", files=["b.py"]),
    component("C", "A", files=["c.py"]),
    component("D", "B", "C", files=["d.py"]),
]

# A -> B
CHAIN = [
    component("A", files=["a.py"]),
    component("B", "A", files=["b.py"]),
]


@pytest.fixture
def db_path(monkeypatch):
    from hive_build.db.migrations import run_migrations

    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        path = Path(f.name)
    run_migrations(path)
    monkeypatch.setenv("HIVE_BUILD_DB", str(path))
    yield path
    path.unlink(missing_ok=True)


@pytest.fixture
def snapshots_dir(tmp_path, monkeypatch):
    path = tmp_path / "versions"
    monkeypatch.setenv("HIVE_BUILD_SNAPSHOTS", str(path))
    return path


@pytest.fixture
def engine(db_path, snapshots_dir):
    from hive_build.config import EngineConfig
    from hive_build.engine import BuildEngine

    config = EngineConfig(db_path=db_path, snapshots_dir=snapshots_dir, default_actor="test:runner")
    return BuildEngine(config)


def create_project(db_path, slug: str = "demo", components=None) -> str:
    """Register a project with the given components. Returns its id."""
    from hive_build.db.projects import ProjectRepository

    repo = ProjectRepository(db_path)
    return repo.create(slug, slug.title(), "Test project", components if components is not None else DIAMOND)


def complete(engine, slug: str, task_id: str, **kwargs) -> dict:
    """Report a task completed and fetch the next step."""
    return engine.get_next_step(slug, task_id=task_id, outcome="completed", **kwargs)
