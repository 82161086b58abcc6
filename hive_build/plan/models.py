# hive_build/plan/models.py
"""Data types for build plans, phases and tasks."""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class TaskStatus(Enum):
    """States a build task can be in."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"


class PhaseStatus(Enum):
    """Derived status of a phase. Never set directly."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class PlanStatus(Enum):
    """States a build plan can be in."""

    PLANNING = "planning"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    FAILED = "failed"


FILE_ACTIONS = ("created", "modified", "deleted")


@dataclass
class Component:
    """A component from a project's architecture."""

    name: str
    dependencies: list[str] = field(default_factory=list)
    files: list[str] = field(default_factory=list)
    type: str = ""
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "type": self.type,
            "description": self.description,
            "files": list(self.files),
            "dependencies": list(self.dependencies),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Component":
        if not data.get("name"):
            raise ValueError("Component requires a name")
        return cls(
            name=data["name"],
            dependencies=list(data.get("dependencies") or []),
            files=list(data.get("files") or []),
            type=data.get("type", ""),
            description=data.get("description", ""),
        )


@dataclass
class FileChange:
    """A file created, modified or deleted while executing a task."""

    path: str
    action: str
    previous_content: Optional[str] = None

    def __post_init__(self):
        if self.action not in FILE_ACTIONS:
            raise ValueError(f"Invalid file action: {self.action}")

    def to_dict(self) -> dict:
        data = {"path": self.path, "action": self.action}
        if self.previous_content is not None:
            data["previous_content"] = self.previous_content
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "FileChange":
        return cls(
            path=data["path"],
            action=data["action"],
            previous_content=data.get("previous_content"),
        )


@dataclass
class BuildTask:
    """A single atomic unit of work in a build plan."""

    id: str
    name: str
    description: str = ""
    depends_on: list[str] = field(default_factory=list)
    status: TaskStatus = TaskStatus.PENDING
    component: Optional[str] = None
    expected_files: list[str] = field(default_factory=list)
    file_changes: list[FileChange] = field(default_factory=list)
    started: Optional[str] = None
    completed: Optional[str] = None
    error: Optional[str] = None
    rollback_version: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "depends_on": list(self.depends_on),
            "status": self.status.value,
            "component": self.component,
            "expected_files": list(self.expected_files),
            "file_changes": [fc.to_dict() for fc in self.file_changes],
            "started": self.started,
            "completed": self.completed,
            "error": self.error,
            "rollback_version": self.rollback_version,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BuildTask":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            depends_on=list(data.get("depends_on") or []),
            status=TaskStatus(data.get("status", TaskStatus.PENDING.value)),
            component=data.get("component"),
            expected_files=list(data.get("expected_files") or []),
            file_changes=[FileChange.from_dict(fc) for fc in data.get("file_changes") or []],
            started=data.get("started"),
            completed=data.get("completed"),
            error=data.get("error"),
            rollback_version=data.get("rollback_version"),
        )

    def summary(self) -> dict:
        """Short form used in tool responses."""
        return {
            "id": self.id,
            "name": self.name,
            "status": self.status.value,
            "component": self.component,
        }


@dataclass
class BuildPhase:
    """One dependency layer of tasks, gated by an optional checkpoint."""

    id: str
    name: str
    description: str = ""
    tasks: list[BuildTask] = field(default_factory=list)
    status: PhaseStatus = PhaseStatus.PENDING
    checkpoint: bool = True

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "tasks": [t.to_dict() for t in self.tasks],
            "status": self.status.value,
            "checkpoint": self.checkpoint,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BuildPhase":
        return cls(
            id=data["id"],
            name=data["name"],
            description=data.get("description", ""),
            tasks=[BuildTask.from_dict(t) for t in data.get("tasks") or []],
            status=PhaseStatus(data.get("status", PhaseStatus.PENDING.value)),
            checkpoint=bool(data.get("checkpoint", True)),
        )


@dataclass
class BuildPlan:
    """The full persisted build record for one project."""

    project_id: str
    description: str
    phases: list[BuildPhase] = field(default_factory=list)
    status: PlanStatus = PlanStatus.PLANNING
    current_phase: int = 0
    session_id: str = ""
    created: str = ""
    updated: str = ""
    id: Optional[str] = None
    warnings: list[str] = field(default_factory=list)

    def copy(self) -> "BuildPlan":
        """Deep copy, so transitions never alias the loaded snapshot."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "description": self.description,
            "status": self.status.value,
            "current_phase": self.current_phase,
            "phases": [p.to_dict() for p in self.phases],
            "session_id": self.session_id,
            "created": self.created,
            "updated": self.updated,
            "warnings": list(self.warnings),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "BuildPlan":
        return cls(
            id=data.get("id"),
            project_id=data["project_id"],
            description=data.get("description", ""),
            status=PlanStatus(data.get("status", PlanStatus.PLANNING.value)),
            current_phase=int(data.get("current_phase", 0)),
            phases=[BuildPhase.from_dict(p) for p in data.get("phases") or []],
            session_id=data.get("session_id", ""),
            created=data.get("created", ""),
            updated=data.get("updated", ""),
            warnings=list(data.get("warnings") or []),
        )
