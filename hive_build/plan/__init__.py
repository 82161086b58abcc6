"""Build plan model, phase derivation, scheduling and checkpoint control."""

from hive_build.plan.models import (
    BuildPhase,
    BuildPlan,
    BuildTask,
    Component,
    FileChange,
    PhaseStatus,
    PlanStatus,
    TaskStatus,
)
from hive_build.plan.phases import PhaseDerivation, derive_phases

__all__ = [
    "BuildPhase",
    "BuildPlan",
    "BuildTask",
    "Component",
    "FileChange",
    "PhaseStatus",
    "PlanStatus",
    "TaskStatus",
    "PhaseDerivation",
    "derive_phases",
]
