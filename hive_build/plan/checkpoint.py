"""Checkpoint and session control: approve, reject, pause, resume.

These are the only operations besides task scheduling that change a plan's
status. Each takes a plan value and returns a new one; a plan in the wrong
source status raises PreconditionFailedError instead of being left untouched.
"""

from typing import Optional

from hive_build.errors import PreconditionFailedError
from hive_build.plan.models import BuildPlan, BuildTask, PhaseStatus, PlanStatus, TaskStatus
from hive_build.plan.scheduler import (
    count_tasks,
    find_next_task,
    iter_tasks,
    recompute_phase_statuses,
    set_plan_status,
    tasks_with_status,
)

HIGH_RISK_FAILURES = 2
LOW_PROGRESS_RATIO = 0.3


def _require_status(plan: BuildPlan, required: PlanStatus, action: str) -> None:
    if plan.status != required:
        raise PreconditionFailedError(
            f"Cannot {action}: plan is {plan.status.value}, expected {required.value}",
            current_status=plan.status.value,
        )


def current_phase(plan: BuildPlan):
    if 0 <= plan.current_phase < len(plan.phases):
        return plan.phases[plan.current_phase]
    return None


def at_checkpoint(plan: BuildPlan) -> bool:
    """True when the plan is paused on a completed, checkpointed phase."""
    if plan.status != PlanStatus.PAUSED:
        return False
    phase = current_phase(plan)
    return bool(phase and phase.status == PhaseStatus.COMPLETED and phase.checkpoint)


def approve(plan: BuildPlan) -> BuildPlan:
    """Approve a paused plan and move past a completed phase."""
    _require_status(plan, PlanStatus.PAUSED, "approve")

    plan = plan.copy()
    phase = current_phase(plan)
    if (
        phase is not None
        and phase.status == PhaseStatus.COMPLETED
        and plan.current_phase < len(plan.phases) - 1
    ):
        plan.current_phase += 1
    set_plan_status(plan, PlanStatus.IN_PROGRESS)
    return plan


def reject(plan: BuildPlan) -> tuple[BuildPlan, BuildTask]:
    """Revert the most recently completed task of the current phase to pending.

    One-step undo: only that task changes. The plan stays paused until it is
    approved or resumed.
    """
    _require_status(plan, PlanStatus.PAUSED, "reject")

    plan = plan.copy()
    phase = current_phase(plan)
    target: Optional[BuildTask] = None
    if phase is not None:
        for task in reversed(phase.tasks):
            if task.status == TaskStatus.COMPLETED:
                target = task
                break

    if target is None:
        raise PreconditionFailedError(
            "Cannot reject: no completed task in the current phase",
            current_status=plan.status.value,
        )

    target.status = TaskStatus.PENDING
    target.completed = None
    recompute_phase_statuses(plan)
    return plan, target


def pause(plan: BuildPlan) -> BuildPlan:
    _require_status(plan, PlanStatus.IN_PROGRESS, "pause")
    plan = plan.copy()
    set_plan_status(plan, PlanStatus.PAUSED)
    return plan


def resume(plan: BuildPlan) -> BuildPlan:
    _require_status(plan, PlanStatus.PAUSED, "resume")
    plan = plan.copy()
    set_plan_status(plan, PlanStatus.IN_PROGRESS)
    return plan


def assess_risk(plan: BuildPlan) -> str:
    """Advisory risk level: "low", "medium" or "high"."""
    total = count_tasks(plan)
    completed = count_tasks(plan, TaskStatus.COMPLETED)
    failed = count_tasks(plan, TaskStatus.FAILED)

    if failed > HIGH_RISK_FAILURES:
        return "high"
    if failed > 0 or completed / max(total, 1) < LOW_PROGRESS_RATIO:
        return "medium"
    return "low"


def progress(plan: BuildPlan) -> dict:
    total = count_tasks(plan)
    completed = count_tasks(plan, TaskStatus.COMPLETED)
    pct = round(completed / total * 100) if total else 0
    return {
        "completed": completed,
        "total": total,
        "percent": pct,
        "text": f"{completed}/{total} tasks ({pct}%)",
    }


def pending_action(plan: BuildPlan) -> Optional[str]:
    if at_checkpoint(plan):
        return "Checkpoint review required"
    if plan.status == PlanStatus.PAUSED:
        return "Paused - resume to continue"
    return None


def review(plan: BuildPlan) -> dict:
    """Summarize what has been built, what is left and what changed on disk."""
    phase = current_phase(plan)
    next_task = find_next_task(plan)

    completed_tasks = [
        {
            "id": t.id,
            "name": t.name,
            "component": t.component,
            "files_changed": len(t.file_changes),
        }
        for t in tasks_with_status(plan, TaskStatus.COMPLETED)
    ]
    failed_tasks = [
        {"id": t.id, "name": t.name, "error": t.error}
        for t in tasks_with_status(plan, TaskStatus.FAILED)
    ]
    pending_tasks = [
        {"id": t.id, "name": t.name, "component": t.component}
        for t in tasks_with_status(plan, TaskStatus.PENDING)
    ]
    file_changes = [
        {"task": t.id, "path": fc.path, "action": fc.action}
        for _, t in iter_tasks(plan)
        for fc in t.file_changes
    ]

    if plan.status == PlanStatus.PAUSED:
        instructions = "Approve to continue, or reject to revert the last completed task."
    elif plan.status == PlanStatus.COMPLETED:
        instructions = "Build is complete."
    else:
        instructions = "Build is in progress. Request the next step to continue."

    return {
        "status": plan.status.value,
        "session_id": plan.session_id,
        "progress": progress(plan)["text"],
        "current_phase": phase.name if phase else "done",
        "at_checkpoint": at_checkpoint(plan),
        "risk_level": assess_risk(plan),
        "phases": [
            {
                "id": p.id,
                "name": p.name,
                "status": p.status.value,
                "tasks_completed": sum(1 for t in p.tasks if t.status == TaskStatus.COMPLETED),
                "tasks_total": len(p.tasks),
            }
            for p in plan.phases
        ],
        "completed_tasks": completed_tasks,
        "failed_tasks": failed_tasks,
        "pending_tasks": pending_tasks,
        "file_changes": file_changes,
        "next_task": next_task[1].summary() if next_task else None,
        "warnings": list(plan.warnings),
        "instructions": instructions,
    }
