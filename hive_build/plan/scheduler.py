"""Task scheduling over build plan values.

Every function that changes a plan works on a copy and returns it; the plan
passed in is never modified.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterator, Optional

from hive_build.errors import NotFoundError, PreconditionFailedError
from hive_build.plan.models import (
    BuildPhase,
    BuildPlan,
    BuildTask,
    FileChange,
    PhaseStatus,
    PlanStatus,
    TaskStatus,
)
from hive_build.plan.states import can_transition

OUTCOMES = (TaskStatus.COMPLETED, TaskStatus.FAILED)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def iter_tasks(plan: BuildPlan) -> Iterator[tuple[int, BuildTask]]:
    """Yield (phase_index, task) in execution order."""
    for phase_idx, phase in enumerate(plan.phases):
        for task in phase.tasks:
            yield phase_idx, task


def get_task(plan: BuildPlan, task_id: str) -> tuple[int, BuildTask]:
    """Locate a task by id, plan-wide."""
    for phase_idx, task in iter_tasks(plan):
        if task.id == task_id:
            return phase_idx, task
    raise NotFoundError(f"Task not found in build plan: {task_id}", kind="task", ref=task_id)


def count_tasks(plan: BuildPlan, status: Optional[TaskStatus] = None) -> int:
    return sum(1 for _, t in iter_tasks(plan) if status is None or t.status == status)


def tasks_with_status(plan: BuildPlan, status: TaskStatus) -> list[BuildTask]:
    return [t for _, t in iter_tasks(plan) if t.status == status]


def set_plan_status(plan: BuildPlan, status: PlanStatus) -> None:
    """Set plan status in place, enforcing the transition table."""
    if not can_transition(plan.status, status):
        raise PreconditionFailedError(
            f"Invalid plan transition: {plan.status.value} -> {status.value}",
            current_status=plan.status.value,
        )
    plan.status = status


def find_next_task(plan: BuildPlan) -> Optional[tuple[int, BuildTask]]:
    """Return the first pending task whose dependencies are all completed."""
    completed_ids = {t.id for t in tasks_with_status(plan, TaskStatus.COMPLETED)}

    for phase_idx, task in iter_tasks(plan):
        if task.status != TaskStatus.PENDING:
            continue
        if all(dep in completed_ids for dep in task.depends_on):
            return phase_idx, task
    return None


def find_active_task(plan: BuildPlan) -> Optional[tuple[int, BuildTask]]:
    """Return the task currently in progress, if any."""
    for phase_idx, task in iter_tasks(plan):
        if task.status == TaskStatus.IN_PROGRESS:
            return phase_idx, task
    return None


def blocked_tasks(plan: BuildPlan) -> list[dict]:
    """Pending tasks that wait on a dependency that is not going to complete on its own."""
    statuses = {t.id: t.status for _, t in iter_tasks(plan)}
    stuck = (TaskStatus.FAILED, TaskStatus.ROLLED_BACK)

    blocked = []
    for _, task in iter_tasks(plan):
        if task.status != TaskStatus.PENDING:
            continue
        blockers = [dep for dep in task.depends_on if statuses.get(dep) in stuck]
        if blockers:
            blocked.append({"id": task.id, "name": task.name, "blocked_by": blockers})
    return blocked


def is_complete(plan: BuildPlan) -> bool:
    """True iff every task in every phase is completed."""
    tasks = [t for _, t in iter_tasks(plan)]
    return bool(tasks) and all(t.status == TaskStatus.COMPLETED for t in tasks)


def derive_phase_status(phase: BuildPhase) -> PhaseStatus:
    statuses = [t.status for t in phase.tasks]
    if all(s == TaskStatus.COMPLETED for s in statuses):
        return PhaseStatus.COMPLETED
    if any(s == TaskStatus.FAILED for s in statuses):
        return PhaseStatus.FAILED
    if any(s in (TaskStatus.IN_PROGRESS, TaskStatus.COMPLETED) for s in statuses):
        return PhaseStatus.IN_PROGRESS
    return PhaseStatus.PENDING


def recompute_phase_statuses(plan: BuildPlan) -> None:
    """Re-derive every phase status in place. Run after any task mutation."""
    for phase in plan.phases:
        phase.status = derive_phase_status(phase)


@dataclass
class OutcomeResult:
    """What happened when a task outcome was recorded."""

    plan: BuildPlan
    task: BuildTask
    phase_index: int
    phase_completed: bool = False
    checkpoint_reached: bool = False
    plan_completed: bool = False


def record_outcome(
    plan: BuildPlan,
    task_id: str,
    outcome: str,
    error: Optional[str] = None,
    file_changes: Optional[list[FileChange]] = None,
    now: Optional[str] = None,
) -> OutcomeResult:
    """Record a completed or failed outcome for a task.

    A report against a task that is already completed is refused; undo it
    with a checkpoint reject or a rollback first. Reporting again on a failed
    or rolled-back task is how a retry is recorded.
    """
    try:
        status = TaskStatus(outcome)
    except ValueError:
        status = None
    if status not in OUTCOMES:
        raise PreconditionFailedError(
            f"Invalid outcome: {outcome!r} (expected 'completed' or 'failed')"
        )

    plan = plan.copy()
    phase_idx, task = get_task(plan, task_id)

    if task.status == TaskStatus.COMPLETED:
        raise PreconditionFailedError(
            f"Task {task_id} is already completed",
            current_status=task.status.value,
        )

    was_completed = plan.phases[phase_idx].status == PhaseStatus.COMPLETED

    task.status = status
    task.completed = now or utc_now()
    if error:
        task.error = error
    elif status == TaskStatus.COMPLETED:
        task.error = None
    if file_changes is not None:
        task.file_changes = list(file_changes)

    recompute_phase_statuses(plan)

    phase = plan.phases[phase_idx]
    result = OutcomeResult(plan=plan, task=task, phase_index=phase_idx)
    result.phase_completed = not was_completed and phase.status == PhaseStatus.COMPLETED

    if is_complete(plan):
        set_plan_status(plan, PlanStatus.COMPLETED)
        result.plan_completed = True
    elif result.phase_completed and phase.checkpoint:
        set_plan_status(plan, PlanStatus.PAUSED)
        result.checkpoint_reached = True

    return result


def advance(plan: BuildPlan, now: Optional[str] = None) -> Optional[tuple[BuildPlan, int, BuildTask]]:
    """Start the next eligible task.

    Returns the updated plan with the task in progress, or None when nothing
    is eligible.
    """
    if plan.status == PlanStatus.PAUSED:
        raise PreconditionFailedError(
            "Plan is paused; approve or resume before starting the next task",
            current_status=plan.status.value,
        )

    plan = plan.copy()
    found = find_next_task(plan)
    if found is None:
        return None

    phase_idx, task = found
    task.status = TaskStatus.IN_PROGRESS
    task.started = now or utc_now()
    recompute_phase_statuses(plan)
    set_plan_status(plan, PlanStatus.IN_PROGRESS)
    plan.current_phase = phase_idx
    return plan, phase_idx, task
