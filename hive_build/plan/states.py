"""Build plan status transitions."""

from hive_build.plan.models import PlanStatus


# Valid plan status transitions
TRANSITIONS = {
    PlanStatus.PLANNING: {PlanStatus.IN_PROGRESS, PlanStatus.PAUSED, PlanStatus.COMPLETED},
    PlanStatus.IN_PROGRESS: {PlanStatus.PAUSED, PlanStatus.COMPLETED, PlanStatus.FAILED},
    PlanStatus.PAUSED: {PlanStatus.IN_PROGRESS, PlanStatus.COMPLETED},
    PlanStatus.COMPLETED: {PlanStatus.IN_PROGRESS},  # Rollback re-opens a finished plan
    PlanStatus.FAILED: {PlanStatus.IN_PROGRESS},
}

TERMINAL_STATUSES = {
    PlanStatus.COMPLETED,
}


def can_transition(from_status: PlanStatus, to_status: PlanStatus) -> bool:
    """Check if a plan status transition is valid."""
    if from_status == to_status:
        return True
    return to_status in TRANSITIONS.get(from_status, set())


def is_terminal_status(status: PlanStatus) -> bool:
    """Check if a plan status is terminal (nothing left to schedule)."""
    return status in TERMINAL_STATUSES
