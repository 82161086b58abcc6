# tests/test_checkpoint.py
"""Tests for checkpoint and session control transitions."""

import pytest

from conftest import CHAIN, DIAMOND, component


def _plan(components=CHAIN):
    from hive_build.plan.models import BuildPlan
    from hive_build.plan.phases import derive_phases

    return BuildPlan(
        project_id="proj-1",
        description="test build",
        phases=derive_phases(components).phases,
        id="plan-1",
        session_id="sess-1",
    )


def _at_first_checkpoint(components=CHAIN):
    from hive_build.plan.scheduler import advance, record_outcome

    plan, _, _ = advance(_plan(components))
    return record_outcome(plan, "p1t1", "completed").plan


def test_checkpoint_scenario_approve_moves_to_next_phase():
    from hive_build.plan.checkpoint import approve, at_checkpoint
    from hive_build.plan.models import PlanStatus
    from hive_build.plan.scheduler import find_next_task

    plan = _at_first_checkpoint()
    assert plan.status == PlanStatus.PAUSED
    assert plan.current_phase == 0
    assert at_checkpoint(plan)

    approved = approve(plan)

    assert approved.status == PlanStatus.IN_PROGRESS
    assert approved.current_phase == 1
    assert find_next_task(approved)[1].id == "p2t1"
    assert plan.status == PlanStatus.PAUSED


def test_approve_on_last_phase_keeps_index():
    from hive_build.plan.checkpoint import approve, pause
    from hive_build.plan.models import PlanStatus
    from hive_build.plan.scheduler import advance

    plan, _, _ = advance(_plan([component("solo"), component("other")]))
    approved = approve(pause(plan))

    assert approved.status == PlanStatus.IN_PROGRESS
    assert approved.current_phase == 0


def test_approve_requires_paused():
    from hive_build.errors import PreconditionFailedError
    from hive_build.plan.checkpoint import approve

    with pytest.raises(PreconditionFailedError) as exc:
        approve(_plan())

    assert exc.value.current_status == "planning"


def test_reject_reverts_latest_completed_task_in_phase():
    from hive_build.plan.checkpoint import reject
    from hive_build.plan.models import PhaseStatus, PlanStatus, TaskStatus
    from hive_build.plan.scheduler import advance, record_outcome

    plan = _plan([component("x"), component("y"), component("z", "x")])
    plan, _, _ = advance(plan)
    plan = record_outcome(plan, "p1t1", "completed").plan
    plan, _, _ = advance(plan)
    plan = record_outcome(plan, "p1t2", "completed").plan
    assert plan.status == PlanStatus.PAUSED

    rejected, task = reject(plan)

    assert task.id == "p1t2"
    assert task.status == TaskStatus.PENDING
    assert task.completed is None
    assert rejected.phases[0].tasks[0].status == TaskStatus.COMPLETED
    assert rejected.phases[0].status == PhaseStatus.IN_PROGRESS
    assert rejected.status == PlanStatus.PAUSED


def test_reject_without_completed_task_fails():
    from hive_build.errors import PreconditionFailedError
    from hive_build.plan.checkpoint import pause, reject
    from hive_build.plan.scheduler import advance

    plan, _, _ = advance(_plan())

    with pytest.raises(PreconditionFailedError):
        reject(pause(plan))


def test_reject_requires_paused():
    from hive_build.errors import PreconditionFailedError
    from hive_build.plan.checkpoint import reject

    with pytest.raises(PreconditionFailedError):
        reject(_plan())


def test_pause_and_resume():
    from hive_build.plan.checkpoint import pause, resume
    from hive_build.plan.models import PlanStatus
    from hive_build.plan.scheduler import advance

    plan, _, _ = advance(_plan())
    paused = pause(plan)
    resumed = resume(paused)

    assert paused.status == PlanStatus.PAUSED
    assert resumed.status == PlanStatus.IN_PROGRESS
    assert resumed.current_phase == plan.current_phase


def test_pause_requires_in_progress():
    from hive_build.errors import PreconditionFailedError
    from hive_build.plan.checkpoint import pause

    with pytest.raises(PreconditionFailedError):
        pause(_plan())


def test_resume_requires_paused():
    from hive_build.errors import PreconditionFailedError
    from hive_build.plan.checkpoint import resume
    from hive_build.plan.scheduler import advance

    plan, _, _ = advance(_plan())

    with pytest.raises(PreconditionFailedError):
        resume(plan)


def test_assess_risk_levels():
    from hive_build.plan.checkpoint import assess_risk
    from hive_build.plan.models import TaskStatus
    from hive_build.plan.scheduler import iter_tasks

    plan = _plan([component(f"c{i}") for i in range(5)])
    tasks = [t for _, t in iter_tasks(plan)]

    # Nothing done yet: low progress
    assert assess_risk(plan) == "medium"

    for t in tasks[:2]:
        t.status = TaskStatus.COMPLETED
    assert assess_risk(plan) == "low"

    tasks[2].status = TaskStatus.FAILED
    assert assess_risk(plan) == "medium"

    for t in tasks[:4]:
        t.status = TaskStatus.FAILED
    assert assess_risk(plan) == "high"


def test_progress_text():
    from hive_build.plan.checkpoint import progress

    plan = _at_first_checkpoint(DIAMOND)

    assert progress(plan) == {
        "completed": 1,
        "total": 4,
        "percent": 25,
        "text": "1/4 tasks (25%)",
    }


def test_review_summary_at_checkpoint():
    from hive_build.plan.checkpoint import review

    plan = _at_first_checkpoint()
    summary = review(plan)

    assert summary["status"] == "paused"
    assert summary["at_checkpoint"] is True
    assert summary["current_phase"] == "Phase 1"
    assert summary["progress"] == "1/2 tasks (50%)"
    assert [t["id"] for t in summary["completed_tasks"]] == ["p1t1"]
    assert [t["id"] for t in summary["pending_tasks"]] == ["p2t1"]
    assert summary["next_task"]["id"] == "p2t1"
    assert "Approve" in summary["instructions"]
    assert summary["phases"][0] == {
        "id": "phase-1",
        "name": "Phase 1",
        "status": "completed",
        "tasks_completed": 1,
        "tasks_total": 1,
    }


def test_pending_action():
    from hive_build.plan.checkpoint import pause, pending_action
    from hive_build.plan.scheduler import advance

    assert pending_action(_at_first_checkpoint()) == "Checkpoint review required"

    plan, _, _ = advance(_plan())
    assert pending_action(plan) is None
    assert pending_action(pause(plan)) == "Paused - resume to continue"


def test_running_plan_is_not_at_checkpoint():
    from hive_build.plan.checkpoint import at_checkpoint, pending_action
    from hive_build.plan.models import PlanStatus
    from hive_build.plan.scheduler import set_plan_status

    plan = _at_first_checkpoint().copy()
    set_plan_status(plan, PlanStatus.IN_PROGRESS)

    assert plan.phases[plan.current_phase].status.value == "completed"
    assert not at_checkpoint(plan)
    assert pending_action(plan) is None
