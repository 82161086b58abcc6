"""Tests for the build audit trail."""

import pytest


@pytest.fixture
def trail(db_path):
    from hive_build.audit.trail import AuditTrail

    return AuditTrail(db_path)


def test_log_returns_entry_id(trail):
    first = trail.log(plan_id="plan-1", action="plan_created", actor="human:cli")
    second = trail.log(plan_id="plan-1", action="approved", actor="human:cli")

    assert second > first


def test_query_newest_first(trail):
    trail.log(plan_id="plan-1", action="plan_created", actor="agent:a")
    trail.log(plan_id="plan-1", action="task_reported", actor="agent:a", task_id="p1t1")

    entries = trail.query(plan_id="plan-1")

    assert [e["action"] for e in entries] == ["task_reported", "plan_created"]
    assert entries[0]["task_id"] == "p1t1"


def test_query_filters(trail):
    trail.log(plan_id="plan-1", action="approved", actor="human:cli", project_id="proj-1")
    trail.log(plan_id="plan-2", action="rejected", actor="agent:a", project_id="proj-2")
    trail.log(plan_id="plan-2", action="approved", actor="agent:a", project_id="proj-2")

    assert len(trail.query(action="approved")) == 2
    assert len(trail.query(actor="agent:a")) == 2
    assert len(trail.query(project_id="proj-1")) == 1
    assert len(trail.query(project_id="proj-2", action="rejected")) == 1
    assert len(trail.query(limit=1)) == 1


def test_states_round_trip_as_json(trail):
    trail.log(
        plan_id="plan-1",
        action="paused",
        actor="human:cli",
        reason="lunch",
        before_state={"status": "in_progress", "current_phase": 0},
        after_state={"status": "paused", "current_phase": 0},
    )

    entry = trail.query(plan_id="plan-1")[0]

    assert entry["before_state"] == {"status": "in_progress", "current_phase": 0}
    assert entry["after_state"]["status"] == "paused"
    assert entry["reason"] == "lunch"


def test_query_last_days_includes_recent(trail):
    trail.log(plan_id="plan-1", action="plan_created", actor="agent:a")

    assert len(trail.query(last_days=1)) == 1
