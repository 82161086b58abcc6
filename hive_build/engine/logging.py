# hive_build/engine/logging.py
"""Structured logging for the build engine."""

import json
import logging
from datetime import datetime, timezone


class BuildLogger:
    """Structured JSON logger for build plan events."""

    def __init__(self, name: str = "hive_build"):
        self.logger = logging.getLogger(name)
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.INFO)

    def _log(self, level: int, event: str, **kwargs):
        """Log a structured event."""
        data = {
            "event": event,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **kwargs
        }
        self.logger.log(level, json.dumps(data))

    def plan_created(self, plan_id: str, project: str, phases: int, tasks: int):
        self._log(
            logging.INFO,
            "plan_created",
            plan_id=plan_id,
            project=project,
            phases=phases,
            tasks=tasks
        )

    def cycle_detected(self, plan_id: str, forced: list[str]):
        """Log components placed ahead of their dependencies."""
        self._log(
            logging.WARNING,
            "phase_cycle_detected",
            plan_id=plan_id,
            forced=forced
        )

    def status_transition(self, plan_id: str, from_status: str, to_status: str):
        """Log a plan status transition."""
        self._log(
            logging.INFO,
            "status_transition",
            plan_id=plan_id,
            from_status=from_status,
            to_status=to_status
        )

    def task_started(self, plan_id: str, task_id: str, phase_index: int):
        self._log(
            logging.INFO,
            "task_started",
            plan_id=plan_id,
            task_id=task_id,
            phase_index=phase_index
        )

    def task_finished(self, plan_id: str, task_id: str, outcome: str, error: str = None):
        """Log a reported task outcome. Failures log at WARNING."""
        self._log(
            logging.WARNING if outcome == "failed" else logging.INFO,
            "task_finished",
            plan_id=plan_id,
            task_id=task_id,
            outcome=outcome,
            error=error
        )

    def checkpoint_reached(self, plan_id: str, phase_id: str):
        self._log(
            logging.INFO,
            "checkpoint_reached",
            plan_id=plan_id,
            phase_id=phase_id
        )

    def plan_completed(self, plan_id: str):
        self._log(logging.INFO, "plan_completed", plan_id=plan_id)

    def task_reverted(self, plan_id: str, task_id: str, to_status: str):
        self._log(
            logging.INFO,
            "task_reverted",
            plan_id=plan_id,
            task_id=task_id,
            to_status=to_status
        )

    def rollback_applied(self, plan_id: str, task_id: str, restored: int, flagged: int, errors: int):
        self._log(
            logging.WARNING if errors else logging.INFO,
            "rollback_applied",
            plan_id=plan_id,
            task_id=task_id,
            restored=restored,
            flagged=flagged,
            errors=errors
        )

    def error(self, plan_id: str, error_type: str, message: str):
        """Log an error."""
        self._log(
            logging.ERROR,
            "error",
            plan_id=plan_id,
            error_type=error_type,
            message=message
        )
