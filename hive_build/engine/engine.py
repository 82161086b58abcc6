# hive_build/engine/engine.py
"""Build engine - turns a component graph into a checkpointed build and drives it.

Every operation follows the same shape: load the plan, compute the next plan
value with the pure scheduler/checkpoint functions, persist it with the
single-writer check. The engine never runs the tasks itself; an external
agent pulls work with ``get_next_step`` and reports outcomes back.
"""

import uuid
from pathlib import Path
from typing import Optional

from hive_build.audit.trail import AuditTrail
from hive_build.config import EngineConfig
from hive_build.db.plans import BuildPlanRepository
from hive_build.db.projects import ProjectRepository
from hive_build.engine.logging import BuildLogger
from hive_build.errors import (
    ConcurrentUpdateError,
    EmptyGraphError,
    NotFoundError,
    PreconditionFailedError,
    RollbackError,
)
from hive_build.plan import checkpoint
from hive_build.plan.models import BuildPlan, BuildTask, FileChange, PlanStatus, TaskStatus
from hive_build.plan.phases import derive_phases
from hive_build.plan.scheduler import (
    advance,
    blocked_tasks,
    find_active_task,
    find_next_task,
    get_task,
    is_complete,
    iter_tasks,
    record_outcome,
    recompute_phase_statuses,
    set_plan_status,
    tasks_with_status,
)
from hive_build.plan.states import is_terminal_status
from hive_build.rollback.recorder import RollbackRecorder

REVIEW_ACTIONS = ("review", "approve", "reject")
SESSION_ACTIONS = ("status", "approve", "reject", "pause", "resume")


def _parse_file_changes(file_changes: Optional[list]) -> Optional[list[FileChange]]:
    if file_changes is None:
        return None
    parsed = []
    for fc in file_changes:
        if isinstance(fc, FileChange):
            parsed.append(fc)
            continue
        try:
            parsed.append(FileChange.from_dict(fc))
        except (KeyError, TypeError, ValueError) as e:
            raise PreconditionFailedError(f"Invalid file change {fc!r}: {e}") from e
    return parsed


def _failed_summary(plan: BuildPlan) -> list[dict]:
    return [
        {"id": t.id, "name": t.name, "error": t.error}
        for t in tasks_with_status(plan, TaskStatus.FAILED)
    ]


class BuildEngine:
    """Creates build plans and drives them through execution and review."""

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig.from_env()
        self.projects = ProjectRepository(self.config.db_path)
        self.plans = BuildPlanRepository(self.config.db_path)
        self.recorder = RollbackRecorder(self.config.snapshots_dir)
        self.audit = AuditTrail(self.config.db_path)
        self.logger = BuildLogger()

    # -- loading and persistence -------------------------------------------

    def _load_for_project(self, project_slug: str) -> tuple[dict, BuildPlan]:
        project = self.projects.require(project_slug)
        plan = self.plans.get_by_project(project["id"])
        if not plan:
            raise NotFoundError(
                f"No build plan found for project: {project_slug}",
                kind="plan",
                ref=project_slug,
            )
        return project, plan

    def _load_for_session(self, session_id: str) -> tuple[dict, BuildPlan]:
        plan = self.plans.get_by_session(session_id)
        if not plan:
            raise NotFoundError(f"Session not found: {session_id}", kind="session", ref=session_id)
        project = self.projects.get(plan.project_id)
        if not project:
            raise NotFoundError(
                f"Project not found for session: {session_id}",
                kind="project",
                ref=plan.project_id,
            )
        return project, plan

    def _persist(self, loaded: BuildPlan, plan: BuildPlan) -> BuildPlan:
        try:
            saved = self.plans.save(plan, expected_updated=loaded.updated)
        except ConcurrentUpdateError as e:
            self.logger.error(plan.id, type(e).__name__, str(e))
            raise
        if loaded.status != saved.status:
            self.logger.status_transition(saved.id, loaded.status.value, saved.status.value)
        return saved

    def _record(
        self,
        plan: BuildPlan,
        action: str,
        actor: Optional[str],
        before: BuildPlan = None,
        reason: str = None,
        task_id: str = None,
    ) -> None:
        self.audit.log(
            plan_id=plan.id,
            project_id=plan.project_id,
            action=action,
            actor=actor or self.config.default_actor,
            reason=reason,
            task_id=task_id,
            before_state=(
                {"status": before.status.value, "current_phase": before.current_phase}
                if before else None
            ),
            after_state={"status": plan.status.value, "current_phase": plan.current_phase},
            session_id=plan.session_id,
        )

    # -- planning ------------------------------------------------------------

    def create_plan(self, project_slug: str, description: str, actor: Optional[str] = None) -> dict:
        """Derive phases from the project's components and store a new plan.

        Supersedes any earlier plan of the project.
        """
        project = self.projects.require(project_slug)
        components = self.projects.get_architecture(project_slug)
        if not components:
            raise EmptyGraphError(
                "Architecture has no components. Add components before planning a build.",
                project=project_slug,
            )

        derivation = derive_phases(components)
        plan = self.plans.create(BuildPlan(
            project_id=project["id"],
            description=description,
            phases=derivation.phases,
            status=PlanStatus.PLANNING,
            current_phase=0,
            session_id=str(uuid.uuid4()),
            warnings=derivation.warnings(),
        ))

        total_tasks = sum(len(p.tasks) for p in plan.phases)
        self.logger.plan_created(plan.id, project_slug, len(plan.phases), total_tasks)
        if derivation.has_cycle:
            self.logger.cycle_detected(plan.id, derivation.forced)
        self._record(plan, "plan_created", actor)

        return {
            "success": True,
            "message": f"Build plan created with {len(plan.phases)} phases and {total_tasks} tasks.",
            "plan_id": plan.id,
            "session_id": plan.session_id,
            "cycle_detected": derivation.has_cycle,
            "warnings": plan.warnings,
            "phases": [
                {
                    "id": p.id,
                    "name": p.name,
                    "description": p.description,
                    "task_count": len(p.tasks),
                    "tasks": [
                        {"id": t.id, "name": t.name, "depends_on": t.depends_on}
                        for t in p.tasks
                    ],
                }
                for p in plan.phases
            ],
        }

    # -- execution -------------------------------------------------------------

    def _capture_rollback_point(self, plan: BuildPlan, task: BuildTask, project_path: str) -> None:
        base_dir = Path(project_path)
        changes = [
            FileChange(path=f, action="modified" if (base_dir / f).is_file() else "created")
            for f in task.expected_files
        ]
        try:
            point = self.recorder.create(f"{plan.id}/{task.id}", base_dir, changes)
        except RollbackError as e:
            self.logger.error(plan.id, type(e).__name__, str(e))
            raise
        task.rollback_version = point.version

    def _task_response(self, project: dict, plan: BuildPlan, phase_idx: int, task: BuildTask, resumed: bool) -> dict:
        component = next(
            (c for c in project["architecture"].get("components", []) if c.get("name") == task.component),
            None,
        )
        phase = plan.phases[phase_idx]
        return {
            "type": "task",
            "message": "Continue this task:" if resumed else "Execute this task next:",
            "resumed": resumed,
            "session_id": plan.session_id,
            "phase": {"id": phase.id, "name": phase.name, "index": phase_idx},
            "task": {
                "id": task.id,
                "name": task.name,
                "description": task.description,
                "component": task.component,
                "expected_files": task.expected_files,
                "depends_on": task.depends_on,
            },
            "component_detail": component,
            "rollback_version": task.rollback_version,
            "instructions": (
                f'After completing this task, report it with task_id="{task.id}" and '
                'outcome="completed" (or "failed") along with files_changed.'
            ),
        }

    def get_next_step(
        self,
        project_slug: str,
        task_id: Optional[str] = None,
        outcome: Optional[str] = None,
        error: Optional[str] = None,
        file_changes: Optional[list] = None,
        project_path: Optional[str] = None,
        dry_run: bool = False,
        actor: Optional[str] = None,
    ) -> dict:
        """Report the previous task (optional) and fetch the next one.

        Returns a dict whose ``type`` is one of: task, checkpoint, paused,
        complete, blocked, conflict. With ``dry_run`` nothing is persisted and no
        rollback point is captured.
        """
        if (task_id is None) != (outcome is None):
            raise PreconditionFailedError("task_id and outcome must be reported together")

        project, loaded = self._load_for_project(project_slug)
        plan = loaded
        reported = None

        if task_id is not None:
            result = record_outcome(
                plan, task_id, outcome, error=error,
                file_changes=_parse_file_changes(file_changes),
            )
            plan = result.plan
            reported = {"task_id": task_id, "outcome": outcome}
            phase = plan.phases[result.phase_index]

            if not dry_run:
                before = loaded
                plan = self._persist(loaded, plan)
                loaded = plan
                self._record(plan, "task_reported", actor, before=before, reason=error, task_id=task_id)
                self.logger.task_finished(plan.id, task_id, outcome, error)

            if result.plan_completed:
                if not dry_run:
                    self.logger.plan_completed(plan.id)
                return self._complete_response(plan, reported, dry_run)

            if result.checkpoint_reached:
                if not dry_run:
                    self.logger.checkpoint_reached(plan.id, phase.id)
                return {
                    "type": "checkpoint",
                    "message": (
                        f"Task {task_id} marked as {outcome}. Phase \"{phase.name}\" is "
                        "complete - checkpoint reached."
                    ),
                    "reported": reported,
                    "phase_completed": phase.name,
                    "session_id": plan.session_id,
                    "status": plan.status.value,
                    "dry_run": dry_run,
                    "action": "Review the checkpoint, then approve to continue or reject to revert the last task.",
                }

        if plan.status == PlanStatus.PAUSED:
            return {
                "type": "paused",
                "message": checkpoint.pending_action(plan),
                "reported": reported,
                "session_id": plan.session_id,
                "status": plan.status.value,
                "at_checkpoint": checkpoint.at_checkpoint(plan),
                "dry_run": dry_run,
                "action": "Approve or resume the session before requesting the next task.",
            }

        if is_terminal_status(plan.status):
            return self._complete_response(plan, reported, dry_run)

        active = find_active_task(plan)
        if active:
            phase_idx, task = active
            response = self._task_response(project, plan, phase_idx, task, resumed=True)
            response.update({"reported": reported, "dry_run": dry_run})
            return response

        advanced = advance(plan)
        if advanced is None:
            if is_complete(plan):
                plan = plan.copy()
                set_plan_status(plan, PlanStatus.COMPLETED)
                if not dry_run:
                    plan = self._persist(loaded, plan)
                    self.logger.plan_completed(plan.id)
                return self._complete_response(plan, reported, dry_run)

            return {
                "type": "blocked",
                "message": "No executable tasks found. Some tasks are blocked by failed or rolled-back dependencies.",
                "reported": reported,
                "session_id": plan.session_id,
                "status": plan.status.value,
                "dry_run": dry_run,
                "failed_tasks": _failed_summary(plan),
                "blocked_tasks": blocked_tasks(plan),
                "rolled_back_tasks": [
                    t.summary() for t in tasks_with_status(plan, TaskStatus.ROLLED_BACK)
                ],
                "action": "Fix the failing work and report it again with the same task_id, or roll it back.",
            }

        plan, phase_idx, task = advanced
        if not dry_run:
            if project_path:
                self._capture_rollback_point(plan, task, project_path)
            try:
                plan = self._persist(loaded, plan)
            except ConcurrentUpdateError:
                if reported is None:
                    raise
                # The report itself is already stored
                return {
                    "type": "conflict",
                    "message": (
                        f"Task {task_id} marked as {outcome}, but the plan changed "
                        "before the next task could be assigned."
                    ),
                    "reported": reported,
                    "session_id": loaded.session_id,
                    "status": loaded.status.value,
                    "dry_run": dry_run,
                    "action": "Request the next step again without reporting the task a second time.",
                }
            self.logger.task_started(plan.id, task.id, phase_idx)
            _, task = get_task(plan, task.id)

        response = self._task_response(project, plan, phase_idx, task, resumed=False)
        response.update({"reported": reported, "dry_run": dry_run})
        return response

    def _complete_response(self, plan: BuildPlan, reported: Optional[dict], dry_run: bool) -> dict:
        return {
            "type": "complete",
            "message": "Build plan complete! All tasks finished.",
            "reported": reported,
            "session_id": plan.session_id,
            "status": plan.status.value,
            "dry_run": dry_run,
        }

    # -- checkpoint and session control ------------------------------------------

    def _approve(self, project: dict, loaded: BuildPlan, actor: Optional[str]) -> dict:
        plan = self._persist(loaded, checkpoint.approve(loaded))
        self._record(plan, "approved", actor, before=loaded)

        phase = checkpoint.current_phase(plan)
        return {
            "success": True,
            "message": "Checkpoint approved. Continuing build.",
            "project": project["slug"],
            "session_id": plan.session_id,
            "status": plan.status.value,
            "current_phase": plan.current_phase,
            "next_phase": {
                "id": phase.id,
                "name": phase.name,
                "description": phase.description,
                "tasks": [t.summary() for t in phase.tasks],
            } if phase else None,
            "instructions": "Request the next step to begin the next task.",
        }

    def _reject(self, project: dict, loaded: BuildPlan, reason: Optional[str], actor: Optional[str]) -> dict:
        plan, reverted = checkpoint.reject(loaded)
        plan = self._persist(loaded, plan)
        self._record(plan, "rejected", actor, before=loaded, reason=reason, task_id=reverted.id)
        self.logger.task_reverted(plan.id, reverted.id, reverted.status.value)

        return {
            "success": True,
            "message": "Checkpoint rejected. Last completed task reverted to pending.",
            "project": project["slug"],
            "session_id": plan.session_id,
            "status": plan.status.value,
            "reverted_task": reverted.summary(),
            "reason": reason or "No reason given.",
            "instructions": (
                "Roll back the step if its file changes must be undone, "
                "then approve or resume to rebuild it."
            ),
        }

    def _pause(self, project: dict, loaded: BuildPlan, actor: Optional[str]) -> dict:
        plan = self._persist(loaded, checkpoint.pause(loaded))
        self._record(plan, "paused", actor, before=loaded)
        return {
            "success": True,
            "message": "Session paused.",
            "project": project["slug"],
            "session_id": plan.session_id,
            "status": plan.status.value,
            "instructions": "Resume the session to continue.",
        }

    def _resume(self, project: dict, loaded: BuildPlan, actor: Optional[str]) -> dict:
        plan = self._persist(loaded, checkpoint.resume(loaded))
        self._record(plan, "resumed", actor, before=loaded)
        return {
            "success": True,
            "message": "Session resumed.",
            "project": project["slug"],
            "session_id": plan.session_id,
            "status": plan.status.value,
            "instructions": "Request the next step to continue building.",
        }

    def review_checkpoint(
        self,
        project_slug: str,
        action: str = "review",
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> dict:
        """Review, approve or reject the checkpoint of a project's plan."""
        if action not in REVIEW_ACTIONS:
            raise PreconditionFailedError(f"Unknown checkpoint action: {action}")

        project, plan = self._load_for_project(project_slug)
        if action == "approve":
            return self._approve(project, plan, actor)
        if action == "reject":
            return self._reject(project, plan, reason, actor)
        return {"project": project_slug, "plan_id": plan.id, **checkpoint.review(plan)}

    def approve(self, session_id: str, actor: Optional[str] = None) -> dict:
        project, plan = self._load_for_session(session_id)
        return self._approve(project, plan, actor)

    def reject(self, session_id: str, reason: Optional[str] = None, actor: Optional[str] = None) -> dict:
        project, plan = self._load_for_session(session_id)
        return self._reject(project, plan, reason, actor)

    def pause(self, session_id: str, actor: Optional[str] = None) -> dict:
        project, plan = self._load_for_session(session_id)
        return self._pause(project, plan, actor)

    def resume(self, session_id: str, actor: Optional[str] = None) -> dict:
        project, plan = self._load_for_session(session_id)
        return self._resume(project, plan, actor)

    def session_status(self) -> dict:
        """Summarize every unfinished plan and what it is waiting on."""
        sessions = []
        for plan in self.plans.list_latest(include_completed=False):
            project = self.projects.get(plan.project_id)
            phase = checkpoint.current_phase(plan)
            sessions.append({
                "project": project["slug"] if project else plan.project_id,
                "session_id": plan.session_id,
                "status": plan.status.value,
                "progress": checkpoint.progress(plan)["text"],
                "current_phase": phase.name if phase else None,
                "risk_level": checkpoint.assess_risk(plan),
                "pending_action": checkpoint.pending_action(plan),
                "at_checkpoint": checkpoint.at_checkpoint(plan),
                "updated": plan.updated,
            })

        return {
            "active_sessions": sum(1 for s in sessions if s["status"] == PlanStatus.IN_PROGRESS.value),
            "paused_sessions": sum(1 for s in sessions if s["status"] == PlanStatus.PAUSED.value),
            "awaiting_approval": sum(1 for s in sessions if s["at_checkpoint"]),
            "sessions": sessions,
        }

    def control_session(
        self,
        action: str,
        session_id: Optional[str] = None,
        reason: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> dict:
        """Dispatch a session-scoped action by name."""
        if action not in SESSION_ACTIONS:
            raise PreconditionFailedError(f"Unknown session action: {action}")
        if action == "status":
            return self.session_status()
        if not session_id:
            raise PreconditionFailedError(f'A session_id is required for the "{action}" action.')
        if action == "approve":
            return self.approve(session_id, actor)
        if action == "reject":
            return self.reject(session_id, reason, actor)
        if action == "pause":
            return self.pause(session_id, actor)
        return self.resume(session_id, actor)

    def resume_build(self, project_slug: str, actor: Optional[str] = None) -> dict:
        """Pick up a plan in a new work session.

        Rotates the session id. A paused plan is resumed unless it is waiting
        at an unapproved checkpoint.
        """
        project, loaded = self._load_for_project(project_slug)
        if is_terminal_status(loaded.status):
            return {
                "message": "Build is already complete. Nothing to resume.",
                "status": loaded.status.value,
            }

        plan = loaded.copy()
        previous_session = plan.session_id
        plan.session_id = str(uuid.uuid4())
        waiting = checkpoint.at_checkpoint(plan)
        if plan.status == PlanStatus.PAUSED and not waiting:
            plan = checkpoint.resume(plan)

        plan = self._persist(loaded, plan)
        self._record(plan, "session_resumed", actor, before=loaded)

        phase = checkpoint.current_phase(plan)
        next_task = find_next_task(plan)
        active = find_active_task(plan)
        failed = _failed_summary(plan)

        if waiting:
            instructions = "You're at a checkpoint. Review it and approve or reject before continuing."
        elif active:
            instructions = f'Task "{active[1].id}" is in progress. Finish it and report the outcome.'
        elif next_task:
            instructions = f'Request the next step to continue with task "{next_task[1].id}".'
        elif failed:
            instructions = "Some tasks have failed. Fix the issues and report again, or roll the step back."
        else:
            instructions = "No tasks available. The build may need a checkpoint review."

        return {
            "message": "Build resumed.",
            "project": project_slug,
            "previous_session": previous_session,
            "new_session": plan.session_id,
            "status": plan.status.value,
            "progress": checkpoint.progress(plan)["text"],
            "current_phase": {"id": phase.id, "name": phase.name, "status": phase.status.value} if phase else None,
            "at_checkpoint": waiting,
            "failed_tasks": failed,
            "active_task": active[1].summary() if active else None,
            "next_task": next_task[1].summary() if next_task else None,
            "instructions": instructions,
        }

    # -- rollback ------------------------------------------------------------------

    def _rollback_target(self, plan: BuildPlan, task_id: Optional[str]) -> BuildTask:
        if task_id:
            _, target = get_task(plan, task_id)
        else:
            target = None
            for _, task in iter_tasks(plan):
                if task.status not in (TaskStatus.COMPLETED, TaskStatus.FAILED):
                    continue
                if target is None or (task.completed or "") >= (target.completed or ""):
                    target = task
            if target is None:
                raise PreconditionFailedError("No completed or failed tasks to roll back.")

        if target.status not in (TaskStatus.COMPLETED, TaskStatus.FAILED):
            raise PreconditionFailedError(
                f'Task "{target.id}" is {target.status.value} - can only roll back completed or failed tasks.',
                current_status=target.status.value,
            )
        return target

    def _revert_files(self, task: BuildTask, project_path: Optional[str]) -> dict:
        restored, flagged, errors = [], [], []
        covered = set()

        if task.rollback_version:
            if self.recorder.has_manifest(task.rollback_version):
                point = self.recorder.load(task.rollback_version)
                covered.update(entry["path"] for entry in point.files)
                report = self.recorder.restore(task.rollback_version, base_dir=project_path)
                restored.extend(report.restored)
                flagged.extend(report.flagged)
                errors.extend(report.errors)
            else:
                errors.append(
                    f"Rollback point {task.rollback_version} has no manifest; manual revert needed."
                )

        root = Path(project_path).resolve() if project_path else None
        for change in task.file_changes:
            if change.path in covered or change.path in flagged:
                continue
            if change.action == "created":
                flagged.append(change.path)
                continue
            if change.previous_content is None or root is None:
                errors.append(f"Cannot restore {change.path} - no previous content recorded. Manual revert needed.")
                continue

            target = (root / change.path).resolve()
            if not target.is_relative_to(root):
                errors.append(f"Refusing to restore outside {root}: {change.path}")
                continue
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_text(change.previous_content, encoding="utf-8")
                restored.append(change.path)
            except OSError as e:
                errors.append(f"Failed to revert {change.path}: {e}")

        return {"restored": restored, "flagged": flagged, "errors": errors}

    def rollback_last_step(
        self,
        project_slug: str,
        task_id: Optional[str] = None,
        project_path: Optional[str] = None,
        actor: Optional[str] = None,
    ) -> dict:
        """Undo the last completed or failed step and restore its files."""
        project, loaded = self._load_for_project(project_slug)
        plan = loaded.copy()
        target = self._rollback_target(plan, task_id)
        _, original = get_task(loaded, target.id)

        target.status = TaskStatus.ROLLED_BACK
        target.file_changes = []
        target.completed = None
        target.error = None

        for _, task in iter_tasks(plan):
            if target.id in task.depends_on and task.status == TaskStatus.IN_PROGRESS:
                task.status = TaskStatus.PENDING
                task.started = None

        recompute_phase_statuses(plan)
        if plan.status == PlanStatus.COMPLETED:
            set_plan_status(plan, PlanStatus.IN_PROGRESS)

        plan = self._persist(loaded, plan)
        files = self._revert_files(original, project_path)
        self._record(
            plan, "rollback", actor, before=loaded, task_id=target.id,
            reason="; ".join(files["errors"]) or None,
        )
        self.logger.rollback_applied(
            plan.id, target.id, len(files["restored"]), len(files["flagged"]), len(files["errors"])
        )

        return {
            "success": True,
            "message": f'Task "{target.id}" ({target.name}) rolled back.',
            "task": target.summary(),
            "status": plan.status.value,
            "reverted_files": files["restored"],
            "flagged_for_deletion": files["flagged"],
            "revert_errors": files["errors"],
            "instructions": (
                "The task is now rolled_back. Redo the work and report it with the same "
                "task_id to record the retry."
            ),
        }

    # -- read-only views -----------------------------------------------------------

    def list_rollback_points(self, project_slug: str) -> list[dict]:
        """Rollback points recorded for the project's current plan, newest first."""
        _, plan = self._load_for_project(project_slug)
        return [point.to_dict() for point in self.recorder.list_points(plan.id)]

    def get_plan_status(self, project_slug: str) -> dict:
        project, plan = self._load_for_project(project_slug)
        return {
            "project": project_slug,
            "plan_id": plan.id,
            "description": plan.description,
            "created": plan.created,
            "updated": plan.updated,
            **checkpoint.review(plan),
        }

    def audit_log(
        self,
        project_slug: Optional[str] = None,
        action: Optional[str] = None,
        actor: Optional[str] = None,
        last_days: Optional[int] = None,
        limit: int = 100,
    ) -> list[dict]:
        project_id = self.projects.require(project_slug)["id"] if project_slug else None
        return self.audit.query(
            project_id=project_id,
            action=action,
            actor=actor,
            last_days=last_days,
            limit=limit,
        )
