"""
Stage validation and task assignment workflows.

Each workflow is one unit of work triggered by one request. Collaborators
are injected as ports; the workflow owns no entities beyond a single
``execute`` call and never serializes access itself: the stage
repository's conditional ``save`` is what makes two racing validations
resolve to exactly one winner.

Failure contract (see ``app.core.exceptions``):
    NotFoundError, ForbiddenError, InvalidTransitionError, ConflictError
        raised before any visible mutation.
    PartialFailureError
        raised after the stage write is committed, when the generated
        tasks could not be stored; ``GenerateStageTasks`` creates them later.
    Notification errors
        logged, never raised.

Usage:
    workflow = ValidateStage(stage_repo, task_repo, notifier, engine, roles)
    result = workflow.execute("s1", "actorA")
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor
from datetime import datetime, timezone
from typing import Callable, Iterable

from app.core.domain import (
    Action,
    NotificationMessage,
    Resource,
    StageStatus,
    StageValidationResult,
    Task,
)
from app.core.exceptions import (
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    PartialFailureError,
    RepositoryError,
)
from app.core.permissions import PermissionEngine
from app.core.ports import (
    NotificationPort,
    RoleResolver,
    StageRepository,
    StakeholderDirectory,
    TaskRepository,
)
from app.core.stage_transitions import StageEvent, assign, transition
from app.core.task_generation import TaskGenerationRule

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class _NotifyingWorkflow:
    """Shared fire-and-forget notification dispatch."""

    def __init__(self, notifier: NotificationPort, executor: Executor | None = None) -> None:
        self._notifier = notifier
        self._executor = executor

    def _deliver(self, message: NotificationMessage) -> None:
        try:
            self._notifier.notify(message)
        except Exception:
            logger.exception(
                "Notification to user %s failed: %s", message.user_id, message.title,
                extra={"actor_id": message.user_id},
            )

    def _dispatch(self, messages: Iterable[NotificationMessage]) -> list[str]:
        recipients = []
        for message in messages:
            recipients.append(message.user_id)
            if self._executor is not None:
                try:
                    self._executor.submit(self._deliver, message)
                except RuntimeError:
                    logger.warning("Notification executor unavailable, delivering inline")
                    self._deliver(message)
            else:
                self._deliver(message)
        return recipients


class ValidateStage(_NotifyingWorkflow):
    """Validate a stage, generate its follow-up tasks and notify stakeholders."""

    def __init__(
        self,
        stage_repo: StageRepository,
        task_repo: TaskRepository,
        notifier: NotificationPort,
        permissions: PermissionEngine,
        roles: RoleResolver,
        *,
        task_rule: TaskGenerationRule | None = None,
        stakeholders: StakeholderDirectory | None = None,
        system_actor_id: str | None = None,
        clock: Callable[[], datetime] | None = None,
        executor: Executor | None = None,
    ) -> None:
        super().__init__(notifier, executor)
        self._stages = stage_repo
        self._tasks = task_repo
        self._permissions = permissions
        self._roles = roles
        self._rule = task_rule or TaskGenerationRule()
        self._stakeholders = stakeholders
        self._system_actor_id = system_actor_id
        self._clock = clock or _utcnow

    def execute(self, stage_id: str, actor_id: str) -> StageValidationResult:
        log_extra = {"stage_id": stage_id, "actor_id": actor_id}

        # 1. Load
        stage = self._stages.find_by_id(stage_id)
        if stage is None:
            raise NotFoundError("Stage", stage_id)

        # 2. Authorize
        role = self._roles.role_of(actor_id)
        self._permissions.assert_allowed(
            role, Resource.STAGES, Action.VALIDATE, user_id=actor_id,
        )

        # 3. Transition (raises InvalidTransitionError for VALIDATED / CLOSED)
        validated = transition(stage, StageEvent.VALIDATE, self._clock())

        # 4. Persist, conditioned on the status we read
        try:
            self._stages.save(validated, expected_status=stage.status)
        except ConflictError:
            logger.warning("Stage %s validation lost a concurrent race", stage_id, extra=log_extra)
            raise

        logger.info("Stage %s validated by %s", stage_id, actor_id, extra=log_extra)

        # 5. Generate + persist follow-up tasks (stage write is not rolled back)
        specs = self._rule.generate(validated)
        try:
            self._tasks.create_many(specs, created_by_id=self._system_actor_id)
        except RepositoryError as exc:
            logger.error(
                "Stage %s validated but task generation failed: %s", stage_id, exc,
                extra=log_extra,
            )
            raise PartialFailureError(validated, specs, exc) from exc

        # 6. Notify
        notified = self._dispatch(
            self._validation_message(validated, user_id)
            for user_id in self._recipients(validated, actor_id)
        )
        return StageValidationResult(stage=validated, tasks=specs, notified=notified)

    def _recipients(self, stage, actor_id: str) -> list[str]:
        recipients = [actor_id]
        if self._stakeholders is not None:
            try:
                recipients.extend(self._stakeholders.stakeholders_for(stage))
            except Exception:
                logger.exception("Could not resolve stakeholders for stage %s", stage.id)
        seen = set()
        return [u for u in recipients if u and not (u in seen or seen.add(u))]

    @staticmethod
    def _validation_message(stage, user_id: str) -> NotificationMessage:
        return NotificationMessage(
            user_id=user_id,
            title=f'Étape "{stage.name}" validée',
            message=f'L\'étape "{stage.name}" du projet {stage.project_id} a été validée.',
            action_url=f"/projects/{stage.project_id}/stages/{stage.id}",
        )


class AssignTask(_NotifyingWorkflow):
    """Assign a task to a user. No state machine beyond the one mutation."""

    def __init__(
        self,
        task_repo: TaskRepository,
        notifier: NotificationPort | None = None,
        *,
        permissions: PermissionEngine | None = None,
        roles: RoleResolver | None = None,
        clock: Callable[[], datetime] | None = None,
        executor: Executor | None = None,
    ) -> None:
        super().__init__(notifier, executor)
        self._tasks = task_repo
        self._permissions = permissions
        self._roles = roles
        self._clock = clock or _utcnow

    def execute(self, task_id: str, user_id: str, actor_id: str | None = None) -> Task:
        task = self._tasks.find_by_id(task_id)
        if task is None:
            raise NotFoundError("Task", task_id)

        if actor_id is not None and self._permissions is not None and self._roles is not None:
            self._permissions.assert_allowed(
                self._roles.role_of(actor_id), Resource.TASKS, Action.ASSIGN, user_id=actor_id,
            )

        assigned = assign(task, user_id, self._clock())
        self._tasks.save(assigned)
        logger.info("Task %s assigned to %s", task_id, user_id,
                    extra={"task_id": task_id, "actor_id": actor_id})

        if self._notifier is not None:
            self._dispatch([NotificationMessage(
                user_id=user_id,
                title="Nouvelle tâche assignée",
                message=f'La tâche "{assigned.title}" vous a été assignée.',
                action_url=f"/tasks/{assigned.id}",
            )])
        return assigned


class GenerateStageTasks:
    """Create the follow-up tasks of an already validated stage.

    Recovery path after a ``PartialFailureError``: the stage is committed
    as VALIDATED but its generated tasks are missing. Only the specs whose
    title is not yet present on the stage are created, so running it twice
    never duplicates the batch.
    """

    def __init__(
        self,
        stage_repo: StageRepository,
        task_repo: TaskRepository,
        permissions: PermissionEngine,
        roles: RoleResolver,
        *,
        task_rule: TaskGenerationRule | None = None,
        system_actor_id: str | None = None,
    ) -> None:
        self._stages = stage_repo
        self._tasks = task_repo
        self._permissions = permissions
        self._roles = roles
        self._rule = task_rule or TaskGenerationRule()
        self._system_actor_id = system_actor_id

    def execute(self, stage_id: str, actor_id: str) -> list[Task]:
        stage = self._stages.find_by_id(stage_id)
        if stage is None:
            raise NotFoundError("Stage", stage_id)

        self._permissions.assert_allowed(
            self._roles.role_of(actor_id), Resource.STAGES, Action.VALIDATE, user_id=actor_id,
        )

        if stage.status != StageStatus.VALIDATED:
            raise InvalidTransitionError(
                "Stage", stage_id, current=stage.status.value, event="generate_tasks",
                reason="tasks are generated for validated stages only",
            )

        existing = {task.title for task in self._tasks.find_by_stage(stage_id)}
        pending = [spec for spec in self._rule.generate(stage) if spec.title not in existing]
        if not pending:
            raise InvalidTransitionError(
                "Stage", stage_id, current=stage.status.value, event="generate_tasks",
                reason="generated tasks already exist",
            )

        created = self._tasks.create_many(pending, created_by_id=self._system_actor_id)
        logger.info("Generated %d missing task(s) for stage %s", len(created), stage_id,
                    extra={"stage_id": stage_id, "actor_id": actor_id})
        return created
