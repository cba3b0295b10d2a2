"""
SQLAlchemy adapters for the workflow ports.

Each adapter owns its transaction: writes commit on success and roll
back on failure, so a workflow step is either fully visible or not at all.

Concurrency:
    ``SqlStageRepository.save(stage, expected_status=...)`` issues a single
    ``UPDATE stages ... WHERE id = :id AND status = :expected``. Of two
    racing validations only one UPDATE matches a row; the other gets
    ``rowcount == 0`` and raises ``ConflictError``.
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from app.core import domain
from app.core.exceptions import ConflictError, NotFoundError, RepositoryError
from app.core.ports import RoleResolver, StageRepository, StakeholderDirectory, TaskRepository
from app.models import db
from app.models.auth import User
from app.models.project import Project, Stage, Task

logger = logging.getLogger(__name__)


class SqlStageRepository(StageRepository):

    def find_by_id(self, stage_id: str) -> domain.Stage | None:
        row = db.session.get(Stage, stage_id)
        return row.to_entity() if row else None

    def save(self, stage: domain.Stage, *, expected_status: domain.StageStatus | None = None) -> None:
        stmt = update(Stage).where(Stage.id == stage.id)
        if expected_status is not None:
            stmt = stmt.where(Stage.status == domain.StageStatus(expected_status).value)
        stmt = stmt.values(
            name=stage.name,
            description=stage.description,
            position=stage.position,
            duration=stage.duration,
            status=stage.status.value,
            updated_at=stage.updated_at,
        ).execution_options(synchronize_session=False)

        try:
            result = db.session.execute(stmt)
            if result.rowcount == 0:
                db.session.rollback()
                if expected_status is not None and db.session.get(Stage, stage.id) is not None:
                    raise ConflictError("Stage", stage.id, expected=domain.StageStatus(expected_status).value)
                raise NotFoundError("Stage", stage.id)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to save stage %s", stage.id, extra={"stage_id": stage.id})
            raise RepositoryError(f"Could not save stage {stage.id}: {exc}") from exc


class SqlTaskRepository(TaskRepository):

    def find_by_id(self, task_id: str) -> domain.Task | None:
        row = db.session.get(Task, task_id)
        return row.to_entity() if row else None

    def save(self, task: domain.Task) -> None:
        row = db.session.get(Task, task.id)
        if row is None:
            raise NotFoundError("Task", task.id)
        row.apply(task)
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Failed to save task %s", task.id, extra={"task_id": task.id})
            raise RepositoryError(f"Could not save task {task.id}: {exc}") from exc

    def find_by_stage(self, stage_id: str) -> list[domain.Task]:
        rows = Task.query.filter_by(stage_id=stage_id).order_by(Task.created_at).all()
        return [row.to_entity() for row in rows]

    def create_many(
        self, specs: Iterable[domain.TaskSpec], *, created_by_id: str | None = None,
    ) -> list[domain.Task]:
        rows = [
            Task(
                title=spec.title,
                description=spec.description,
                status=domain.TaskStatus.TODO.value,
                due_date=spec.due_date,
                project_id=spec.project_id,
                stage_id=spec.stage_id,
                assigned_to=spec.assigned_to,
                created_by_id=created_by_id,
            )
            for spec in specs
        ]
        try:
            db.session.add_all(rows)
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            logger.exception("Batch task creation failed (%d tasks)", len(rows))
            raise RepositoryError(f"Could not create {len(rows)} task(s): {exc}") from exc
        return [row.to_entity() for row in rows]


class SqlRoleResolver(RoleResolver):

    def role_of(self, user_id: str) -> domain.RoleName | None:
        if not user_id:
            return None
        user = db.session.get(User, user_id)
        if user is None or user.is_active is False:
            return None
        return domain.parse_role(user.role_name)


class SqlStakeholderDirectory(StakeholderDirectory):
    """Project manager first, then the stage creator."""

    def stakeholders_for(self, stage: domain.Stage) -> list[str]:
        project = db.session.get(Project, stage.project_id)
        candidates = [project.manager_id if project else None, stage.created_by_id]
        return [user_id for user_id in candidates if user_id]
