"""
Task Service — task CRUD, assignment and the accept / refuse lifecycle.

Assignment goes through the ``AssignTask`` workflow. Accept and refuse
are ``transition_task`` events (start / refuse) persisted through the
task repository.
"""

import logging
from datetime import datetime, timezone

from app.core.domain import TaskPriority, TaskStatus, coerce_enum
from app.core.exceptions import NotFoundError, ValidationError
from app.core.stage_transitions import TaskEvent, transition_task
from app.models import db
from app.models.project import Project, Stage, Task
from app.services.activity_service import record_activity
from app.services.repositories import SqlTaskRepository
from app.services.workflow_factory import build_assign_task
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)


def list_tasks(project_id=None, stage_id=None, assigned_to=None, status=None):
    q = Task.query
    if project_id:
        q = q.filter_by(project_id=project_id)
    if stage_id:
        q = q.filter_by(stage_id=stage_id)
    if assigned_to:
        q = q.filter_by(assigned_to=assigned_to)
    if status:
        q = q.filter_by(status=str(status).upper())
    return q.order_by(Task.created_at.desc())


def get_task(task_id):
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def create_task(data, created_by_id=None):
    title = (data.get("title") or "").strip()
    project_id = data.get("project_id") or data.get("projectId")
    if not title or not project_id:
        raise ValidationError(
            "title and project_id are required",
            details={k: "required" for k, v in (("title", title), ("project_id", project_id)) if not v},
        )
    if db.session.get(Project, project_id) is None:
        raise NotFoundError("Project", project_id)

    stage_id = data.get("stage_id") or data.get("stageId")
    if stage_id and db.session.get(Stage, stage_id) is None:
        raise NotFoundError("Stage", stage_id)

    priority = None
    if data.get("priority"):
        priority = coerce_enum(TaskPriority, str(data["priority"]).upper())
        if priority is None:
            raise ValidationError(
                f"Invalid priority: {data['priority']}",
                details={"priority": sorted(p.value for p in TaskPriority)},
            )

    task = Task(
        title=title,
        description=data.get("description"),
        status=TaskStatus.TODO.value,
        priority=priority.value if priority else None,
        due_date=parse_date(data.get("due_date") or data.get("dueDate")),
        project_id=project_id,
        stage_id=stage_id,
        assigned_to=data.get("assigned_to") or data.get("assignedTo"),
        created_by_id=created_by_id,
    )
    db.session.add(task)
    db.session.commit()
    logger.info("Task %s created", task.id, extra={"task_id": task.id, "project_id": project_id})

    record_activity(
        user_id=created_by_id, action="task.create", entity_type="task",
        entity_id=task.id, description=f'Tâche "{title}" créée',
    )
    return task


def assign_task(task_id, user_id, actor_id=None):
    task = build_assign_task().execute(task_id, user_id, actor_id)
    record_activity(
        user_id=actor_id,
        action="task.assign",
        entity_type="task",
        entity_id=task_id,
        description=f'Tâche "{task.title}" assignée',
        details={"assigned_to": user_id},
    )
    return task


def _apply_event(task_id, event, *, actor_id=None, reason=None):
    repo = SqlTaskRepository()
    task = repo.find_by_id(task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    updated = transition_task(task, event, datetime.now(timezone.utc), reason=reason)
    repo.save(updated)
    logger.info("Task %s %s by %s", task_id, event.value, actor_id,
                extra={"task_id": task_id, "actor_id": actor_id})
    return updated


def accept_task(task_id, actor_id=None):
    """The assignee accepts the task: TODO → IN_PROGRESS."""
    task = _apply_event(task_id, TaskEvent.START, actor_id=actor_id)
    record_activity(
        user_id=actor_id, action="task.accept", entity_type="task",
        entity_id=task_id, description=f'Tâche "{task.title}" acceptée',
    )
    return task


def reject_task(task_id, reason, actor_id=None):
    """The assignee refuses the task with a reason: TODO → CANCELED."""
    task = _apply_event(task_id, TaskEvent.REFUSE, actor_id=actor_id, reason=reason)
    record_activity(
        user_id=actor_id, action="task.refuse", entity_type="task",
        entity_id=task_id, description=f'Tâche "{task.title}" refusée',
        details={"reason": task.refusal_reason},
    )
    return task
