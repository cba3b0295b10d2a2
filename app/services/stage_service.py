"""
Stage Service — stage CRUD and the validation entry point.

Blueprints call these functions; validation itself is delegated to the
``ValidateStage`` workflow built by ``app.services.workflow_factory``.
"""

import logging

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.project import Project, Stage
from app.services.activity_service import record_activity
from app.services.workflow_factory import build_generate_stage_tasks, build_validate_stage

logger = logging.getLogger(__name__)


def list_stages(project_id=None, status=None):
    q = Stage.query
    if project_id:
        q = q.filter_by(project_id=project_id)
    if status:
        q = q.filter_by(status=str(status).upper())
    return q.order_by(Stage.project_id, Stage.position)


def get_stage(stage_id):
    stage = db.session.get(Stage, stage_id)
    if stage is None:
        raise NotFoundError("Stage", stage_id)
    return stage


def create_stage(data, created_by_id=None):
    name = (data.get("name") or "").strip()
    project_id = data.get("project_id") or data.get("projectId")
    if not name or not project_id:
        raise ValidationError(
            "name and project_id are required",
            details={k: "required" for k, v in (("name", name), ("project_id", project_id)) if not v},
        )
    if len(name) > 200:
        raise ValidationError("name must be at most 200 characters", details={"name": "too_long"})
    if db.session.get(Project, project_id) is None:
        raise NotFoundError("Project", project_id)

    position = data.get("position")
    if position is None:
        position = Stage.query.filter_by(project_id=project_id).count()
    try:
        position = int(position)
        duration = int(data["duration"]) if data.get("duration") is not None else None
    except (TypeError, ValueError):
        raise ValidationError("position and duration must be integers")

    stage = Stage(
        name=name,
        description=data.get("description"),
        position=position,
        duration=duration,
        project_id=project_id,
        created_by_id=created_by_id,
    )
    db.session.add(stage)
    db.session.commit()
    logger.info("Stage %s created in project %s", stage.id, project_id,
                extra={"stage_id": stage.id, "project_id": project_id})

    record_activity(
        user_id=created_by_id, action="stage.create", entity_type="stage",
        entity_id=stage.id, description=f'Étape "{name}" créée',
    )
    return stage


def validate_stage(stage_id, actor_id):
    """Run the validation workflow and record it in the activity trail.

    Raises whatever the workflow raises (NotFoundError, ForbiddenError,
    InvalidTransitionError, ConflictError, PartialFailureError).
    """
    result = build_validate_stage().execute(stage_id, actor_id)
    record_activity(
        user_id=actor_id,
        action="stage.validate",
        entity_type="stage",
        entity_id=stage_id,
        description=f'Étape "{result.stage.name}" validée',
        details={"project_id": result.stage.project_id, "tasks_created": len(result.tasks)},
    )
    return result


def generate_stage_tasks(stage_id, actor_id):
    """Create the missing follow-up tasks of a validated stage."""
    tasks = build_generate_stage_tasks().execute(stage_id, actor_id)
    record_activity(
        user_id=actor_id,
        action="stage.generate_tasks",
        entity_type="stage",
        entity_id=stage_id,
        description=f"{len(tasks)} tâche(s) générée(s) pour l'étape",
        details={"tasks_created": len(tasks)},
    )
    return tasks
