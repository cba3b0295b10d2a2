"""Follow-up task generation for a validated stage."""

from __future__ import annotations

from app.core.domain import Stage, TaskSpec

AUTO_TASK_DESCRIPTION = "Tâche générée automatiquement à la validation de l'étape"


class TaskGenerationRule:
    """Pure and deterministic: same stage in, same specs out."""

    def generate(self, stage: Stage) -> list[TaskSpec]:
        return [
            TaskSpec(
                title=f'Préparer les livrables de "{stage.name}"',
                project_id=stage.project_id,
                stage_id=stage.id,
                description=AUTO_TASK_DESCRIPTION,
            ),
            TaskSpec(
                title=f'Validation interne de "{stage.name}"',
                project_id=stage.project_id,
                stage_id=stage.id,
            ),
        ]


def generate_tasks(stage: Stage) -> list[TaskSpec]:
    return TaskGenerationRule().generate(stage)
