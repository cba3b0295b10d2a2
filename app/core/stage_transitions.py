"""
Stage and task state machines.

Pure functions: given an entity and an event they return a *new* entity
or raise ``InvalidTransitionError``. Nothing here touches the database or
the clock; callers pass ``now`` in.

Stage transitions only move forward:
    start     PENDING                -> IN_PROGRESS
    validate  PENDING | IN_PROGRESS  -> VALIDATED
    close     VALIDATED              -> CLOSED

Task transitions:
    start     TODO                   -> IN_PROGRESS
    complete  IN_PROGRESS            -> DONE        (sets completed_at)
    cancel    TODO | IN_PROGRESS     -> CANCELED
    refuse    TODO                   -> CANCELED    (sets refusal_reason)

Usage:
    from app.core.stage_transitions import StageEvent, transition

    validated = transition(stage, StageEvent.VALIDATE, now)
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
from enum import Enum

from app.core.domain import Stage, StageStatus, Task, TaskStatus
from app.core.exceptions import InvalidTransitionError, ValidationError


class StageEvent(str, Enum):
    START = "start"
    VALIDATE = "validate"
    CLOSE = "close"


class TaskEvent(str, Enum):
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    REFUSE = "refuse"


STAGE_TRANSITIONS = {
    StageEvent.START: {"from": {StageStatus.PENDING}, "to": StageStatus.IN_PROGRESS},
    StageEvent.VALIDATE: {
        "from": {StageStatus.PENDING, StageStatus.IN_PROGRESS},
        "to": StageStatus.VALIDATED,
    },
    StageEvent.CLOSE: {"from": {StageStatus.VALIDATED}, "to": StageStatus.CLOSED},
}

TASK_TRANSITIONS = {
    TaskEvent.START: {"from": {TaskStatus.TODO}, "to": TaskStatus.IN_PROGRESS},
    TaskEvent.COMPLETE: {"from": {TaskStatus.IN_PROGRESS}, "to": TaskStatus.DONE},
    TaskEvent.CANCEL: {
        "from": {TaskStatus.TODO, TaskStatus.IN_PROGRESS},
        "to": TaskStatus.CANCELED,
    },
    TaskEvent.REFUSE: {"from": {TaskStatus.TODO}, "to": TaskStatus.CANCELED},
}


def validate_stage_transition(stage: Stage, event: StageEvent) -> dict:
    """Check whether ``event`` is allowed from the stage's current status."""
    rule = STAGE_TRANSITIONS.get(event)
    if not rule:
        return {"valid": False, "from": stage.status, "to": None,
                "reason": f"Unknown event: {event}"}

    if stage.status not in rule["from"]:
        if stage.status in (StageStatus.VALIDATED, StageStatus.CLOSED) and event == StageEvent.VALIDATE:
            reason = f'Stage "{stage.name}" already validated or closed'
        else:
            reason = f"Cannot '{event.value}' from status '{stage.status.value}'"
        return {"valid": False, "from": stage.status, "to": rule["to"], "reason": reason}

    return {"valid": True, "from": stage.status, "to": rule["to"], "reason": None}


def transition(stage: Stage, event: StageEvent, now: datetime) -> Stage:
    """Apply ``event`` to ``stage`` and return the transitioned copy.

    Raises:
        InvalidTransitionError: if the current status disallows the event.
    """
    event = StageEvent(event)
    check = validate_stage_transition(stage, event)
    if not check["valid"]:
        raise InvalidTransitionError(
            "Stage", stage.id,
            current=stage.status.value, event=event.value, reason=check["reason"],
        )
    return replace(stage, status=check["to"], updated_at=now)


def available_stage_events(stage: Stage) -> list[str]:
    return [e.value for e, rule in STAGE_TRANSITIONS.items() if stage.status in rule["from"]]


def transition_task(task: Task, event: TaskEvent, now: datetime, *, reason: str | None = None) -> Task:
    """Apply a lifecycle event to a task and return the new value.

    ``refuse`` requires a non-empty ``reason``.
    """
    event = TaskEvent(event)
    rule = TASK_TRANSITIONS[event]
    if task.status not in rule["from"]:
        raise InvalidTransitionError(
            "Task", task.id, current=task.status.value, event=event.value,
        )

    changes = {"status": rule["to"], "updated_at": now}
    if event == TaskEvent.COMPLETE:
        changes["completed_at"] = now
    elif event == TaskEvent.REFUSE:
        if not reason or not reason.strip():
            raise ValidationError("A refusal reason is required", details={"reason": "required"})
        changes["refusal_reason"] = reason.strip()
    return replace(task, **changes)


def assign(task: Task, user_id: str, now: datetime) -> Task:
    """Return ``task`` assigned to ``user_id``; status is left untouched.

    ``updated_at`` is bumped to ``now`` as bookkeeping; every other field
    keeps its value.
    """
    return replace(task, assigned_to=user_id, updated_at=now)
