"""
Domain entities for the stage / task workflows.

Plain frozen value objects. Workflows never mutate them in place: every
state change produces a new instance (``dataclasses.replace``) that is
handed back to a repository port for persistence.

Enums are closed sets. Coercion helpers return ``None`` for unknown
input so callers (the permission engine in particular) can fail closed
instead of comparing loose strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


# ═════════════════════════════════════════════════════════════════════════════
# Enums
# ═════════════════════════════════════════════════════════════════════════════

class StageStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    VALIDATED = "VALIDATED"
    CLOSED = "CLOSED"


class TaskStatus(str, Enum):
    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"
    CANCELED = "CANCELED"


class TaskPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RoleName(str, Enum):
    """The closed set of application roles. A user holds exactly one."""
    ADMIN = "admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class Resource(str, Enum):
    USERS = "users"
    PROJECTS = "projects"
    STAGES = "stages"
    TASKS = "tasks"
    NOTIFICATIONS = "notifications"
    SETTINGS = "settings"
    DOCUMENTS = "documents"
    PERMISSIONS = "permissions"
    ROLES = "roles"


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    VALIDATE = "validate"
    ASSIGN = "assign"


def coerce_enum(enum_cls, value):
    """Return ``enum_cls(value)`` or ``None`` when the value is not a member."""
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return None
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        return None


# Legacy role labels found in user records ("Chef de projet", "Administrator").
_ROLE_ALIASES = {
    "administrator": RoleName.ADMIN,
    "chef de projet": RoleName.MANAGER,
}


def parse_role(value) -> RoleName | None:
    """Map a stored role label onto ``RoleName``; ``None`` if unrecognised."""
    if isinstance(value, RoleName):
        return value
    if not value:
        return None
    label = str(value).strip().lower()
    return coerce_enum(RoleName, label) or _ROLE_ALIASES.get(label)


# ═════════════════════════════════════════════════════════════════════════════
# Entities
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class Stage:
    """An ordered phase within a project."""
    id: str
    name: str
    project_id: str
    status: StageStatus = StageStatus.PENDING
    position: int = 0
    description: str | None = None
    duration: int | None = None
    created_by_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "position": self.position,
            "duration": self.duration,
            "status": self.status.value,
            "project_id": self.project_id,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


@dataclass(frozen=True)
class Task:
    """A unit of work, optionally scoped to a stage."""
    id: str
    title: str
    project_id: str
    status: TaskStatus = TaskStatus.TODO
    description: str | None = None
    priority: TaskPriority | None = None
    due_date: date | None = None
    completed_at: datetime | None = None
    stage_id: str | None = None
    assigned_to: str | None = None
    created_by_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    refusal_reason: str | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status.value,
            "priority": self.priority.value if self.priority else None,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "project_id": self.project_id,
            "stage_id": self.stage_id,
            "assigned_to": self.assigned_to,
            "created_by_id": self.created_by_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "refusal_reason": self.refusal_reason,
        }


@dataclass(frozen=True)
class TaskSpec:
    """What the task generation rule asks the task store to create."""
    title: str
    project_id: str
    stage_id: str | None = None
    description: str | None = None
    assigned_to: str | None = None
    due_date: date | None = None

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "project_id": self.project_id,
            "stage_id": self.stage_id,
            "description": self.description,
            "assigned_to": self.assigned_to,
            "due_date": self.due_date.isoformat() if self.due_date else None,
        }


@dataclass(frozen=True)
class NotificationMessage:
    user_id: str
    title: str
    message: str
    action_url: str | None = None


@dataclass(frozen=True)
class PermissionDecision:
    allowed: bool
    reason: str | None = None

    def __bool__(self) -> bool:
        return self.allowed


@dataclass
class StageValidationResult:
    """Outcome of a successful stage validation."""
    stage: Stage
    tasks: list[TaskSpec] = field(default_factory=list)
    notified: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "stage": self.stage.to_dict(),
            "tasks": [spec.to_dict() for spec in self.tasks],
            "notified": list(self.notified),
        }
