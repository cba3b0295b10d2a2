"""
Project domain models — Project, ProjectMember, Stage, Task.

Stages are ordered by ``position`` within a project; tasks are optionally
scoped to a stage. ``to_entity()`` converts a row into the frozen domain
value used by the workflows (``app.core.domain``).
"""

import uuid
from datetime import datetime, timezone

from app.core import domain
from app.models import db


def _uuid():
    return str(uuid.uuid4())


def _utcnow():
    return datetime.now(timezone.utc)


STAGE_STATUSES = {s.value for s in domain.StageStatus}
TASK_STATUSES = {s.value for s in domain.TaskStatus}
TASK_PRIORITIES = {p.value for p in domain.TaskPriority}


class Project(db.Model):
    """A project owning ordered stages and their tasks."""

    __tablename__ = "projects"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(30), nullable=False, default="PLANNING")
    manager_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_by_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    stages = db.relationship("Stage", backref="project", lazy="dynamic",
                             order_by="Stage.position", cascade="all, delete-orphan")
    tasks = db.relationship("Task", backref="project", lazy="dynamic",
                            cascade="all, delete-orphan")
    members = db.relationship("ProjectMember", backref="project", lazy="dynamic",
                              cascade="all, delete-orphan")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "manager_id": self.manager_id,
            "created_by_id": self.created_by_id,
            "start_date": self.start_date.isoformat() if self.start_date else None,
            "end_date": self.end_date.isoformat() if self.end_date else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:
        return f"<Project {self.id}: {self.title}>"


class ProjectMember(db.Model):
    __tablename__ = "project_members"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id = db.Column(
        db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    role_in_project = db.Column(db.String(100))
    joined_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_member"),
        db.Index("ix_project_members_project", "project_id"),
        db.Index("ix_project_members_user", "user_id"),
    )

    user = db.relationship("User", back_populates="project_memberships")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "user_id": self.user_id,
            "role_in_project": self.role_in_project,
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
        }


class Stage(db.Model):
    """An ordered phase within a project. Status only moves forward."""

    __tablename__ = "stages"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    duration = db.Column(db.Integer, nullable=True, comment="Planned duration in days")
    status = db.Column(db.String(20), nullable=False, default=domain.StageStatus.PENDING.value,
                       comment="PENDING | IN_PROGRESS | VALIDATED | CLOSED")
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    created_by_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (
        db.Index("ix_stages_project_position", "project_id", "position"),
    )

    def to_entity(self) -> domain.Stage:
        return domain.Stage(
            id=self.id,
            name=self.name,
            description=self.description,
            position=self.position or 0,
            duration=self.duration,
            status=domain.StageStatus(self.status),
            project_id=self.project_id,
            created_by_id=self.created_by_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_dict(self) -> dict:
        return self.to_entity().to_dict()

    def __repr__(self) -> str:
        return f"<Stage {self.id}: {self.name} [{self.status}]>"


class Task(db.Model):
    """A unit of work, optionally scoped to a stage and assigned to a user."""

    __tablename__ = "tasks"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    title = db.Column(db.String(300), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default=domain.TaskStatus.TODO.value,
                       comment="TODO | IN_PROGRESS | DONE | CANCELED")
    priority = db.Column(db.String(10), nullable=True, comment="LOW | MEDIUM | HIGH")
    due_date = db.Column(db.Date, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    project_id = db.Column(
        db.String(36), db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    stage_id = db.Column(
        db.String(36), db.ForeignKey("stages.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    # Plain user id: assignment does not require the user to exist locally.
    assigned_to = db.Column(db.String(36), nullable=True, index=True)
    created_by_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    refusal_reason = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_entity(self) -> domain.Task:
        return domain.Task(
            id=self.id,
            title=self.title,
            description=self.description,
            status=domain.TaskStatus(self.status),
            priority=domain.TaskPriority(self.priority) if self.priority else None,
            due_date=self.due_date,
            completed_at=self.completed_at,
            project_id=self.project_id,
            stage_id=self.stage_id,
            assigned_to=self.assigned_to,
            created_by_id=self.created_by_id,
            created_at=self.created_at,
            updated_at=self.updated_at,
            refusal_reason=self.refusal_reason,
        )

    def apply(self, task: domain.Task) -> None:
        """Copy the mutable fields of a domain task onto this row."""
        self.title = task.title
        self.description = task.description
        self.status = task.status.value
        self.priority = task.priority.value if task.priority else None
        self.due_date = task.due_date
        self.completed_at = task.completed_at
        self.stage_id = task.stage_id
        self.assigned_to = task.assigned_to
        self.refusal_reason = task.refusal_reason
        self.updated_at = task.updated_at or _utcnow()

    def to_dict(self) -> dict:
        return self.to_entity().to_dict()

    def __repr__(self) -> str:
        return f"<Task {self.id}: {self.title[:40]}>"
