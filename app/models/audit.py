"""
Team Project Platform
Activity log model.

Models:
    - ActivityLog: append-only trail of user-visible lifecycle events
      (stage validated, task assigned, task accepted / refused).
"""

import json
import uuid
from datetime import datetime, timezone

from app.models import db


ACTIVITY_ACTIONS = {
    "stage.create",
    "stage.validate",
    "stage.generate_tasks",
    "task.create",
    "task.assign",
    "task.accept",
    "task.refuse",
}


class ActivityLog(db.Model):
    """
    One row per action. ``details_json`` carries the event payload
    (description plus any extra fields the caller supplied).
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        db.Index("idx_activity_entity", "entity_type", "entity_id"),
        db.Index("idx_activity_user", "user_id"),
        db.Index("idx_activity_ts", "created_at"),
    )

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = db.Column(db.String(36), nullable=True,
                        comment="Acting user; NULL for system events")
    action = db.Column(db.String(60), nullable=False,
                       comment="stage.validate | task.assign | …")
    entity_type = db.Column(db.String(30), nullable=False)
    entity_id = db.Column(db.String(36), nullable=False)
    details_json = db.Column(db.Text, default="{}")
    created_at = db.Column(
        db.DateTime(timezone=True), nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def details(self) -> dict:
        try:
            return json.loads(self.details_json or "{}")
        except (json.JSONDecodeError, TypeError):
            return {}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "action": self.action,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "details": self.details,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ActivityLog {self.action} on {self.entity_type}/{self.entity_id}>"


# ── Convenience writer ───────────────────────────────────────────────────────


def write_activity(
    *,
    user_id: str | None,
    action: str,
    entity_type: str,
    entity_id: str,
    description: str,
    details: dict | None = None,
) -> ActivityLog:
    """
    Append a single activity row.  Uses ``flush`` so callers keep
    transaction control.
    """
    payload = {"description": description, **(details or {})}
    log = ActivityLog(
        user_id=user_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        details_json=json.dumps(payload, default=str, ensure_ascii=False),
    )
    db.session.add(log)
    db.session.flush()
    return log
