"""
Team Project Platform
Reminder & delivery log models.

Models:
    - TaskReminder: a one-shot reminder about a task, sent on a channel
    - EmailLog: outbound email audit trail
"""

import uuid
from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

REMINDER_CHANNELS = {"email", "sms", "whatsapp", "in_app"}
EMAIL_STATUSES = {"queued", "sent", "failed"}


def _uuid():
    return str(uuid.uuid4())


class TaskReminder(db.Model):
    """
    Reminder scheduled for a user about a task.

    Picked up by ``ReminderService.process_due`` once ``reminder_time`` has
    passed; ``sent_at`` is stamped after delivery so a reminder fires once.
    """

    __tablename__ = "task_reminders"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    task_id = db.Column(db.String(36), db.ForeignKey("tasks.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    user_id = db.Column(db.String(36), db.ForeignKey("users.id", ondelete="CASCADE"),
                        nullable=False, index=True)
    reminder_time = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    reminder_type = db.Column(db.String(20), nullable=False, default="email",
                              comment="email | sms | whatsapp | in_app")
    message = db.Column(db.Text, nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_error = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    task = db.relationship("Task")
    user = db.relationship("User")

    def mark_sent(self):
        self.sent_at = datetime.now(timezone.utc)
        self.last_error = None

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "reminder_time": self.reminder_time.isoformat() if self.reminder_time else None,
            "reminder_type": self.reminder_type,
            "message": self.message,
            "is_active": self.is_active,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "last_error": self.last_error,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<TaskReminder {self.task_id}->{self.user_id} @ {self.reminder_time}>"


class EmailLog(db.Model):
    """
    Outbound email audit log.

    Every email sent through the platform is logged here for audit/debug.
    """

    __tablename__ = "email_logs"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    recipient_email = db.Column(db.String(255), nullable=False, index=True)
    recipient_name = db.Column(db.String(150), nullable=True)
    subject = db.Column(db.String(500), nullable=False)
    template_name = db.Column(db.String(100), nullable=True,
                              comment="Email template used")
    status = db.Column(db.String(20), default="queued",
                       comment="queued, sent, failed")
    error_message = db.Column(db.Text, nullable=True)

    sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True),
                           default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "recipient_email": self.recipient_email,
            "recipient_name": self.recipient_name,
            "subject": self.subject,
            "template_name": self.template_name,
            "status": self.status,
            "error_message": self.error_message,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<EmailLog {self.recipient_email} [{self.status}]>"
