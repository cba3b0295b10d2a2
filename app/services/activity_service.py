"""
Activity Service — best-effort writer for the activity trail.

A failed activity write is logged and rolled back; it never fails the
operation that triggered it.
"""

import logging

from sqlalchemy.exc import SQLAlchemyError

from app.models import db
from app.models.audit import ActivityLog, write_activity

logger = logging.getLogger(__name__)


def record_activity(*, user_id, action, entity_type, entity_id, description, details=None):
    try:
        log = write_activity(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details,
        )
        db.session.commit()
        return log
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Could not record activity %s on %s/%s", action, entity_type, entity_id)
        return None


def list_activity(entity_type=None, entity_id=None, user_id=None, limit=50):
    q = ActivityLog.query
    if entity_type:
        q = q.filter_by(entity_type=entity_type)
    if entity_id:
        q = q.filter_by(entity_id=str(entity_id))
    if user_id:
        q = q.filter_by(user_id=user_id)
    return q.order_by(ActivityLog.created_at.desc()).limit(limit).all()
