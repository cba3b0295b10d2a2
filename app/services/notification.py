"""
Team Project Platform
Notification Service.

Central service for creating and querying in-app notifications, plus the
``NotificationPort`` adapters the workflows deliver through:

    InAppNotifier      one ``Notification`` row per message
    EmailNotifier      ``EmailService`` template mail to the user's address
    MessagingNotifier  SMS / WhatsApp through ``MessagingGateway``
    FanoutNotifier     every configured channel; fails only if all fail

Adapters may run on a worker thread, so each one can be given the Flask
app and will open its own application context around delivery.
"""

from __future__ import annotations

import logging
from contextlib import nullcontext
from datetime import datetime, timezone

from app.core.domain import NotificationMessage
from app.core.exceptions import NotFoundError
from app.core.ports import NotificationPort
from app.models import db
from app.models.auth import User
from app.models.notification import Notification
from app.services.email_service import EmailService

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, user_id, title, message="", type="INFO", action_url=None):
        """
        Create a single notification record.

        Returns:
            The created Notification instance (already committed).
        """
        notif = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=type,
            action_url=action_url,
        )
        db.session.add(notif)
        db.session.commit()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_user(user_id, unread_only=False, limit=50, offset=0):
        """Retrieve notifications for a user, newest first."""
        q = Notification.query.filter_by(user_id=user_id)
        if unread_only:
            q = q.filter_by(is_read=False)
        total = q.count()
        items = q.order_by(Notification.created_at.desc()).offset(offset).limit(limit).all()
        return items, total

    @staticmethod
    def unread_count(user_id):
        return Notification.query.filter_by(user_id=user_id, is_read=False).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(notification_id):
        """Mark a single notification as read."""
        notif = db.session.get(Notification, notification_id)
        if notif is None:
            raise NotFoundError("Notification", notification_id)
        notif.mark_read()
        db.session.commit()
        return notif

    @staticmethod
    def mark_all_read(user_id):
        now = datetime.now(timezone.utc)
        count = (
            Notification.query
            .filter_by(user_id=user_id, is_read=False)
            .update({"is_read": True, "read_at": now}, synchronize_session="fetch")
        )
        db.session.commit()
        return count


# ═══════════════════════════════════════════════════════════════════════════
#  Delivery adapters
# ═══════════════════════════════════════════════════════════════════════════


class _ContextualNotifier(NotificationPort):

    channel = "base"

    def __init__(self, app=None):
        self._app = app

    def _context(self):
        return self._app.app_context() if self._app is not None else nullcontext()

    def notify(self, message: NotificationMessage) -> None:
        with self._context():
            self._send(message)

    def _send(self, message: NotificationMessage) -> None:
        raise NotImplementedError


class InAppNotifier(_ContextualNotifier):

    channel = "in_app"

    def _send(self, message: NotificationMessage) -> None:
        try:
            NotificationService.create(
                user_id=message.user_id,
                title=message.title,
                message=message.message,
                action_url=message.action_url,
            )
        except Exception:
            db.session.rollback()
            raise


class EmailNotifier(_ContextualNotifier):
    """Mails the message to the user's address with the stage template."""

    channel = "email"

    def __init__(self, app=None, *, base_url: str = ""):
        super().__init__(app)
        self._base_url = base_url.rstrip("/")

    def _send(self, message: NotificationMessage) -> None:
        user = db.session.get(User, message.user_id)
        if user is None or not user.email:
            raise NotFoundError("User", message.user_id)

        link = f"{self._base_url}{message.action_url}" if message.action_url else ""
        log = EmailService.send_from_template(
            to_email=user.email,
            to_name=user.name,
            template_name="stage_notification",
            context={"title": message.title, "message": message.message, "link": link},
        )
        db.session.commit()
        if log is not None and log.status == "failed":
            raise RuntimeError(f"Email to {user.email} failed: {log.error_message}")


class MessagingNotifier(_ContextualNotifier):
    """Sends the message as SMS (or WhatsApp) to the user's phone number."""

    def __init__(self, gateway, app=None, *, channel: str = "sms"):
        super().__init__(app)
        self._gateway = gateway
        self.channel = channel

    def _send(self, message: NotificationMessage) -> None:
        user = db.session.get(User, message.user_id)
        if user is None or not user.phone:
            logger.warning("No phone number for user %s, skipping %s", message.user_id, self.channel)
            return

        text = f"{message.title}\n{message.message}"
        if self.channel == "whatsapp":
            result = self._gateway.send_whatsapp(user.phone, text)
        else:
            result = self._gateway.send_sms(user.phone, text)
        if not result.ok:
            raise RuntimeError(f"{self.channel} delivery failed: {result.error}")


class FanoutNotifier(NotificationPort):
    """Delivers to every channel; raises only when every channel failed."""

    def __init__(self, channels):
        self._channels = list(channels)

    @property
    def channels(self):
        return list(self._channels)

    def notify(self, message: NotificationMessage) -> None:
        errors = []
        for channel in self._channels:
            try:
                channel.notify(message)
            except Exception as exc:
                name = getattr(channel, "channel", type(channel).__name__)
                logger.warning(
                    "Channel %s failed for user %s: %s", name, message.user_id, exc,
                    extra={"actor_id": message.user_id},
                )
                errors.append((name, exc))

        if self._channels and len(errors) == len(self._channels):
            summary = ", ".join(f"{name}: {exc}" for name, exc in errors)
            raise RuntimeError(f"All notification channels failed ({summary})")
