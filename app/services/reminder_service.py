"""
Team Project Platform
Reminder Service.

Sends due task reminders on the channel named by each reminder.

Architecture:
    - ReminderService: schedules reminders and delivers the due ones
      (``process_due``), one ``NotificationPort`` per channel name
    - ReminderScheduler: an explicitly owned daemon thread that calls
      ``process_due`` every ``REMINDER_INTERVAL_SECONDS`` inside an app
      context. Nothing starts it on import; the composition root
      (``wsgi.py``) does when ``REMINDER_SCHEDULER_ENABLED`` is set.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Callable, Mapping

from flask import Flask

from app.core.domain import NotificationMessage
from app.core.exceptions import NotFoundError, ValidationError
from app.core.ports import NotificationPort
from app.models import db
from app.models.project import Task
from app.models.scheduling import REMINDER_CHANNELS, TaskReminder
from app.services.workflow_factory import build_channels

logger = logging.getLogger(__name__)


class ReminderService:
    """Schedules and delivers task reminders."""

    def __init__(self, channels: Mapping[str, NotificationPort]) -> None:
        self._channels = dict(channels)

    @classmethod
    def from_app(cls, app: Flask | None = None) -> "ReminderService":
        return cls(build_channels(app))

    def schedule(self, *, task_id, user_id, reminder_time, reminder_type="email", message=None) -> TaskReminder:
        if reminder_type not in REMINDER_CHANNELS:
            raise ValidationError(
                f"Unknown reminder channel: {reminder_type}",
                details={"reminder_type": sorted(REMINDER_CHANNELS)},
            )
        if db.session.get(Task, task_id) is None:
            raise NotFoundError("Task", task_id)

        reminder = TaskReminder(
            task_id=task_id,
            user_id=user_id,
            reminder_time=reminder_time,
            reminder_type=reminder_type,
            message=message,
        )
        db.session.add(reminder)
        db.session.commit()
        return reminder

    def due_reminders(self, now: datetime) -> list[TaskReminder]:
        return (
            TaskReminder.query
            .filter(
                TaskReminder.is_active.is_(True),
                TaskReminder.sent_at.is_(None),
                TaskReminder.reminder_time <= now,
            )
            .order_by(TaskReminder.reminder_time)
            .all()
        )

    def process_due(self, now: datetime | None = None) -> dict:
        """
        Deliver every due reminder once.

        A delivered reminder is stamped ``sent_at``; a failed one keeps
        ``sent_at`` empty and records ``last_error`` so the next run retries.

        Returns:
            Dict with due / sent / failed counts.
        """
        now = now or datetime.now(timezone.utc)
        reminders = self.due_reminders(now)
        results = {"due": len(reminders), "sent": 0, "failed": 0}

        for reminder in reminders:
            reminder_id = reminder.id
            notifier = self._channels.get(reminder.reminder_type)
            try:
                if notifier is None:
                    raise ValueError(f"No notifier for channel {reminder.reminder_type}")
                notifier.notify(self._message_for(reminder))
            except Exception as exc:
                db.session.rollback()
                reminder = db.session.get(TaskReminder, reminder_id)
                reminder.last_error = str(exc)[:1000]
                results["failed"] += 1
                logger.warning(
                    "Reminder %s (%s) failed: %s", reminder_id, reminder.reminder_type, exc,
                    extra={"task_id": reminder.task_id},
                )
            else:
                reminder = db.session.get(TaskReminder, reminder_id)
                reminder.mark_sent()
                results["sent"] += 1
            db.session.commit()

        if reminders:
            logger.info("Reminders processed: %s", results)
        return results

    @staticmethod
    def _message_for(reminder: TaskReminder) -> NotificationMessage:
        task = reminder.task
        title = task.title if task else reminder.task_id
        due = f" (échéance {task.due_date.isoformat()})" if task and task.due_date else ""
        return NotificationMessage(
            user_id=reminder.user_id,
            title=f"Rappel : {title}",
            message=reminder.message or f'N\'oubliez pas la tâche "{title}"{due}.',
            action_url=f"/tasks/{reminder.task_id}",
        )


class ReminderScheduler:
    """Background thread running ``ReminderService.process_due`` periodically.

    Usage:
        scheduler = ReminderScheduler(app, interval=60)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        app: Flask,
        *,
        interval: float = 60,
        service_factory: Callable[[], ReminderService] | None = None,
    ) -> None:
        self._app = app
        self._interval = interval
        self._service_factory = service_factory or (lambda: ReminderService.from_app(app))
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self.last_result: dict | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="reminder-scheduler", daemon=True)
        self._thread.start()
        logger.info("Reminder scheduler started (every %ss)", self._interval)

    def stop(self, timeout: float | None = 5) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.info("Reminder scheduler stopped")

    def run_once(self) -> dict | None:
        start = time.monotonic()
        try:
            with self._app.app_context():
                self.last_result = self._service_factory().process_due()
        except Exception:
            logger.exception("Reminder run failed")
            return None
        logger.debug("Reminder run took %dms", int((time.monotonic() - start) * 1000))
        return self.last_result

    def _loop(self) -> None:
        while not self._stop.wait(self._interval):
            self.run_once()
