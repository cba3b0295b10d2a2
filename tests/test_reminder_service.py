"""Tests for ReminderService delivery and the ReminderScheduler thread."""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.notification import Notification
from app.models.project import Task
from app.models.scheduling import TaskReminder
from app.services.notification import InAppNotifier
from app.services.reminder_service import ReminderScheduler, ReminderService
from tests.fakes import RecordingNotifier


@pytest.fixture()
def task(project, employee):
    row = Task(title="Maquettes", project_id=project.id, assigned_to=employee.id)
    db.session.add(row)
    db.session.commit()
    return row


def _past(minutes=5):
    return datetime.now(timezone.utc) - timedelta(minutes=minutes)


class TestSchedule:

    def test_unknown_channel(self, task, employee):
        service = ReminderService({})
        with pytest.raises(ValidationError):
            service.schedule(task_id=task.id, user_id=employee.id,
                             reminder_time=_past(), reminder_type="pigeon")

    def test_unknown_task(self, employee):
        with pytest.raises(NotFoundError):
            ReminderService({}).schedule(task_id="missing", user_id=employee.id, reminder_time=_past())


class TestProcessDue:

    def test_in_app_reminder_sent_once(self, task, employee):
        service = ReminderService({"in_app": InAppNotifier()})
        service.schedule(task_id=task.id, user_id=employee.id,
                         reminder_time=_past(), reminder_type="in_app")

        assert service.process_due() == {"due": 1, "sent": 1, "failed": 0}
        note = Notification.query.filter_by(user_id=employee.id).one()
        assert note.title == "Rappel : Maquettes"
        assert note.action_url == f"/tasks/{task.id}"

        assert service.process_due() == {"due": 0, "sent": 0, "failed": 0}

    def test_future_reminder_not_due(self, task, employee):
        service = ReminderService({"in_app": RecordingNotifier()})
        service.schedule(task_id=task.id, user_id=employee.id, reminder_type="in_app",
                         reminder_time=datetime.now(timezone.utc) + timedelta(hours=1))

        assert service.process_due()["due"] == 0

    def test_failure_is_recorded_and_retried(self, task, employee):
        failing = RecordingNotifier(fail=True)
        service = ReminderService({"sms": failing})
        reminder = service.schedule(task_id=task.id, user_id=employee.id,
                                    reminder_time=_past(), reminder_type="sms")
        reminder_id = reminder.id

        assert service.process_due() == {"due": 1, "sent": 0, "failed": 1}
        stored = db.session.get(TaskReminder, reminder_id)
        assert stored.sent_at is None
        assert "notification backend down" in stored.last_error

        failing.fail = False
        assert service.process_due()["sent"] == 1
        stored = db.session.get(TaskReminder, reminder_id)
        assert stored.sent_at is not None
        assert stored.last_error is None

    def test_missing_channel_counts_as_failure(self, task, employee):
        service = ReminderService({})
        service.schedule(task_id=task.id, user_id=employee.id,
                         reminder_time=_past(), reminder_type="whatsapp")

        assert service.process_due()["failed"] == 1


class TestReminderScheduler:

    def test_run_once_uses_factory(self, app):
        calls = []

        class _Service:
            def process_due(self):
                calls.append(1)
                return {"due": 0, "sent": 0, "failed": 0}

        scheduler = ReminderScheduler(app, interval=60, service_factory=_Service)
        assert scheduler.run_once() == {"due": 0, "sent": 0, "failed": 0}
        assert scheduler.last_result == {"due": 0, "sent": 0, "failed": 0}
        assert calls == [1]

    def test_run_once_swallows_errors(self, app):
        class _Broken:
            def process_due(self):
                raise RuntimeError("boom")

        scheduler = ReminderScheduler(app, service_factory=_Broken)
        assert scheduler.run_once() is None

    def test_start_stop(self, app):
        scheduler = ReminderScheduler(app, interval=3600, service_factory=lambda: None)
        scheduler.start()
        assert scheduler.running
        scheduler.stop(timeout=2)
        assert not scheduler.running
