"""
Tests for app.services.notification: the in-app store and the delivery
adapters behind NotificationPort.
"""

from unittest.mock import MagicMock

import pytest

from app.core.domain import NotificationMessage
from app.core.exceptions import NotFoundError
from app.integrations.messaging_gateway import GatewayResult
from app.models.notification import Notification
from app.models.scheduling import EmailLog
from app.services.notification import (
    EmailNotifier,
    FanoutNotifier,
    InAppNotifier,
    MessagingNotifier,
    NotificationService,
)
from tests.fakes import RecordingNotifier


def _message(user_id, **kw):
    return NotificationMessage(
        user_id=user_id,
        title=kw.get("title", 'Étape "Design" validée'),
        message=kw.get("message", "Bravo"),
        action_url=kw.get("action_url", "/projects/p1/stages/s1"),
    )


class TestNotificationService:

    def test_list_and_unread_count(self, manager):
        NotificationService.create(user_id=manager.id, title="A")
        NotificationService.create(user_id=manager.id, title="B")

        items, total = NotificationService.list_for_user(manager.id)
        assert total == 2
        assert {n.title for n in items} == {"A", "B"}
        assert NotificationService.unread_count(manager.id) == 2

    def test_mark_all_read(self, manager, employee):
        NotificationService.create(user_id=manager.id, title="A")
        NotificationService.create(user_id=manager.id, title="B")
        NotificationService.create(user_id=employee.id, title="C")

        assert NotificationService.mark_all_read(manager.id) == 2
        assert NotificationService.unread_count(manager.id) == 0
        assert NotificationService.unread_count(employee.id) == 1

    def test_unread_only_filter(self, manager):
        first = NotificationService.create(user_id=manager.id, title="A")
        NotificationService.create(user_id=manager.id, title="B")
        NotificationService.mark_read(first.id)

        items, total = NotificationService.list_for_user(manager.id, unread_only=True)
        assert total == 1
        assert items[0].title == "B"

    def test_mark_read_missing(self):
        with pytest.raises(NotFoundError):
            NotificationService.mark_read("missing")


class TestInAppNotifier:

    def test_creates_row(self, manager):
        InAppNotifier().notify(_message(manager.id))

        note = Notification.query.filter_by(user_id=manager.id).one()
        assert note.title == 'Étape "Design" validée'
        assert note.action_url == "/projects/p1/stages/s1"
        assert note.is_read is False

    def test_unknown_user_raises(self):
        with pytest.raises(Exception):
            InAppNotifier().notify(_message("ghost"))
        assert Notification.query.count() == 0


class TestEmailNotifier:

    def test_dev_mode_logs_email(self, manager):
        EmailNotifier(base_url="https://pm.example.com/").notify(_message(manager.id))

        log = EmailLog.query.one()
        assert log.recipient_email == manager.email
        assert log.template_name == "stage_notification"
        assert log.subject == '[Team Project] Étape "Design" validée'
        assert log.status == "sent"

    def test_unknown_user(self):
        with pytest.raises(NotFoundError):
            EmailNotifier().notify(_message("ghost"))


class TestMessagingNotifier:

    def test_skips_user_without_phone(self, manager):
        gateway = MagicMock()
        MessagingNotifier(gateway).notify(_message(manager.id))
        gateway.send_sms.assert_not_called()

    def test_sms(self, make_user):
        user = make_user("employee", phone="+33600000000")
        gateway = MagicMock()
        gateway.send_sms.return_value = GatewayResult(True, 201, {"sid": "SM1"}, None)

        MessagingNotifier(gateway).notify(_message(user.id, title="Titre", message="Corps"))

        gateway.send_sms.assert_called_once_with("+33600000000", "Titre\nCorps")

    def test_whatsapp_failure_raises(self, make_user):
        user = make_user("employee", phone="+33600000000")
        gateway = MagicMock()
        gateway.send_whatsapp.return_value = GatewayResult(False, 400, None, "HTTP 400")

        with pytest.raises(RuntimeError, match="whatsapp"):
            MessagingNotifier(gateway, channel="whatsapp").notify(_message(user.id))


class TestFanoutNotifier:

    def test_delivers_to_every_channel(self):
        a, b = RecordingNotifier(), RecordingNotifier()
        FanoutNotifier([a, b]).notify(_message("u1"))
        assert len(a.messages) == len(b.messages) == 1

    def test_one_failing_channel_is_tolerated(self):
        ok = RecordingNotifier()
        FanoutNotifier([RecordingNotifier(fail=True), ok]).notify(_message("u1"))
        assert len(ok.messages) == 1

    def test_all_channels_failing_raises(self):
        fanout = FanoutNotifier([RecordingNotifier(fail=True), RecordingNotifier(fail=True)])
        with pytest.raises(RuntimeError, match="All notification channels failed"):
            fanout.notify(_message("u1"))
