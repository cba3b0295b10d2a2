"""Tests for the AssignTask workflow."""

from dataclasses import replace
from datetime import datetime, timezone

import pytest

from app.core.domain import Task, TaskPriority, TaskStatus
from app.core.exceptions import ForbiddenError, NotFoundError
from app.core.permissions import PermissionEngine
from app.core.workflows import AssignTask
from tests.fakes import InMemoryTaskRepository, RecordingNotifier, StaticRoleResolver

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _task():
    return Task(
        id="t1", title="Maquettes", project_id="p1", stage_id="s1",
        status=TaskStatus.IN_PROGRESS, priority=TaskPriority.HIGH, description="desc",
    )


def test_assign_sets_only_assignee():
    repo = InMemoryTaskRepository([_task()])
    result = AssignTask(repo, clock=lambda: NOW).execute("t1", "u2")

    assert result.assigned_to == "u2"
    assert result.updated_at == NOW
    assert repo.find_by_id("t1") == result
    assert result == replace(_task(), assigned_to="u2", updated_at=NOW)


def test_missing_task_performs_no_write():
    repo = InMemoryTaskRepository()
    with pytest.raises(NotFoundError):
        AssignTask(repo).execute("missing", "u2")
    assert repo.saves == []


def test_assignee_notified():
    notifier = RecordingNotifier()
    AssignTask(InMemoryTaskRepository([_task()]), notifier).execute("t1", "u2")

    (message,) = notifier.messages
    assert message.user_id == "u2"
    assert message.title == "Nouvelle tâche assignée"
    assert message.message == 'La tâche "Maquettes" vous a été assignée.'
    assert message.action_url == "/tasks/t1"


def test_notification_failure_does_not_fail_assignment():
    repo = InMemoryTaskRepository([_task()])
    result = AssignTask(repo, RecordingNotifier(fail=True)).execute("t1", "u2")
    assert result.assigned_to == "u2"


class TestActorAuthorization:

    def _workflow(self, repo):
        return AssignTask(
            repo,
            permissions=PermissionEngine(),
            roles=StaticRoleResolver({"pm": "manager", "emp": "employee"}),
        )

    def test_manager_may_assign(self):
        repo = InMemoryTaskRepository([_task()])
        assert self._workflow(repo).execute("t1", "u2", actor_id="pm").assigned_to == "u2"

    def test_employee_may_not_assign(self):
        repo = InMemoryTaskRepository([_task()])
        with pytest.raises(ForbiddenError):
            self._workflow(repo).execute("t1", "u2", actor_id="emp")
        assert repo.saves == []

    def test_no_actor_means_unconditional(self):
        repo = InMemoryTaskRepository([_task()])
        assert self._workflow(repo).execute("t1", "u2").assigned_to == "u2"
