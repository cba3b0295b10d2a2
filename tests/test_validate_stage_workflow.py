"""
Tests for the ValidateStage workflow, run against the in-memory port
doubles in ``tests.fakes``.
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest

from app.core.domain import Stage, StageStatus
from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    PartialFailureError,
)
from app.core.permissions import PermissionEngine
from app.core.workflows import ValidateStage
from tests.fakes import (
    InMemoryStageRepository,
    InMemoryTaskRepository,
    RecordingNotifier,
    StaticRoleResolver,
    StaticStakeholders,
)

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _design(status=StageStatus.PENDING):
    return Stage(id="s1", name="Design", project_id="p1", status=status)


def _workflow(stages, tasks=None, notifier=None, *, roles=None, **kwargs):
    return ValidateStage(
        stages,
        tasks if tasks is not None else InMemoryTaskRepository(),
        notifier if notifier is not None else RecordingNotifier(),
        PermissionEngine(),
        StaticRoleResolver(roles or {"actorA": "manager", "emp": "employee", "boss": "admin"}),
        clock=lambda: NOW,
        **kwargs,
    )


# ── Happy path ───────────────────────────────────────────────────────────


class TestValidateStage:

    def test_design_stage_end_to_end(self):
        stages = InMemoryStageRepository([_design()])
        tasks = InMemoryTaskRepository()

        result = _workflow(stages, tasks).execute("s1", "actorA")

        assert stages.get("s1").status == StageStatus.VALIDATED
        stored = tasks.all()
        assert sorted(t.title for t in stored) == [
            'Préparer les livrables de "Design"',
            'Validation interne de "Design"',
        ]
        assert all(t.project_id == "p1" and t.stage_id == "s1" for t in stored)
        assert result.stage.status == StageStatus.VALIDATED
        assert len(result.tasks) == 2

    def test_in_progress_stage_can_be_validated(self):
        stages = InMemoryStageRepository([_design(StageStatus.IN_PROGRESS)])
        result = _workflow(stages).execute("s1", "boss")
        assert result.stage.status == StageStatus.VALIDATED

    def test_stage_saved_with_expected_status(self):
        stages = InMemoryStageRepository([_design()])
        _workflow(stages).execute("s1", "actorA")

        assert len(stages.saves) == 1
        assert stages.saves[0].updated_at == NOW

    def test_second_validation_rejected_and_tasks_unchanged(self):
        stages = InMemoryStageRepository([_design()])
        tasks = InMemoryTaskRepository()
        workflow = _workflow(stages, tasks)
        workflow.execute("s1", "actorA")

        with pytest.raises(InvalidTransitionError):
            workflow.execute("s1", "actorA")
        assert len(tasks.all()) == 2

    def test_system_actor_recorded_as_creator(self):
        stages = InMemoryStageRepository([_design()])
        tasks = InMemoryTaskRepository()
        _workflow(stages, tasks, system_actor_id="system").execute("s1", "actorA")
        assert {t.created_by_id for t in tasks.all()} == {"system"}


# ── Failure modes ────────────────────────────────────────────────────────


class TestFailures:

    def test_missing_stage(self):
        notifier = RecordingNotifier()
        with pytest.raises(NotFoundError):
            _workflow(InMemoryStageRepository(), notifier=notifier).execute("nope", "actorA")
        assert notifier.messages == []

    @pytest.mark.parametrize("actor", ["emp", "stranger"])
    def test_forbidden_actor_makes_no_mutation(self, actor):
        stages = InMemoryStageRepository([_design()])
        tasks = InMemoryTaskRepository()
        notifier = RecordingNotifier()

        with pytest.raises(ForbiddenError):
            _workflow(stages, tasks, notifier).execute("s1", actor)

        assert stages.get("s1").status == StageStatus.PENDING
        assert stages.saves == []
        assert tasks.all() == []
        assert notifier.messages == []

    @pytest.mark.parametrize("status", [StageStatus.VALIDATED, StageStatus.CLOSED])
    def test_done_stage_rejected_without_side_effects(self, status):
        stages = InMemoryStageRepository([_design(status)])
        tasks = InMemoryTaskRepository()
        notifier = RecordingNotifier()

        with pytest.raises(InvalidTransitionError):
            _workflow(stages, tasks, notifier).execute("s1", "actorA")

        assert stages.saves == []
        assert tasks.all() == []
        assert notifier.messages == []

    def test_task_store_failure_is_partial(self):
        stages = InMemoryStageRepository([_design()])
        tasks = InMemoryTaskRepository(fail_create=True)
        notifier = RecordingNotifier()

        with pytest.raises(PartialFailureError) as exc_info:
            _workflow(stages, tasks, notifier).execute("s1", "actorA")

        assert stages.get("s1").status == StageStatus.VALIDATED
        assert exc_info.value.stage.status == StageStatus.VALIDATED
        assert len(exc_info.value.pending_tasks) == 2
        assert notifier.messages == []

    def test_notification_failure_is_swallowed(self):
        stages = InMemoryStageRepository([_design()])
        result = _workflow(stages, notifier=RecordingNotifier(fail=True)).execute("s1", "actorA")
        assert result.stage.status == StageStatus.VALIDATED

    def test_stakeholder_lookup_failure_still_notifies_actor(self):
        stages = InMemoryStageRepository([_design()])
        notifier = RecordingNotifier()
        _workflow(stages, notifier=notifier, stakeholders=StaticStakeholders(fail=True)).execute("s1", "actorA")
        assert [m.user_id for m in notifier.messages] == ["actorA"]


# ── Notifications ────────────────────────────────────────────────────────


class TestNotifications:

    def test_actor_notified(self):
        stages = InMemoryStageRepository([_design()])
        notifier = RecordingNotifier()
        result = _workflow(stages, notifier=notifier).execute("s1", "actorA")

        assert result.notified == ["actorA"]
        (message,) = notifier.messages
        assert message.title == 'Étape "Design" validée'
        assert message.message == 'L\'étape "Design" du projet p1 a été validée.'
        assert message.action_url == "/projects/p1/stages/s1"

    def test_stakeholders_deduplicated(self):
        stages = InMemoryStageRepository([_design()])
        notifier = RecordingNotifier()
        result = _workflow(
            stages, notifier=notifier,
            stakeholders=StaticStakeholders(["pm", "actorA", "pm", None]),
        ).execute("s1", "actorA")

        assert result.notified == ["actorA", "pm"]

    def test_executor_dispatch(self):
        stages = InMemoryStageRepository([_design()])
        notifier = RecordingNotifier()
        with ThreadPoolExecutor(max_workers=2) as executor:
            _workflow(stages, notifier=notifier, executor=executor,
                      stakeholders=StaticStakeholders(["pm"])).execute("s1", "actorA")
        assert sorted(m.user_id for m in notifier.messages) == ["actorA", "pm"]

    def test_shut_down_executor_falls_back_inline(self):
        stages = InMemoryStageRepository([_design()])
        notifier = RecordingNotifier()
        executor = ThreadPoolExecutor(max_workers=1)
        executor.shutdown()

        _workflow(stages, notifier=notifier, executor=executor).execute("s1", "actorA")
        assert [m.user_id for m in notifier.messages] == ["actorA"]


# ── Concurrency ──────────────────────────────────────────────────────────


def test_concurrent_validations_produce_one_batch():
    barrier = threading.Barrier(2)
    stages = InMemoryStageRepository([_design()], read_barrier=barrier)
    tasks = InMemoryTaskRepository()
    workflow = _workflow(stages, tasks)
    outcomes = []

    def run():
        try:
            workflow.execute("s1", "actorA")
            outcomes.append("ok")
        except (ConflictError, InvalidTransitionError) as exc:
            outcomes.append(type(exc).__name__)

    threads = [threading.Thread(target=run) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    assert sorted(outcomes) == ["ConflictError", "ok"]
    assert stages.get("s1").status == StageStatus.VALIDATED
    assert len(tasks.all()) == 2
