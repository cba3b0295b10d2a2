"""
In-memory port doubles for workflow tests.

The stage repository reproduces the compare-and-swap contract of the SQL
adapter under a lock, so concurrency tests exercise the same semantics
without a database.
"""

import threading
from dataclasses import replace

from app.core.domain import Task
from app.core.exceptions import ConflictError, NotFoundError, RepositoryError
from app.core.ports import (
    NotificationPort,
    RoleResolver,
    StageRepository,
    StakeholderDirectory,
    TaskRepository,
)


class InMemoryStageRepository(StageRepository):

    def __init__(self, stages=(), *, read_barrier=None):
        self._stages = {s.id: s for s in stages}
        self._lock = threading.Lock()
        self._read_barrier = read_barrier
        self.saves = []

    def find_by_id(self, stage_id):
        with self._lock:
            stage = self._stages.get(stage_id)
        if self._read_barrier is not None:
            self._read_barrier.wait(timeout=5)
        return stage

    def save(self, stage, *, expected_status=None):
        with self._lock:
            current = self._stages.get(stage.id)
            if current is None:
                raise NotFoundError("Stage", stage.id)
            if expected_status is not None and current.status != expected_status:
                raise ConflictError("Stage", stage.id, expected=expected_status.value)
            self._stages[stage.id] = stage
            self.saves.append(stage)

    def get(self, stage_id):
        return self._stages[stage_id]


class InMemoryTaskRepository(TaskRepository):

    def __init__(self, tasks=(), *, fail_create=False):
        self._tasks = {t.id: t for t in tasks}
        self._lock = threading.Lock()
        self._seq = 0
        self.fail_create = fail_create
        self.saves = []

    def find_by_id(self, task_id):
        return self._tasks.get(task_id)

    def save(self, task):
        if task.id not in self._tasks:
            raise NotFoundError("Task", task.id)
        self._tasks[task.id] = task
        self.saves.append(task)

    def find_by_stage(self, stage_id):
        return [t for t in self._tasks.values() if t.stage_id == stage_id]

    def create_many(self, specs, *, created_by_id=None):
        specs = list(specs)
        if self.fail_create:
            raise RepositoryError("task store unavailable")
        with self._lock:
            created = []
            for spec in specs:
                self._seq += 1
                created.append(Task(
                    id=f"t{self._seq}",
                    title=spec.title,
                    project_id=spec.project_id,
                    stage_id=spec.stage_id,
                    description=spec.description,
                    assigned_to=spec.assigned_to,
                    due_date=spec.due_date,
                    created_by_id=created_by_id,
                ))
            for task in created:
                self._tasks[task.id] = task
            return created

    def all(self):
        return list(self._tasks.values())


class RecordingNotifier(NotificationPort):

    def __init__(self, *, fail=False):
        self.fail = fail
        self.messages = []
        self._lock = threading.Lock()

    def notify(self, message):
        with self._lock:
            self.messages.append(message)
        if self.fail:
            raise RuntimeError("notification backend down")


class StaticRoleResolver(RoleResolver):

    def __init__(self, roles):
        self._roles = dict(roles)

    def role_of(self, user_id):
        return self._roles.get(user_id)


class StaticStakeholders(StakeholderDirectory):

    def __init__(self, user_ids=(), *, fail=False):
        self._user_ids = list(user_ids)
        self.fail = fail

    def stakeholders_for(self, stage):
        if self.fail:
            raise RuntimeError("directory down")
        return list(self._user_ids)


def with_status(stage, status):
    return replace(stage, status=status)
