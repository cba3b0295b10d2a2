"""
Port contracts consumed by the workflows.

Concrete adapters (SQLAlchemy repositories, in-app / email / messaging
notifiers) live in ``app.services`` and are supplied at composition time.
The workflows only ever see these interfaces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Iterable

from app.core.domain import NotificationMessage, RoleName, Stage, StageStatus, Task, TaskSpec


class StageRepository(ABC):

    @abstractmethod
    def find_by_id(self, stage_id: str) -> Stage | None:
        ...

    @abstractmethod
    def save(self, stage: Stage, *, expected_status: StageStatus | None = None) -> None:
        """
        Persist ``stage``.

        When ``expected_status`` is given the write is a compare-and-swap:
        it only succeeds if the stored status still equals it, otherwise
        ``ConflictError`` is raised and nothing is written.
        """
        ...


class TaskRepository(ABC):

    @abstractmethod
    def find_by_id(self, task_id: str) -> Task | None:
        ...

    @abstractmethod
    def save(self, task: Task) -> None:
        ...

    @abstractmethod
    def find_by_stage(self, stage_id: str) -> list[Task]:
        ...

    @abstractmethod
    def create_many(self, specs: Iterable[TaskSpec], *, created_by_id: str | None = None) -> list[Task]:
        """
        Create one task per spec, all or nothing.

        Raises:
            RepositoryError: if the batch could not be persisted; no task
                of the batch is stored in that case.
        """
        ...


class NotificationPort(ABC):

    @abstractmethod
    def notify(self, message: NotificationMessage) -> None:
        """Deliver ``message``. May raise; workflow callers swallow errors."""
        ...


class RoleResolver(ABC):

    @abstractmethod
    def role_of(self, user_id: str) -> RoleName | None:
        """Return the user's role, or ``None`` for unknown users."""
        ...


class StakeholderDirectory(ABC):

    @abstractmethod
    def stakeholders_for(self, stage: Stage) -> list[str]:
        """User ids interested in a stage (project manager, stage creator)."""
        ...
