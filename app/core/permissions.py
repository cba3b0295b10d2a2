"""
Permission Engine — role-based authorization chokepoint.

Evaluation is deterministic and deny-by-default:
  - the role must be a known ``RoleName``
  - the (resource, action) pair must be a known ``(Resource, Action)`` key
  - the role's grant set must contain that key

Every workflow that mutates protected state calls ``check`` (or
``assert_allowed``) before mutating. The engine never retries and has no
side effects; the grant table is either the static ``PERMISSION_MATRIX``
or one loaded from the permission store (see
``app.services.permission_service``).

Usage:
    from app.core.permissions import PermissionEngine

    engine = PermissionEngine()
    decision = engine.check("manager", "stages", "validate")
    if not decision.allowed:
        ...
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Mapping

from app.core.domain import Action, PermissionDecision, Resource, RoleName, coerce_enum, parse_role
from app.core.exceptions import ForbiddenError

logger = logging.getLogger(__name__)

PermissionKey = tuple[Resource, Action]
PermissionTable = Mapping[RoleName, frozenset[PermissionKey]]

_CRUD = (Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE)


def _grants(resource: Resource, *actions: Action) -> set[PermissionKey]:
    return {(resource, a) for a in actions}


PERMISSION_MATRIX: dict[RoleName, frozenset[PermissionKey]] = {
    RoleName.ADMIN: frozenset(
        (resource, action) for resource in Resource for action in Action
    ),
    RoleName.MANAGER: frozenset(
        _grants(Resource.USERS, Action.READ)
        | _grants(Resource.PROJECTS, *_CRUD)
        | _grants(Resource.STAGES, *_CRUD, Action.VALIDATE)
        | _grants(Resource.TASKS, *_CRUD, Action.ASSIGN)
        | _grants(Resource.NOTIFICATIONS, Action.READ, Action.UPDATE, Action.DELETE)
        | _grants(Resource.SETTINGS, Action.READ, Action.UPDATE)
        | _grants(Resource.DOCUMENTS, *_CRUD)
    ),
    RoleName.EMPLOYEE: frozenset(
        _grants(Resource.USERS, Action.READ)
        | _grants(Resource.PROJECTS, Action.READ)
        | _grants(Resource.STAGES, Action.READ, Action.UPDATE)
        | _grants(Resource.TASKS, Action.READ, Action.UPDATE)
        | _grants(Resource.NOTIFICATIONS, Action.READ, Action.UPDATE, Action.DELETE)
        | _grants(Resource.SETTINGS, Action.READ, Action.UPDATE)
        | _grants(Resource.DOCUMENTS, Action.READ, Action.UPDATE)
    ),
}


class PermissionEngine:
    """Decides allow/deny for ``(role, resource, action)``."""

    def __init__(self, table: PermissionTable | None = None) -> None:
        self._table = dict(PERMISSION_MATRIX if table is None else table)

    def grants_for(self, role) -> frozenset[PermissionKey]:
        role_name = parse_role(role)
        if role_name is None:
            return frozenset()
        return self._table.get(role_name, frozenset())

    def check(self, role, resource, action) -> PermissionDecision:
        role_name = parse_role(role)
        if role_name is None:
            return PermissionDecision(False, f"Unknown role: {role!r}")

        res = coerce_enum(Resource, resource)
        act = coerce_enum(Action, action)
        if res is None or act is None:
            return PermissionDecision(False, f"Unknown permission: {resource}.{action}")

        if (res, act) not in self._table.get(role_name, frozenset()):
            return PermissionDecision(
                False, f"You don't have permission to {act.value} {res.value}",
            )
        return PermissionDecision(True)

    def assert_allowed(self, role, resource, action, *, user_id: str | None = None) -> None:
        """Raise ``ForbiddenError`` unless the role is allowed."""
        decision = self.check(role, resource, action)
        if not decision.allowed:
            logger.info(
                "Permission denied: user=%s role=%s %s.%s (%s)",
                user_id, role, resource, action, decision.reason,
            )
            raise ForbiddenError(
                user_id, str(getattr(resource, "value", resource)),
                str(getattr(action, "value", action)), decision.reason,
            )


class CachedPermissionEngine(PermissionEngine):
    """Permission engine whose table is loaded from a store and cached.

    ``loader`` returns a full ``PermissionTable``. The table is reloaded
    once ``ttl`` seconds have passed or after ``invalidate()``.
    """

    def __init__(self, loader: Callable[[], PermissionTable], ttl: float = 300) -> None:
        super().__init__(table={})
        self._loader = loader
        self._ttl = ttl
        self._loaded_at: float | None = None
        self._lock = threading.Lock()

    def _ensure_loaded(self) -> None:
        with self._lock:
            if self._loaded_at is not None and time.monotonic() - self._loaded_at <= self._ttl:
                return
            self._table = dict(self._loader())
            self._loaded_at = time.monotonic()
            logger.debug("Permission table loaded: %d roles", len(self._table))

    def invalidate(self) -> None:
        with self._lock:
            self._loaded_at = None

    def grants_for(self, role) -> frozenset[PermissionKey]:
        self._ensure_loaded()
        return super().grants_for(role)

    def check(self, role, resource, action) -> PermissionDecision:
        self._ensure_loaded()
        return super().check(role, resource, action)
