"""
Permission Service — DB-backed grant table for the permission engine.

The roles / permissions / role_permissions tables are the permission
store. ``load_permission_table`` turns them into the
``{RoleName: frozenset[(Resource, Action)]}`` mapping the engine
evaluates; rows naming an unknown role, resource or action are skipped
(deny-by-default).

``seed_permissions`` writes ``PERMISSION_MATRIX`` into the store and is
idempotent. When the store holds no grant at all the loader falls back to
the static matrix so a fresh database is usable.
"""

import logging

from app.core.domain import Action, Resource, RoleName, coerce_enum, parse_role
from app.core.permissions import PERMISSION_MATRIX, CachedPermissionEngine
from app.models import db
from app.models.auth import Permission, Role, RolePermission

logger = logging.getLogger(__name__)

CACHE_TTL = 300  # 5 minutes

ROLE_DESCRIPTIONS = {
    RoleName.ADMIN: "Administrateur : accès complet",
    RoleName.MANAGER: "Chef de projet : gère projets, étapes et tâches",
    RoleName.EMPLOYEE: "Employé : consulte et met à jour ses tâches",
}


def load_permission_table() -> dict:
    rows = (
        db.session.query(Role.name, Permission.resource, Permission.action)
        .join(RolePermission, RolePermission.role_id == Role.id)
        .join(Permission, Permission.id == RolePermission.permission_id)
        .all()
    )
    if not rows:
        logger.info("Permission store empty, using static permission matrix")
        return dict(PERMISSION_MATRIX)

    grants: dict[RoleName, set] = {}
    for role_name, resource, action in rows:
        role = parse_role(role_name)
        res = coerce_enum(Resource, resource)
        act = coerce_enum(Action, action)
        if role is None or res is None or act is None:
            logger.warning("Ignoring unknown grant %s: %s.%s", role_name, resource, action)
            continue
        grants.setdefault(role, set()).add((res, act))
    return {role: frozenset(keys) for role, keys in grants.items()}


def build_permission_engine(ttl: float = CACHE_TTL) -> CachedPermissionEngine:
    return CachedPermissionEngine(load_permission_table, ttl=ttl)


def seed_permissions(matrix=None) -> dict:
    """
    Insert every role, permission and grant of ``matrix`` that is missing.

    Returns:
        Counts of created rows: ``{"roles": n, "permissions": n, "grants": n}``.
    """
    matrix = PERMISSION_MATRIX if matrix is None else matrix
    created = {"roles": 0, "permissions": 0, "grants": 0}

    permissions = {(p.resource, p.action): p for p in Permission.query.all()}
    for resource in Resource:
        for action in Action:
            key = (resource.value, action.value)
            if key not in permissions:
                perm = Permission(
                    resource=resource.value, action=action.value,
                    name=f"{resource.value}.{action.value}",
                )
                db.session.add(perm)
                permissions[key] = perm
                created["permissions"] += 1

    for role_name, keys in matrix.items():
        role = Role.query.filter_by(name=role_name.value).first()
        if role is None:
            role = Role(name=role_name.value, description=ROLE_DESCRIPTIONS.get(role_name))
            db.session.add(role)
            created["roles"] += 1
        db.session.flush()

        existing = {rp.permission_id for rp in role.role_permissions.all()}
        for resource, action in keys:
            perm = permissions[(resource.value, action.value)]
            if perm.id not in existing:
                db.session.add(RolePermission(role_id=role.id, permission_id=perm.id))
                created["grants"] += 1

    db.session.commit()
    logger.info("Permission seed: %s", created)
    return created
