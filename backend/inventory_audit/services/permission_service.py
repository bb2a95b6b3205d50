# Overview: Service-layer operations for permissions; the single capability check.

"""
Role-Based Permission Checking

DESIGN PRINCIPLES:
- Fail closed: deny unless the user's role explicitly holds (resource, action)
- Inactive users hold no permissions, superusers or not
- Active superusers bypass the role lookup
- has_permission() is the only capability check; routes and CLI both use it
"""

from __future__ import annotations

from ..errors import ForbiddenError, NotFoundError
from ..extensions import db
from ..models import Permission, Role, RolePermission, User
from ..permissions import (
    DEFAULT_ROLE_DESCRIPTIONS,
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSION_DEFINITIONS,
    permission_code,
)


def get_user_permissions(user: User) -> set[str]:
    """
    Get all permission codes ("resource:action") granted to a user's role.

    Superuser status is not expanded here; see has_permission().
    """
    if user is None or not user.is_active or user.role_id is None:
        return set()

    rows = (
        db.session.query(Permission.name)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .filter(RolePermission.role_id == user.role_id)
        .all()
    )
    return {name for (name,) in rows}


def has_permission(user: User, resource: str, action: str) -> bool:
    if user is None or not user.is_active:
        return False
    if user.is_superuser:
        return True
    return permission_code(resource, action) in get_user_permissions(user)


def require_permission(user: User, resource: str, action: str) -> None:
    """Raise ForbiddenError unless `user` may perform `action` on `resource`."""
    if not has_permission(user, resource, action):
        raise ForbiddenError(
            "Permission denied",
            details={"required_permission": permission_code(resource, action)},
        )


def get_role_permissions(role_name: str) -> list[str]:
    role = db.session.query(Role).filter_by(name=role_name).first()
    if not role:
        raise NotFoundError(f"Role '{role_name}' not found")
    return sorted(rp.permission.name for rp in role.role_permissions)


def initialize_permissions() -> int:
    """
    Initialize all permission definitions in database.

    Idempotent: Safe to run multiple times. Returns the number created.
    """
    existing = {name for (name,) in db.session.query(Permission.name).all()}
    created_count = 0

    for resource, action, description in PERMISSION_DEFINITIONS:
        code = permission_code(resource, action)
        if code in existing:
            continue
        db.session.add(Permission(resource=resource, action=action, name=code, description=description))
        created_count += 1

    db.session.commit()
    return created_count


def create_default_roles() -> int:
    """
    Create ADMIN / MANAGER / AUDITOR / VIEWER and link their default permissions.

    Idempotent: existing roles and assignments are kept. Run
    initialize_permissions() first; unknown permission codes are skipped.
    Returns the number of role-permission links created.
    """
    permissions = {p.name: p for p in db.session.query(Permission).all()}
    created_count = 0

    for role_name, codes in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            role = Role(name=role_name, description=DEFAULT_ROLE_DESCRIPTIONS.get(role_name))
            db.session.add(role)
            db.session.flush()

        assigned = {
            permission_id
            for (permission_id,) in db.session.query(RolePermission.permission_id).filter_by(role_id=role.id)
        }
        for code in codes:
            permission = permissions.get(code)
            if not permission or permission.id in assigned:
                continue
            db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
            created_count += 1

    db.session.commit()
    return created_count
