# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Permission Checking

WHY: Enforce role-based access control in one place. Route handlers never
inspect roles directly; they declare a permission code and the decorator
asks this module.

DESIGN PRINCIPLES:
- Fail closed: Deny by default, require explicit permission grant
- Log denials only: Permission grants are not logged
"""

import logging

from ..extensions import db
from ..models import Role, RolePermission, Permission, UserRole
from ..permissions import PERMISSION_DEFINITIONS, DEFAULT_ROLE_PERMISSIONS


logger = logging.getLogger(__name__)


class PermissionDeniedError(Exception):
    """Raised when user lacks required permission."""
    pass


def get_user_permissions(user_id: int) -> set[str]:
    """
    Get all permission codes for a user.

    Returns the union of the permissions of every role the user holds.
    """
    rows = (
        db.session.query(Permission.code)
        .join(RolePermission, RolePermission.permission_id == Permission.id)
        .join(UserRole, UserRole.role_id == RolePermission.role_id)
        .filter(UserRole.user_id == user_id)
        .all()
    )
    return {code for (code,) in rows}


def has_permission(user_id: int, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user_id)


def require_permission(user_id: int, permission_code: str, resource: str | None = None) -> None:
    """
    Raise PermissionDeniedError if the user lacks permission_code.

    Denials are logged at WARNING with the requested resource.
    """
    if has_permission(user_id, permission_code):
        return
    logger.warning(
        "Permission denied: user_id=%s permission=%s resource=%s",
        user_id, permission_code, resource,
    )
    raise PermissionDeniedError(f"Missing permission: {permission_code}")


def initialize_permissions() -> int:
    """
    Create Permission rows from PERMISSION_DEFINITIONS (idempotent).

    Returns the number of permissions created.
    """
    created = 0
    for code, name, description, category in PERMISSION_DEFINITIONS:
        existing = db.session.query(Permission).filter_by(code=code).first()
        if existing:
            continue
        db.session.add(Permission(code=code, name=name, description=description, category=category))
        created += 1
    db.session.commit()
    return created


def assign_default_role_permissions() -> int:
    """
    Grant DEFAULT_ROLE_PERMISSIONS to existing roles (idempotent).

    Returns the number of grants created.
    """
    granted = 0
    for role_name, codes in DEFAULT_ROLE_PERMISSIONS.items():
        role = db.session.query(Role).filter_by(name=role_name).first()
        if not role:
            continue
        for code in codes:
            permission = db.session.query(Permission).filter_by(code=code).first()
            if not permission:
                continue
            exists = db.session.query(RolePermission).filter_by(
                role_id=role.id, permission_id=permission.id
            ).first()
            if exists:
                continue
            db.session.add(RolePermission(role_id=role.id, permission_id=permission.id))
            granted += 1
    db.session.commit()
    return granted
