# Overview: Service-layer operations for roles; CRUD plus protection of the reserved role.

"""
Role Administration

RULES:
- Role codes are unique, upper-case identifiers (e.g. SUPER_ADMIN, RECCE)
- Permission maps only name known resources/actions (parse_permission_map)
- The reserved SUPER_ADMIN role cannot be deleted, deactivated, renamed
  (code) or lose any permission
- A role that is some user's only role cannot be deleted (a user must
  always hold at least one role)
"""

from __future__ import annotations

import logging
import re

from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateKey, NotFound, ValidationFailed
from ..extensions import db
from ..models import Role
from ..permissions import (
    Action,
    DEFAULT_ROLE_PERMISSIONS,
    DEFAULT_ROLES,
    PermissionVector,
    RESERVED_ROLE_CODE,
    Resource,
    parse_permission_map,
)
from . import permission_service
from .permission_service import Principal

logger = logging.getLogger(__name__)

ROLE_CODE_RE = re.compile(r"^[A-Z][A-Z0-9_]{1,63}$")


def normalize_code(code: str | None) -> str:
    normalized = (code or "").strip().upper().replace(" ", "_")
    if not ROLE_CODE_RE.match(normalized):
        raise ValidationFailed(
            "Role code must be 2-64 characters: letters, digits and underscores, starting with a letter",
            field="code",
        )
    return normalized


def _full_permissions() -> dict[Resource, PermissionVector]:
    return {resource: PermissionVector.full() for resource in Resource}


def _is_reserved(role: Role) -> bool:
    return role.code == RESERVED_ROLE_CODE


def get_role_by_code(code: str) -> Role | None:
    return db.session.query(Role).filter_by(code=code).first()


def _load_role(role_id: int) -> Role:
    role = db.session.query(Role).filter_by(id=role_id).first()
    if role is None:
        raise NotFound("Role", role_id)
    return role


def list_roles(principal: Principal, *, include_inactive: bool = True) -> list[Role]:
    permission_service.require_permission(principal, Resource.ROLE, Action.VIEW)
    query = db.session.query(Role)
    if not include_inactive:
        query = query.filter(Role.is_active.is_(True))
    return query.order_by(Role.code.asc()).all()


def get_role(principal: Principal, role_id: int) -> Role:
    permission_service.require_permission(principal, Resource.ROLE, Action.VIEW)
    return _load_role(role_id)


def create_role(
    principal: Principal,
    *,
    code: str,
    name: str,
    description: str | None = None,
    permissions: dict | None = None,
    is_active: bool = True,
) -> Role:
    """Create a role. Duplicate codes raise DuplicateKey."""
    permission_service.require_permission(principal, Resource.ROLE, Action.CREATE)

    code = normalize_code(code)
    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Role name is required", field="name")
    parsed = parse_permission_map(permissions)

    if get_role_by_code(code) is not None:
        raise DuplicateKey("code", code)

    role = Role(code=code, name=name, description=description, is_active=bool(is_active))
    role.set_permissions(parsed)
    db.session.add(role)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateKey("code", code)

    logger.info("Role %s created by user %s", code, principal.id, extra={"user_id": principal.id})
    return role


def update_role(principal: Principal, role_id: int, patch: dict) -> Role:
    """
    Update name/description/code/is_active/permissions.

    `permissions`, when given, replaces the whole map.
    """
    permission_service.require_permission(principal, Resource.ROLE, Action.EDIT)

    if not isinstance(patch, dict):
        raise ValidationFailed("Invalid JSON payload")
    allowed = {"code", "name", "description", "is_active", "permissions"}
    for key in patch:
        if key not in allowed:
            raise ValidationFailed(f"Field not allowed: {key}", field=key)

    role = _load_role(role_id)
    reserved = _is_reserved(role)

    if "code" in patch:
        code = normalize_code(patch["code"])
        if code != role.code:
            if reserved:
                raise ValidationFailed("The SUPER_ADMIN role code cannot be changed", field="code")
            if get_role_by_code(code) is not None:
                raise DuplicateKey("code", code)
            role.code = code

    if "name" in patch:
        name = (patch["name"] or "").strip()
        if not name:
            raise ValidationFailed("Role name is required", field="name")
        role.name = name

    if "description" in patch:
        role.description = patch["description"]

    if "is_active" in patch:
        if not isinstance(patch["is_active"], bool):
            raise ValidationFailed("is_active must be a boolean", field="is_active")
        if reserved and not patch["is_active"]:
            raise ValidationFailed("The SUPER_ADMIN role cannot be deactivated", field="is_active")
        role.is_active = patch["is_active"]

    if "permissions" in patch:
        parsed = parse_permission_map(patch["permissions"])
        if reserved:
            full = PermissionVector.full()
            if any(not parsed.get(res, PermissionVector.none()).covers(full) for res in Resource):
                raise ValidationFailed(
                    "The SUPER_ADMIN role must keep full permissions on every resource",
                    field="permissions",
                )
        role.set_permissions(parsed)

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateKey("code", patch.get("code"))

    logger.info("Role %s updated by user %s", role.code, principal.id, extra={"user_id": principal.id})
    return role


def delete_role(principal: Principal, role_id: int) -> None:
    permission_service.require_permission(principal, Resource.ROLE, Action.DELETE)

    role = _load_role(role_id)
    if _is_reserved(role):
        raise ValidationFailed("The SUPER_ADMIN role cannot be deleted", field="code")

    stranded = [user.email for user in role.users if len(user.roles) == 1]
    if stranded:
        raise ValidationFailed(
            f"Role {role.code} is the only role of: {', '.join(sorted(stranded))}",
            field="code",
        )

    code = role.code
    # Association rows are removed by the ORM through the users backref
    db.session.delete(role)
    db.session.commit()
    logger.info("Role %s deleted by user %s", code, principal.id, extra={"user_id": principal.id})


def ensure_default_roles() -> list[Role]:
    """
    Idempotently create the built-in roles.

    Existing non-reserved roles are left untouched (admins may have edited
    them). SUPER_ADMIN is always forced back to active with full permissions.
    """
    roles = []
    for code, (name, description) in DEFAULT_ROLES.items():
        role = get_role_by_code(code)
        if role is None:
            role = Role(code=code, name=name, description=description, is_active=True)
            role.set_permissions(DEFAULT_ROLE_PERMISSIONS[code])
            db.session.add(role)
            logger.info("Seeded role %s", code)
        elif code == RESERVED_ROLE_CODE:
            role.is_active = True
            role.set_permissions(_full_permissions())
        roles.append(role)

    db.session.commit()
    return roles
