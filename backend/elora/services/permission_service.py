# Overview: Service-layer operations for permission; the access gate every mutation goes through.

"""
Access Gate and Security Event Logging

WHY: Every store/role/user operation answers "may principal P perform
action A on resource R?" before it touches state.

DESIGN PRINCIPLES:
- Fail closed: deny by default, require an explicit grant
- Union semantics: a principal is authorized if ANY active role grants it
- Explicit context: the principal is passed as an argument, never read from
  request globals
- Log denials only: grants are not logged
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping

from ..errors import Unauthorized
from ..extensions import db
from ..models import SecurityEvent, User, Role
from ..permissions import (
    Action,
    PermissionVector,
    PRIVILEGED_ROLE_CODES,
    RESERVED_ROLE_CODE,
    Resource,
    RESOURCE_VALUES,
    ACTION_VALUES,
)
from elora.time_utils import utcnow

logger = logging.getLogger(__name__)
security_logger = logging.getLogger("elora.security")


@dataclass(frozen=True)
class RoleGrant:
    """A resolved role as seen by the gate: code plus its permission vectors."""
    code: str
    permissions: Mapping[Resource, PermissionVector] = field(default_factory=dict)
    is_active: bool = True

    @classmethod
    def from_role(cls, role: Role) -> "RoleGrant":
        return cls(code=role.code, permissions=role.permission_map(), is_active=bool(role.is_active))


@dataclass(frozen=True)
class Principal:
    """
    The authenticated actor behind an operation.

    Built by load_principal() from the database, or directly by callers that
    resolved roles elsewhere. The gate never re-fetches roles itself.
    """
    id: int
    roles: tuple[RoleGrant, ...] = ()
    is_active: bool = True
    name: str | None = None
    email: str | None = None

    @property
    def role_codes(self) -> list[str]:
        return [grant.code for grant in self.roles]

    def has_role(self, code: str) -> bool:
        return any(grant.code == code and grant.is_active for grant in self.roles)


def denial_reason(principal: Principal | None, resource, action) -> str | None:
    """
    Evaluate the gate. Returns None when authorized, otherwise the reason.

    Order matters: anonymous, then inactive, then empty role set, then the
    per-role lookup.
    """
    if principal is None:
        return "Authentication required"
    if not principal.is_active:
        return "User account is inactive"
    if not principal.roles:
        return "Access denied. No roles assigned."

    resource_name = resource.value if isinstance(resource, Resource) else resource
    action_name = action.value if isinstance(action, Action) else action
    if resource_name not in RESOURCE_VALUES or action_name not in ACTION_VALUES:
        return f"Access denied. Unknown permission {resource_name}.{action_name}"

    res = Resource(resource_name)
    for grant in principal.roles:
        if not grant.is_active:
            continue
        vector = grant.permissions.get(res)
        if vector is not None and vector.allows(action_name):
            return None

    return f"Access denied. You do not have '{action_name}' permission for {resource_name}."


def is_authorized(principal: Principal | None, resource, action) -> bool:
    """Pure predicate: no logging, no database access."""
    return denial_reason(principal, resource, action) is None


def is_privileged(principal: Principal | None) -> bool:
    """SUPER_ADMIN or ADMIN: sees every store and may act on any assignment."""
    if principal is None or not principal.is_active:
        return False
    return any(principal.has_role(code) for code in PRIVILEGED_ROLE_CODES)


def require_permission(
    principal: Principal | None,
    resource,
    action,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Require the principal to hold resource.action, raise Unauthorized if not.

    Denials are persisted to security_events before raising.

    Usage:
        require_permission(principal, Resource.STORE, Action.EDIT)
    """
    reason = denial_reason(principal, resource, action)
    if reason is None:
        return

    resource_name = resource.value if isinstance(resource, Resource) else str(resource)
    action_name = action.value if isinstance(action, Action) else str(action)

    security_logger.warning(
        "Permission denied: %s.%s for user %s (%s)",
        resource_name,
        action_name,
        principal.id if principal else None,
        reason,
        extra={"resource": resource_name, "action": action_name},
    )
    log_security_event(
        user_id=principal.id if principal else None,
        event_type="PERMISSION_DENIED",
        success=False,
        resource=resource_name,
        action=action_name,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    raise Unauthorized(reason, resource=resource_name, action=action_name)


def require_active(principal: Principal | None) -> None:
    """Authentication-only check used where no resource permission applies."""
    if principal is None:
        raise Unauthorized("Authentication required")
    if not principal.is_active:
        raise Unauthorized("User account is inactive")


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Append an event to the security audit trail.

    event_type examples:
    - PERMISSION_DENIED
    - LOGIN_FAILED
    - LOGIN_SUCCEEDED
    - LOGOUT
    - USER_CREATED
    - ROLE_CHANGED
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def principal_from_user(user: User) -> Principal:
    return Principal(
        id=user.id,
        roles=tuple(RoleGrant.from_role(role) for role in user.roles),
        is_active=bool(user.is_active),
        name=user.name,
        email=user.email,
    )


def load_principal(user_id: int) -> Principal | None:
    """Resolve a user and its roles into a Principal (None if no such user)."""
    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None:
        return None
    return principal_from_user(user)


def get_effective_permissions(principal: Principal) -> dict[str, dict]:
    """Union of all active role vectors, for display (e.g. /api/auth/me)."""
    merged: dict[str, dict] = {}
    for resource in Resource:
        merged[resource.value] = {
            action.value: is_authorized(principal, resource, action) for action in Action
        }
    return merged


def system_principal() -> Principal:
    """
    Principal for trusted maintenance entry points (CLI, bootstrap).

    Carries a full grant on every resource; never issued to HTTP callers.
    """
    return Principal(
        id=0,
        roles=(
            RoleGrant(
                code=RESERVED_ROLE_CODE,
                permissions={resource: PermissionVector.full() for resource in Resource},
            ),
        ),
        name="system",
    )
