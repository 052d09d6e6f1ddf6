# Overview: Service-layer operations for users; accounts, role membership and bootstrap.

"""
User Administration

RULES:
- Email is unique (case-insensitive, stored lower-cased)
- Every user holds at least one role; role ids must exist
- Users cannot delete themselves
- Deactivating a user revokes their sessions
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateKey, InvalidAssignee, NotFound, ValidationFailed
from ..extensions import db
from ..models import Role, User
from ..permissions import Action, RESERVED_ROLE_CODE, Resource
from . import permission_service, session_service
from .auth_service import hash_password, normalize_email
from .permission_service import Principal

logger = logging.getLogger(__name__)

USER_EDITABLE_FIELDS = frozenset({"name", "email", "mobile", "password", "is_active", "role_ids"})

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class UserPage:
    items: list[User]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        return (self.total + self.per_page - 1) // self.per_page if self.per_page else 0

    def to_dict(self) -> dict:
        return {
            "users": [user.to_dict() for user in self.items],
            "pagination": {
                "total": self.total,
                "page": self.page,
                "per_page": self.per_page,
                "pages": self.pages,
            },
        }


def _validate_email(email: str | None) -> str:
    normalized = normalize_email(email)
    if not normalized or "@" not in normalized or normalized.startswith("@") or normalized.endswith("@"):
        raise ValidationFailed("A valid email is required", field="email")
    return normalized


def _resolve_roles(role_ids) -> list[Role]:
    if not isinstance(role_ids, (list, tuple)) or not role_ids:
        raise ValidationFailed("At least one role is required", field="role_ids")
    roles = []
    for role_id in role_ids:
        if isinstance(role_id, bool) or not isinstance(role_id, int):
            raise ValidationFailed("role_ids must be a list of integers", field="role_ids")
        role = db.session.query(Role).filter_by(id=role_id).first()
        if role is None:
            raise NotFound("Role", role_id)
        if role not in roles:
            roles.append(role)
    return roles


def _load_user(user_id: int) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None:
        raise NotFound("User", user_id)
    return user


def get_user_by_email(email: str) -> User | None:
    return db.session.query(User).filter_by(email=normalize_email(email)).first()


def create_user(
    principal: Principal,
    *,
    name: str,
    email: str,
    password: str,
    role_ids: list[int],
    mobile: str | None = None,
    is_active: bool = True,
) -> User:
    """
    Create a user with bcrypt-hashed password.

    Raises:
        DuplicateKey: email already registered
        ValidationFailed: missing name/email, weak password, empty roles
        NotFound: a role id does not exist
    """
    permission_service.require_permission(principal, Resource.USER, Action.CREATE)

    name = (name or "").strip()
    if not name:
        raise ValidationFailed("Name is required", field="name")
    email = _validate_email(email)
    roles = _resolve_roles(role_ids)

    if get_user_by_email(email) is not None:
        raise DuplicateKey("email", email)

    user = User(
        name=name,
        email=email,
        mobile=(mobile or None),
        password_hash=hash_password(password),
        is_active=bool(is_active),
    )
    user.roles = roles
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateKey("email", email)

    permission_service.log_security_event(
        user_id=principal.id,
        event_type="USER_CREATED",
        success=True,
        resource=Resource.USER.value,
        action=Action.CREATE.value,
        reason=f"Created user {user.id} ({email})",
    )
    logger.info("User %s created by %s", email, principal.id, extra={"user_id": principal.id})
    return user


def list_users(
    principal: Principal,
    *,
    page: int = 1,
    per_page: int = DEFAULT_PAGE_SIZE,
    search: str | None = None,
    role_code: str | None = None,
    is_active: bool | None = None,
) -> UserPage:
    permission_service.require_permission(principal, Resource.USER, Action.VIEW)

    page = max(int(page or 1), 1)
    per_page = min(max(int(per_page or DEFAULT_PAGE_SIZE), 1), MAX_PAGE_SIZE)

    query = db.session.query(User)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(User.name.ilike(like), User.email.ilike(like)))
    if role_code:
        query = query.filter(User.roles.any(Role.code == role_code))
    if is_active is not None:
        query = query.filter(User.is_active.is_(is_active))

    total = query.count()
    items = (
        query.order_by(User.created_at.desc(), User.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return UserPage(items=items, total=total, page=page, per_page=per_page)


def get_user(principal: Principal, user_id: int) -> User:
    permission_service.require_permission(principal, Resource.USER, Action.VIEW)
    return _load_user(user_id)


def update_user(principal: Principal, user_id: int, patch: dict) -> User:
    """
    Partial update. `role_ids` replaces the role set; `password` is re-hashed.
    Deactivation revokes the user's sessions.
    """
    permission_service.require_permission(principal, Resource.USER, Action.EDIT)

    if not isinstance(patch, dict):
        raise ValidationFailed("Invalid JSON payload")
    for key in patch:
        if key not in USER_EDITABLE_FIELDS:
            raise ValidationFailed(f"Field not allowed: {key}", field=key)

    user = _load_user(user_id)

    if "name" in patch:
        name = (patch["name"] or "").strip()
        if not name:
            raise ValidationFailed("Name is required", field="name")
        user.name = name

    if "email" in patch:
        email = _validate_email(patch["email"])
        if email != user.email:
            existing = get_user_by_email(email)
            if existing is not None and existing.id != user.id:
                raise DuplicateKey("email", email)
            user.email = email

    if "mobile" in patch:
        user.mobile = patch["mobile"] or None

    if "password" in patch:
        user.password_hash = hash_password(patch["password"])

    if "role_ids" in patch:
        user.roles = _resolve_roles(patch["role_ids"])

    deactivated = False
    if "is_active" in patch:
        if not isinstance(patch["is_active"], bool):
            raise ValidationFailed("is_active must be a boolean", field="is_active")
        if not patch["is_active"] and user.id == principal.id:
            raise ValidationFailed("You cannot deactivate your own account", field="is_active")
        deactivated = user.is_active and not patch["is_active"]
        user.is_active = patch["is_active"]

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateKey("email", patch.get("email"))

    if deactivated or "password" in patch:
        session_service.revoke_all_user_sessions(
            user.id, reason="User deactivated" if deactivated else "Password changed"
        )

    logger.info("User %s updated by %s", user.id, principal.id, extra={"user_id": principal.id})
    return user


def delete_user(principal: Principal, user_id: int) -> None:
    """
    Hard delete. Stores keep the dangling assignee id (no FK); readers
    serialise it with empty name/email.
    """
    permission_service.require_permission(principal, Resource.USER, Action.DELETE)

    if user_id == principal.id:
        raise ValidationFailed("You cannot delete your own account", field="id")

    user = _load_user(user_id)
    email = user.email
    db.session.delete(user)
    db.session.commit()
    logger.info("User %s deleted by %s", email, principal.id, extra={"user_id": principal.id})


def users_by_role(principal: Principal, role_code: str) -> list[User]:
    """Active users holding an active role (assignment pickers)."""
    permission_service.require_permission(principal, Resource.USER, Action.VIEW)
    return (
        db.session.query(User)
        .filter(
            User.is_active.is_(True),
            User.roles.any(db.and_(Role.code == role_code, Role.is_active.is_(True))),
        )
        .order_by(User.name.asc())
        .all()
    )


def user_has_role(user_id: int, role_code: str) -> bool:
    """Role-membership lookup: active user holding the active role."""
    return db.session.query(
        db.session.query(User)
        .filter(
            User.id == user_id,
            User.is_active.is_(True),
            User.roles.any(db.and_(Role.code == role_code, Role.is_active.is_(True))),
        )
        .exists()
    ).scalar()


def require_role_member(user_id, role_code: str) -> None:
    """Raise InvalidAssignee unless `user_id` is an active holder of `role_code`."""
    if user_id is None or isinstance(user_id, bool) or not isinstance(user_id, int):
        raise InvalidAssignee(user_id, role_code, f"A valid {role_code} user id is required")
    if not user_has_role(user_id, role_code):
        raise InvalidAssignee(user_id, role_code)


def seed_super_admin(email: str, password: str, name: str = "Super Admin") -> tuple[User, bool]:
    """
    Idempotently create the bootstrap SUPER_ADMIN user.

    Returns (user, created). An existing user with that email keeps its
    password but is guaranteed to hold SUPER_ADMIN and be active.
    Default roles must exist (role_service.ensure_default_roles).
    """
    role = db.session.query(Role).filter_by(code=RESERVED_ROLE_CODE).first()
    if role is None:
        raise NotFound("Role", RESERVED_ROLE_CODE)

    email = _validate_email(email)
    user = get_user_by_email(email)
    if user is not None:
        if role not in user.roles:
            user.roles.append(role)
        user.is_active = True
        db.session.commit()
        return user, False

    user = User(
        name=name,
        email=email,
        password_hash=hash_password(password),
        is_active=True,
    )
    user.roles = [role]
    db.session.add(user)
    db.session.commit()
    logger.info("Seeded super admin %s", email)
    return user, True
