from __future__ import annotations

from ..extensions import db
from ..permissions import PermissionVector, Resource, RESOURCE_VALUES
from elora.time_utils import to_utc_z, utcnow


class User(db.Model):
    """
    User accounts for authentication and attribution.

    A user always holds at least one role; the roles are shared, long-lived
    records and the user only keeps references to them (user_roles).
    """
    __tablename__ = "users"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)
    mobile = db.Column(db.String(32), nullable=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    roles = db.relationship(
        "Role",
        secondary="user_roles",
        lazy="selectin",
        order_by="Role.code",
        backref=db.backref("users", lazy=True),
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} email={self.email!r}>"

    @property
    def role_codes(self) -> list[str]:
        return [role.code for role in self.roles]

    def to_dict(self, *, include_permissions: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "mobile": self.mobile,
            "is_active": self.is_active,
            "roles": [role.to_summary() for role in self.roles],
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }
        if include_permissions:
            data["roles"] = [role.to_dict() for role in self.roles]
        return data


class Role(db.Model):
    """
    Named, reusable bundle of per-resource permission vectors.

    `code` is the immutable business key (e.g. SUPER_ADMIN). The reserved
    SUPER_ADMIN role is seeded at bootstrap and protected by role_service.
    """
    __tablename__ = "roles"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    role_permissions = db.relationship(
        "RolePermission",
        lazy="selectin",
        cascade="all, delete-orphan",
        backref=db.backref("role", lazy=True),
    )

    def __repr__(self) -> str:
        return f"<Role id={self.id} code={self.code!r}>"

    def permission_map(self) -> dict[Resource, PermissionVector]:
        """Resolved {resource: vector}; rows naming retired resources are ignored."""
        return {
            Resource(rp.resource): rp.to_vector()
            for rp in self.role_permissions
            if rp.resource in RESOURCE_VALUES
        }

    def set_permissions(self, permissions: dict[Resource, PermissionVector]) -> None:
        """Replace the whole permission map."""
        existing = {rp.resource: rp for rp in self.role_permissions}
        wanted = {Resource(res).value: vector for res, vector in permissions.items()}

        for resource, row in existing.items():
            if resource not in wanted:
                self.role_permissions.remove(row)

        for resource, vector in wanted.items():
            row = existing.get(resource)
            if row is None:
                row = RolePermission(resource=resource)
                self.role_permissions.append(row)
            row.apply_vector(vector)

    def to_summary(self) -> dict:
        return {"id": self.id, "code": self.code, "name": self.name}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "is_active": self.is_active,
            "permissions": {
                res.value: vector.to_dict() for res, vector in self.permission_map().items()
            },
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class RolePermission(db.Model):
    """
    One permission vector of a role: (role, resource) -> view/create/edit/delete.

    WHY: resources are a fixed enumeration (see elora.permissions.Resource),
    so each vector is a typed row rather than an open-ended JSON map.
    """
    __tablename__ = "role_permissions"
    __table_args__ = (
        db.UniqueConstraint("role_id", "resource", name="uq_role_permissions_role_resource"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id", ondelete="CASCADE"), nullable=False, index=True)
    resource = db.Column(db.String(32), nullable=False)

    can_view = db.Column(db.Boolean, nullable=False, default=False)
    can_create = db.Column(db.Boolean, nullable=False, default=False)
    can_edit = db.Column(db.Boolean, nullable=False, default=False)
    can_delete = db.Column(db.Boolean, nullable=False, default=False)

    def to_vector(self) -> PermissionVector:
        return PermissionVector(
            view=bool(self.can_view),
            create=bool(self.can_create),
            edit=bool(self.can_edit),
            delete=bool(self.can_delete),
        )

    def apply_vector(self, vector: PermissionVector) -> None:
        self.can_view = vector.view
        self.can_create = vector.create
        self.can_edit = vector.edit
        self.can_delete = vector.delete


class UserRole(db.Model):
    """User-Role association."""
    __tablename__ = "user_roles"
    __table_args__ = (
        db.UniqueConstraint("user_id", "role_id", name="uq_user_roles"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False, index=True)

    # server default: rows are also inserted through User.roles (secondary)
    assigned_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, server_default=db.func.current_timestamp()
    )


class SessionToken(db.Model):
    """
    Opaque bearer token issued at login.

    SECURITY NOTES:
    - Tokens stored hashed in database (SHA-256)
    - Absolute and idle timeouts (see Config)
    - Revocable on logout
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_active", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    # Token hash (never store plaintext tokens!)
    token_hash = db.Column(db.String(255), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False, index=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(255), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)  # IPv6 max length

    user = db.relationship("User", backref=db.backref("session_tokens", lazy=True, cascade="all, delete-orphan"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "created_at": to_utc_z(self.created_at),
            "last_used_at": to_utc_z(self.last_used_at),
            "expires_at": to_utc_z(self.expires_at),
            "is_revoked": self.is_revoked,
            "revoked_at": to_utc_z(self.revoked_at) if self.revoked_at else None,
        }
