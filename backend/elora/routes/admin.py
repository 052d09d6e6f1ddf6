# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for user and role management.

Provides endpoints for:
- Role management (list, create, update, delete) under /api/roles
- User management (list, create, update, delete) under /api/users
- Resource catalogue for the role editor (/api/roles/resources)

Authorization happens in the services (role.* and user.* permissions).
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import require_auth
from ..errors import ValidationFailed
from ..permissions import RESOURCE_DEFINITIONS
from ..services import role_service, user_service

roles_bp = Blueprint("roles", __name__, url_prefix="/api/roles")
users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailed("Invalid JSON payload")
    return data


# =============================================================================
# ROLE MANAGEMENT
# =============================================================================

@roles_bp.get("")
@require_auth
def list_roles():
    """
    Query params:
    - include_inactive: bool (default true)
    """
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"
    roles = role_service.list_roles(g.principal, include_inactive=include_inactive)
    return jsonify({"roles": [role.to_dict() for role in roles], "count": len(roles)})


@roles_bp.get("/resources")
@require_auth
def list_resources():
    return jsonify({
        "resources": [
            {"resource": res.value, "name": name, "description": description}
            for res, name, description in RESOURCE_DEFINITIONS
        ]
    })


@roles_bp.get("/<int:role_id>")
@require_auth
def get_role(role_id: int):
    return jsonify({"role": role_service.get_role(g.principal, role_id).to_dict()})


@roles_bp.post("")
@require_auth
def create_role():
    """
    Request body:
    - code: str (required, e.g. "SUPERVISOR")
    - name: str (required)
    - description: str
    - permissions: {"store": {"view": true, ...}, ...}
    - is_active: bool (default true)
    """
    data = _json_body()
    role = role_service.create_role(
        g.principal,
        code=data.get("code"),
        name=data.get("name"),
        description=data.get("description"),
        permissions=data.get("permissions"),
        is_active=data.get("is_active", True),
    )
    return jsonify({"role": role.to_dict()}), 201


@roles_bp.put("/<int:role_id>")
@require_auth
def update_role(role_id: int):
    role = role_service.update_role(g.principal, role_id, _json_body())
    return jsonify({"role": role.to_dict()})


@roles_bp.delete("/<int:role_id>")
@require_auth
def delete_role(role_id: int):
    role_service.delete_role(g.principal, role_id)
    return jsonify({"message": "Role deleted"})


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@users_bp.get("")
@require_auth
def list_users():
    """
    Query params:
    - page, per_page: pagination (per_page max 100)
    - search: name/email substring
    - role: role code
    - is_active: true/false
    """
    is_active = request.args.get("is_active")
    page = user_service.list_users(
        g.principal,
        page=request.args.get("page", 1, type=int),
        per_page=request.args.get("per_page", user_service.DEFAULT_PAGE_SIZE, type=int),
        search=request.args.get("search"),
        role_code=request.args.get("role"),
        is_active=None if is_active is None else is_active.lower() == "true",
    )
    return jsonify(page.to_dict())


@users_bp.get("/role/<string:role_code>")
@require_auth
def users_by_role(role_code: str):
    users = user_service.users_by_role(g.principal, role_code.upper())
    return jsonify({"users": [user.to_dict() for user in users], "count": len(users)})


@users_bp.get("/<int:user_id>")
@require_auth
def get_user(user_id: int):
    user = user_service.get_user(g.principal, user_id)
    return jsonify({"user": user.to_dict(include_permissions=True)})


@users_bp.post("")
@require_auth
def create_user():
    """
    Request body:
    - name, email, password: str (required)
    - role_ids: [int] (required, non-empty)
    - mobile: str
    - is_active: bool (default true)
    """
    data = _json_body()
    user = user_service.create_user(
        g.principal,
        name=data.get("name"),
        email=data.get("email"),
        password=data.get("password"),
        role_ids=data.get("role_ids"),
        mobile=data.get("mobile"),
        is_active=data.get("is_active", True),
    )
    return jsonify({"user": user.to_dict()}), 201


@users_bp.put("/<int:user_id>")
@require_auth
def update_user(user_id: int):
    user = user_service.update_user(g.principal, user_id, _json_body())
    return jsonify({"user": user.to_dict()})


@users_bp.delete("/<int:user_id>")
@require_auth
def delete_user(user_id: int):
    user_service.delete_user(g.principal, user_id)
    return jsonify({"message": "User deleted"})
