# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- POST /api/auth/login   email + password -> bearer token
- POST /api/auth/logout  revoke the presented token
- GET  /api/auth/me      current user, roles and effective permissions

Self-registration does not exist; users are created by administrators
(POST /api/users or `flask users create`).
"""

from flask import Blueprint, g, jsonify, request

from ..decorators import client_context, require_auth
from ..services import auth_service, permission_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in Authorization header for protected routes.
    Failed attempts are recorded in security_events.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return jsonify({"error": "ValidationFailed", "message": "email and password required"}), 400

    ctx = client_context()
    user = auth_service.authenticate(email, password)

    if not user:
        permission_service.log_security_event(
            user_id=None,
            event_type="LOGIN_FAILED",
            success=False,
            reason=f"Invalid credentials for {auth_service.normalize_email(email)}",
            **ctx,
        )
        return jsonify({"error": "Unauthorized", "message": "Invalid credentials"}), 401

    session, token = session_service.create_session(user_id=user.id, **ctx)
    permission_service.log_security_event(
        user_id=user.id, event_type="LOGIN_SUCCEEDED", success=True, **ctx
    )
    principal = permission_service.principal_from_user(user)

    return jsonify({
        "user": user.to_dict(),
        "permissions": permission_service.get_effective_permissions(principal),
        "token": token,
        "session": session.to_dict(),
        "message": "Login successful",
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke session token (logout)."""
    session_service.revoke_session(g.token, reason="User logout")
    permission_service.log_security_event(
        user_id=g.current_user.id, event_type="LOGOUT", success=True, **client_context()
    )
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user with roles and the union of their permissions (for UI filtering)."""
    return jsonify({
        "user": g.current_user.to_dict(include_permissions=True),
        "permissions": permission_service.get_effective_permissions(g.principal),
    }), 200
