# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, permission_service


def _is_authenticated() -> bool:
    return hasattr(g, 'principal') and g.principal is not None


def client_context() -> dict:
    """Client details recorded alongside security events."""
    return {
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid session token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.principal: The Principal passed on to every service call
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or revoked token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()

        if not token:
            return jsonify({"error": "Unauthorized", "message": "Authentication required"}), 401

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Unauthorized", "message": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.principal = context.principal
        g.session_context = context
        g.token = token

        return f(*args, **kwargs)

    return decorated_function


def require_permission(resource, action):
    """
    Gate a route on resource.action before the view runs.

    Denials raise Unauthorized (rendered as 403 by the app error handler)
    and are recorded with the client's IP and user agent.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Unauthorized", "message": "Authentication required"}), 401

            permission_service.require_permission(g.principal, resource, action, **client_context())

            return f(*args, **kwargs)

        return decorated_function
    return decorator
