# Overview: System health and version endpoints.

"""
System health and version endpoints.

Checks database connectivity and that the bootstrap roles are present.
"""

import sys
import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Role, SessionToken, Store, User
from ..permissions import DEFAULT_ROLES
from elora.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def check_database_health() -> dict:
    """Check database connectivity with a few cheap counts."""
    start_time = time.time()
    try:
        details = {
            "stores": db.session.query(Store).count(),
            "users": db.session.query(User).count(),
            "active_sessions": db.session.query(SessionToken).filter_by(is_revoked=False).count(),
        }
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time), "details": details}
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Database error"}


def check_roles_health() -> dict:
    """Degraded when any built-in role is missing (run `flask system init`)."""
    start_time = time.time()
    try:
        present = {code for (code,) in db.session.query(Role.code).all()}
        missing = sorted(set(DEFAULT_ROLES) - present)
        if missing:
            return {
                "status": "degraded",
                "latency_ms": _elapsed_ms(start_time),
                "warning": f"Missing roles: {', '.join(missing)}",
            }
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time)}
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Role health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Role lookup error"}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "roles": check_roles_health(),
    }
    statuses = {check["status"] for check in checks.values()}

    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": checks,
    }, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    return {
        "api_version": API_VERSION,
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
