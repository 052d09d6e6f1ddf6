# Overview: Flask API routes for notifications; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify

from ..decorators import require_auth
from ..services import notification_service

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
def list_notifications():
    """Pending work for the caller, derived from current store statuses."""
    items = notification_service.notifications(g.principal)
    return jsonify({"notifications": items, "count": len(items)}), 200
