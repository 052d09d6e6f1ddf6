# Overview: Flask API routes for the dashboard; parses input and returns JSON responses.

from flask import Blueprint, g, jsonify

from ..decorators import require_auth, require_permission
from ..permissions import Action, Resource
from ..services import dashboard_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/dashboard")


@dashboard_bp.get("")
@require_auth
@require_permission(Resource.DASHBOARD, Action.VIEW)
def dashboard():
    return jsonify(dashboard_service.dashboard_stats(g.principal)), 200
