# Overview: Flask API routes for stores operations; parses input and returns JSON responses.

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth
from ..errors import ValidationFailed
from ..services import store_service, workflow_service


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationFailed("Invalid JSON payload")
    return data


def _int_arg(name: str, default=None):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationFailed(f"{name} must be an integer", field=name)


def _store_json(store) -> dict:
    data = store.to_dict()
    data["allowed_operations"] = workflow_service.allowed_operations(store.current_status)
    return data


@stores_bp.get("")
@require_auth
def list_stores():
    stores, total = store_service.list_stores(
        g.principal,
        status=request.args.get("status"),
        city=request.args.get("city"),
        search=request.args.get("search"),
        priority=request.args.get("priority"),
        assigned_to=_int_arg("assigned_to"),
        limit=_int_arg("limit", 100),
        offset=_int_arg("offset", 0),
        max_limit=current_app.config["STORE_LIST_MAX_LIMIT"],
    )
    return jsonify({
        "stores": [store.to_dict() for store in stores],
        "total": total,
    }), 200


@stores_bp.post("")
@require_auth
def create_store():
    store = store_service.create_store(g.principal, _json_body())
    return jsonify(_store_json(store)), 201


@stores_bp.post("/bulk")
@require_auth
def create_stores_bulk():
    """Bulk upload: {"rows": [{...}, ...]}. Per-row outcome in the response."""
    data = _json_body()
    result = store_service.create_stores_bulk(g.principal, data.get("rows"))
    return jsonify(result.to_dict()), 200


@stores_bp.get("/transitions")
@require_auth
def list_transitions():
    return jsonify({
        op: {"from": sorted(t.sources), "to": t.target}
        for op, t in workflow_service.TRANSITIONS.items()
    }), 200


@stores_bp.get("/<int:store_pk>")
@require_auth
def get_store(store_pk: int):
    store = store_service.get_store(g.principal, store_pk)
    return jsonify(_store_json(store)), 200


@stores_bp.put("/<int:store_pk>")
@require_auth
def update_store(store_pk: int):
    store = store_service.update_store(g.principal, store_pk, _json_body())
    return jsonify(_store_json(store)), 200


@stores_bp.delete("/<int:store_pk>")
@require_auth
def delete_store(store_pk: int):
    store_service.delete_store(g.principal, store_pk)
    return jsonify({"message": "Store deleted"}), 200


# =============================================================================
# WORKFLOW
# =============================================================================

@stores_bp.post("/assign")
@require_auth
def assign_stores_bulk():
    """{"store_ids": [...], "user_id": 7, "stage": "RECCE" | "INSTALLATION"}"""
    data = _json_body()
    result = workflow_service.assign_stores_bulk(
        g.principal,
        data.get("store_ids"),
        data.get("user_id"),
        data.get("stage"),
    )
    return jsonify(result.to_dict()), 200


@stores_bp.post("/<int:store_pk>/recce/assign")
@require_auth
def assign_recce(store_pk: int):
    data = _json_body()
    store = workflow_service.assign_recce(
        g.principal, store_pk, data.get("user_id"), reset=bool(data.get("reset", False))
    )
    return jsonify(_store_json(store)), 200


@stores_bp.post("/<int:store_pk>/recce")
@require_auth
def submit_recce(store_pk: int):
    """{"sizes": {"width": 10, "height": 4}, "photos": {"front": "..."}, "notes": "..."}"""
    data = _json_body()
    store = workflow_service.submit_recce(
        g.principal,
        store_pk,
        data.get("sizes"),
        photos=data.get("photos"),
        notes=data.get("notes"),
    )
    return jsonify(_store_json(store)), 200


@stores_bp.post("/<int:store_pk>/recce/review")
@require_auth
def review_recce(store_pk: int):
    """{"status": "APPROVED" | "REJECTED", "remarks": "..."}"""
    data = _json_body()
    store = workflow_service.review_recce(
        g.principal, store_pk, data.get("status"), remarks=data.get("remarks")
    )
    return jsonify(_store_json(store)), 200


@stores_bp.post("/<int:store_pk>/installation/assign")
@require_auth
def assign_installation(store_pk: int):
    data = _json_body()
    store = workflow_service.assign_installation(
        g.principal, store_pk, data.get("user_id"), reset=bool(data.get("reset", False))
    )
    return jsonify(_store_json(store)), 200


@stores_bp.post("/<int:store_pk>/installation")
@require_auth
def submit_installation(store_pk: int):
    """{"photos": {"after1": "...", "after2": "..."}, "notes": "..."}"""
    data = _json_body()
    store = workflow_service.submit_installation(
        g.principal, store_pk, data.get("photos"), notes=data.get("notes")
    )
    return jsonify(_store_json(store)), 200


@stores_bp.post("/<int:store_pk>/installation/review")
@require_auth
def review_installation(store_pk: int):
    data = _json_body()
    store = workflow_service.review_installation(
        g.principal, store_pk, data.get("status"), remarks=data.get("remarks")
    )
    return jsonify(_store_json(store)), 200


@stores_bp.post("/<int:store_pk>/unassign")
@require_auth
def unassign(store_pk: int):
    """{"stage": "RECCE" | "INSTALLATION"}. Status is left unchanged."""
    data = _json_body()
    store = workflow_service.unassign(g.principal, store_pk, data.get("stage"))
    return jsonify(_store_json(store)), 200
