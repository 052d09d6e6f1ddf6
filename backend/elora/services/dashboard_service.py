# Overview: Service-layer operations for the dashboard; read-only aggregates over stores and users.

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Role, Store, StoreStatus, User
from ..permissions import Action, INSTALLATION, RECCE, Resource
from . import permission_service, store_service
from .permission_service import Principal
from elora.time_utils import start_of_day, to_utc_z

RECENT_STORES_LIMIT = 5

# Statuses at or past the point where the stage's field work was handed in
RECCE_DONE_STATUSES = (
    StoreStatus.RECCE_SUBMITTED,
    StoreStatus.RECCE_APPROVED,
    StoreStatus.INSTALLATION_ASSIGNED,
    StoreStatus.INSTALLATION_SUBMITTED,
    StoreStatus.INSTALLATION_REJECTED,
    StoreStatus.COMPLETED,
)
INSTALLATION_DONE_STATUSES = (
    StoreStatus.INSTALLATION_SUBMITTED,
    StoreStatus.COMPLETED,
)


def _count(base, *criteria) -> int:
    return base.filter(*criteria).with_entities(func.count(Store.id)).scalar() or 0


def _personnel(role_code: str, assignee_col, submitted_col) -> list[dict]:
    users = (
        db.session.query(User)
        .filter(
            User.is_active.is_(True),
            User.roles.any(db.and_(Role.code == role_code, Role.is_active.is_(True))),
        )
        .order_by(User.name.asc())
        .all()
    )
    if not users:
        return []

    ids = [u.id for u in users]
    assigned = dict(
        db.session.query(assignee_col, func.count(Store.id))
        .filter(assignee_col.in_(ids))
        .group_by(assignee_col)
        .all()
    )
    completed = dict(
        db.session.query(assignee_col, func.count(Store.id))
        .filter(assignee_col.in_(ids), submitted_col.isnot(None))
        .group_by(assignee_col)
        .all()
    )
    return [
        {
            "id": u.id,
            "name": u.name,
            "email": u.email,
            "assigned": assigned.get(u.id, 0),
            "completed": completed.get(u.id, 0),
            "pending": assigned.get(u.id, 0) - completed.get(u.id, 0),
        }
        for u in users
    ]


def dashboard_stats(principal: Principal) -> dict:
    """
    KPIs, per-status counts, personnel workload and the latest stores.

    Every store figure is computed over the stores the principal can see,
    so a field user's dashboard covers only their own assignments. The
    personnel table lists other users and is returned to privileged callers
    only. "today" is the current UTC day.
    """
    permission_service.require_permission(principal, Resource.DASHBOARD, Action.VIEW)

    today = start_of_day()
    visible = store_service.visible_stores(principal)

    by_status = dict(
        visible.with_entities(Store.current_status, func.count(Store.id))
        .group_by(Store.current_status)
        .all()
    )

    kpis = {
        "total_stores": _count(visible),
        "stores_today": _count(visible, Store.created_at >= today),
        "recce_done_total": _count(visible, Store.current_status.in_(RECCE_DONE_STATUSES)),
        "recce_done_today": _count(
            visible,
            Store.current_status.in_(RECCE_DONE_STATUSES),
            Store.recce_submitted_at >= today,
        ),
        "installation_done_total": _count(visible, Store.current_status.in_(INSTALLATION_DONE_STATUSES)),
        "installation_done_today": _count(
            visible,
            Store.current_status.in_(INSTALLATION_DONE_STATUSES),
            Store.installation_submitted_at >= today,
        ),
        "completed_total": by_status.get(StoreStatus.COMPLETED, 0),
    }

    recent = (
        visible.order_by(Store.created_at.desc(), Store.id.desc())
        .limit(RECENT_STORES_LIMIT)
        .all()
    )

    personnel = {"recce": [], "installation": []}
    if permission_service.is_privileged(principal):
        personnel = {
            "recce": _personnel(RECCE, Store.recce_assigned_to_id, Store.recce_submitted_at),
            "installation": _personnel(
                INSTALLATION, Store.installation_assigned_to_id, Store.installation_submitted_at
            ),
        }

    return {
        "kpis": kpis,
        "status_counts": {status: by_status.get(status, 0) for status in StoreStatus.ALL},
        "personnel": personnel,
        "recent_stores": [
            {
                "id": s.id,
                "dealer_code": s.dealer_code,
                "store_id": s.store_id,
                "store_name": s.store_name,
                "city": s.city,
                "current_status": s.current_status,
                "created_at": to_utc_z(s.created_at),
            }
            for s in recent
        ],
    }
