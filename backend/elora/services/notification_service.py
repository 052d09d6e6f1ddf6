# Overview: Service-layer operations for notifications; pending work derived from store workflow state.

"""
Pending-work notifications.

Nothing is stored: every call derives the list from current store statuses.
- privileged users get queue counts (stores to assign, recces to review,
  installations to review)
- recce / installation users get the stores currently waiting on them
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import Store, StoreStatus
from ..permissions import INSTALLATION, RECCE
from . import permission_service
from .permission_service import Principal
from elora.time_utils import to_utc_z, utcnow

TASKS_PER_STAGE = 5

# (notification id, status counted, title, message template)
ADMIN_QUEUES = (
    ("stores-uploaded", StoreStatus.UPLOADED, "Stores Need Assignment",
     "{count} store(s) waiting for recce assignment"),
    ("recce-submitted", StoreStatus.RECCE_SUBMITTED, "Recce Pending Approval",
     "{count} recce report(s) awaiting approval"),
    ("installation-submitted", StoreStatus.INSTALLATION_SUBMITTED, "Installation Pending Approval",
     "{count} installation(s) awaiting approval"),
)


def _queue_counts() -> list[dict]:
    counts = dict(
        db.session.query(Store.current_status, func.count(Store.id))
        .filter(Store.current_status.in_([status for _, status, _, _ in ADMIN_QUEUES]))
        .group_by(Store.current_status)
        .all()
    )
    now = to_utc_z(utcnow())
    items = []
    for key, status, title, template in ADMIN_QUEUES:
        count = counts.get(status, 0)
        if count:
            items.append({
                "id": key,
                "type": status,
                "title": title,
                "message": template.format(count=count),
                "count": count,
                "timestamp": now,
            })
    return items


def _assigned_tasks(principal: Principal, stage: str, status: str, assignee_col, assigned_at_col) -> list[dict]:
    stores = (
        db.session.query(Store)
        .filter(Store.current_status == status, assignee_col == principal.id)
        .order_by(assigned_at_col.desc(), Store.id.desc())
        .limit(TASKS_PER_STAGE)
        .all()
    )
    return [
        {
            "id": f"{stage.lower()}-{s.id}",
            "type": status,
            "title": f"New {stage.title()} Assignment",
            "message": f"{stage.title()} assigned for {s.store_name or s.dealer_code}",
            "store_pk": s.id,
            "timestamp": to_utc_z(getattr(s, assigned_at_col.key)),
        }
        for s in stores
    ]


def notifications(principal: Principal) -> list[dict]:
    """
    Pending work for `principal`: queue counts first, then each stage's
    assigned tasks, newest first.

    A principal holding several roles gets every section that applies.
    """
    permission_service.require_active(principal)

    items: list[dict] = []
    if permission_service.is_privileged(principal):
        items.extend(_queue_counts())
    if principal.has_role(RECCE):
        items.extend(_assigned_tasks(
            principal, "Recce", StoreStatus.RECCE_ASSIGNED,
            Store.recce_assigned_to_id, Store.recce_assigned_at,
        ))
    if principal.has_role(INSTALLATION):
        items.extend(_assigned_tasks(
            principal, "Installation", StoreStatus.INSTALLATION_ASSIGNED,
            Store.installation_assigned_to_id, Store.installation_assigned_at,
        ))
    return items
