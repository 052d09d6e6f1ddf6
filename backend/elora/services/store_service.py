"""
Store records: create (single and bulk), scoped reads, descriptive edits.

Workflow columns (status, assignees, recce, installation) are never written
here; see workflow_service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy.exc import IntegrityError

from elora.errors import DomainError, DuplicateKey, NotFound, ValidationFailed
from elora.extensions import db
from elora.models import PRIORITIES, Store, StoreStatus, generate_store_id
from elora.permissions import Action, Resource
from elora.services import permission_service
from elora.services.concurrency import lock_for_update, run_with_retry
from elora.services.permission_service import Principal
from elora.validation import ModelValidationPolicy, enforce_rules_store, validate_payload

logger = logging.getLogger(__name__)


# Descriptive fields a client may set on create/update
STORE_EDITABLE_FIELDS = frozenset({
    "dealer_code",
    "project_id",
    "store_code",
    "store_name",
    "vendor_code",
    "zone",
    "state",
    "district",
    "city",
    "area",
    "address",
    "pincode",
    "latitude",
    "longitude",
    "contact_person",
    "contact_mobile",
    "po_number",
    "po_month",
    "invoice_number",
    "invoice_remarks",
    "total_cost",
    "board_rate",
    "total_board_cost",
    "angle_charges",
    "scaffolding_charges",
    "transportation",
    "flanges",
    "lollipop",
    "one_way_vision",
    "sunboard",
    "board_size",
    "board_type",
    "width",
    "height",
    "qty",
    "priority",
})

# Owned by the workflow engine or generated; naming one is an explicit error
STORE_WORKFLOW_FIELDS = frozenset({
    "id",
    "store_id",
    "current_status",
    "workflow",
    "recce",
    "installation",
    "version_id",
    "created_at",
    "updated_at",
    "recce_assigned_to_id",
    "installation_assigned_to_id",
    "recce_assigned_at",
    "recce_submitted_at",
    "recce_width",
    "recce_height",
    "recce_photo_front",
    "recce_photo_side",
    "recce_photo_close_up",
    "recce_notes",
    "installation_assigned_at",
    "installation_submitted_at",
    "installation_photo_after1",
    "installation_photo_after2",
    "installation_notes",
})

STORE_POLICY = ModelValidationPolicy(
    writable_fields=STORE_EDITABLE_FIELDS,
    required_on_create=frozenset({"dealer_code"}),
    forbidden_fields=STORE_WORKFLOW_FIELDS,
)


@dataclass
class BulkRowError:
    row: int
    dealer_code: str | None
    error_kind: str
    message: str

    def to_dict(self) -> dict:
        return {
            "row": self.row,
            "dealer_code": self.dealer_code,
            "error": self.error_kind,
            "message": self.message,
        }


@dataclass
class BulkCreateResult:
    created: list[Store] = field(default_factory=list)
    errors: list[BulkRowError] = field(default_factory=list)
    total_processed: int = 0

    def to_dict(self) -> dict:
        return {
            "created_count": len(self.created),
            "error_count": len(self.errors),
            "total_processed": self.total_processed,
            "created": [{"id": s.id, "dealer_code": s.dealer_code, "store_id": s.store_id} for s in self.created],
            "errors": [e.to_dict() for e in self.errors],
        }


def _clean_patch(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Store, payload=payload, policy=STORE_POLICY, partial=partial)
    if "dealer_code" in patch and patch["dealer_code"] is not None:
        patch["dealer_code"] = patch["dealer_code"].upper()
    if "priority" in patch:
        priority = (patch["priority"] or "MEDIUM").upper()
        if priority not in PRIORITIES:
            raise ValidationFailed(
                f"priority must be one of: {', '.join(PRIORITIES)}", field="priority"
            )
        patch["priority"] = priority
    enforce_rules_store(patch)
    return patch


def _dealer_code_taken(dealer_code: str, *, exclude_pk: int | None = None) -> bool:
    query = db.session.query(Store.id).filter(Store.dealer_code == dealer_code)
    if exclude_pk is not None:
        query = query.filter(Store.id != exclude_pk)
    return query.first() is not None


def _store_id_taken(store_id: str, *, exclude_pk: int | None = None) -> bool:
    query = db.session.query(Store.id).filter(Store.store_id == store_id)
    if exclude_pk is not None:
        query = query.filter(Store.id != exclude_pk)
    return query.first() is not None


def _build_store(patch: dict) -> Store:
    """Pre-checks uniqueness and constructs (does not add) a new store."""
    dealer_code = patch["dealer_code"]
    if _dealer_code_taken(dealer_code):
        raise DuplicateKey("dealer_code", dealer_code)

    store = Store(current_status=StoreStatus.UPLOADED, **patch)
    store.store_id = generate_store_id(store.city, store.district, store.dealer_code)
    if store.store_id and _store_id_taken(store.store_id):
        raise DuplicateKey("store_id", store.store_id)
    return store


def _duplicate_from_integrity(patch: dict) -> DuplicateKey:
    # Unique index violation lost to a concurrent insert
    dealer_code = patch.get("dealer_code")
    if dealer_code and _dealer_code_taken(dealer_code):
        return DuplicateKey("dealer_code", dealer_code)
    store_id = generate_store_id(patch.get("city"), patch.get("district"), dealer_code)
    return DuplicateKey("store_id", store_id)


def create_store(principal: Principal, payload: dict) -> Store:
    """
    Create one store in status UPLOADED.

    store_id is generated when city, district and dealer code are known.
    """
    permission_service.require_permission(principal, Resource.STORE, Action.CREATE)
    patch = _clean_patch(payload, partial=False)

    def _op():
        store = _build_store(patch)
        db.session.add(store)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise _duplicate_from_integrity(patch)
        return store

    store = run_with_retry(_op)
    logger.info("Store %s created (%s)", store.id, store.dealer_code, extra={"store_pk": store.id})
    return store


def create_stores_bulk(principal: Principal, rows: list[dict]) -> BulkCreateResult:
    """
    Insert many stores; each row succeeds or fails on its own.

    Every row runs inside its own SAVEPOINT so a failing row (validation,
    duplicate in the database or earlier in the batch) rolls back only
    itself. Row numbers in errors are 1-based.
    """
    permission_service.require_permission(principal, Resource.STORE, Action.CREATE)
    if not isinstance(rows, list) or not rows:
        raise ValidationFailed("rows must be a non-empty list", field="rows")

    result = BulkCreateResult()
    for index, row in enumerate(rows, start=1):
        result.total_processed += 1
        dealer_code = row.get("dealer_code") if isinstance(row, dict) else None
        try:
            patch = _clean_patch(row, partial=False)
            store = _build_store(patch)
            with db.session.begin_nested():
                db.session.add(store)
            result.created.append(store)
        except DomainError as exc:
            result.errors.append(
                BulkRowError(row=index, dealer_code=dealer_code, error_kind=exc.kind, message=exc.message)
            )
        except IntegrityError:
            # begin_nested() already rolled back to the savepoint
            result.errors.append(
                BulkRowError(
                    row=index,
                    dealer_code=dealer_code,
                    error_kind=DuplicateKey.kind,
                    message="Duplicate dealer_code or store_id",
                )
            )

    db.session.commit()
    logger.info(
        "Bulk store upload: %d created, %d failed of %d rows",
        len(result.created),
        len(result.errors),
        result.total_processed,
    )
    return result


def visible_stores(principal: Principal):
    """Base query restricted to what the principal may see."""
    query = db.session.query(Store)
    if not permission_service.is_privileged(principal):
        query = query.filter(
            db.or_(
                Store.recce_assigned_to_id == principal.id,
                Store.installation_assigned_to_id == principal.id,
            )
        )
    return query


def list_stores(
    principal: Principal,
    *,
    status: str | None = None,
    city: str | None = None,
    search: str | None = None,
    priority: str | None = None,
    assigned_to: int | None = None,
    limit: int = 100,
    offset: int = 0,
    max_limit: int = 500,
) -> tuple[list[Store], int]:
    """
    Filtered, paginated listing ordered by updated_at desc.

    Non-privileged principals only ever see stores assigned to them; the
    user filters narrow that set further. Returns (stores, total).
    """
    permission_service.require_permission(principal, Resource.STORE, Action.VIEW)

    query = visible_stores(principal)

    if status:
        statuses = [s.strip().upper() for s in status.split(",") if s.strip()]
        for value in statuses:
            if value not in StoreStatus.ALL:
                raise ValidationFailed(f"Invalid status '{value}'", field="status")
        query = query.filter(Store.current_status.in_(statuses))
    if city:
        query = query.filter(Store.city.ilike(city.strip()))
    if priority:
        if priority.upper() not in PRIORITIES:
            raise ValidationFailed(f"priority must be one of: {', '.join(PRIORITIES)}", field="priority")
        query = query.filter(Store.priority == priority.upper())
    if assigned_to is not None:
        query = query.filter(
            db.or_(
                Store.recce_assigned_to_id == assigned_to,
                Store.installation_assigned_to_id == assigned_to,
            )
        )
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(
            db.or_(
                Store.store_name.ilike(like),
                Store.dealer_code.ilike(like),
                Store.store_id.ilike(like),
                Store.city.ilike(like),
            )
        )

    limit = min(max(int(limit), 1), max_limit)
    offset = max(int(offset), 0)

    total = query.count()
    stores = query.order_by(Store.updated_at.desc(), Store.id.desc()).offset(offset).limit(limit).all()
    return stores, total


def get_store(principal: Principal, store_pk: int) -> Store:
    """Out-of-scope stores are reported as NotFound."""
    permission_service.require_permission(principal, Resource.STORE, Action.VIEW)
    store = visible_stores(principal).filter(Store.id == store_pk).first()
    if store is None:
        raise NotFound("Store", store_pk)
    return store


def update_store(principal: Principal, store_pk: int, payload: dict) -> Store:
    """
    Edit descriptive fields only.

    Any workflow/identity field in the payload rejects the whole update.
    A changed dealer_code must stay unique; store_id, once set, is kept.
    """
    permission_service.require_permission(principal, Resource.STORE, Action.EDIT)
    patch = _clean_patch(payload, partial=True)
    if "dealer_code" in patch and not patch["dealer_code"]:
        raise ValidationFailed("dealer_code cannot be blank", field="dealer_code")

    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_pk)).first()
        if store is None:
            raise NotFound("Store", store_pk)

        new_code = patch.get("dealer_code")
        if new_code and new_code != store.dealer_code and _dealer_code_taken(new_code, exclude_pk=store.id):
            raise DuplicateKey("dealer_code", new_code)

        for key, value in patch.items():
            setattr(store, key, value)

        if not store.store_id:
            generated = generate_store_id(store.city, store.district, store.dealer_code)
            if generated and _store_id_taken(generated, exclude_pk=store.id):
                raise DuplicateKey("store_id", generated)
            store.store_id = generated

        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise _duplicate_from_integrity(patch)
        return store

    try:
        store = run_with_retry(_op)
    except DomainError:
        db.session.rollback()
        raise
    logger.info("Store %s updated: %s", store_pk, ", ".join(sorted(patch)), extra={"store_pk": store_pk})
    return store


def delete_store(principal: Principal, store_pk: int) -> None:
    permission_service.require_permission(principal, Resource.STORE, Action.DELETE)
    deleted = db.session.query(Store).filter(Store.id == store_pk).delete(synchronize_session=False)
    if not deleted:
        db.session.rollback()
        raise NotFound("Store", store_pk)
    db.session.commit()
    logger.info("Store %s deleted by user %s", store_pk, principal.id, extra={"store_pk": store_pk})


def backfill_store_ids() -> tuple[int, int]:
    """
    Generate store_id for stores that lack one.

    Stores missing city/district, or whose generated id collides with an
    existing one, are skipped. Returns (updated, skipped). Safe to re-run.
    """
    updated = skipped = 0
    pending = db.session.query(Store).filter(Store.store_id.is_(None)).order_by(Store.id.asc()).all()
    for store in pending:
        generated = generate_store_id(store.city, store.district, store.dealer_code)
        if not generated or _store_id_taken(generated, exclude_pk=store.id):
            skipped += 1
            continue
        store.store_id = generated
        # Flush so the next collision check sees this id
        db.session.flush()
        updated += 1

    db.session.commit()
    logger.info("store_id backfill: %d updated, %d skipped", updated, skipped)
    return updated, skipped
