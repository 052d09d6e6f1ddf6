# Overview: Service-layer operations for the store workflow; the only code that changes a store's status.

"""
Store Workflow Engine

================================================================================
PURPOSE: Move a store through UPLOADED -> recce -> installation -> COMPLETED
================================================================================

STATE MACHINE:
    UPLOADED
      -> RECCE_ASSIGNED              (assign recce)
    RECCE_ASSIGNED
      -> RECCE_SUBMITTED             (field submission)
    RECCE_SUBMITTED
      -> RECCE_APPROVED | RECCE_REJECTED   (admin review)
    RECCE_REJECTED
      -> RECCE_ASSIGNED              (re-assign)
    RECCE_APPROVED
      -> INSTALLATION_ASSIGNED       (assign installation)
    INSTALLATION_ASSIGNED
      -> INSTALLATION_SUBMITTED      (field submission)
    INSTALLATION_SUBMITTED
      -> COMPLETED | INSTALLATION_REJECTED (admin review)
    INSTALLATION_REJECTED
      -> INSTALLATION_ASSIGNED       (re-assign)

    COMPLETED is terminal.

RULES (NON-NEGOTIABLE):
1. TRANSITIONS below is the single source of truth for legal moves
2. Every write is ONE conditional UPDATE: WHERE current_status IN (sources).
   Writes that append to notes also pin version_id, so an A -> B -> A status
   change in between still loses. Losing a race means zero rows changed ->
   InvalidTransition, nothing written
3. Authorization is checked before the store is read or written
4. Unassign clears an assignee but never moves the status

================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from ..errors import DomainError, InvalidTransition, NotFound, Unauthorized, ValidationFailed
from ..extensions import db
from ..models import Store, StoreStatus
from ..permissions import Action, Resource, RECCE, INSTALLATION
from ..validation import validate_recce_sizes
from . import permission_service, user_service
from .concurrency import conditional_update
from .permission_service import Principal
from elora.time_utils import to_utc_z, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Transition:
    sources: frozenset[str]
    target: str


ASSIGN_RECCE = "assign_recce"
SUBMIT_RECCE = "submit_recce"
APPROVE_RECCE = "approve_recce"
REJECT_RECCE = "reject_recce"
ASSIGN_INSTALLATION = "assign_installation"
SUBMIT_INSTALLATION = "submit_installation"
APPROVE_INSTALLATION = "approve_installation"
REJECT_INSTALLATION = "reject_installation"

TRANSITIONS: dict[str, Transition] = {
    # Re-assignment is the recovery path, so any non-terminal status qualifies
    ASSIGN_RECCE: Transition(
        frozenset(StoreStatus.ALL) - {StoreStatus.COMPLETED},
        StoreStatus.RECCE_ASSIGNED,
    ),
    SUBMIT_RECCE: Transition(frozenset({StoreStatus.RECCE_ASSIGNED}), StoreStatus.RECCE_SUBMITTED),
    APPROVE_RECCE: Transition(frozenset({StoreStatus.RECCE_SUBMITTED}), StoreStatus.RECCE_APPROVED),
    REJECT_RECCE: Transition(frozenset({StoreStatus.RECCE_SUBMITTED}), StoreStatus.RECCE_REJECTED),
    ASSIGN_INSTALLATION: Transition(
        frozenset({
            StoreStatus.RECCE_APPROVED,
            StoreStatus.INSTALLATION_ASSIGNED,
            StoreStatus.INSTALLATION_REJECTED,
        }),
        StoreStatus.INSTALLATION_ASSIGNED,
    ),
    SUBMIT_INSTALLATION: Transition(
        frozenset({StoreStatus.INSTALLATION_ASSIGNED}), StoreStatus.INSTALLATION_SUBMITTED
    ),
    APPROVE_INSTALLATION: Transition(
        frozenset({StoreStatus.INSTALLATION_SUBMITTED}), StoreStatus.COMPLETED
    ),
    REJECT_INSTALLATION: Transition(
        frozenset({StoreStatus.INSTALLATION_SUBMITTED}), StoreStatus.INSTALLATION_REJECTED
    ),
}

DECISIONS = ("APPROVED", "REJECTED")


@dataclass(frozen=True)
class StageConfig:
    assign_operation: str
    required_role: str
    assignee_field: str
    assigned_at_field: str
    # Payload columns cleared by an explicit reset on re-assignment
    payload_fields: tuple[str, ...]
    # Later-stage assignment cleared whenever this stage is (re-)assigned
    superseded_fields: tuple[str, ...] = ()


STAGES = {
    "RECCE": StageConfig(
        assign_operation=ASSIGN_RECCE,
        required_role=RECCE,
        assignee_field="recce_assigned_to_id",
        assigned_at_field="recce_assigned_at",
        payload_fields=(
            "recce_submitted_at",
            "recce_width",
            "recce_height",
            "recce_photo_front",
            "recce_photo_side",
            "recce_photo_close_up",
            "recce_notes",
        ),
        superseded_fields=("installation_assigned_to_id", "installation_assigned_at"),
    ),
    "INSTALLATION": StageConfig(
        assign_operation=ASSIGN_INSTALLATION,
        required_role=INSTALLATION,
        assignee_field="installation_assigned_to_id",
        assigned_at_field="installation_assigned_at",
        payload_fields=(
            "installation_submitted_at",
            "installation_photo_after1",
            "installation_photo_after2",
            "installation_notes",
        ),
    ),
}

RECCE_PHOTO_FIELDS = {
    "front": "recce_photo_front",
    "side": "recce_photo_side",
    "close_up": "recce_photo_close_up",
    "closeUp": "recce_photo_close_up",
}
INSTALLATION_PHOTO_FIELDS = {
    "after1": "installation_photo_after1",
    "after2": "installation_photo_after2",
}


@dataclass
class BulkItemResult:
    # Raw request value when it was not a usable id
    store_pk: int | str | None
    ok: bool
    status: str | None = None
    error_kind: str | None = None
    message: str | None = None

    def to_dict(self) -> dict:
        return {
            "store_pk": self.store_pk,
            "ok": self.ok,
            "status": self.status,
            "error": self.error_kind,
            "message": self.message,
        }


@dataclass
class BulkAssignResult:
    results: list[BulkItemResult] = field(default_factory=list)

    @property
    def modified_count(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> list[BulkItemResult]:
        return [r for r in self.results if not r.ok]

    def to_dict(self) -> dict:
        return {
            "modified_count": self.modified_count,
            "failed_count": len(self.failed),
            "results": [r.to_dict() for r in self.results],
        }


# ================================================================================
# TRANSITION TABLE QUERIES
# ================================================================================

def validate_status(status: str) -> None:
    if status not in StoreStatus.ALL:
        raise ValidationFailed(
            f"Invalid status '{status}'. Must be one of: {', '.join(StoreStatus.ALL)}",
            field="status",
        )


def can_transition(operation: str, from_status: str) -> bool:
    """Check whether `operation` is legal while the store is in `from_status`."""
    transition = TRANSITIONS.get(operation)
    if transition is None:
        raise ValidationFailed(f"Unknown workflow operation '{operation}'", field="operation")
    validate_status(from_status)
    return from_status in transition.sources


def allowed_operations(status: str) -> list[str]:
    """Operations legal from `status`, in table order. Empty for COMPLETED."""
    return [op for op, t in TRANSITIONS.items() if status in t.sources]


def _validate_stage(stage: str) -> StageConfig:
    config = STAGES.get((stage or "").upper())
    if config is None:
        raise ValidationFailed("Invalid assignment stage. Use RECCE or INSTALLATION.", field="stage")
    return config


def _validate_decision(decision: str) -> str:
    normalized = (decision or "").upper()
    if normalized not in DECISIONS:
        raise ValidationFailed("Invalid status. Use APPROVED or REJECTED.", field="status")
    return normalized


# ================================================================================
# CORE: READ, CHECK, CONDITIONAL WRITE
# ================================================================================

def _load_store(store_pk: int) -> Store | None:
    return db.session.query(Store).filter_by(id=store_pk).first()


def _current_status(store_pk: int) -> str | None:
    return db.session.query(Store.current_status).filter(Store.id == store_pk).scalar()


def _matches(store_pk: int, criteria: tuple) -> bool:
    return db.session.query(Store.id).filter(Store.id == store_pk, *criteria).first() is not None


def _check_source(store: Store, operation: str) -> None:
    if store.current_status not in TRANSITIONS[operation].sources:
        raise InvalidTransition(store.current_status, operation)


def _apply_transition(
    store_pk: int,
    operation: str,
    values: dict,
    *,
    criteria: tuple = (),
    expected_version: int | None = None,
) -> Store:
    """
    Write `values` plus the transition's target status iff the store is still
    in one of the transition's source statuses (and matches `criteria`).

    expected_version pins the row version that `values` were computed from
    (appended notes); any write in between makes this one lose, even when the
    status went A -> B -> A meanwhile.

    On a lost race nothing is written and InvalidTransition reports the status
    the store holds now.
    """
    transition = TRANSITIONS[operation]
    now = utcnow()

    update_values = dict(values)
    update_values["current_status"] = transition.target
    update_values["updated_at"] = now
    update_values["version_id"] = Store.version_id + 1

    guards = list(criteria)
    if expected_version is not None:
        guards.append(Store.version_id == expected_version)

    query = db.session.query(Store).filter(
        Store.id == store_pk,
        Store.current_status.in_(sorted(transition.sources)),
        *guards,
    )
    changed = conditional_update(query, update_values)

    if changed != 1:
        db.session.rollback()
        current = _current_status(store_pk)
        if current is None:
            raise NotFound("Store", store_pk)
        if current in transition.sources:
            if criteria and not _matches(store_pk, criteria):
                raise Unauthorized("Store assignment changed; you are no longer assigned to this store")
            # Only the version moved: the row we computed values from is stale
            raise InvalidTransition(
                current,
                operation,
                f"Cannot {operation}: store was modified concurrently, reload and retry",
            )
        logger.info(
            "Lost transition race on store %s: %s while %s",
            store_pk,
            operation,
            current,
            extra={"store_pk": store_pk, "from_status": current},
        )
        raise InvalidTransition(
            current,
            operation,
            f"Cannot {operation}: store status changed to '{current}' concurrently",
        )

    db.session.commit()
    logger.info(
        "Store %s: %s -> %s",
        store_pk,
        operation,
        transition.target,
        extra={"store_pk": store_pk, "to_status": transition.target},
    )
    return _load_store(store_pk)


def _append_note(existing: str | None, entry: str) -> str:
    if not existing:
        return entry
    return f"{existing}\n{entry}"


def _photo_values(photos: dict | None, allowed: dict[str, str]) -> dict:
    if photos is None:
        return {}
    if not isinstance(photos, dict):
        raise ValidationFailed("photos must be an object", field="photos")
    values = {}
    for key, ref in photos.items():
        column = allowed.get(key)
        if column is None:
            raise ValidationFailed(
                f"Unknown photo '{key}'. Expected one of: {', '.join(allowed)}", field="photos"
            )
        if ref is None or str(ref).strip() == "":
            continue
        values[column] = str(ref).strip()
    return values


# ================================================================================
# ASSIGNMENT
# ================================================================================

def _assign(store_pk: int, config: StageConfig, user_id: int, *, reset: bool = False) -> Store:
    """Assignment transition without the gate/assignee checks (callers do those)."""
    store = _load_store(store_pk)
    if store is None:
        raise NotFound("Store", store_pk)
    _check_source(store, config.assign_operation)

    values = {
        config.assignee_field: user_id,
        config.assigned_at_field: utcnow(),
    }
    for column in config.superseded_fields:
        values[column] = None
    if reset:
        for column in config.payload_fields:
            values[column] = None

    return _apply_transition(store_pk, config.assign_operation, values)


def assign_recce(principal: Principal, store_pk: int, user_id: int, *, reset: bool = False) -> Store:
    """
    Assign (or re-assign) the recce of a store (any non-terminal -> RECCE_ASSIGNED).

    Last assignment wins. Prior recce notes/photos survive unless reset=True.
    Moving back to recce drops any installation assignee: the installer no
    longer sees the store and installation must be assigned again after
    the new recce is approved.

    Raises:
        Unauthorized: caller lacks store.edit
        InvalidAssignee: user missing, inactive, or without the RECCE role
        NotFound / InvalidTransition
    """
    permission_service.require_permission(principal, Resource.STORE, Action.EDIT)
    config = STAGES["RECCE"]
    user_service.require_role_member(user_id, config.required_role)
    return _assign(store_pk, config, user_id, reset=reset)


def assign_installation(principal: Principal, store_pk: int, user_id: int, *, reset: bool = False) -> Store:
    """Assign the installation (RECCE_APPROVED / re-assign after rejection -> INSTALLATION_ASSIGNED)."""
    permission_service.require_permission(principal, Resource.STORE, Action.EDIT)
    config = STAGES["INSTALLATION"]
    user_service.require_role_member(user_id, config.required_role)
    return _assign(store_pk, config, user_id, reset=reset)


def _coerce_pk(value) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def assign_stores_bulk(
    principal: Principal,
    store_pks: list[int],
    user_id: int,
    stage: str,
) -> BulkAssignResult:
    """
    Apply the stage's assignment to many stores, each independently.

    Best effort: the gate, stage and assignee checks fail the whole call up
    front (nothing written); after that every store succeeds or fails on its
    own and the result lists the per-store outcome.
    """
    permission_service.require_permission(principal, Resource.STORE, Action.EDIT)
    config = _validate_stage(stage)
    if not store_pks or not isinstance(store_pks, (list, tuple)):
        raise ValidationFailed("No stores selected", field="store_ids")
    if user_id is None:
        raise ValidationFailed("No user selected", field="user_id")
    user_service.require_role_member(user_id, config.required_role)

    result = BulkAssignResult()
    seen: set[int] = set()
    for raw_pk in store_pks:
        store_pk = _coerce_pk(raw_pk)
        if store_pk is None:
            result.results.append(
                BulkItemResult(
                    store_pk=raw_pk,
                    ok=False,
                    error_kind=ValidationFailed.kind,
                    message=f"Invalid store id {raw_pk!r}",
                )
            )
            continue
        if store_pk in seen:
            continue
        seen.add(store_pk)
        try:
            store = _assign(store_pk, config, user_id)
            result.results.append(BulkItemResult(store_pk=store_pk, ok=True, status=store.current_status))
        except DomainError as exc:
            db.session.rollback()
            result.results.append(
                BulkItemResult(store_pk=store_pk, ok=False, error_kind=exc.kind, message=exc.message)
            )

    logger.info(
        "Bulk %s assignment to user %s: %d/%d stores",
        config.required_role,
        user_id,
        result.modified_count,
        len(result.results),
    )
    return result


def unassign(principal: Principal, store_pk: int, stage: str) -> Store:
    """
    Administrative override: clear the stage's assignee.

    The status is deliberately left as-is; callers must not assume it reverts.
    """
    permission_service.require_permission(principal, Resource.STORE, Action.EDIT)
    config = _validate_stage(stage)

    query = db.session.query(Store).filter(Store.id == store_pk)
    changed = conditional_update(
        query,
        {
            config.assignee_field: None,
            "updated_at": utcnow(),
            "version_id": Store.version_id + 1,
        },
    )
    if changed != 1:
        db.session.rollback()
        raise NotFound("Store", store_pk)

    db.session.commit()
    logger.info("Store %s: %s assignee cleared", store_pk, stage.upper(), extra={"store_pk": store_pk})
    return _load_store(store_pk)


# ================================================================================
# FIELD SUBMISSIONS
# ================================================================================

def _load_for_assignee(
    principal: Principal,
    store_pk: int,
    resource: Resource,
    assignee_field: str,
) -> tuple[Store, bool]:
    """
    Load a store for a field submission.

    The caller needs edit on the stage's resource (recce / installation)
    before anything is read. Privileged principals may then submit on
    anyone's behalf; everybody else must be the stage's assignee.
    Non-privileged callers get Unauthorized for stores they cannot see,
    whether or not the store exists.
    """
    permission_service.require_permission(principal, resource, Action.EDIT)
    privileged = permission_service.is_privileged(principal)

    store = _load_store(store_pk)
    if store is None:
        if privileged:
            raise NotFound("Store", store_pk)
        raise Unauthorized("You are not assigned to this store")

    if not privileged and getattr(store, assignee_field) != principal.id:
        raise Unauthorized("You are not assigned to this store")

    return store, privileged


def submit_recce(
    principal: Principal,
    store_pk: int,
    sizes: dict | None,
    photos: dict | None = None,
    notes: str | None = None,
) -> Store:
    """
    Record the site survey (RECCE_ASSIGNED -> RECCE_SUBMITTED).

    sizes: {"width": ..., "height": ...} in feet, both required
    photos: stored-file references keyed front / side / close_up; only
            provided photos overwrite earlier ones
    notes: appended to existing recce notes
    """
    store, privileged = _load_for_assignee(principal, store_pk, Resource.RECCE, "recce_assigned_to_id")
    _check_source(store, SUBMIT_RECCE)

    sizes = sizes or {}
    if not isinstance(sizes, dict):
        raise ValidationFailed("sizes must be an object", field="sizes")
    width, height = validate_recce_sizes(sizes.get("width"), sizes.get("height"))

    values = {
        "recce_width": width,
        "recce_height": height,
        "recce_submitted_at": utcnow(),
    }
    values.update(_photo_values(photos, RECCE_PHOTO_FIELDS))
    if notes is not None and str(notes).strip():
        values["recce_notes"] = _append_note(store.recce_notes, str(notes).strip())

    criteria = () if privileged else (Store.recce_assigned_to_id == principal.id,)
    return _apply_transition(
        store_pk,
        SUBMIT_RECCE,
        values,
        criteria=criteria,
        expected_version=store.version_id if "recce_notes" in values else None,
    )


def submit_installation(
    principal: Principal,
    store_pk: int,
    photos: dict | None,
    notes: str | None = None,
) -> Store:
    """
    Record the finished installation (INSTALLATION_ASSIGNED -> INSTALLATION_SUBMITTED).

    photos: stored-file references keyed after1 / after2, at least one.
    """
    store, privileged = _load_for_assignee(
        principal, store_pk, Resource.INSTALLATION, "installation_assigned_to_id"
    )
    _check_source(store, SUBMIT_INSTALLATION)

    photo_values = _photo_values(photos, INSTALLATION_PHOTO_FIELDS)
    if not photo_values:
        raise ValidationFailed("At least one installation photo is required", field="photos")

    values = {"installation_submitted_at": utcnow()}
    values.update(photo_values)
    if notes is not None and str(notes).strip():
        values["installation_notes"] = _append_note(store.installation_notes, str(notes).strip())

    criteria = () if privileged else (Store.installation_assigned_to_id == principal.id,)
    return _apply_transition(
        store_pk,
        SUBMIT_INSTALLATION,
        values,
        criteria=criteria,
        expected_version=store.version_id if "installation_notes" in values else None,
    )


# ================================================================================
# ADMIN REVIEW
# ================================================================================

def _review(
    principal: Principal,
    store_pk: int,
    decision: str,
    remarks: str | None,
    *,
    approve_operation: str,
    reject_operation: str,
    notes_field: str,
) -> Store:
    permission_service.require_permission(principal, Resource.STORE, Action.EDIT)
    decision = _validate_decision(decision)
    operation = approve_operation if decision == "APPROVED" else reject_operation

    store = _load_store(store_pk)
    if store is None:
        raise NotFound("Store", store_pk)
    _check_source(store, operation)

    values = {}
    if remarks is not None and str(remarks).strip():
        entry = f"[Admin {to_utc_z(utcnow())}]: {str(remarks).strip()}"
        values[notes_field] = _append_note(getattr(store, notes_field), entry)

    return _apply_transition(
        store_pk,
        operation,
        values,
        expected_version=store.version_id if notes_field in values else None,
    )


def review_recce(principal: Principal, store_pk: int, decision: str, remarks: str | None = None) -> Store:
    """
    Approve or reject a submitted recce (RECCE_SUBMITTED -> RECCE_APPROVED | RECCE_REJECTED).

    Remarks are appended to the recce notes with a timestamped admin tag;
    earlier notes are never overwritten.
    """
    return _review(
        principal,
        store_pk,
        decision,
        remarks,
        approve_operation=APPROVE_RECCE,
        reject_operation=REJECT_RECCE,
        notes_field="recce_notes",
    )


def review_installation(principal: Principal, store_pk: int, decision: str, remarks: str | None = None) -> Store:
    """Approve (-> COMPLETED) or reject (-> INSTALLATION_REJECTED) a submitted installation."""
    return _review(
        principal,
        store_pk,
        decision,
        remarks,
        approve_operation=APPROVE_INSTALLATION,
        reject_operation=REJECT_INSTALLATION,
        notes_field="installation_notes",
    )
