from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Float, Integer, String, Text
from sqlalchemy.orm import DeclarativeMeta

from elora.errors import ValidationFailed


# Guard rails for free-form numeric inputs (sizes in feet, costs in rupees)
MAX_DIMENSION = 10_000
MAX_AMOUNT = 1_000_000_000


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which columns a client payload may touch.

    writable_fields is the allowlist; required_on_create applies to creates
    only. forbidden_fields are real columns owned by another code path (the
    workflow engine, generated ids) and get their own error message.
    """
    writable_fields: frozenset[str]
    required_on_create: frozenset[str] = frozenset()
    forbidden_fields: frozenset[str] = frozenset()


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers: "3" is fine, "2.5" and "1e3" are not
    if isinstance(coltype, Integer):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationFailed(f"{col.key} must be an integer", field=col.key)
            if 'e' in stripped.lower() or '.' in stripped:
                raise ValidationFailed(f"{col.key} must be a plain integer", field=col.key)
            try:
                return int(stripped)
            except ValueError:
                raise ValidationFailed(f"{col.key} must be an integer", field=col.key)
        raise ValidationFailed(f"{col.key} must be an integer", field=col.key)

    # Floats: ints, floats and numeric strings ("12.5", "1,200")
    if isinstance(coltype, Float):
        if isinstance(value, bool):
            raise ValidationFailed(f"{col.key} must be a number", field=col.key)
        if isinstance(value, (int, float)):
            return float(value)
        if isinstance(value, str):
            stripped = value.strip().replace(",", "")
            if not stripped:
                return None
            try:
                return float(stripped)
            except ValueError:
                raise ValidationFailed(f"{col.key} must be a number", field=col.key)
        raise ValidationFailed(f"{col.key} must be a number", field=col.key)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationFailed(f"{col.key} must be a boolean", field=col.key)

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Check a JSON object against the policy and the model's column metadata.

    Returns a patch holding only the payload's keys, coerced to the column
    types (nullability and String lengths enforced). With partial=False the
    policy's required_on_create fields must be present and non-empty.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationFailed("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationFailed(
                f"Missing required fields: {', '.join(missing)}", field=missing[0]
            )

    cols = _columns_by_key(model)

    # Field names first, so a bad key fails before any value is coerced
    for k in payload.keys():
        if k in policy.forbidden_fields:
            raise ValidationFailed(f"Field cannot be edited directly: {k}", field=k)
        if k not in policy.writable_fields:
            raise ValidationFailed(f"Field not allowed: {k}", field=k)
        if k not in cols:
            raise ValidationFailed(f"Unknown field: {k}", field=k)

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationFailed(f"{k} cannot be null", field=k)
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationFailed(f"{k} cannot be blank", field=k)

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationFailed(f"{k} exceeds max length {col.type.length}", field=k)

        patch[k] = val

    return patch


def enforce_rules_store(patch: dict) -> None:
    """Store rules beyond column metadata: sane dimensions, costs and coordinates."""
    for key in ("width", "height"):
        value = patch.get(key)
        if value is not None and not (0 <= value <= MAX_DIMENSION):
            raise ValidationFailed(f"{key} must be between 0 and {MAX_DIMENSION}", field=key)

    if patch.get("qty") is not None and patch["qty"] < 0:
        raise ValidationFailed("qty must be >= 0", field="qty")

    for key in (
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
    ):
        value = patch.get(key)
        if value is not None and not (0 <= value <= MAX_AMOUNT):
            raise ValidationFailed(f"{key} must be between 0 and {MAX_AMOUNT}", field=key)

    lat, lng = patch.get("latitude"), patch.get("longitude")
    if lat is not None and not (-90 <= lat <= 90):
        raise ValidationFailed("latitude must be between -90 and 90", field="latitude")
    if lng is not None and not (-180 <= lng <= 180):
        raise ValidationFailed("longitude must be between -180 and 180", field="longitude")


def validate_recce_sizes(width: Any, height: Any) -> tuple[float, float]:
    """Recce sizes are required, positive and bounded."""
    sizes = []
    for key, raw in (("width", width), ("height", height)):
        if raw is None or raw == "" or isinstance(raw, bool):
            raise ValidationFailed(f"{key} is required", field=key)
        try:
            value = float(raw)
        except (TypeError, ValueError):
            raise ValidationFailed(f"{key} must be a number", field=key)
        if not (0 < value <= MAX_DIMENSION):
            raise ValidationFailed(f"{key} must be between 0 and {MAX_DIMENSION}", field=key)
        sizes.append(value)
    return sizes[0], sizes[1]
