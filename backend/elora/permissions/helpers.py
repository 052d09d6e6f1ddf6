# Overview: Parsing and serialization of per-resource permission maps.

from __future__ import annotations

from ..errors import ValidationFailed
from .definitions import PermissionVector
from .resources import ACTION_VALUES, RESOURCE_VALUES, Resource


def validate_resource(resource) -> Resource:
    """Return the Resource for a name, raising ValidationFailed if unknown."""
    if isinstance(resource, Resource):
        return resource
    if resource not in RESOURCE_VALUES:
        raise ValidationFailed(f"Unknown resource: {resource}", field="permissions")
    return Resource(resource)


def parse_permission_map(raw) -> dict[Resource, PermissionVector]:
    """
    Parse {"store": {"view": true, ...}, ...} into typed permission vectors.

    Unknown resources and unknown action keys are rejected instead of being
    stored, so a role can only ever grant what the access gate knows about.
    Missing actions default to False.
    """
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValidationFailed("permissions must be an object", field="permissions")

    parsed: dict[Resource, PermissionVector] = {}
    for key, flags in raw.items():
        resource = validate_resource(key)
        if isinstance(flags, PermissionVector):
            parsed[resource] = flags
            continue
        if not isinstance(flags, dict):
            raise ValidationFailed(
                f"permissions.{resource.value} must be an object", field="permissions"
            )
        unknown = set(flags) - ACTION_VALUES
        if unknown:
            raise ValidationFailed(
                f"Unknown action(s) for {resource.value}: {', '.join(sorted(unknown))}",
                field="permissions",
            )
        for action, value in flags.items():
            if not isinstance(value, bool):
                raise ValidationFailed(
                    f"permissions.{resource.value}.{action} must be a boolean",
                    field="permissions",
                )
        parsed[resource] = PermissionVector(**flags)
    return parsed


def serialize_permission_map(permissions: dict) -> dict:
    return {
        (res.value if isinstance(res, Resource) else res): vector.to_dict()
        for res, vector in permissions.items()
    }
