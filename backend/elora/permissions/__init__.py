# Overview: Permission model package.
# Re-exports the public API so callers can import from `elora.permissions`.

from .resources import Resource, Action, RESOURCE_VALUES, ACTION_VALUES
from .definitions import PermissionVector, RESOURCE_DEFINITIONS
from .roles import (
    SUPER_ADMIN,
    ADMIN,
    RECCE,
    INSTALLATION,
    RESERVED_ROLE_CODE,
    PRIVILEGED_ROLE_CODES,
    DEFAULT_ROLES,
    DEFAULT_ROLE_PERMISSIONS,
)
from .helpers import (
    validate_resource,
    parse_permission_map,
    serialize_permission_map,
)

__all__ = [
    "Resource",
    "Action",
    "RESOURCE_VALUES",
    "ACTION_VALUES",
    "PermissionVector",
    "RESOURCE_DEFINITIONS",
    "SUPER_ADMIN",
    "ADMIN",
    "RECCE",
    "INSTALLATION",
    "RESERVED_ROLE_CODE",
    "PRIVILEGED_ROLE_CODES",
    "DEFAULT_ROLES",
    "DEFAULT_ROLE_PERMISSIONS",
    "validate_resource",
    "parse_permission_map",
    "serialize_permission_map",
]
