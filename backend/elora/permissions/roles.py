# Overview: Well-known role codes and the permission vectors they are seeded with.

from .definitions import PermissionVector
from .resources import Resource


SUPER_ADMIN = "SUPER_ADMIN"
ADMIN = "ADMIN"
RECCE = "RECCE"
INSTALLATION = "INSTALLATION"

# The reserved role: always exists, never deleted, never loses permissions.
RESERVED_ROLE_CODE = SUPER_ADMIN

# Roles that see every store and may act on stores they are not assigned to.
PRIVILEGED_ROLE_CODES = frozenset({SUPER_ADMIN, ADMIN})

_VIEW_ONLY = PermissionVector(view=True)
_VIEW_EDIT = PermissionVector(view=True, edit=True)

DEFAULT_ROLES = {
    SUPER_ADMIN: ("Super Admin", "Full access to every resource"),
    ADMIN: ("Admin", "Store operations and user management"),
    RECCE: ("Recce", "Field staff performing site surveys"),
    INSTALLATION: ("Installation", "Field staff performing installations"),
}

DEFAULT_ROLE_PERMISSIONS = {
    SUPER_ADMIN: {resource: PermissionVector.full() for resource in Resource},
    ADMIN: {
        Resource.DASHBOARD: _VIEW_ONLY,
        Resource.STORE: PermissionVector.full(),
        Resource.USER: PermissionVector(view=True, create=True, edit=True),
        Resource.ROLE: _VIEW_ONLY,
        Resource.RECCE: _VIEW_EDIT,
        Resource.INSTALLATION: _VIEW_EDIT,
    },
    RECCE: {
        Resource.DASHBOARD: _VIEW_ONLY,
        Resource.STORE: _VIEW_ONLY,
        Resource.RECCE: _VIEW_EDIT,
    },
    INSTALLATION: {
        Resource.DASHBOARD: _VIEW_ONLY,
        Resource.STORE: _VIEW_ONLY,
        Resource.INSTALLATION: _VIEW_EDIT,
    },
}
