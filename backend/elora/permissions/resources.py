# Overview: The fixed set of resources and actions a role can be granted.

from enum import Enum


class Resource(str, Enum):
    """Resources guarded by the access gate."""
    DASHBOARD = "dashboard"
    STORE = "store"
    USER = "user"
    ROLE = "role"
    RECCE = "recce"
    INSTALLATION = "installation"


class Action(str, Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


RESOURCE_VALUES = frozenset(r.value for r in Resource)
ACTION_VALUES = frozenset(a.value for a in Action)
