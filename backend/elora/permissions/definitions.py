# Overview: Permission vector type and the human-readable resource catalogue.
# Each resource is defined as: (resource, name, description)

from __future__ import annotations

from dataclasses import dataclass

from .resources import Action, Resource


@dataclass(frozen=True)
class PermissionVector:
    """The four actions a role may grant on one resource."""
    view: bool = False
    create: bool = False
    edit: bool = False
    delete: bool = False

    @classmethod
    def full(cls) -> "PermissionVector":
        return cls(view=True, create=True, edit=True, delete=True)

    @classmethod
    def none(cls) -> "PermissionVector":
        return cls()

    def allows(self, action: Action | str) -> bool:
        return bool(getattr(self, Action(action).value))

    def covers(self, other: "PermissionVector") -> bool:
        """True if every action granted by `other` is also granted here."""
        return all(self.allows(a) or not other.allows(a) for a in Action)

    def to_dict(self) -> dict:
        return {a.value: self.allows(a) for a in Action}


RESOURCE_DEFINITIONS = [
    (
        Resource.DASHBOARD,
        "Dashboard",
        "KPI counts, personnel workload and recent stores",
    ),
    (
        Resource.STORE,
        "Stores",
        "Store records, bulk upload, assignment and recce/installation review",
    ),
    (
        Resource.USER,
        "Users",
        "User accounts and their role membership",
    ),
    (
        Resource.ROLE,
        "Roles",
        "Roles and their per-resource permission vectors",
    ),
    (
        Resource.RECCE,
        "Recce",
        "Field site-survey task list",
    ),
    (
        Resource.INSTALLATION,
        "Installation",
        "Field installation task list",
    ),
]
