"""
Access gate tests.

Verifies:
- Default role vectors grant what they should and nothing more
- Union semantics across roles; inactive roles and users grant nothing
- Denials raise Unauthorized and are written to security_events
- Permission maps reject unknown resources/actions
"""

import pytest

from elora.errors import Unauthorized, ValidationFailed
from elora.models import SecurityEvent
from elora.permissions import (
    Action,
    PermissionVector,
    Resource,
    parse_permission_map,
    serialize_permission_map,
)
from elora.services import permission_service
from elora.services.permission_service import Principal, RoleGrant


def _grant(code, is_active=True, **vectors):
    return RoleGrant(
        code=code,
        permissions={Resource(res): vec for res, vec in vectors.items()},
        is_active=is_active,
    )


class TestGatePredicate:

    def test_anonymous_is_denied(self):
        assert not permission_service.is_authorized(None, Resource.STORE, Action.VIEW)
        assert permission_service.denial_reason(None, Resource.STORE, Action.VIEW) == "Authentication required"

    def test_inactive_principal_is_denied_everything(self):
        p = Principal(id=1, roles=(_grant("X", store=PermissionVector.full()),), is_active=False)
        assert not permission_service.is_authorized(p, Resource.STORE, Action.VIEW)
        assert permission_service.denial_reason(p, "store", "view") == "User account is inactive"

    def test_no_roles_is_denied(self):
        p = Principal(id=1, roles=())
        assert permission_service.denial_reason(p, Resource.STORE, Action.VIEW) == "Access denied. No roles assigned."

    def test_unknown_resource_is_denied(self):
        p = Principal(id=1, roles=(_grant("X", store=PermissionVector.full()),))
        assert not permission_service.is_authorized(p, "warehouse", "view")
        assert not permission_service.is_authorized(p, "store", "approve")

    def test_union_of_roles(self):
        p = Principal(
            id=1,
            roles=(
                _grant("A", store=PermissionVector(view=True)),
                _grant("B", store=PermissionVector(edit=True)),
            ),
        )
        assert permission_service.is_authorized(p, Resource.STORE, Action.VIEW)
        assert permission_service.is_authorized(p, Resource.STORE, Action.EDIT)
        assert not permission_service.is_authorized(p, Resource.STORE, Action.DELETE)

    def test_inactive_role_grants_nothing(self):
        p = Principal(
            id=1,
            roles=(_grant("A", is_active=False, store=PermissionVector.full()),),
        )
        assert not permission_service.is_authorized(p, Resource.STORE, Action.VIEW)
        assert not p.has_role("A")

    def test_missing_resource_entry_means_false(self):
        p = Principal(id=1, roles=(_grant("A", store=PermissionVector.full()),))
        assert not permission_service.is_authorized(p, Resource.ROLE, Action.VIEW)


class TestDefaultRoles:

    def test_super_admin_has_everything(self, root):
        for resource in Resource:
            for action in Action:
                assert permission_service.is_authorized(root, resource, action)

    def test_admin_manages_stores_but_not_roles(self, admin):
        assert permission_service.is_authorized(admin, Resource.STORE, Action.DELETE)
        assert permission_service.is_authorized(admin, Resource.USER, Action.CREATE)
        assert not permission_service.is_authorized(admin, Resource.USER, Action.DELETE)
        assert permission_service.is_authorized(admin, Resource.ROLE, Action.VIEW)
        assert not permission_service.is_authorized(admin, Resource.ROLE, Action.EDIT)

    def test_recce_user_is_read_only_on_stores(self, recce):
        assert permission_service.is_authorized(recce, Resource.STORE, Action.VIEW)
        assert not permission_service.is_authorized(recce, Resource.STORE, Action.EDIT)
        assert permission_service.is_authorized(recce, Resource.RECCE, Action.EDIT)
        assert not permission_service.is_authorized(recce, Resource.INSTALLATION, Action.VIEW)

    def test_privileged(self, root, admin, recce):
        assert permission_service.is_privileged(root)
        assert permission_service.is_privileged(admin)
        assert not permission_service.is_privileged(recce)


class TestRequirePermission:

    def test_denial_raises_and_is_audited(self, db_session, recce):
        with pytest.raises(Unauthorized) as exc_info:
            permission_service.require_permission(recce, Resource.STORE, Action.DELETE)

        assert exc_info.value.resource == "store"
        assert exc_info.value.action == "delete"
        event = db_session.query(SecurityEvent).filter_by(event_type="PERMISSION_DENIED").one()
        assert event.user_id == recce.id
        assert event.success is False
        assert event.resource == "store"

    def test_grant_is_silent(self, db_session, admin):
        permission_service.require_permission(admin, Resource.STORE, Action.EDIT)
        assert db_session.query(SecurityEvent).count() == 0

    def test_effective_permissions_union(self, recce):
        perms = permission_service.get_effective_permissions(recce)
        assert perms["recce"] == {"view": True, "create": False, "edit": True, "delete": False}
        assert perms["role"]["view"] is False


class TestPermissionMapParsing:

    def test_parses_and_defaults_missing_actions(self):
        parsed = parse_permission_map({"store": {"view": True}})
        assert parsed == {Resource.STORE: PermissionVector(view=True)}
        assert serialize_permission_map(parsed) == {
            "store": {"view": True, "create": False, "edit": False, "delete": False}
        }

    def test_rejects_unknown_resource(self):
        with pytest.raises(ValidationFailed):
            parse_permission_map({"warehouse": {"view": True}})

    def test_rejects_unknown_action(self):
        with pytest.raises(ValidationFailed):
            parse_permission_map({"store": {"approve": True}})

    def test_rejects_non_boolean_flag(self):
        with pytest.raises(ValidationFailed):
            parse_permission_map({"store": {"view": "yes"}})
