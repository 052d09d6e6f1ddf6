"""
Role administration tests.

Verifies:
- Role CRUD is gated by the role resource (SUPER_ADMIN only by default)
- SUPER_ADMIN cannot be deleted, deactivated, re-coded or stripped
- A role that is some user's only role cannot be deleted
- ensure_default_roles is idempotent and repairs SUPER_ADMIN
"""

import pytest

from elora.errors import DuplicateKey, NotFound, Unauthorized, ValidationFailed
from elora.extensions import db
from elora.models import Role
from elora.permissions import PermissionVector, Resource
from elora.services import permission_service, role_service

from conftest import make_user


SURVEYOR_PERMISSIONS = {"store": {"view": True}, "recce": {"view": True, "edit": True}}


class TestCreateRole:

    def test_create(self, root):
        role = role_service.create_role(
            root, code="senior surveyor", name="Senior Surveyor", permissions=SURVEYOR_PERMISSIONS
        )
        assert role.code == "SENIOR_SURVEYOR"
        perms = role.permission_map()
        assert perms[Resource.RECCE] == PermissionVector(view=True, edit=True)
        assert Resource.ROLE not in perms

    def test_duplicate_code(self, root):
        with pytest.raises(DuplicateKey):
            role_service.create_role(root, code="recce", name="Another Recce")

    def test_unknown_resource(self, root):
        with pytest.raises(ValidationFailed):
            role_service.create_role(
                root, code="AUDITOR", name="Auditor", permissions={"invoices": {"view": True}}
            )
        assert role_service.get_role_by_code("AUDITOR") is None

    def test_invalid_code(self, root):
        with pytest.raises(ValidationFailed):
            role_service.create_role(root, code="9lives", name="Cat")

    def test_admin_cannot_create_roles(self, admin):
        with pytest.raises(Unauthorized):
            role_service.create_role(admin, code="AUDITOR", name="Auditor")


class TestUpdateRole:

    def test_replace_permissions(self, root, roles):
        role = role_service.update_role(
            root, roles["RECCE"].id, {"permissions": {"store": {"view": True}}}
        )
        assert Resource.RECCE not in role.permission_map()

    def test_permission_change_applies_to_holders(self, root, roles, recce_user):
        role_service.update_role(root, roles["RECCE"].id, {"is_active": False})
        principal = permission_service.load_principal(recce_user.id)
        assert not permission_service.is_authorized(principal, Resource.STORE, "view")

    def test_super_admin_cannot_be_deactivated(self, root, roles):
        with pytest.raises(ValidationFailed):
            role_service.update_role(root, roles["SUPER_ADMIN"].id, {"is_active": False})

    def test_super_admin_code_is_fixed(self, root, roles):
        with pytest.raises(ValidationFailed):
            role_service.update_role(root, roles["SUPER_ADMIN"].id, {"code": "OWNER"})

    def test_super_admin_keeps_full_permissions(self, root, roles):
        with pytest.raises(ValidationFailed):
            role_service.update_role(
                root, roles["SUPER_ADMIN"].id, {"permissions": {"store": {"view": True}}}
            )
        db.session.expire_all()
        assert permission_service.is_authorized(
            permission_service.load_principal(root.id), Resource.ROLE, "delete"
        )

    def test_super_admin_rename_allowed(self, root, roles):
        role = role_service.update_role(root, roles["SUPER_ADMIN"].id, {"name": "Owner"})
        assert role.name == "Owner"

    def test_unknown_field(self, root, roles):
        with pytest.raises(ValidationFailed):
            role_service.update_role(root, roles["RECCE"].id, {"colour": "red"})

    def test_code_collision(self, root, roles):
        with pytest.raises(DuplicateKey):
            role_service.update_role(root, roles["RECCE"].id, {"code": "INSTALLATION"})


class TestDeleteRole:

    def test_super_admin_cannot_be_deleted(self, root, roles):
        with pytest.raises(ValidationFailed):
            role_service.delete_role(root, roles["SUPER_ADMIN"].id)

    def test_only_role_of_a_user(self, root, roles, recce_user):
        with pytest.raises(ValidationFailed) as exc_info:
            role_service.delete_role(root, roles["RECCE"].id)
        assert recce_user.email in exc_info.value.message
        assert role_service.get_role_by_code("RECCE") is not None

    def test_delete_shared_role(self, root, roles):
        user = make_user("Dual", "dual@elora.test", roles["RECCE"], roles["INSTALLATION"])
        role_service.delete_role(root, roles["RECCE"].id)

        assert role_service.get_role_by_code("RECCE") is None
        db.session.expire_all()
        assert db.session.get(type(user), user.id).role_codes == ["INSTALLATION"]

    def test_missing_role(self, root):
        with pytest.raises(NotFound):
            role_service.delete_role(root, 4242)


class TestDefaultRoles:

    def test_idempotent(self, roles):
        role_service.ensure_default_roles()
        assert db.session.query(Role).count() == len(roles)

    def test_repairs_super_admin(self, roles):
        reserved = roles["SUPER_ADMIN"]
        reserved.is_active = False
        reserved.set_permissions({Resource.STORE: PermissionVector(view=True)})
        db.session.commit()

        role_service.ensure_default_roles()
        db.session.expire_all()
        repaired = role_service.get_role_by_code("SUPER_ADMIN")
        assert repaired.is_active
        assert all(repaired.permission_map()[res] == PermissionVector.full() for res in Resource)

    def test_edited_default_role_left_alone(self, root, roles):
        role_service.update_role(root, roles["RECCE"].id, {"name": "Surveyor"})
        role_service.ensure_default_roles()
        assert role_service.get_role_by_code("RECCE").name == "Surveyor"
