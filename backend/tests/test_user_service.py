"""
User administration tests.
"""

import pytest

from elora.errors import DuplicateKey, InvalidAssignee, NotFound, Unauthorized, ValidationFailed
from elora.extensions import db
from elora.models import SecurityEvent, SessionToken, User
from elora.services import session_service, user_service
from elora.services.auth_service import verify_password

from conftest import make_user


class TestCreateUser:

    def test_create(self, admin, roles):
        user = user_service.create_user(
            admin,
            name="Neha Field",
            email="  Neha@Elora.TEST ",
            password="Str0ng!pass",
            role_ids=[roles["RECCE"].id],
            mobile="9999900000",
        )
        assert user.email == "neha@elora.test"
        assert user.role_codes == ["RECCE"]
        assert verify_password("Str0ng!pass", user.password_hash)
        assert db.session.query(SecurityEvent).filter_by(event_type="USER_CREATED").count() == 1

    def test_duplicate_email(self, admin, roles, recce_user):
        with pytest.raises(DuplicateKey) as exc_info:
            user_service.create_user(
                admin,
                name="Copy",
                email="RECCE@elora.test",
                password="Str0ng!pass",
                role_ids=[roles["RECCE"].id],
            )
        assert exc_info.value.field == "email"

    def test_roles_required(self, admin):
        with pytest.raises(ValidationFailed) as exc_info:
            user_service.create_user(
                admin, name="No Role", email="norole@elora.test", password="Str0ng!pass", role_ids=[]
            )
        assert exc_info.value.field == "role_ids"

    def test_unknown_role(self, admin):
        with pytest.raises(NotFound):
            user_service.create_user(
                admin, name="Ghost", email="ghost@elora.test", password="Str0ng!pass", role_ids=[999]
            )

    def test_weak_password(self, admin, roles):
        with pytest.raises(ValidationFailed) as exc_info:
            user_service.create_user(
                admin, name="Weak", email="weak@elora.test", password="password", role_ids=[roles["RECCE"].id]
            )
        assert exc_info.value.field == "password"

    def test_field_user_cannot_create(self, recce, roles):
        with pytest.raises(Unauthorized):
            user_service.create_user(
                recce, name="X", email="x@elora.test", password="Str0ng!pass", role_ids=[roles["RECCE"].id]
            )


class TestUpdateUser:

    def test_replace_roles(self, admin, roles, recce_user):
        user = user_service.update_user(
            admin, recce_user.id, {"role_ids": [roles["RECCE"].id, roles["INSTALLATION"].id]}
        )
        assert user.role_codes == ["INSTALLATION", "RECCE"]

    def test_roles_cannot_be_emptied(self, admin, recce_user):
        with pytest.raises(ValidationFailed):
            user_service.update_user(admin, recce_user.id, {"role_ids": []})

    def test_deactivation_revokes_sessions(self, admin, recce_user):
        _, token = session_service.create_session(recce_user.id)
        user_service.update_user(admin, recce_user.id, {"is_active": False})

        assert session_service.validate_session(token) is None
        assert db.session.query(SessionToken).filter_by(user_id=recce_user.id, is_revoked=False).count() == 0

    def test_cannot_deactivate_self(self, admin, admin_user):
        with pytest.raises(ValidationFailed):
            user_service.update_user(admin, admin_user.id, {"is_active": False})

    def test_email_collision(self, admin, recce_user, installer):
        with pytest.raises(DuplicateKey):
            user_service.update_user(admin, installer.id, {"email": recce_user.email})

    def test_unknown_field(self, admin, recce_user):
        with pytest.raises(ValidationFailed):
            user_service.update_user(admin, recce_user.id, {"password_hash": "x"})


class TestDeleteUser:

    def test_cannot_delete_self(self, root, super_admin):
        with pytest.raises(ValidationFailed):
            user_service.delete_user(root, super_admin.id)

    def test_delete(self, root, recce_user):
        user_id = recce_user.id
        user_service.delete_user(root, user_id)
        assert db.session.query(User).filter_by(id=user_id).first() is None

    def test_admin_cannot_delete(self, admin, recce_user):
        with pytest.raises(Unauthorized):
            user_service.delete_user(admin, recce_user.id)


class TestRoleMembership:

    def test_users_by_role(self, admin, roles, recce_user, other_recce_user, installer):
        make_user("Inactive Recce", "inactive@elora.test", roles["RECCE"], is_active=False)
        users = user_service.users_by_role(admin, "RECCE")
        assert [u.email for u in users] == ["recce@elora.test", "recce2@elora.test"]

    def test_require_role_member(self, recce_user, installer):
        user_service.require_role_member(recce_user.id, "RECCE")
        with pytest.raises(InvalidAssignee):
            user_service.require_role_member(installer.id, "RECCE")
        with pytest.raises(InvalidAssignee):
            user_service.require_role_member("12", "RECCE")

    def test_list_users_filters(self, admin, recce_user, installer):
        page = user_service.list_users(admin, role_code="INSTALLATION")
        assert [u.id for u in page.items] == [installer.id]

        page = user_service.list_users(admin, search="ravi", per_page=1)
        assert page.total == 1
        assert page.to_dict()["pagination"]["pages"] == 1


class TestSeedSuperAdmin:

    def test_idempotent(self, roles):
        user, created = user_service.seed_super_admin("root@elora.test", "Sup3r!secret")
        assert created
        again, created = user_service.seed_super_admin("ROOT@elora.test", "ignored")
        assert not created
        assert again.id == user.id
        assert verify_password("Sup3r!secret", again.password_hash)
        assert db.session.query(User).count() == 1

    def test_requires_default_roles(self, db_session):
        with pytest.raises(NotFound):
            user_service.seed_super_admin("root@elora.test", "Sup3r!secret")
