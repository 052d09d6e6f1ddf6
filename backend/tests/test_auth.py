"""
Authentication tests: login, logout, /me and token handling.
"""

from datetime import timedelta

import pytest

from elora.extensions import db
from elora.models import SecurityEvent, SessionToken
from elora.services import auth_service, session_service
from elora.errors import ValidationFailed

from conftest import DEFAULT_PASSWORD, auth_headers, get_auth_token, make_user


class TestPasswordRules:

    @pytest.mark.parametrize("password", ["Sh0rt!", "alllower1!", "ALLUPPER1!", "NoDigits!", "NoSpecial1"])
    def test_weak_passwords_rejected(self, app, password):
        with pytest.raises(ValidationFailed):
            auth_service.validate_password_strength(password)

    def test_strong_password_round_trip(self, app):
        hashed = auth_service.hash_password("Corr3ct!horse")
        assert auth_service.verify_password("Corr3ct!horse", hashed)
        assert not auth_service.verify_password("wrong", hashed)

    def test_malformed_hash_is_a_mismatch(self, app):
        assert not auth_service.verify_password("Corr3ct!horse", "not-a-bcrypt-hash")


class TestLogin:

    def test_login_success(self, client, recce_user):
        response = client.post('/api/auth/login', json={
            'email': 'RECCE@elora.test',
            'password': DEFAULT_PASSWORD,
        })
        assert response.status_code == 200
        data = response.json
        assert data['token']
        assert data['user']['email'] == 'recce@elora.test'
        assert data['permissions']['recce']['edit'] is True
        assert data['permissions']['role']['view'] is False

        event = db.session.query(SecurityEvent).filter_by(event_type="LOGIN_SUCCEEDED").one()
        assert event.user_id == recce_user.id

    def test_bad_password(self, client, recce_user):
        response = client.post('/api/auth/login', json={
            'email': recce_user.email,
            'password': 'Wrong123!',
        })
        assert response.status_code == 401
        assert response.json['error'] == 'Unauthorized'
        assert db.session.query(SecurityEvent).filter_by(event_type="LOGIN_FAILED", success=False).count() == 1

    def test_missing_fields(self, client, db_session):
        response = client.post('/api/auth/login', json={'email': 'someone@elora.test'})
        assert response.status_code == 400

    def test_inactive_user_cannot_login(self, client, roles):
        user = make_user("Gone", "gone@elora.test", roles["RECCE"], is_active=False)
        assert get_auth_token(client, user.email) is None


class TestProtectedRoutes:

    def test_no_token(self, client, db_session):
        response = client.get('/api/auth/me')
        assert response.status_code == 401

    def test_garbage_token(self, client, db_session):
        response = client.get('/api/auth/me', headers=auth_headers('not-a-token'))
        assert response.status_code == 401

    def test_me(self, client, recce_headers):
        response = client.get('/api/auth/me', headers=recce_headers)
        assert response.status_code == 200
        assert response.json['user']['roles'][0]['code'] == 'RECCE'
        assert 'permissions' in response.json['user']['roles'][0]
        assert response.json['permissions']['store']['view'] is True

    def test_logout_revokes_token(self, client, recce_headers):
        response = client.post('/api/auth/logout', headers=recce_headers)
        assert response.status_code == 200

        response = client.get('/api/auth/me', headers=recce_headers)
        assert response.status_code == 401

    def test_deactivated_user_loses_access(self, client, recce_user, recce_headers):
        recce_user.is_active = False
        db.session.commit()

        response = client.get('/api/auth/me', headers=recce_headers)
        assert response.status_code == 401
        assert db.session.query(SessionToken).filter_by(user_id=recce_user.id, is_revoked=True).count() == 1


class TestSessions:

    def test_token_is_stored_hashed(self, recce_user):
        session, token = session_service.create_session(recce_user.id)
        assert session.token_hash == session_service.hash_token(token)
        assert session.token_hash != token

    def test_idle_timeout(self, recce_user):
        session, token = session_service.create_session(recce_user.id)
        session.last_used_at = session.last_used_at - timedelta(hours=3)
        db.session.commit()

        assert session_service.validate_session(token) is None
        db.session.refresh(session)
        assert session.is_revoked
        assert session.revoked_reason == "Idle timeout"

    def test_revoke_all(self, recce_user):
        session_service.create_session(recce_user.id)
        session_service.create_session(recce_user.id)
        assert session_service.revoke_all_user_sessions(recce_user.id) == 2
