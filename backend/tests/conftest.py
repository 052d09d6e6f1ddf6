"""
Pytest fixtures for Elora backend tests.

Provides the app (in-memory SQLite), per-test table clearing, seeded roles,
users for each built-in role, principals and an authenticated test client.
"""

import pytest

from elora import create_app
from elora.config import TestConfig
from elora.extensions import db
from elora.models import Role, Store, User
from elora.permissions import ADMIN, INSTALLATION, RECCE, SUPER_ADMIN
from elora.services import permission_service, role_service
from elora.services.auth_service import hash_password

DEFAULT_PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Clear all data but keep schema."""
    for table in reversed(db.metadata.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    db.session.rollback()


@pytest.fixture(scope='function')
def roles(db_session):
    """Default roles keyed by code."""
    role_service.ensure_default_roles()
    return {role.code: role for role in db_session.query(Role).all()}


def make_user(name: str, email: str, *role_list: Role, is_active: bool = True) -> User:
    user = User(
        name=name,
        email=email,
        password_hash=hash_password(DEFAULT_PASSWORD),
        is_active=is_active,
    )
    user.roles = list(role_list)
    db.session.add(user)
    db.session.commit()
    return user


def make_store(dealer_code: str, **fields) -> Store:
    store = Store(dealer_code=dealer_code, **fields)
    db.session.add(store)
    db.session.commit()
    return store


@pytest.fixture(scope='function')
def super_admin(roles):
    return make_user("Super Admin", "super@elora.test", roles[SUPER_ADMIN])


@pytest.fixture(scope='function')
def admin_user(roles):
    return make_user("Asha Admin", "admin@elora.test", roles[ADMIN])


@pytest.fixture(scope='function')
def recce_user(roles):
    return make_user("Ravi Recce", "recce@elora.test", roles[RECCE])


@pytest.fixture(scope='function')
def other_recce_user(roles):
    return make_user("Rohan Recce", "recce2@elora.test", roles[RECCE])


@pytest.fixture(scope='function')
def installer(roles):
    return make_user("Imran Installer", "install@elora.test", roles[INSTALLATION])


@pytest.fixture(scope='function')
def admin(admin_user):
    """Principal for the ADMIN user."""
    return permission_service.load_principal(admin_user.id)


@pytest.fixture(scope='function')
def root(super_admin):
    """Principal for the SUPER_ADMIN user."""
    return permission_service.load_principal(super_admin.id)


@pytest.fixture(scope='function')
def recce(recce_user):
    return permission_service.load_principal(recce_user.id)


@pytest.fixture(scope='function')
def other_recce(other_recce_user):
    return permission_service.load_principal(other_recce_user.id)


@pytest.fixture(scope='function')
def installation(installer):
    return permission_service.load_principal(installer.id)


@pytest.fixture(scope='function')
def store(db_session):
    return make_store(
        "D001",
        store_name="Sharma Electronics",
        city="Mumbai",
        district="Andheri",
        store_id="MUMANDD001",
    )


def get_auth_token(client, email: str, password: str = DEFAULT_PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'email': email,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, admin_user.email))


@pytest.fixture(scope='function')
def recce_headers(client, recce_user):
    return auth_headers(get_auth_token(client, recce_user.email))


@pytest.fixture(scope='function')
def installer_headers(client, installer):
    return auth_headers(get_auth_token(client, installer.email))
