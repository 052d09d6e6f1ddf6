"""
CLI command tests (flask system / users / perms / stores).
"""

from elora.extensions import db
from elora.models import Role, Store, User

from conftest import make_store


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=['system', 'init'])
    assert result.exit_code == 0, result.output
    assert 'PASS Created super admin' in result.output

    result = runner.invoke(args=['system', 'init'])
    assert result.exit_code == 0, result.output
    assert 'already exists' in result.output

    assert db.session.query(Role).count() == 4
    admin = db.session.query(User).filter_by(email=app.config['SUPER_ADMIN_EMAIL'].lower()).one()
    assert admin.role_codes == ['SUPER_ADMIN']


def test_users_create_and_perms_check(app, roles):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        'users', 'create',
        '--name', 'Ravi',
        '--email', 'ravi@elora.test',
        '--password', 'Password123!',
        '--role', 'RECCE',
    ])
    assert result.exit_code == 0, result.output

    result = runner.invoke(args=['perms', 'check', 'ravi@elora.test', 'recce', 'edit'])
    assert 'PASS' in result.output

    result = runner.invoke(args=['perms', 'check', 'ravi@elora.test', 'store', 'delete'])
    assert 'FAIL' in result.output


def test_users_create_rejects_weak_password(app, roles):
    runner = app.test_cli_runner()
    result = runner.invoke(args=[
        'users', 'create',
        '--name', 'Weak',
        '--email', 'weak@elora.test',
        '--password', 'weak',
        '--role', 'RECCE',
    ])
    assert result.exit_code != 0
    assert db.session.query(User).filter_by(email='weak@elora.test').first() is None


def test_stores_backfill_ids(app, db_session):
    make_store('D400', city='Jaipur', district='Amer')
    result = app.test_cli_runner().invoke(args=['stores', 'backfill-ids'])
    assert result.exit_code == 0, result.output
    assert '1 updated' in result.output
    db.session.expire_all()
    assert db.session.query(Store).filter_by(dealer_code='D400').one().store_id == 'JAIAMED400'
