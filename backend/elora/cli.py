# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: default roles plus the SUPER_ADMIN user from config.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system cleanup-sessions
#   Delete expired/revoked sessions older than 30 days.
#
# Users and roles:
# - python -m flask users list
# - python -m flask users create --name "Ravi" --email ravi@elora.com --password "Password123!" --role RECCE
# - python -m flask roles list
#
# Permission inspection:
# - python -m flask perms check admin@elora.com store edit
#
# Stores:
# - python -m flask stores backfill-ids
#   Generate missing store ids (CIT + DIS + DEALERCODE).

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import DomainError
from .extensions import db
from .models import Role, User
from .permissions import ACTION_VALUES, DEFAULT_ROLES, RESOURCE_VALUES
from .services import permission_service, role_service, session_service, store_service, user_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize Elora: default roles and the bootstrap SUPER_ADMIN user.

    Credentials come from SUPER_ADMIN_EMAIL / SUPER_ADMIN_PASSWORD /
    SUPER_ADMIN_NAME. Re-running is safe.

    SECURITY: Change the default password immediately in production!
    """
    click.echo("START Initializing Elora...")

    roles = role_service.ensure_default_roles()
    click.echo(f"PASS Roles ready: {', '.join(r.code for r in roles)}")

    email = current_app.config["SUPER_ADMIN_EMAIL"]
    try:
        user, created = user_service.seed_super_admin(
            email,
            current_app.config["SUPER_ADMIN_PASSWORD"],
            current_app.config["SUPER_ADMIN_NAME"],
        )
    except DomainError as exc:
        raise click.ClickException(f"Could not create super admin: {exc.message}")

    if created:
        click.echo(f"PASS Created super admin: {user.email}")
    else:
        click.echo(f"WARN Super admin '{user.email}' already exists, ensured SUPER_ADMIN role")

    click.echo("DONE Elora initialized.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    """Delete expired and revoked sessions older than 30 days."""
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} stale sessions")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and creation."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Name':<20} {'Email':<32} {'Active':<8} {'Roles'}")
    click.echo("="*90)

    for user in users:
        roles_str = ", ".join(user.role_codes) if user.roles else "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.name:<20} {user.email:<32} {active_str:<8} {roles_str}")

    click.echo("="*90 + "\n")


@users_group.command('create')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', 'role_codes', multiple=True, type=click.Choice(sorted(DEFAULT_ROLES)), required=True,
              help='Role code (repeatable)')
@with_appcontext
def create_user_cli(name, email, password, role_codes):
    """Create a user holding one or more built-in roles."""
    role_ids = []
    for code in role_codes:
        role = role_service.get_role_by_code(code)
        if role is None:
            raise click.ClickException(f"Role {code} not found. Run: python -m flask system init")
        role_ids.append(role.id)

    try:
        user = user_service.create_user(
            permission_service.system_principal(),
            name=name,
            email=email,
            password=password,
            role_ids=role_ids,
        )
    except DomainError as exc:
        raise click.ClickException(exc.message)

    click.echo(f"PASS Created user: {user.email} (ID: {user.id}) with roles {', '.join(user.role_codes)}")


# =============================================================================
# ROLES & PERMISSIONS
# =============================================================================

@click.group('roles')
def roles_group():
    """Role inspection."""


@roles_group.command('list')
@with_appcontext
def list_roles():
    """List roles with their permission vectors."""
    roles = db.session.query(Role).order_by(Role.code.asc()).all()
    if not roles:
        click.echo("No roles found. Run: python -m flask system init")
        return

    for role in roles:
        state = "active" if role.is_active else "inactive"
        click.echo(f"\n{role.code} - {role.name} ({state}, {len(role.users)} users)")
        for resource, vector in sorted(role.permission_map().items(), key=lambda item: item[0].value):
            granted = [action for action, allowed in vector.to_dict().items() if allowed]
            click.echo(f"  {resource.value:<14} {', '.join(granted) or '-'}")
    click.echo("")


@click.group('perms')
def perms_group():
    """Permission inspection."""


@perms_group.command('check')
@click.argument('email')
@click.argument('resource', type=click.Choice(sorted(RESOURCE_VALUES)))
@click.argument('action', type=click.Choice(sorted(ACTION_VALUES)))
@with_appcontext
def check_permission_cli(email, resource, action):
    """Check if a user may perform ACTION on RESOURCE."""
    user = user_service.get_user_by_email(email)

    if not user:
        raise click.ClickException(f"User '{email}' not found")

    principal = permission_service.principal_from_user(user)
    reason = permission_service.denial_reason(principal, resource, action)

    if reason is None:
        click.echo(f"PASS User '{email}' HAS permission '{resource}.{action}'")
    else:
        click.echo(f"FAIL User '{email}' DOES NOT HAVE permission '{resource}.{action}': {reason}")

    click.echo(f"\nUser roles: {', '.join(user.role_codes) or 'none'}")


# =============================================================================
# STORES
# =============================================================================

@click.group('stores')
def stores_group():
    """Store maintenance."""


@stores_group.command('backfill-ids')
@with_appcontext
def backfill_store_ids_cli():
    """Generate store_id for stores that do not have one yet."""
    updated, skipped = store_service.backfill_store_ids()
    click.echo(f"PASS store_id backfill: {updated} updated, {skipped} skipped")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(roles_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(stores_group)
