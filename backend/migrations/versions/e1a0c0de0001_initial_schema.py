"""initial schema

Revision ID: e1a0c0de0001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the Elora schema from scratch:
- users / roles / role_permissions / user_roles: RBAC
- session_tokens: hashed bearer tokens
- security_events: append-only audit trail (denials, logins)
- stores: store records and their workflow columns
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'e1a0c0de0001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # users
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('mobile', sa.String(length=32), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # ============================================================================
    # roles + permission vectors
    # ============================================================================
    op.create_table(
        'roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('code', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_roles_code', 'roles', ['code'], unique=True)

    op.create_table(
        'role_permissions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('resource', sa.String(length=32), nullable=False),
        sa.Column('can_view', sa.Boolean(), nullable=False),
        sa.Column('can_create', sa.Boolean(), nullable=False),
        sa.Column('can_edit', sa.Boolean(), nullable=False),
        sa.Column('can_delete', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role_id', 'resource', name='uq_role_permissions_role_resource'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_role_permissions_role_id', 'role_permissions', ['role_id'])

    op.create_table(
        'user_roles',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_roles'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])
    op.create_index('ix_user_roles_role_id', 'user_roles', ['role_id'])

    # ============================================================================
    # session_tokens
    # ============================================================================
    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # security_events: append-only
    # ============================================================================
    op.create_table(
        'security_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('resource', sa.String(length=128), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_security_events_user_id', 'security_events', ['user_id'])
    op.create_index('ix_security_events_event_type', 'security_events', ['event_type'])
    op.create_index('ix_security_events_success', 'security_events', ['success'])
    op.create_index('ix_security_events_occurred_at', 'security_events', ['occurred_at'])
    op.create_index('ix_security_events_user_type', 'security_events', ['user_id', 'event_type'])

    # ============================================================================
    # stores: record + workflow state
    # ============================================================================
    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('dealer_code', sa.String(length=64), nullable=False),
        sa.Column('store_id', sa.String(length=128), nullable=True),
        sa.Column('project_id', sa.String(length=64), nullable=True),
        sa.Column('store_code', sa.String(length=128), nullable=True),
        sa.Column('store_name', sa.String(length=255), nullable=True),
        sa.Column('vendor_code', sa.String(length=128), nullable=True),
        # location
        sa.Column('zone', sa.String(length=64), nullable=True),
        sa.Column('state', sa.String(length=64), nullable=True),
        sa.Column('district', sa.String(length=64), nullable=True),
        sa.Column('city', sa.String(length=64), nullable=True),
        sa.Column('area', sa.String(length=128), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('pincode', sa.String(length=16), nullable=True),
        sa.Column('latitude', sa.Float(), nullable=True),
        sa.Column('longitude', sa.Float(), nullable=True),
        # contact
        sa.Column('contact_person', sa.String(length=120), nullable=True),
        sa.Column('contact_mobile', sa.String(length=32), nullable=True),
        # commercials
        sa.Column('po_number', sa.String(length=64), nullable=True),
        sa.Column('po_month', sa.String(length=32), nullable=True),
        sa.Column('invoice_number', sa.String(length=64), nullable=True),
        sa.Column('invoice_remarks', sa.Text(), nullable=True),
        sa.Column('total_cost', sa.Float(), nullable=True),
        # cost breakdown
        sa.Column('board_rate', sa.Float(), nullable=True),
        sa.Column('total_board_cost', sa.Float(), nullable=True),
        sa.Column('angle_charges', sa.Float(), nullable=True),
        sa.Column('scaffolding_charges', sa.Float(), nullable=True),
        sa.Column('transportation', sa.Float(), nullable=True),
        sa.Column('flanges', sa.Float(), nullable=True),
        sa.Column('lollipop', sa.Float(), nullable=True),
        sa.Column('one_way_vision', sa.Float(), nullable=True),
        sa.Column('sunboard', sa.Float(), nullable=True),
        # specs
        sa.Column('board_size', sa.String(length=64), nullable=True),
        sa.Column('board_type', sa.String(length=64), nullable=True),
        sa.Column('width', sa.Float(), nullable=True),
        sa.Column('height', sa.Float(), nullable=True),
        sa.Column('qty', sa.Integer(), nullable=True),
        # workflow
        sa.Column('current_status', sa.String(length=32), nullable=False),
        sa.Column('recce_assigned_to_id', sa.Integer(), nullable=True),
        sa.Column('installation_assigned_to_id', sa.Integer(), nullable=True),
        sa.Column('priority', sa.String(length=8), nullable=False),
        # recce
        sa.Column('recce_assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('recce_submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('recce_width', sa.Float(), nullable=True),
        sa.Column('recce_height', sa.Float(), nullable=True),
        sa.Column('recce_photo_front', sa.String(length=512), nullable=True),
        sa.Column('recce_photo_side', sa.String(length=512), nullable=True),
        sa.Column('recce_photo_close_up', sa.String(length=512), nullable=True),
        sa.Column('recce_notes', sa.Text(), nullable=True),
        # installation
        sa.Column('installation_assigned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('installation_submitted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('installation_photo_after1', sa.String(length=512), nullable=True),
        sa.Column('installation_photo_after2', sa.String(length=512), nullable=True),
        sa.Column('installation_notes', sa.Text(), nullable=True),
        # bookkeeping
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stores_dealer_code', 'stores', ['dealer_code'], unique=True)
    op.create_index('ix_stores_store_id', 'stores', ['store_id'], unique=True)
    op.create_index('ix_stores_city', 'stores', ['city'])
    op.create_index('ix_stores_current_status', 'stores', ['current_status'])
    op.create_index('ix_stores_recce_assigned_to_id', 'stores', ['recce_assigned_to_id'])
    op.create_index('ix_stores_installation_assigned_to_id', 'stores', ['installation_assigned_to_id'])
    op.create_index('ix_stores_status_updated', 'stores', ['current_status', 'updated_at'])


def downgrade():
    op.drop_table('stores')
    op.drop_table('security_events')
    op.drop_table('session_tokens')
    op.drop_table('user_roles')
    op.drop_table('role_permissions')
    op.drop_table('roles')
    op.drop_table('users')
