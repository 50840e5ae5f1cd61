"""Initial schema: accounts, packages, browser sessions, desktop tokens, security events

Revision ID: 20261017_initial
Revises:
Create Date: 2026-10-17

This migration adds:
1. Packages (subscription tiers)
2. Users with role-conditional entitlement window and device binding
3. Browser sessions (hashed identifier, identity snapshot, anti-forgery token)
4. Desktop tokens (hashed bearer token, issuing device, TTL)
5. Security events (append-only audit trail)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261017_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. PACKAGES TABLE
    # ==========================================================================
    op.create_table('packages',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('email_credits', sa.Integer(), nullable=False),
        sa.Column('concurrency_limit', sa.Integer(), nullable=False),
        sa.Column('features', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('email_credits >= 0 AND email_credits <= 1000000', name='ck_packages_email_credits'),
        sa.CheckConstraint('concurrency_limit >= 1 AND concurrency_limit <= 1000', name='ck_packages_concurrency_limit'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('packages', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_packages_name'), ['name'], unique=True)

    # ==========================================================================
    # 2. USERS TABLE
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=20), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False, server_default='user'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('package_id', sa.Integer(), nullable=True),
        sa.Column('package_start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('package_end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('registered_device_id', sa.String(length=255), nullable=True),
        sa.Column('email_verified', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("role IN ('user', 'admin')", name='ck_users_role'),
        sa.CheckConstraint(
            "role = 'admin' OR (package_id IS NOT NULL AND package_end_date IS NOT NULL)",
            name='ck_users_standard_entitlement'
        ),
        sa.ForeignKeyConstraint(['package_id'], ['packages.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_users_username'), ['username'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_email'), ['email'], unique=True)
        batch_op.create_index(batch_op.f('ix_users_role'), ['role'], unique=False)
        batch_op.create_index(batch_op.f('ix_users_package_id'), ['package_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_users_package_end_date'), ['package_end_date'], unique=False)
        batch_op.create_index('ix_users_active_role', ['is_active', 'role'], unique=False)
        batch_op.create_index('ix_users_package_end_active', ['package_end_date', 'is_active'], unique=False)

    # ==========================================================================
    # 3. BROWSER SESSIONS TABLE
    # ==========================================================================
    op.create_table('browser_sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sid_hash', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('identity', sa.JSON(), nullable=True),
        sa.Column('csrf_token', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('browser_sessions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_browser_sessions_sid_hash'), ['sid_hash'], unique=True)
        batch_op.create_index(batch_op.f('ix_browser_sessions_user_id'), ['user_id'], unique=False)
        batch_op.create_index('ix_browser_sessions_last_seen', ['last_seen_at'], unique=False)

    # ==========================================================================
    # 4. DESKTOP TOKENS TABLE
    # ==========================================================================
    op.create_table('desktop_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('device_id', sa.String(length=255), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('desktop_tokens', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_desktop_tokens_token_hash'), ['token_hash'], unique=True)
        batch_op.create_index(batch_op.f('ix_desktop_tokens_user_id'), ['user_id'], unique=False)
        batch_op.create_index('ix_desktop_tokens_user_device', ['user_id', 'device_id'], unique=False)
        batch_op.create_index('ix_desktop_tokens_expires', ['expires_at'], unique=False)

    # ==========================================================================
    # 5. SECURITY EVENTS TABLE
    # ==========================================================================
    op.create_table('security_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=True),
        sa.Column('event_type', sa.String(length=64), nullable=False),
        sa.Column('resource', sa.String(length=128), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=True),
        sa.Column('success', sa.Boolean(), nullable=False),
        sa.Column('reason', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('security_events', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_security_events_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_security_events_event_type'), ['event_type'], unique=False)
        batch_op.create_index(batch_op.f('ix_security_events_success'), ['success'], unique=False)
        batch_op.create_index(batch_op.f('ix_security_events_occurred_at'), ['occurred_at'], unique=False)
        batch_op.create_index('ix_security_events_user_type', ['user_id', 'event_type'], unique=False)
        batch_op.create_index('ix_security_events_type_action', ['event_type', 'action'], unique=False)


def downgrade():
    op.drop_table('security_events')
    op.drop_table('desktop_tokens')
    op.drop_table('browser_sessions')
    op.drop_table('users')
    op.drop_table('packages')
