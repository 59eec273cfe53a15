"""initial coinseal schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-16 00:00:00.000000

Creates the complete CoinSeal schema:
- companies / accounts: identity, roles and the creation forest
- coin_transactions: append-only coin ledger
- sessions / seals / comments: trip session lifecycle
- activity_logs: append-only audit trail (no FKs, survives account deletion)
- auth_tokens: hashed bearer tokens
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # companies
    # ============================================================================
    op.create_table(
        'companies',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # accounts: coins >= 0 and subrole-iff-employee enforced by the database
    # ============================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('subrole', sa.String(length=16), nullable=True),
        sa.Column('company_id', sa.Integer(), nullable=True),
        sa.Column('coins', sa.Integer(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('coins >= 0', name='ck_accounts_coins_non_negative'),
        sa.CheckConstraint(
            "(role = 'EMPLOYEE' AND subrole IS NOT NULL) OR (role != 'EMPLOYEE' AND subrole IS NULL)",
            name='ck_accounts_subrole_employee_only'),
        sa.CheckConstraint('created_by_id IS NULL OR created_by_id != id', name='ck_accounts_not_self_created'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['created_by_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_accounts_email', 'accounts', ['email'], unique=True)
    op.create_index('ix_accounts_role', 'accounts', ['role'])
    op.create_index('ix_accounts_created_by_id', 'accounts', ['created_by_id'])
    op.create_index('ix_accounts_role_created_by', 'accounts', ['role', 'created_by_id'])
    op.create_index('ix_accounts_company_role', 'accounts', ['company_id', 'role'])

    # ============================================================================
    # sessions / seals / comments
    # ============================================================================
    op.create_table(
        'sessions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('company_id', sa.Integer(), nullable=False),
        sa.Column('created_by_id', sa.Integer(), nullable=False),
        sa.Column('source', sa.String(length=255), nullable=False),
        sa.Column('destination', sa.String(length=255), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.CheckConstraint("status IN ('PENDING', 'IN_PROGRESS', 'COMPLETED')", name='ck_sessions_status'),
        sa.ForeignKeyConstraint(['company_id'], ['companies.id']),
        sa.ForeignKeyConstraint(['created_by_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sessions_status', 'sessions', ['status'])
    op.create_index('ix_sessions_created_at', 'sessions', ['created_at'])
    op.create_index('ix_sessions_company_status', 'sessions', ['company_id', 'status'])
    op.create_index('ix_sessions_created_by', 'sessions', ['created_by_id'])

    op.create_table(
        'seals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('barcode', sa.String(length=128), nullable=False),
        sa.Column('verified', sa.Boolean(), nullable=False),
        sa.Column('verified_by_id', sa.Integer(), nullable=True),
        sa.Column('scanned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id']),
        sa.ForeignKeyConstraint(['verified_by_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('session_id', name='uq_seals_session'),
        sa.UniqueConstraint('barcode', name='uq_seals_barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_seals_verified_by_id', 'seals', ['verified_by_id'])

    op.create_table(
        'comments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.Integer(), nullable=False),
        sa.Column('author_id', sa.Integer(), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id']),
        sa.ForeignKeyConstraint(['author_id'], ['accounts.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_comments_session_created', 'comments', ['session_id', 'created_at'])

    # ============================================================================
    # coin_transactions: append-only ledger
    # ============================================================================
    op.create_table(
        'coin_transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('from_account_id', sa.Integer(), nullable=True),
        sa.Column('to_account_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('session_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('amount > 0', name='ck_coin_transactions_amount_positive'),
        sa.CheckConstraint('from_account_id IS NULL OR from_account_id != to_account_id',
                           name='ck_coin_transactions_distinct_accounts'),
        sa.CheckConstraint("from_account_id IS NOT NULL OR reason = 'MANUAL_TOPUP'",
                           name='ck_coin_transactions_source_required'),
        sa.ForeignKeyConstraint(['from_account_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['to_account_id'], ['accounts.id']),
        sa.ForeignKeyConstraint(['session_id'], ['sessions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_coin_transactions_reason', 'coin_transactions', ['reason'])
    op.create_index('ix_coin_transactions_session_id', 'coin_transactions', ['session_id'])
    op.create_index('ix_coin_transactions_created_at', 'coin_transactions', ['created_at'])
    op.create_index('ix_coin_transactions_from_created', 'coin_transactions', ['from_account_id', 'created_at'])
    op.create_index('ix_coin_transactions_to_created', 'coin_transactions', ['to_account_id', 'created_at'])

    # ============================================================================
    # activity_logs: append-only audit trail
    # ============================================================================
    op.create_table(
        'activity_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=16), nullable=False),
        sa.Column('detail', sa.JSON(), nullable=False),
        sa.Column('target_account_id', sa.Integer(), nullable=True),
        sa.Column('target_resource_id', sa.Integer(), nullable=True),
        sa.Column('target_resource_type', sa.String(length=32), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_activity_logs_target_account_id', 'activity_logs', ['target_account_id'])
    op.create_index('ix_activity_logs_created_at', 'activity_logs', ['created_at'])
    op.create_index('ix_activity_logs_actor_created', 'activity_logs', ['actor_id', 'created_at'])
    op.create_index('ix_activity_logs_action_created', 'activity_logs', ['action', 'created_at'])
    op.create_index('ix_activity_logs_resource', 'activity_logs', ['target_resource_type', 'target_resource_id'])

    # ============================================================================
    # auth_tokens
    # ============================================================================
    op.create_table(
        'auth_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=128), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_auth_tokens_token_hash', 'auth_tokens', ['token_hash'], unique=True)
    op.create_index('ix_auth_tokens_account_revoked', 'auth_tokens', ['account_id', 'is_revoked'])


def downgrade():
    op.drop_table('auth_tokens')
    op.drop_table('activity_logs')
    op.drop_table('coin_transactions')
    op.drop_table('comments')
    op.drop_table('seals')
    op.drop_table('sessions')
    op.drop_table('accounts')
    op.drop_table('companies')
