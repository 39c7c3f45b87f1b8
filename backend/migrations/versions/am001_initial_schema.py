"""initial arcade manager schema

Revision ID: am001
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the full schema:
- users / session_tokens: owner and store login accounts, bearer sessions
- stores: per-owner stores with subscription billing state
- financial_records (+ revenue/expense lines): daily cash ledger,
  one record per store per date
- staff / staff_loans / staff_loan_payments
- pending_subscriptions / payment_history: PayPal billing

users.staff_store_id and stores.owner_user_id reference each other, so the
users -> stores key is added after both tables exist.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'am001'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_owner', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('staff_store_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_username', 'users', ['username'])
    op.create_index('ix_users_staff_store_id', 'users', ['staff_store_id'])

    op.create_table(
        'stores',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('owner_user_id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('address', sa.String(length=255), nullable=False, server_default=''),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('subscription_id', sa.String(length=64), nullable=True),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('tier', sa.String(length=32), nullable=False, server_default='free-tier'),
        sa.Column('tier_anchor_date', sa.Date(), nullable=True),
        sa.Column('last_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('next_payment_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_failure_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_payment_failure_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('payment_failure_reason', sa.String(length=255), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['owner_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('owner_user_id', 'name', name='uq_stores_owner_name'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stores_owner_user_id', 'stores', ['owner_user_id'])
    op.create_index('ix_stores_subscription_id', 'stores', ['subscription_id'], unique=True)

    with op.batch_alter_table('users') as batch_op:
        batch_op.create_foreign_key('fk_users_staff_store_id', 'stores', ['staff_store_id'], ['id'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_token_hash', 'session_tokens', ['token_hash'], unique=True)
    op.create_index('ix_session_tokens_user_id', 'session_tokens', ['user_id'])
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])
    op.create_index('ix_session_tokens_is_revoked', 'session_tokens', ['is_revoked'])
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])

    # ============================================================================
    # financial_records: daily cash ledger
    # ============================================================================
    op.create_table(
        'financial_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('record_date', sa.Date(), nullable=False),
        sa.Column('total_money_in_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('total_money_out_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('daily_profit_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('cash_balance_cents', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('actual_cash_count_cents', sa.BigInteger(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('updated_by', sa.String(length=64), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'record_date', name='uq_financial_records_store_date'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_financial_records_store_date', 'financial_records', ['store_id', 'record_date'])

    op.create_table(
        'financial_revenue_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('source_id', sa.String(length=64), nullable=False),
        sa.Column('source_name', sa.String(length=120), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.ForeignKeyConstraint(['record_id'], ['financial_records.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_financial_revenue_lines_record_id', 'financial_revenue_lines', ['record_id'])

    op.create_table(
        'financial_expense_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('record_id', sa.Integer(), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('amount_cents', sa.BigInteger(), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=False, server_default='Other'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint('amount_cents >= 0', name='ck_financial_expense_lines_amount_nonneg'),
        sa.ForeignKeyConstraint(['record_id'], ['financial_records.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_financial_expense_lines_record_id', 'financial_expense_lines', ['record_id'])

    # ============================================================================
    # staff and loans
    # ============================================================================
    op.create_table(
        'staff',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('pin_hash', sa.String(length=255), nullable=True),
        sa.Column('first_name', sa.String(length=80), nullable=False),
        sa.Column('last_name', sa.String(length=80), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('position', sa.String(length=80), nullable=True),
        sa.Column('start_date', sa.Date(), nullable=True),
        sa.Column('payment_terms', sa.String(length=64), nullable=True),
        sa.Column('payment_value_cents', sa.Integer(), nullable=True),
        sa.Column('payment_method', sa.String(length=64), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('edit_financial_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('delete_financial_enabled', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('store_id', 'username', name='uq_staff_store_username'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_staff_store_id', 'staff', ['store_id'])

    op.create_table(
        'staff_loans',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('issued_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('due_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='active'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_staff_loans_staff_id', 'staff_loans', ['staff_id'])

    op.create_table(
        'staff_loan_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('loan_id', sa.Integer(), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['loan_id'], ['staff_loans.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_staff_loan_payments_loan_id', 'staff_loan_payments', ['loan_id'])

    # ============================================================================
    # billing
    # ============================================================================
    op.create_table(
        'pending_subscriptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('subscription_id', sa.String(length=64), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('store_data', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_pending_subscriptions_subscription_id', 'pending_subscriptions', ['subscription_id'], unique=True)
    op.create_index('ix_pending_subscriptions_user_id', 'pending_subscriptions', ['user_id'])
    op.create_index('ix_pending_subscriptions_expires_at', 'pending_subscriptions', ['expires_at'])

    op.create_table(
        'payment_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('store_id', sa.Integer(), nullable=True),
        sa.Column('subscription_id', sa.String(length=64), nullable=False),
        sa.Column('payment_id', sa.String(length=64), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='USD'),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False, server_default='PayPal'),
        sa.Column('billing_cycle', sa.String(length=16), nullable=False, server_default='MONTHLY'),
        sa.Column('failure_reason', sa.String(length=255), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['store_id'], ['stores.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_payment_history_subscription_id', 'payment_history', ['subscription_id'])
    op.create_index('ix_payment_history_status', 'payment_history', ['status'])
    op.create_index('ix_payment_history_user_store_processed', 'payment_history',
                    ['user_id', 'store_id', 'processed_at'])


def downgrade():
    op.drop_table('payment_history')
    op.drop_table('pending_subscriptions')
    op.drop_table('staff_loan_payments')
    op.drop_table('staff_loans')
    op.drop_table('staff')
    op.drop_table('financial_expense_lines')
    op.drop_table('financial_revenue_lines')
    op.drop_table('financial_records')
    op.drop_table('session_tokens')
    with op.batch_alter_table('users') as batch_op:
        batch_op.drop_constraint('fk_users_staff_store_id', type_='foreignkey')
    op.drop_table('stores')
    op.drop_table('users')
