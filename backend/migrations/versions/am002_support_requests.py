"""support requests and support agents

Revision ID: am002
Revises: am001
Create Date: 2026-10-19 12:00:00.000000

- users.is_support_agent: triage access to every support request
- support_requests: support tickets and feature suggestions
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'am002'
down_revision = 'am001'
branch_labels = None
depends_on = None


def upgrade():
    with op.batch_alter_table('users') as batch_op:
        batch_op.add_column(
            sa.Column('is_support_agent', sa.Boolean(), nullable=False, server_default=sa.false())
        )

    # ============================================================================
    # support_requests
    # ============================================================================
    op.create_table(
        'support_requests',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('form_type', sa.String(length=16), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('category', sa.String(length=32), nullable=True),
        sa.Column('priority', sa.String(length=16), nullable=True),
        sa.Column('subject', sa.String(length=255), nullable=True),
        sa.Column('message', sa.Text(), nullable=True),
        sa.Column('feature_name', sa.String(length=255), nullable=True),
        sa.Column('feature_description', sa.Text(), nullable=True),
        sa.Column('use_case', sa.Text(), nullable=True),
        sa.Column('impact', sa.String(length=16), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='Open'),
        sa.Column('admin_response', sa.Text(), nullable=True),
        sa.Column('admin_response_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('admin_responder_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint("form_type IN ('support', 'feature')", name='ck_support_requests_form_type'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['admin_responder_id'], ['users.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_support_requests_status', 'support_requests', ['status'])
    op.create_index('ix_support_requests_user_created', 'support_requests', ['user_id', 'created_at'])


def downgrade():
    op.drop_table('support_requests')
    with op.batch_alter_table('users') as batch_op:
        batch_op.drop_column('is_support_agent')
