"""initial schema

Revision ID: 2026_10_19_0000
Revises:
Create Date: 2026-10-19 08:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '2026_10_19_0000'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the accounts table."""

    # ========================================================================
    # Create accounts table
    # ========================================================================
    op.create_table(
        'accounts',
        sa.Column('id', sa.Uuid(), primary_key=True),
        sa.Column('username', sa.String(255), nullable=False),
        sa.Column('password_hash', sa.String(255), nullable=False),
        sa.Column('api_token', sa.String(320), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('name', sa.String(255), nullable=True),
        sa.Column('agent_id', sa.String(255), nullable=True),
        sa.Column('tier', sa.String(50), nullable=False, server_default='level1'),
        sa.Column('plan_type', sa.String(50), nullable=False, server_default='level1'),
        sa.Column('is_test', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('balance', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('usage_limit', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('usage_used', sa.BigInteger(), nullable=False, server_default='0'),
        sa.Column('valid_from', sa.DateTime(timezone=True), nullable=True),
        sa.Column('valid_to', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),

        # Constraints
        sa.CheckConstraint('balance >= 0', name='ck_balance_non_negative'),
        sa.CheckConstraint('usage_limit >= 0', name='ck_usage_limit_non_negative'),
        sa.CheckConstraint('usage_used >= 0', name='ck_usage_used_non_negative'),
        sa.CheckConstraint("status IN ('active', 'banned', 'deleted')", name='ck_account_status'),
        sa.UniqueConstraint('username', name='uq_accounts_username'),
        sa.UniqueConstraint('api_token', name='uq_accounts_api_token'),
        sa.UniqueConstraint('email', name='uq_accounts_email'),
        sa.UniqueConstraint('phone', name='uq_accounts_phone'),
    )

    # Indexes for accounts
    op.create_index('idx_accounts_status', 'accounts', ['status'])
    op.create_index('idx_accounts_created_at', 'accounts', ['created_at'])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_index('idx_accounts_created_at', table_name='accounts')
    op.drop_index('idx_accounts_status', table_name='accounts')
    op.drop_table('accounts')
