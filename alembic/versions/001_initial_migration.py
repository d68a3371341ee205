"""Initial migration - agents and earnings

Revision ID: 001
Revises: 
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create agents table
    op.create_table('agents',
        sa.Column('id', sa.String(length=36), nullable=False, comment='Agent UUID'),
        sa.Column('agent_code', sa.String(length=32), nullable=False, comment='Public agent code, e.g. AG123456'),
        sa.Column('full_name', sa.String(length=255), nullable=False, comment='Agent display name'),
        sa.Column('tier', sa.String(length=20), nullable=True, comment='bronze, silver, gold or platinum'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='Payout currency'),
        sa.Column('available_balance', sa.Numeric(precision=18, scale=2), nullable=False, comment='Balance available for payout'),
        sa.Column('total_earnings', sa.Numeric(precision=18, scale=2), nullable=False, comment='Lifetime credited earnings'),
        sa.Column('is_active', sa.Boolean(), nullable=False, comment='Inactive agents cannot receive new earnings'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Row creation time'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Last modification time'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('agent_code')
    )

    # Create earnings table
    op.create_table('earnings',
        sa.Column('id', sa.String(length=36), nullable=False, comment='Earning UUID'),
        sa.Column('agent_id', sa.String(length=36), nullable=False, comment='Agent the earning is attributed to'),
        sa.Column('agent_code', sa.String(length=32), nullable=False, comment='Agent code at creation time'),
        sa.Column('amount', sa.Numeric(precision=18, scale=2), nullable=False, comment='Positive magnitude; penalties debit'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='ISO currency code'),
        sa.Column('type', sa.String(length=32), nullable=False, comment='referral_commission, bonus, penalty, adjustment, promotion_bonus'),
        sa.Column('description', sa.Text(), nullable=False, comment='Human readable description'),
        sa.Column('reference_id', sa.String(length=128), nullable=True, comment='External reference, unique when present'),
        sa.Column('commission_rate', sa.Numeric(precision=5, scale=2), nullable=True, comment='Commission percentage 0-100'),
        sa.Column('earned_at', sa.DateTime(timezone=True), nullable=False, comment='When the earning occurred'),
        sa.Column('status', sa.String(length=16), nullable=False, comment='pending, confirmed or cancelled'),
        sa.Column('reviewed_at', sa.DateTime(timezone=True), nullable=True, comment='When the earning was approved or rejected'),
        sa.Column('reviewed_by', sa.String(length=255), nullable=True, comment='Reviewer identity'),
        sa.Column('rejection_reason', sa.Text(), nullable=True, comment='Required when cancelled'),
        sa.Column('admin_notes', sa.Text(), nullable=True, comment='Free-form reviewer notes'),
        sa.Column('ledger_applied_at', sa.DateTime(timezone=True), nullable=True, comment='Set once when the amount reached the agent balance'),
        sa.Column('batch_id', sa.String(length=40), nullable=True, comment='Bulk upload batch that created the earning'),
        sa.Column('created_by', sa.String(length=255), nullable=True, comment='Uploader or manual creator'),
        sa.Column('metadata', sa.JSON(), nullable=False, comment='Caller supplied metadata'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Row creation time'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Last modification time'),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id')
    )

    # Create indexes
    op.create_index('idx_agents_tier', 'agents', ['tier'])

    op.create_index('idx_earnings_reference_id', 'earnings', ['reference_id'], unique=True)
    op.create_index('idx_earnings_status_created', 'earnings', ['status', 'created_at'])
    op.create_index('idx_earnings_agent', 'earnings', ['agent_id'])
    op.create_index('idx_earnings_batch', 'earnings', ['batch_id'])


def downgrade() -> None:
    # Drop indexes
    op.drop_index('idx_earnings_batch', table_name='earnings')
    op.drop_index('idx_earnings_agent', table_name='earnings')
    op.drop_index('idx_earnings_status_created', table_name='earnings')
    op.drop_index('idx_earnings_reference_id', table_name='earnings')

    op.drop_index('idx_agents_tier', table_name='agents')

    # Drop tables
    op.drop_table('earnings')
    op.drop_table('agents')
