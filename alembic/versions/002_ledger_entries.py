"""Ledger entries - one balance movement per earning

Revision ID: 002
Revises: 001
Create Date: 2026-10-20 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create ledger_entries table
    op.create_table('ledger_entries',
        sa.Column('earning_id', sa.String(length=36), nullable=False, comment='Earning that produced the balance movement'),
        sa.Column('agent_id', sa.String(length=36), nullable=False, comment='Agent whose balance moved'),
        sa.Column('delta', sa.Numeric(precision=18, scale=2), nullable=False, comment='Signed balance change; penalties are negative'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, comment='Row creation time'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, comment='Last modification time'),
        sa.ForeignKeyConstraint(['earning_id'], ['earnings.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['agent_id'], ['agents.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('earning_id')
    )

    op.create_index('idx_ledger_entries_agent', 'ledger_entries', ['agent_id'])


def downgrade() -> None:
    op.drop_index('idx_ledger_entries_agent', table_name='ledger_entries')
    op.drop_table('ledger_entries')
