"""
Ledger entry model - one row per earning that reached an agent balance.
"""

from decimal import Decimal

from sqlalchemy import String, Numeric, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, TimestampMixin


class LedgerEntry(BaseModel, TimestampMixin):
    """Balance movement written in the same transaction as the balance update."""

    __tablename__ = "ledger_entries"

    # One entry per earning; a second credit for the same earning cannot insert
    earning_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("earnings.id", ondelete="RESTRICT"),
        primary_key=True,
        comment="Earning that produced the balance movement"
    )

    agent_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("agents.id", ondelete="RESTRICT"),
        comment="Agent whose balance moved"
    )

    delta: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        comment="Signed balance change; penalties are negative"
    )

    __table_args__ = (
        Index("idx_ledger_entries_agent", "agent_id"),
    )

    def __repr__(self) -> str:
        return f"<LedgerEntry(earning={self.earning_id}, delta={self.delta})>"
