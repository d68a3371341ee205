"""
Agent model - sales agents that earnings are attributed to.
"""

from decimal import Decimal
from typing import List, Optional

from sqlalchemy import String, Boolean, Numeric, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, TimestampMixin


class Agent(BaseModel, TimestampMixin):
    """Agent account with its running balances."""

    __tablename__ = "agents"

    # Primary identifier
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Agent UUID"
    )

    agent_code: Mapped[str] = mapped_column(
        String(32),
        unique=True,
        comment="Public agent code, e.g. AG123456"
    )

    full_name: Mapped[str] = mapped_column(
        String(255),
        default="",
        comment="Agent display name"
    )

    tier: Mapped[Optional[str]] = mapped_column(
        String(20),
        comment="bronze, silver, gold or platinum"
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        default="USD",
        comment="Payout currency"
    )

    # Balances (written only by the ledger)
    available_balance: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0"),
        comment="Balance available for payout"
    )

    total_earnings: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        default=Decimal("0"),
        comment="Lifetime credited earnings"
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        comment="Inactive agents cannot receive new earnings"
    )

    # Relationships
    earnings: Mapped[List["Earning"]] = relationship(
        "Earning",
        back_populates="agent"
    )

    __table_args__ = (
        Index("idx_agents_tier", "tier"),
    )

    def __repr__(self) -> str:
        return f"<Agent(code={self.agent_code}, balance={self.available_balance})>"
