"""
Earning model - one monetary event attributed to an agent.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import (
    String, Text, Numeric, DateTime, ForeignKey, Index, JSON
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import BaseModel, TimestampMixin


class Earning(BaseModel, TimestampMixin):
    """Earning record moving through pending -> confirmed | cancelled."""

    __tablename__ = "earnings"

    # Primary key (assigned by the engine before insert)
    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        comment="Earning UUID"
    )

    # Agent reference
    agent_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("agents.id", ondelete="RESTRICT"),
        comment="Agent the earning is attributed to"
    )

    agent_code: Mapped[str] = mapped_column(
        String(32),
        comment="Agent code at creation time"
    )

    # Money
    amount: Mapped[Decimal] = mapped_column(
        Numeric(18, 2),
        comment="Positive magnitude; penalties debit"
    )

    currency: Mapped[str] = mapped_column(
        String(3),
        comment="ISO currency code"
    )

    type: Mapped[str] = mapped_column(
        String(32),
        comment="referral_commission, bonus, penalty, adjustment, promotion_bonus"
    )

    description: Mapped[str] = mapped_column(
        Text,
        comment="Human readable description"
    )

    reference_id: Mapped[Optional[str]] = mapped_column(
        String(128),
        comment="External reference, unique when present"
    )

    commission_rate: Mapped[Optional[Decimal]] = mapped_column(
        Numeric(5, 2),
        comment="Commission percentage 0-100"
    )

    earned_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        comment="When the earning occurred"
    )

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(16),
        default="pending",
        comment="pending, confirmed or cancelled"
    )

    reviewed_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        comment="When the earning was approved or rejected"
    )

    reviewed_by: Mapped[Optional[str]] = mapped_column(
        String(255),
        comment="Reviewer identity"
    )

    rejection_reason: Mapped[Optional[str]] = mapped_column(
        Text,
        comment="Required when cancelled"
    )

    admin_notes: Mapped[Optional[str]] = mapped_column(
        Text,
        comment="Free-form reviewer notes"
    )

    ledger_applied_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True),
        comment="Set once when the amount reached the agent balance"
    )

    # Provenance
    batch_id: Mapped[Optional[str]] = mapped_column(
        String(40),
        comment="Bulk upload batch that created the earning"
    )

    created_by: Mapped[Optional[str]] = mapped_column(
        String(255),
        comment="Uploader or manual creator"
    )

    # "metadata" is reserved on declarative classes
    metadata_json: Mapped[Dict[str, Any]] = mapped_column(
        "metadata",
        JSON,
        default=dict,
        comment="Caller supplied metadata"
    )

    # Relationships
    agent: Mapped["Agent"] = relationship(
        "Agent",
        back_populates="earnings"
    )

    # Indexes
    __table_args__ = (
        Index("idx_earnings_reference_id", "reference_id", unique=True),
        Index("idx_earnings_status_created", "status", "created_at"),
        Index("idx_earnings_agent", "agent_id"),
        Index("idx_earnings_batch", "batch_id"),
    )

    def __repr__(self) -> str:
        return f"<Earning(id={self.id}, agent={self.agent_code}, amount={self.amount}, status={self.status})>"
