"""
Collaborator interfaces consumed by the earnings engine.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol

from .types import (
    AgentRef,
    EarningRecord,
    EarningsPage,
    EarningsQuery,
    EarningsStats,
    EarningStatus,
    ReviewFields,
)


class AgentDirectory(Protocol):
    """Resolves agents and owns their balances."""

    async def resolve_agent(self, agent_code: str) -> Optional[AgentRef]:
        ...

    async def credit_balance(self, agent_id: str, delta: Decimal, earning_id: str) -> bool:
        """
        Add delta to available balance; positive deltas also grow total earnings.

        Idempotent per earning_id: returns False and changes nothing when that
        earning was already credited.
        """
        ...


class EarningsStore(Protocol):
    """Persists earning records."""

    async def create(self, earning: EarningRecord) -> EarningRecord:
        """
        Persist a new earning. Re-creating the same id returns the stored record;
        a reference id held by another earning raises DuplicateReferenceError.
        """
        ...

    async def get(self, earning_id: str) -> Optional[EarningRecord]:
        ...

    async def get_many(self, earning_ids: List[str]) -> List[EarningRecord]:
        ...

    async def find_by_reference_id(self, reference_id: str) -> Optional[EarningRecord]:
        ...

    async def update_status(
        self,
        earning_id: str,
        status: EarningStatus,
        review: ReviewFields,
        expected_status: EarningStatus = EarningStatus.PENDING,
    ) -> Optional[EarningRecord]:
        """Conditional transition; returns None when the current status differs."""
        ...

    async def mark_ledger_applied(self, earning_id: str, applied_at: datetime) -> bool:
        """Set ledger_applied_at if unset on a confirmed earning. False when already set."""
        ...

    async def clear_ledger_applied(self, earning_id: str) -> None:
        ...

    async def list_by_filter(self, query: EarningsQuery) -> EarningsPage:
        ...

    async def summarize(self, query: EarningsQuery) -> EarningsStats:
        ...


class Notifier(Protocol):
    """Fire-and-forget notification of terminal transitions."""

    async def earning_transitioned(self, earning: EarningRecord) -> None:
        ...
