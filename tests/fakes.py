"""
In-memory collaborators for engine tests.
"""

import asyncio
import uuid
from dataclasses import replace
from decimal import Decimal
from typing import Dict, List, Optional, Set

from agent_earnings.core.exceptions import DuplicateReferenceError, PersistenceError
from agent_earnings.services.earnings.core.types import (
    AgentRef,
    EarningRecord,
    EarningsPage,
    EarningsQuery,
    EarningsStats,
    EarningStatus,
    ReviewFields,
)


async def _stall_once(fake, attribute: str) -> None:
    """Sleep once after a write has landed, as if its acknowledgement were lost."""
    stall = getattr(fake, attribute)
    if stall:
        setattr(fake, attribute, 0.0)
        await asyncio.sleep(stall)


class InMemoryAgentDirectory:
    """Agent directory with balance tracking and failure injection."""

    def __init__(self):
        self.agents: Dict[str, AgentRef] = {}
        self.available: Dict[str, Decimal] = {}
        self.total: Dict[str, Decimal] = {}
        self.resolve_calls = 0
        self.resolve_failures = 0
        self.resolve_delay = 0.0
        self.credit_failures = 0
        self.credit_calls = 0
        self.credit_stall = 0.0
        self.credited: Set[str] = set()

    def add(self, agent_code: str, is_active: bool = True, tier: str = "bronze") -> AgentRef:
        agent = AgentRef(
            id=str(uuid.uuid4()),
            agent_code=agent_code,
            full_name=f"Agent {agent_code}",
            tier=tier,
            is_active=is_active,
        )
        self.agents[agent_code.upper()] = agent
        self.available[agent.id] = Decimal("0")
        self.total[agent.id] = Decimal("0")
        return agent

    def balance(self, agent_code: str) -> Decimal:
        return self.available[self.agents[agent_code.upper()].id]

    def total_earnings(self, agent_code: str) -> Decimal:
        return self.total[self.agents[agent_code.upper()].id]

    async def resolve_agent(self, agent_code: str) -> Optional[AgentRef]:
        self.resolve_calls += 1
        if self.resolve_delay:
            await asyncio.sleep(self.resolve_delay)
        if self.resolve_failures > 0:
            self.resolve_failures -= 1
            raise PersistenceError("agent directory unavailable")
        await asyncio.sleep(0)
        return self.agents.get(agent_code.strip().upper())

    async def credit_balance(self, agent_id: str, delta: Decimal, earning_id: str) -> bool:
        self.credit_calls += 1
        if self.credit_failures > 0:
            self.credit_failures -= 1
            raise PersistenceError("ledger unavailable")
        if earning_id in self.credited:
            return False
        self.credited.add(earning_id)
        # Read-modify-write with a yield in between; lost updates show up here
        current = self.available[agent_id]
        await asyncio.sleep(0)
        self.available[agent_id] = current + delta
        if delta > 0:
            self.total[agent_id] += delta
        await _stall_once(self, "credit_stall")
        return True


class InMemoryEarningsStore:
    """Earnings store keeping private copies of every record."""

    def __init__(self):
        self.earnings: Dict[str, EarningRecord] = {}
        self.create_failures = 0
        self.create_delay = 0.0
        self.update_stall = 0.0
        self.mark_stall = 0.0

    async def create(self, earning: EarningRecord) -> EarningRecord:
        if self.create_delay:
            await asyncio.sleep(self.create_delay)
        if self.create_failures > 0:
            self.create_failures -= 1
            raise PersistenceError("store unavailable")
        await asyncio.sleep(0)
        if earning.id in self.earnings:
            return replace(self.earnings[earning.id])
        if earning.reference_id:
            for existing in self.earnings.values():
                if existing.reference_id == earning.reference_id:
                    raise DuplicateReferenceError(earning.reference_id, existing_earning_id=existing.id)
        self.earnings[earning.id] = replace(earning)
        return replace(earning)

    async def get(self, earning_id: str) -> Optional[EarningRecord]:
        earning = self.earnings.get(earning_id)
        return replace(earning) if earning else None

    async def get_many(self, earning_ids: List[str]) -> List[EarningRecord]:
        return [replace(self.earnings[i]) for i in earning_ids if i in self.earnings]

    async def find_by_reference_id(self, reference_id: str) -> Optional[EarningRecord]:
        await asyncio.sleep(0)
        for earning in self.earnings.values():
            if earning.reference_id == reference_id:
                return replace(earning)
        return None

    async def update_status(
        self,
        earning_id: str,
        status: EarningStatus,
        review: ReviewFields,
        expected_status: EarningStatus = EarningStatus.PENDING,
    ) -> Optional[EarningRecord]:
        earning = self.earnings.get(earning_id)
        if earning is None or earning.status is not expected_status:
            return None
        updated = earning.with_review(status, review)
        self.earnings[earning_id] = updated
        await _stall_once(self, "update_stall")
        return replace(updated)

    async def mark_ledger_applied(self, earning_id: str, applied_at) -> bool:
        earning = self.earnings.get(earning_id)
        if (
            earning is None
            or earning.status is not EarningStatus.CONFIRMED
            or earning.ledger_applied_at is not None
        ):
            return False
        earning.ledger_applied_at = applied_at
        await _stall_once(self, "mark_stall")
        return True

    async def clear_ledger_applied(self, earning_id: str) -> None:
        earning = self.earnings.get(earning_id)
        if earning is not None:
            earning.ledger_applied_at = None

    def _matching(self, query: EarningsQuery) -> List[EarningRecord]:
        items = list(self.earnings.values())
        if query.status is not None:
            items = [e for e in items if e.status is query.status]
        if query.type is not None:
            items = [e for e in items if e.type is query.type]
        if query.agent_code:
            items = [e for e in items if e.agent_code.upper() == query.agent_code.upper()]
        if query.batch_id:
            items = [e for e in items if e.batch_id == query.batch_id]
        if query.search:
            needle = query.search.lower()
            items = [e for e in items if needle in e.description.lower()]
        return items

    async def list_by_filter(self, query: EarningsQuery) -> EarningsPage:
        items = self._matching(query)
        page = items[query.offset:query.offset + query.limit]
        return EarningsPage(
            items=[replace(e) for e in page],
            total=len(items),
            page=query.page,
            limit=query.limit,
        )

    async def summarize(self, query: EarningsQuery) -> EarningsStats:
        stats = EarningsStats()
        for earning in self._matching(query):
            stats.total += 1
            stats.total_amount += earning.amount
            if earning.status is EarningStatus.PENDING:
                stats.pending += 1
                stats.pending_amount += earning.amount
            elif earning.status is EarningStatus.CONFIRMED:
                stats.confirmed += 1
                stats.confirmed_amount += earning.amount
            else:
                stats.cancelled += 1
        return stats


class RecordingNotifier:
    """Notifier that records transitions and can be told to fail."""

    def __init__(self, fail: bool = False):
        self.events: List[tuple] = []
        self.fail = fail

    async def earning_transitioned(self, earning: EarningRecord) -> None:
        if self.fail:
            raise RuntimeError("notification channel down")
        self.events.append((earning.id, earning.status))
