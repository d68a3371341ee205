"""
Ledger applier: the only writer of agent balances.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict

import structlog

from agent_earnings.core.exceptions import EarningsEngineException, PersistenceError
from .core.protocols import AgentDirectory, EarningsStore
from .core.resilience import RetryPolicy, WriteTokenClock, call_with_retry
from .core.types import EarningRecord, EarningStatus, LedgerApplication


logger = structlog.get_logger(__name__)


class LedgerApplier:
    """
    Applies a confirmed earning to its agent's balance exactly once.

    The "already applied" marker is recorded on the earning before the balance
    is touched; if the credit then fails, the marker is cleared again so a
    later re-apply can succeed. The credit itself is keyed by earning id in the
    agent directory, so a retry whose first attempt committed unseen does not
    move the balance twice. Credits for one agent are serialized by a
    per-agent lock; different agents proceed in parallel.
    """

    def __init__(self, agents: AgentDirectory, store: EarningsStore, policy: RetryPolicy):
        self.agents = agents
        self.store = store
        self.policy = policy
        self._agent_locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}
        self._clock = WriteTokenClock()
        self.logger = logger.bind(service="ledger_applier")

    @asynccontextmanager
    async def _agent_lock(self, agent_id: str) -> AsyncIterator[None]:
        lock = self._agent_locks.get(agent_id)
        if lock is None:
            lock = self._agent_locks[agent_id] = asyncio.Lock()
        self._lock_users[agent_id] = self._lock_users.get(agent_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            # Dropped once nobody holds or waits for it
            self._lock_users[agent_id] -= 1
            if not self._lock_users[agent_id]:
                del self._lock_users[agent_id]
                del self._agent_locks[agent_id]

    async def apply(self, earning: EarningRecord) -> LedgerApplication:
        if earning.status is not EarningStatus.CONFIRMED:
            raise PersistenceError(
                f"Earning {earning.id} is {earning.status.value}, only confirmed earnings reach the ledger",
                {"earning_id": earning.id, "status": earning.status.value}
            )

        delta = earning.ledger_delta
        async with self._agent_lock(earning.agent_id):
            applied_at = self._clock.now()
            marked = await call_with_retry(
                "mark_ledger_applied",
                lambda: self.store.mark_ledger_applied(earning.id, applied_at),
                self.policy,
            )
            if not marked:
                current = await call_with_retry(
                    "get_earning",
                    lambda: self.store.get(earning.id),
                    self.policy,
                )
                existing_mark = current.ledger_applied_at if current else None
                # A retried mark finds the marker its own timed-out attempt wrote
                if existing_mark != applied_at:
                    self.logger.info(
                        "Ledger already applied, skipping",
                        earning_id=earning.id,
                        agent_id=earning.agent_id
                    )
                    return LedgerApplication(
                        earning_id=earning.id,
                        agent_id=earning.agent_id,
                        delta=delta,
                        applied=False,
                        applied_at=existing_mark,
                    )

            try:
                credited = await call_with_retry(
                    "credit_balance",
                    lambda: self.agents.credit_balance(earning.agent_id, delta, earning.id),
                    self.policy,
                )
            except EarningsEngineException as e:
                await self._unmark(earning.id)
                raise PersistenceError(
                    f"Balance update failed for earning {earning.id}: {e.message}",
                    {"earning_id": earning.id, "agent_id": earning.agent_id}
                ) from e

        if not credited:
            self.logger.warning(
                "Balance already moved for earning, not credited again",
                earning_id=earning.id,
                agent_id=earning.agent_id
            )
        self.logger.info(
            "Ledger applied",
            earning_id=earning.id,
            agent_id=earning.agent_id,
            agent_code=earning.agent_code,
            delta=str(delta),
            type=earning.type.value
        )
        earning.ledger_applied_at = applied_at
        return LedgerApplication(
            earning_id=earning.id,
            agent_id=earning.agent_id,
            delta=delta,
            applied=True,
            applied_at=applied_at,
        )

    async def _unmark(self, earning_id: str) -> None:
        try:
            await call_with_retry(
                "clear_ledger_applied",
                lambda: self.store.clear_ledger_applied(earning_id),
                self.policy,
            )
        except EarningsEngineException as e:
            # Earning stays marked without a credit; reapply_ledger cannot fix this one
            self.logger.error(
                "Failed to clear ledger marker after credit failure",
                earning_id=earning_id,
                error=e.message
            )
