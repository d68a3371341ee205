"""
Repository for agent lookups and balance updates.
"""

import uuid
from decimal import Decimal
from typing import Optional, Tuple

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agent_earnings.core.exceptions import AgentNotFoundError, PersistenceError
from agent_earnings.models.agent import Agent
from agent_earnings.models.ledger import LedgerEntry
from ..core.types import AgentRef


logger = structlog.get_logger(__name__)


def _to_ref(agent: Agent) -> AgentRef:
    return AgentRef(
        id=agent.id,
        agent_code=agent.agent_code,
        full_name=agent.full_name or "",
        tier=agent.tier,
        is_active=bool(agent.is_active),
    )


class SqlAgentDirectory:
    """
    Agent directory backed by the agents table.

    Each credit is one transaction holding an atomic UPDATE of the balance and
    the earning's ledger entry, so concurrent credits never lose an update and
    an earning moves a balance at most once, even across processes.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker
        self.logger = logger.bind(service="agent_repository")

    async def resolve_agent(self, agent_code: str) -> Optional[AgentRef]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(Agent).where(func.upper(Agent.agent_code) == agent_code.strip().upper())
                )
                agent = result.scalar_one_or_none()
                return _to_ref(agent) if agent else None
        except SQLAlchemyError as e:
            self.logger.error("Failed to resolve agent", agent_code=agent_code, error=str(e))
            raise PersistenceError(f"Agent lookup failed: {e}", {"agent_code": agent_code}) from e

    async def credit_balance(self, agent_id: str, delta: Decimal, earning_id: str) -> bool:
        """
        Move the balance and write the earning's ledger entry in one transaction.

        Returns False without touching the balance when the earning already has
        an entry, so a retry after a lost commit acknowledgement is harmless.
        """
        credited = delta if delta > 0 else Decimal("0")
        try:
            async with self.session_maker() as session:
                if await session.get(LedgerEntry, earning_id) is not None:
                    return False

                result = await session.execute(
                    update(Agent)
                    .where(Agent.id == agent_id)
                    .values(
                        available_balance=Agent.available_balance + delta,
                        total_earnings=Agent.total_earnings + credited,
                    )
                )
                if result.rowcount == 0:
                    await session.rollback()
                    raise AgentNotFoundError(agent_id)

                session.add(LedgerEntry(earning_id=earning_id, agent_id=agent_id, delta=delta))
                try:
                    await session.commit()
                except IntegrityError:
                    # Entry written concurrently by another process
                    await session.rollback()
                    return False
        except SQLAlchemyError as e:
            self.logger.error(
                "Failed to update agent balance",
                agent_id=agent_id,
                earning_id=earning_id,
                error=str(e)
            )
            raise PersistenceError(
                f"Balance update failed: {e}",
                {"agent_id": agent_id, "earning_id": earning_id}
            ) from e

        return True

    async def get_balances(self, agent_id: str) -> Tuple[Decimal, Decimal]:
        """Return (available_balance, total_earnings) for an agent."""
        try:
            async with self.session_maker() as session:
                agent = await session.get(Agent, agent_id)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Agent lookup failed: {e}", {"agent_id": agent_id}) from e
        if agent is None:
            raise AgentNotFoundError(agent_id)
        return Decimal(agent.available_balance), Decimal(agent.total_earnings)

    async def upsert_agent(
        self,
        agent_code: str,
        full_name: str = "",
        tier: Optional[str] = None,
        currency: str = "USD",
        is_active: bool = True,
    ) -> AgentRef:
        """Create an agent or update its profile fields. Balances are never touched here."""
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(Agent).where(func.upper(Agent.agent_code) == agent_code.strip().upper())
                )
                agent = result.scalar_one_or_none()
                if agent is None:
                    agent = Agent(
                        id=str(uuid.uuid4()),
                        agent_code=agent_code.strip(),
                        available_balance=Decimal("0"),
                        total_earnings=Decimal("0"),
                    )
                    session.add(agent)
                agent.full_name = full_name
                agent.tier = tier
                agent.currency = currency.upper()
                agent.is_active = is_active
                await session.commit()
                return _to_ref(agent)
        except SQLAlchemyError as e:
            self.logger.error("Failed to upsert agent", agent_code=agent_code, error=str(e))
            raise PersistenceError(f"Agent upsert failed: {e}", {"agent_code": agent_code}) from e
