"""
Repository for earning records.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from agent_earnings.core.exceptions import DuplicateReferenceError, PersistenceError
from agent_earnings.models.agent import Agent
from agent_earnings.models.earnings import Earning
from ..core.types import (
    EarningRecord,
    EarningsPage,
    EarningsQuery,
    EarningsStats,
    EarningStatus,
    EarningType,
    ReviewFields,
)


logger = structlog.get_logger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite hands back naive datetimes
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: Earning) -> EarningRecord:
    return EarningRecord(
        id=row.id,
        agent_id=row.agent_id,
        agent_code=row.agent_code,
        amount=Decimal(row.amount),
        currency=row.currency,
        type=EarningType(row.type),
        description=row.description,
        status=EarningStatus(row.status),
        earned_at=_as_utc(row.earned_at),
        reference_id=row.reference_id,
        commission_rate=Decimal(row.commission_rate) if row.commission_rate is not None else None,
        batch_id=row.batch_id,
        created_by=row.created_by,
        reviewed_at=_as_utc(row.reviewed_at),
        reviewed_by=row.reviewed_by,
        rejection_reason=row.rejection_reason,
        admin_notes=row.admin_notes,
        ledger_applied_at=_as_utc(row.ledger_applied_at),
        metadata=dict(row.metadata_json or {}),
        created_at=_as_utc(row.created_at),
        updated_at=_as_utc(row.updated_at),
    )


def _from_record(record: EarningRecord) -> Earning:
    return Earning(
        id=record.id,
        agent_id=record.agent_id,
        agent_code=record.agent_code,
        amount=record.amount,
        currency=record.currency,
        type=record.type.value,
        description=record.description,
        status=record.status.value,
        earned_at=record.earned_at,
        reference_id=record.reference_id,
        commission_rate=record.commission_rate,
        batch_id=record.batch_id,
        created_by=record.created_by,
        reviewed_at=record.reviewed_at,
        reviewed_by=record.reviewed_by,
        rejection_reason=record.rejection_reason,
        admin_notes=record.admin_notes,
        ledger_applied_at=record.ledger_applied_at,
        metadata_json=record.metadata,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


def _filter_conditions(query: EarningsQuery) -> list:
    conditions = []
    if query.status is not None:
        conditions.append(Earning.status == query.status.value)
    if query.type is not None:
        conditions.append(Earning.type == query.type.value)
    if query.agent_id:
        conditions.append(Earning.agent_id == query.agent_id)
    if query.agent_code:
        conditions.append(func.upper(Earning.agent_code) == query.agent_code.upper())
    if query.tier:
        conditions.append(Agent.tier == query.tier)
    if query.start_date is not None:
        conditions.append(Earning.earned_at >= query.start_date)
    if query.end_date is not None:
        conditions.append(Earning.earned_at <= query.end_date)
    if query.batch_id:
        conditions.append(Earning.batch_id == query.batch_id)
    if query.search:
        pattern = f"%{query.search}%"
        conditions.append(or_(
            Earning.description.ilike(pattern),
            Earning.agent_code.ilike(pattern),
            Earning.reference_id.ilike(pattern),
        ))
    return conditions


def _apply_filter(stmt, query: EarningsQuery):
    if query.tier:
        stmt = stmt.join(Agent, Agent.id == Earning.agent_id)
    conditions = _filter_conditions(query)
    if conditions:
        stmt = stmt.where(and_(*conditions))
    return stmt


class SqlEarningsStore:
    """
    Earnings store backed by the earnings table.

    Each call uses its own session so concurrent workers never share one.
    Status transitions and the ledger marker are conditional UPDATEs.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker
        self.logger = logger.bind(service="earnings_repository")

    async def create(self, earning: EarningRecord) -> EarningRecord:
        try:
            async with self.session_maker() as session:
                session.add(_from_record(earning))
                await session.commit()
            return earning
        except IntegrityError as e:
            self.logger.warning(
                "Earning insert hit a constraint",
                earning_id=earning.id,
                reference_id=earning.reference_id,
                error=str(e.orig)
            )
            existing = await self.get(earning.id)
            if existing is not None:
                # A retried insert that already landed
                return existing
            if earning.reference_id:
                holder = await self.find_by_reference_id(earning.reference_id)
                if holder is not None:
                    raise DuplicateReferenceError(earning.reference_id, existing_earning_id=holder.id) from e
            raise PersistenceError(f"Earning insert failed: {e.orig}", {"earning_id": earning.id}) from e
        except SQLAlchemyError as e:
            self.logger.error("Failed to create earning", earning_id=earning.id, error=str(e))
            raise PersistenceError(f"Earning insert failed: {e}", {"earning_id": earning.id}) from e

    async def get(self, earning_id: str) -> Optional[EarningRecord]:
        try:
            async with self.session_maker() as session:
                row = await session.get(Earning, earning_id)
                return _to_record(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(f"Earning lookup failed: {e}", {"earning_id": earning_id}) from e

    async def get_many(self, earning_ids: List[str]) -> List[EarningRecord]:
        if not earning_ids:
            return []
        try:
            async with self.session_maker() as session:
                result = await session.execute(select(Earning).where(Earning.id.in_(earning_ids)))
                return [_to_record(row) for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise PersistenceError(f"Earning lookup failed: {e}", {"count": len(earning_ids)}) from e

    async def find_by_reference_id(self, reference_id: str) -> Optional[EarningRecord]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    select(Earning).where(Earning.reference_id == reference_id)
                )
                row = result.scalar_one_or_none()
                return _to_record(row) if row else None
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Reference lookup failed: {e}", {"reference_id": reference_id}
            ) from e

    async def update_status(
        self,
        earning_id: str,
        status: EarningStatus,
        review: ReviewFields,
        expected_status: EarningStatus = EarningStatus.PENDING,
    ) -> Optional[EarningRecord]:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    update(Earning)
                    .where(Earning.id == earning_id, Earning.status == expected_status.value)
                    .values(
                        status=status.value,
                        reviewed_at=review.reviewed_at,
                        reviewed_by=review.reviewed_by,
                        admin_notes=review.admin_notes,
                        rejection_reason=review.rejection_reason,
                        updated_at=review.reviewed_at,
                    )
                    .execution_options(synchronize_session=False)
                )
                updated = result.rowcount
                await session.commit()
                if updated == 0:
                    return None
                row = await session.get(Earning, earning_id, populate_existing=True)
                return _to_record(row)
        except SQLAlchemyError as e:
            self.logger.error("Failed to update earning status", earning_id=earning_id, error=str(e))
            raise PersistenceError(f"Status update failed: {e}", {"earning_id": earning_id}) from e

    async def mark_ledger_applied(self, earning_id: str, applied_at: datetime) -> bool:
        try:
            async with self.session_maker() as session:
                result = await session.execute(
                    update(Earning)
                    .where(
                        Earning.id == earning_id,
                        Earning.status == EarningStatus.CONFIRMED.value,
                        Earning.ledger_applied_at.is_(None),
                    )
                    .values(ledger_applied_at=applied_at)
                    .execution_options(synchronize_session=False)
                )
                marked = result.rowcount == 1
                await session.commit()
                return marked
        except SQLAlchemyError as e:
            raise PersistenceError(f"Ledger marker update failed: {e}", {"earning_id": earning_id}) from e

    async def clear_ledger_applied(self, earning_id: str) -> None:
        try:
            async with self.session_maker() as session:
                await session.execute(
                    update(Earning)
                    .where(Earning.id == earning_id)
                    .values(ledger_applied_at=None)
                    .execution_options(synchronize_session=False)
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise PersistenceError(f"Ledger marker reset failed: {e}", {"earning_id": earning_id}) from e

    async def list_by_filter(self, query: EarningsQuery) -> EarningsPage:
        try:
            async with self.session_maker() as session:
                count_stmt = _apply_filter(select(func.count(Earning.id)), query)
                total = (await session.execute(count_stmt)).scalar_one()

                stmt = (
                    _apply_filter(select(Earning), query)
                    .order_by(Earning.created_at.desc(), Earning.id)
                    .offset(query.offset)
                    .limit(query.limit)
                )
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            self.logger.error("Failed to list earnings", error=str(e))
            raise PersistenceError(f"Earnings listing failed: {e}") from e

        return EarningsPage(
            items=[_to_record(row) for row in rows],
            total=total,
            page=query.page,
            limit=query.limit,
        )

    async def summarize(self, query: EarningsQuery) -> EarningsStats:
        try:
            async with self.session_maker() as session:
                stmt = _apply_filter(
                    select(Earning.status, func.count(Earning.id), func.sum(Earning.amount)),
                    query,
                ).group_by(Earning.status)
                rows = (await session.execute(stmt)).all()
        except SQLAlchemyError as e:
            self.logger.error("Failed to summarize earnings", error=str(e))
            raise PersistenceError(f"Earnings summary failed: {e}") from e

        stats = EarningsStats()
        for status, count, amount in rows:
            amount = Decimal(str(amount or 0))
            stats.total += count
            stats.total_amount += amount
            if status == EarningStatus.PENDING.value:
                stats.pending = count
                stats.pending_amount = amount
            elif status == EarningStatus.CONFIRMED.value:
                stats.confirmed = count
                stats.confirmed_amount = amount
            elif status == EarningStatus.CANCELLED.value:
                stats.cancelled = count
        return stats
