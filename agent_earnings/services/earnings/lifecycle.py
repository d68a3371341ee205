"""
Lifecycle manager: review transitions of earnings.

pending -> confirmed (approve, applies the ledger)
pending -> cancelled (reject, never touches the ledger)

Both target states are terminal.
"""

import asyncio
import time
from decimal import Decimal
from typing import Dict, List, Optional

import structlog

from agent_earnings.core.exceptions import (
    EarningNotFoundError,
    EarningsEngineException,
    RecordValidationError,
    StateConflictError,
)
from agent_earnings.services.notification_service import notify_transition
from .core.protocols import EarningsStore, Notifier
from .core.resilience import RetryPolicy, WriteTokenClock, call_with_retry
from .core.types import (
    BulkAction,
    BulkActionSummary,
    EarningRecord,
    EarningStatus,
    ReviewFields,
)
from .ledger import LedgerApplier
from .reporter import ReconciliationReporter


logger = structlog.get_logger(__name__)


def _require_reason(reason: Optional[str]) -> str:
    if reason is None or not reason.strip():
        raise RecordValidationError(
            "Rejection reason is required",
            details={"field": "reason"}
        )
    return reason.strip()


def _unique_ids(earning_ids: List[str]) -> List[str]:
    seen = set()
    unique = []
    for earning_id in earning_ids:
        if earning_id not in seen:
            seen.add(earning_id)
            unique.append(earning_id)
    return unique


class LifecycleManager:
    """Owns every status transition of an earning."""

    def __init__(
        self,
        store: EarningsStore,
        ledger: LedgerApplier,
        reporter: ReconciliationReporter,
        policy: RetryPolicy,
        notifier: Optional[Notifier] = None,
        max_workers: int = 8,
    ):
        self.store = store
        self.ledger = ledger
        self.reporter = reporter
        self.policy = policy
        self.notifier = notifier
        self.max_workers = max_workers
        self._clock = WriteTokenClock()
        self.logger = logger.bind(service="lifecycle_manager")

    async def approve(
        self,
        earning_id: str,
        reviewed_by: str,
        notes: Optional[str] = None,
    ) -> EarningRecord:
        review = ReviewFields(
            reviewed_by=reviewed_by,
            reviewed_at=self._clock.now(),
            admin_notes=notes,
        )
        earning = await self._transition(earning_id, EarningStatus.CONFIRMED, review, "approve")
        await self.ledger.apply(earning)
        await notify_transition(self.notifier, earning)
        return earning

    async def reject(
        self,
        earning_id: str,
        reviewed_by: str,
        reason: Optional[str],
        notes: Optional[str] = None,
    ) -> EarningRecord:
        reason = _require_reason(reason)
        review = ReviewFields(
            reviewed_by=reviewed_by,
            reviewed_at=self._clock.now(),
            admin_notes=notes,
            rejection_reason=reason,
        )
        earning = await self._transition(earning_id, EarningStatus.CANCELLED, review, "reject")
        await notify_transition(self.notifier, earning)
        return earning

    async def bulk_approve(
        self,
        earning_ids: List[str],
        reviewed_by: str,
        notes: Optional[str] = None,
    ) -> BulkActionSummary:
        async def approve_one(earning_id: str) -> EarningRecord:
            return await self.approve(earning_id, reviewed_by, notes)

        return await self._bulk(BulkAction.APPROVE, earning_ids, approve_one)

    async def bulk_reject(
        self,
        earning_ids: List[str],
        reviewed_by: str,
        reason: Optional[str],
        notes: Optional[str] = None,
    ) -> BulkActionSummary:
        reason = _require_reason(reason)

        async def reject_one(earning_id: str) -> EarningRecord:
            return await self.reject(earning_id, reviewed_by, reason, notes)

        return await self._bulk(BulkAction.REJECT, earning_ids, reject_one)

    async def _transition(
        self,
        earning_id: str,
        status: EarningStatus,
        review: ReviewFields,
        action: str,
    ) -> EarningRecord:
        updated = await call_with_retry(
            "update_status",
            lambda: self.store.update_status(
                earning_id, status, review, expected_status=EarningStatus.PENDING
            ),
            self.policy,
        )
        if updated is not None:
            self.logger.info(
                "Earning status changed",
                earning_id=earning_id,
                action=action,
                status=status.value,
                reviewed_by=review.reviewed_by
            )
            return updated

        # Conditional update matched nothing: unknown id, no longer pending,
        # or a retry after our own write committed
        current = await call_with_retry(
            "get_earning",
            lambda: self.store.get(earning_id),
            self.policy,
        )
        if current is None:
            raise EarningNotFoundError(earning_id)

        if (
            current.status is status
            and current.reviewed_by == review.reviewed_by
            and current.reviewed_at == review.reviewed_at
        ):
            # Our own write committed on an attempt that timed out
            self.logger.info(
                "Earning status changed",
                earning_id=earning_id,
                action=action,
                status=status.value,
                reviewed_by=review.reviewed_by,
                recovered=True
            )
            return current

        self.logger.warning(
            "Earning transition rejected",
            earning_id=earning_id,
            action=action,
            current_status=current.status.value
        )
        raise StateConflictError(earning_id, current.status.value, action)

    async def _bulk(self, action: BulkAction, earning_ids: List[str], operation) -> BulkActionSummary:
        start_time = time.perf_counter()
        unique_ids = _unique_ids(earning_ids)

        found = await call_with_retry(
            "get_many",
            lambda: self.store.get_many(unique_ids),
            self.policy,
        )
        by_id = {earning.id: earning for earning in found}
        candidates = [
            earning_id for earning_id in unique_ids
            if earning_id in by_id and by_id[earning_id].status is EarningStatus.PENDING
        ]
        excluded_ids = [earning_id for earning_id in unique_ids if earning_id not in candidates]

        semaphore = asyncio.Semaphore(self.max_workers)

        async def run(earning_id: str):
            async with semaphore:
                try:
                    return await operation(earning_id)
                except StateConflictError:
                    return None
                except EarningsEngineException as e:
                    return e

        outcomes = await asyncio.gather(*(run(earning_id) for earning_id in candidates))

        transitioned_ids: List[str] = []
        errors: List[Dict[str, str]] = []
        total_amount = Decimal("0")
        for earning_id, outcome in zip(candidates, outcomes):
            if outcome is None:
                # Raced to a terminal state between filter and transition
                excluded_ids.append(earning_id)
            elif isinstance(outcome, EarningsEngineException):
                errors.append({"earningId": earning_id, "error": outcome.message})
            else:
                transitioned_ids.append(earning_id)
                total_amount += outcome.amount

        processing_time_ms = int((time.perf_counter() - start_time) * 1000)
        summary = self.reporter.build_bulk_summary(
            action,
            requested=len(unique_ids),
            transitioned_ids=transitioned_ids,
            excluded_ids=excluded_ids,
            errors=errors,
            total_amount=total_amount,
            processing_time_ms=processing_time_ms,
        )

        self.logger.info(
            "Bulk action completed",
            action=action.value,
            requested=summary.requested,
            transitioned=summary.transitioned,
            excluded=summary.excluded,
            failed=summary.failed
        )
        return summary
