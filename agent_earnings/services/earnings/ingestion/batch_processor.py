"""
Batch processor: runs every draft of a submission through validation,
deduplication, creation and (for auto-confirm) the ledger.
"""

import asyncio
import time
import uuid
from datetime import datetime, timezone
from typing import Optional, Set

import structlog

from agent_earnings.core.exceptions import (
    DuplicateReferenceError,
    EarningsEngineException,
    PersistenceError,
    RecordValidationError,
)
from agent_earnings.services.notification_service import notify_transition
from ..core.protocols import EarningsStore, Notifier
from ..core.resilience import RetryPolicy, call_with_retry
from ..core.types import (
    BatchEntryResult,
    BulkUploadBatch,
    BulkUploadResponse,
    EarningDraft,
    EarningRecord,
    EarningStatus,
    EntryStatus,
    ErrorCategory,
    ValidatedDraft,
)
from ..ledger import LedgerApplier
from ..reporter import ReconciliationReporter, new_batch_id
from .deduplicator import Deduplicator
from .validator import DraftValidator


logger = structlog.get_logger(__name__)


def build_earning_record(
    validated: ValidatedDraft,
    status: EarningStatus,
    created_by: str,
    batch_id: Optional[str] = None,
    metadata: Optional[dict] = None,
) -> EarningRecord:
    draft = validated.draft
    now = datetime.now(timezone.utc)
    return EarningRecord(
        id=str(uuid.uuid4()),
        agent_id=validated.agent.id,
        agent_code=validated.agent.agent_code,
        amount=draft.amount,
        currency=validated.currency,
        type=validated.earning_type,
        description=validated.description,
        status=status,
        earned_at=draft.earned_at or now,
        reference_id=draft.reference_id,
        commission_rate=draft.commission_rate,
        batch_id=batch_id,
        created_by=created_by,
        reviewed_at=now if status is EarningStatus.CONFIRMED else None,
        reviewed_by=created_by if status is EarningStatus.CONFIRMED else None,
        metadata=dict(metadata or {}),
        created_at=now,
        updated_at=now,
    )


class BatchProcessor:
    """
    Processes batch entries in a bounded worker pool.

    No entry's failure stops the batch: every draft ends up with exactly one
    BatchEntryResult, reported in submission order.
    """

    def __init__(
        self,
        validator: DraftValidator,
        deduplicator: Deduplicator,
        store: EarningsStore,
        ledger: LedgerApplier,
        reporter: ReconciliationReporter,
        policy: RetryPolicy,
        notifier: Optional[Notifier] = None,
        max_workers: int = 8,
    ):
        self.validator = validator
        self.deduplicator = deduplicator
        self.store = store
        self.ledger = ledger
        self.reporter = reporter
        self.policy = policy
        self.notifier = notifier
        self.max_workers = max_workers

    async def process(self, batch: BulkUploadBatch) -> BulkUploadResponse:
        start_time = time.perf_counter()
        batch_id = new_batch_id()
        log = logger.bind(service="batch_processor", batch_id=batch_id)

        log.info(
            "Batch processing started",
            entries=len(batch.entries),
            auto_confirm=batch.auto_confirm,
            uploaded_by=batch.uploaded_by,
            max_workers=self.max_workers
        )

        in_batch_duplicates = self.deduplicator.find_in_batch_duplicates(batch.entries)
        semaphore = asyncio.Semaphore(self.max_workers)

        async def process_with_semaphore(draft: EarningDraft) -> BatchEntryResult:
            async with semaphore:
                return await self._process_entry(draft, batch, batch_id, in_batch_duplicates)

        results = await asyncio.gather(
            *(process_with_semaphore(draft) for draft in batch.entries)
        )

        processing_time_ms = int((time.perf_counter() - start_time) * 1000)
        response = self.reporter.build_upload_response(
            list(results), batch, batch_id, processing_time_ms
        )

        log.info(
            "Batch processing completed",
            total=response.total_processed,
            successful=response.successful,
            failed=response.failed,
            skipped=response.skipped,
            total_amount=str(response.total_amount),
            processing_time_ms=processing_time_ms
        )
        return response

    async def _process_entry(
        self,
        draft: EarningDraft,
        batch: BulkUploadBatch,
        batch_id: str,
        in_batch_duplicates: Set[int],
    ) -> BatchEntryResult:
        try:
            return await self._run_entry(draft, batch, batch_id, in_batch_duplicates)
        except EarningsEngineException as e:
            return self._failed(draft, e.message, ErrorCategory.OTHER, batch_id)
        except Exception as e:
            logger.exception(
                "Unexpected error processing batch entry",
                batch_id=batch_id,
                row_number=draft.row_number
            )
            return self._failed(
                draft, f"Row {draft.row_number}: unexpected error: {e}", ErrorCategory.OTHER, batch_id
            )

    async def _run_entry(
        self,
        draft: EarningDraft,
        batch: BulkUploadBatch,
        batch_id: str,
        in_batch_duplicates: Set[int],
    ) -> BatchEntryResult:
        # 1. Later repeats of a reference in this batch are skipped whatever their content
        reference_id = draft.reference_id
        if reference_id and draft.row_number in in_batch_duplicates:
            return self._skipped(draft, DuplicateReferenceError(reference_id), batch_id)

        # 2. Validate, then reserve the reference against other batches and the store
        try:
            validated = await self.validator.validate(draft, batch.default_currency)
        except RecordValidationError as e:
            return self._failed(draft, e.message, ErrorCategory(e.category), batch_id)

        if reference_id:
            try:
                await self.deduplicator.reserve(reference_id)
            except DuplicateReferenceError as e:
                return self._skipped(draft, e, batch_id)

        # 3. Create
        status = EarningStatus.CONFIRMED if batch.auto_confirm else EarningStatus.PENDING
        record = build_earning_record(
            validated,
            status,
            created_by=batch.uploaded_by,
            batch_id=batch_id,
            metadata={"batch_description": batch.batch_description, **batch.metadata},
        )
        try:
            created = await call_with_retry(
                "create_earning",
                lambda: self.store.create(record),
                self.policy,
            )
        except DuplicateReferenceError as e:
            return self._skipped(draft, e, batch_id)
        finally:
            if reference_id:
                await self.deduplicator.release(reference_id)

        # 4. Ledger
        if created.status is EarningStatus.CONFIRMED:
            try:
                await self.ledger.apply(created)
            except PersistenceError as e:
                result = self._failed(
                    draft,
                    f"Row {draft.row_number}: earning {created.id} confirmed but balance "
                    f"update failed: {e.message}",
                    ErrorCategory.OTHER,
                    batch_id,
                )
                result.earning_id = created.id
                return result
            await notify_transition(self.notifier, created)

        # 5. Success
        message = "Earning confirmed" if created.status is EarningStatus.CONFIRMED else "Earning queued for review"
        return BatchEntryResult(
            row_number=draft.row_number,
            agent_code=created.agent_code,
            status=EntryStatus.SUCCESS,
            amount=created.amount,
            earning_id=created.id,
            message=message,
            reference_id=reference_id,
        )

    @staticmethod
    def _failed(
        draft: EarningDraft,
        error: str,
        category: ErrorCategory,
        batch_id: str,
    ) -> BatchEntryResult:
        logger.warning(
            "Batch entry failed",
            batch_id=batch_id,
            row_number=draft.row_number,
            agent_code=draft.agent_code,
            category=category.value,
            error=error
        )
        return BatchEntryResult(
            row_number=draft.row_number,
            agent_code=draft.agent_code,
            status=EntryStatus.FAILED,
            amount=draft.amount,
            error=error,
            error_category=category,
            reference_id=draft.reference_id,
        )

    @staticmethod
    def _skipped(
        draft: EarningDraft,
        error: DuplicateReferenceError,
        batch_id: str,
    ) -> BatchEntryResult:
        logger.warning(
            "Batch entry skipped",
            batch_id=batch_id,
            row_number=draft.row_number,
            agent_code=draft.agent_code,
            reference_id=error.reference_id
        )
        return BatchEntryResult(
            row_number=draft.row_number,
            agent_code=draft.agent_code,
            status=EntryStatus.SKIPPED,
            amount=draft.amount,
            message=f"Row {draft.row_number}: {error.message}",
            error_category=ErrorCategory.DUPLICATE_REFERENCE,
            reference_id=error.reference_id,
        )
