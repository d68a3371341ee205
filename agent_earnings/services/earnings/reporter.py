"""
Reconciliation reporter: aggregates per-record outcomes into caller-facing reports.
"""

import secrets
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional

from .core.types import (
    BatchEntryResult,
    BatchInfo,
    BulkAction,
    BulkActionSummary,
    BulkUploadBatch,
    BulkUploadResponse,
    EntryStatus,
    ErrorCategory,
    ErrorSummary,
)


def new_batch_id(now: Optional[datetime] = None) -> str:
    """Unique batch identifier, e.g. BATCH-20261019-9f1c2a7b."""
    now = now or datetime.now(timezone.utc)
    return f"BATCH-{now:%Y%m%d}-{secrets.token_hex(4)}"


def _append_unique(bucket: List[str], value: str) -> None:
    if value not in bucket:
        bucket.append(value)


class ReconciliationReporter:
    """Builds BulkUploadResponse and BulkActionSummary objects."""

    @staticmethod
    def build_error_summary(results: List[BatchEntryResult]) -> ErrorSummary:
        summary = ErrorSummary()
        for result in results:
            if result.status is EntryStatus.SUCCESS:
                continue
            category = result.error_category or ErrorCategory.OTHER
            if category is ErrorCategory.INVALID_AGENT_CODE:
                _append_unique(summary.invalid_agent_codes, result.agent_code)
            elif category is ErrorCategory.DUPLICATE_REFERENCE:
                _append_unique(summary.duplicate_references, result.reference_id or "")
            elif category is ErrorCategory.VALIDATION:
                _append_unique(summary.validation_errors, result.error or "")
            else:
                _append_unique(summary.other_errors, result.error or "")
        return summary

    def build_upload_response(
        self,
        results: List[BatchEntryResult],
        batch: BulkUploadBatch,
        batch_id: str,
        processing_time_ms: int,
        processed_at: Optional[datetime] = None,
    ) -> BulkUploadResponse:
        counts: Dict[EntryStatus, int] = {status: 0 for status in EntryStatus}
        total_amount = Decimal("0")
        updated_agents: List[str] = []

        for result in results:
            counts[result.status] += 1
            if result.status is EntryStatus.SUCCESS:
                total_amount += result.amount
                _append_unique(updated_agents, result.agent_code)

        return BulkUploadResponse(
            total_processed=len(results),
            successful=counts[EntryStatus.SUCCESS],
            failed=counts[EntryStatus.FAILED],
            skipped=counts[EntryStatus.SKIPPED],
            total_amount=total_amount,
            updated_agents=updated_agents,
            details=list(results),
            error_summary=self.build_error_summary(results),
            batch_info=BatchInfo(
                batch_id=batch_id,
                processed_at=processed_at or datetime.now(timezone.utc),
                processing_time_ms=processing_time_ms,
                uploaded_by=batch.uploaded_by,
                batch_description=batch.batch_description,
            ),
        )

    @staticmethod
    def build_bulk_summary(
        action: BulkAction,
        requested: int,
        transitioned_ids: List[str],
        excluded_ids: List[str],
        errors: List[Dict[str, str]],
        total_amount: Decimal,
        processing_time_ms: int,
    ) -> BulkActionSummary:
        verb = "Approved" if action is BulkAction.APPROVE else "Rejected"
        summary = (
            f"{verb} {len(transitioned_ids)} of {requested} earnings "
            f"({len(excluded_ids)} excluded, {len(errors)} failed)"
        )
        return BulkActionSummary(
            action=action,
            requested=requested,
            transitioned=len(transitioned_ids),
            excluded=len(excluded_ids),
            failed=len(errors),
            transitioned_ids=transitioned_ids,
            excluded_ids=excluded_ids,
            errors=errors,
            total_amount=total_amount,
            processing_time_ms=processing_time_ms,
            summary=summary,
        )
