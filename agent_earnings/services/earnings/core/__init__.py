"""
Core types, collaborator protocols and call policy for earnings processing.
"""

from .types import (
    AgentRef,
    BatchEntryResult,
    BatchInfo,
    BulkAction,
    BulkActionSummary,
    BulkUploadBatch,
    BulkUploadResponse,
    EarningDraft,
    EarningRecord,
    EarningsPage,
    EarningsQuery,
    EarningsStats,
    EarningStatus,
    EarningType,
    EntryStatus,
    ErrorCategory,
    ErrorSummary,
    LedgerApplication,
    ReviewFields,
    ValidatedDraft,
)
from .protocols import AgentDirectory, EarningsStore, Notifier
from .resilience import RetryPolicy, call_with_retry

__all__ = [
    "AgentRef",
    "BatchEntryResult",
    "BatchInfo",
    "BulkAction",
    "BulkActionSummary",
    "BulkUploadBatch",
    "BulkUploadResponse",
    "EarningDraft",
    "EarningRecord",
    "EarningsPage",
    "EarningsQuery",
    "EarningsStats",
    "EarningStatus",
    "EarningType",
    "EntryStatus",
    "ErrorCategory",
    "ErrorSummary",
    "LedgerApplication",
    "ReviewFields",
    "ValidatedDraft",
    "AgentDirectory",
    "EarningsStore",
    "Notifier",
    "RetryPolicy",
    "call_with_retry",
]
