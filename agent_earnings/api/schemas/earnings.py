"""
Earnings-related Pydantic schemas for API.
Defines data structures for the admin earnings endpoints.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import Field

from agent_earnings.services.earnings.core.types import (
    BulkAction,
    EarningStatus,
    EarningType,
    EntryStatus,
    ErrorCategory,
)
from .common import CamelModel, Money, RequestModel


# Requests

class BulkUploadRequest(RequestModel):
    """Bulk upload of already-parsed rows."""
    earnings: List[Dict[str, Any]] = Field(description="Rows keyed by column header or field name")
    batch_description: Optional[str] = Field(default=None, max_length=500)
    auto_confirm: bool = Field(default=False, description="Confirm and apply valid entries immediately")
    default_currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CreateEarningRequest(RequestModel):
    """Manual single earning entry."""
    agent_code: str = Field(min_length=1, max_length=32)
    amount: Decimal
    type: Optional[str] = None
    description: Optional[str] = None
    reference_id: Optional[str] = Field(default=None, max_length=128)
    commission_rate: Optional[Decimal] = None
    currency: Optional[str] = None
    earned_at: Optional[datetime] = None
    auto_confirm: bool = False


class ApproveRequest(RequestModel):
    notes: Optional[str] = None


class RejectRequest(RequestModel):
    reason: str = Field(description="Rejection reason (required, non-blank)")
    notes: Optional[str] = None


class BulkApproveRequest(RequestModel):
    earning_ids: List[str] = Field(min_length=1)
    notes: Optional[str] = None


class BulkRejectRequest(RequestModel):
    earning_ids: List[str] = Field(min_length=1)
    reason: str
    notes: Optional[str] = None


# Responses

class EarningSchema(CamelModel):
    """Earning as returned by the API."""
    id: str
    agent_id: str
    agent_code: str
    amount: Money
    currency: str
    type: EarningType
    description: str
    status: EarningStatus
    earned_at: datetime
    reference_id: Optional[str] = None
    commission_rate: Optional[Money] = None
    batch_id: Optional[str] = None
    created_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None
    ledger_applied_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class BatchEntryResultSchema(CamelModel):
    row_number: int
    agent_code: str
    status: EntryStatus
    amount: Money
    earning_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None
    reference_id: Optional[str] = None


class ErrorSummarySchema(CamelModel):
    invalid_agent_codes: List[str]
    duplicate_references: List[str]
    validation_errors: List[str]
    other_errors: List[str]


class BatchInfoSchema(CamelModel):
    batch_id: str
    processed_at: datetime
    processing_time_ms: int
    uploaded_by: str
    batch_description: Optional[str] = None


class BulkUploadResponseSchema(CamelModel):
    """Reconciliation report of one bulk upload."""
    total_processed: int
    successful: int
    failed: int
    skipped: int
    total_amount: Money
    updated_agents: List[str]
    details: List[BatchEntryResultSchema]
    error_summary: ErrorSummarySchema
    batch_info: BatchInfoSchema


class BulkActionSummarySchema(CamelModel):
    """Result of a bulk approve or reject."""
    action: BulkAction
    summary: str
    requested: int
    transitioned: int
    excluded: int
    failed: int
    transitioned_ids: List[str]
    excluded_ids: List[str]
    errors: List[Dict[str, str]]
    total_amount: Money
    processing_time_ms: int


class EarningsStatsSchema(CamelModel):
    total: int
    pending: int
    confirmed: int
    cancelled: int
    total_amount: Money
    confirmed_amount: Money
    pending_amount: Money


class LedgerApplicationSchema(CamelModel):
    earning_id: str
    agent_id: str
    delta: Money
    applied: bool
    applied_at: Optional[datetime] = None
