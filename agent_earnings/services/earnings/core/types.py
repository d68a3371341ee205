"""
Types for earnings ingestion and lifecycle processing.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class EarningType(str, Enum):
    """Kinds of monetary events attributed to an agent."""
    REFERRAL_COMMISSION = "referral_commission"
    BONUS = "bonus"
    PENALTY = "penalty"
    ADJUSTMENT = "adjustment"
    PROMOTION_BONUS = "promotion_bonus"

    @property
    def label(self) -> str:
        return self.value.replace("_", " ").capitalize()

    @property
    def ledger_sign(self) -> int:
        """Direction of the balance change; amounts are always positive magnitudes."""
        if self is EarningType.PENALTY:
            return -1
        return 1

    @classmethod
    def parse(cls, raw: Optional[str]) -> Optional["EarningType"]:
        """Parse a loosely formatted type name, returning None when unknown."""
        if raw is None:
            return None
        key = raw.strip().lower().replace(" ", "_").replace("-", "_")
        for member in cls:
            if member.value == key:
                return member
        return None


class EarningStatus(str, Enum):
    """Earning lifecycle states. Only PENDING may transition."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not EarningStatus.PENDING


class EntryStatus(str, Enum):
    """Outcome of a single batch entry."""
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class ErrorCategory(str, Enum):
    """Error buckets of the reconciliation report."""
    INVALID_AGENT_CODE = "invalid_agent_code"
    DUPLICATE_REFERENCE = "duplicate_reference"
    VALIDATION = "validation"
    OTHER = "other"


class BulkAction(str, Enum):
    """Review actions available in bulk."""
    APPROVE = "approve"
    REJECT = "reject"


@dataclass(frozen=True)
class AgentRef:
    """Agent as resolved by the agent directory."""
    id: str
    agent_code: str
    full_name: str = ""
    tier: Optional[str] = None
    is_active: bool = True


@dataclass
class EarningDraft:
    """One normalized, not yet validated input row."""
    row_number: int
    agent_code: str
    amount: Decimal
    type: Optional[str] = None
    description: Optional[str] = None
    reference_id: Optional[str] = None
    commission_rate: Optional[Decimal] = None
    currency: Optional[str] = None
    earned_at: Optional[datetime] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ValidatedDraft:
    """A draft that passed validation, with its agent resolved."""
    draft: EarningDraft
    agent: AgentRef
    earning_type: EarningType
    currency: str
    description: str


@dataclass
class BulkUploadBatch:
    """One bulk-upload submission. Lives only for the duration of processing."""
    entries: List[EarningDraft]
    uploaded_by: str
    batch_description: Optional[str] = None
    auto_confirm: bool = False
    default_currency: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ReviewFields:
    """Fields written alongside a status transition."""
    reviewed_by: str
    reviewed_at: datetime
    admin_notes: Optional[str] = None
    rejection_reason: Optional[str] = None


@dataclass
class EarningRecord:
    """Storage-independent view of a persisted earning."""
    id: str
    agent_id: str
    agent_code: str
    amount: Decimal
    currency: str
    type: EarningType
    description: str
    status: EarningStatus
    earned_at: datetime
    reference_id: Optional[str] = None
    commission_rate: Optional[Decimal] = None
    batch_id: Optional[str] = None
    created_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None
    rejection_reason: Optional[str] = None
    admin_notes: Optional[str] = None
    ledger_applied_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def ledger_delta(self) -> Decimal:
        return self.amount * self.type.ledger_sign

    def with_review(self, status: EarningStatus, review: ReviewFields) -> "EarningRecord":
        return replace(
            self,
            status=status,
            reviewed_at=review.reviewed_at,
            reviewed_by=review.reviewed_by,
            admin_notes=review.admin_notes,
            rejection_reason=review.rejection_reason,
            updated_at=review.reviewed_at,
        )


@dataclass
class BatchEntryResult:
    """Per-record outcome inside a batch."""
    row_number: int
    agent_code: str
    status: EntryStatus
    amount: Decimal
    earning_id: Optional[str] = None
    message: Optional[str] = None
    error: Optional[str] = None
    error_category: Optional[ErrorCategory] = None
    reference_id: Optional[str] = None


@dataclass
class ErrorSummary:
    invalid_agent_codes: List[str] = field(default_factory=list)
    duplicate_references: List[str] = field(default_factory=list)
    validation_errors: List[str] = field(default_factory=list)
    other_errors: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return (
            len(self.invalid_agent_codes)
            + len(self.duplicate_references)
            + len(self.validation_errors)
            + len(self.other_errors)
        )


@dataclass
class BatchInfo:
    batch_id: str
    processed_at: datetime
    processing_time_ms: int
    uploaded_by: str
    batch_description: Optional[str] = None


@dataclass
class BulkUploadResponse:
    """Reconciliation report for one batch."""
    total_processed: int
    successful: int
    failed: int
    skipped: int
    total_amount: Decimal
    updated_agents: List[str]
    details: List[BatchEntryResult]
    error_summary: ErrorSummary
    batch_info: BatchInfo


@dataclass
class BulkActionSummary:
    """Reconciliation report for a bulk approve/reject."""
    action: BulkAction
    requested: int
    transitioned: int
    excluded: int
    failed: int
    transitioned_ids: List[str] = field(default_factory=list)
    excluded_ids: List[str] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)
    total_amount: Decimal = Decimal("0")
    processing_time_ms: int = 0
    summary: str = ""


@dataclass(frozen=True)
class EarningsQuery:
    """Immutable filter and pagination for listing earnings."""
    status: Optional[EarningStatus] = None
    type: Optional[EarningType] = None
    agent_id: Optional[str] = None
    agent_code: Optional[str] = None
    tier: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = None
    batch_id: Optional[str] = None
    page: int = 1
    limit: int = 20

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def with_status(self, status: Optional[EarningStatus]) -> "EarningsQuery":
        return replace(self, status=status)

    def unpaged(self, limit: int) -> "EarningsQuery":
        return replace(self, page=1, limit=limit)


@dataclass
class EarningsPage:
    items: List[EarningRecord]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        if self.limit <= 0:
            return 0
        return max(1, -(-self.total // self.limit))

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


@dataclass
class EarningsStats:
    total: int = 0
    pending: int = 0
    confirmed: int = 0
    cancelled: int = 0
    total_amount: Decimal = Decimal("0")
    confirmed_amount: Decimal = Decimal("0")
    pending_amount: Decimal = Decimal("0")


@dataclass
class LedgerApplication:
    """Result of applying an earning to its agent's balance."""
    earning_id: str
    agent_id: str
    delta: Decimal
    applied: bool
    applied_at: Optional[datetime] = None
