"""
Earnings engine: wires the ingestion, ledger and lifecycle components
around a pair of collaborators and exposes the operations used by the API
and the management CLI.
"""

from typing import Any, Dict, List, Optional

import structlog

from agent_earnings.core.config import settings
from agent_earnings.core.database import get_session_maker
from agent_earnings.core.exceptions import EarningNotFoundError, RecordValidationError
from agent_earnings.services.notification_service import LoggingNotifier, notify_transition
from .core.protocols import AgentDirectory, EarningsStore, Notifier
from .core.resilience import RetryPolicy, call_with_retry
from .core.types import (
    BulkActionSummary,
    BulkUploadBatch,
    BulkUploadResponse,
    EarningDraft,
    EarningRecord,
    EarningsPage,
    EarningsQuery,
    EarningsStats,
    EarningStatus,
    LedgerApplication,
)
from .database import SqlAgentDirectory, SqlEarningsStore
from .csv_io import parse_csv, render_earnings_export
from .ingestion import (
    BatchProcessor,
    Deduplicator,
    DraftValidator,
    InputNormalizer,
    ReferenceRegistry,
    build_earning_record,
)
from .ledger import LedgerApplier
from .lifecycle import LifecycleManager
from .reporter import ReconciliationReporter


logger = structlog.get_logger(__name__)


class EarningsEngine:
    """
    Facade over the earnings components.

    One engine owns one ReferenceRegistry and one LedgerApplier, so every
    batch, manual entry and review routed through it shares reference
    reservations and per-agent ledger serialization.
    """

    def __init__(
        self,
        agents: AgentDirectory,
        store: EarningsStore,
        notifier: Optional[Notifier] = None,
        policy: Optional[RetryPolicy] = None,
        registry: Optional[ReferenceRegistry] = None,
        max_batch_size: Optional[int] = None,
        max_workers: Optional[int] = None,
        default_currency: Optional[str] = None,
        max_description_length: Optional[int] = None,
    ):
        self.agents = agents
        self.store = store
        self.notifier = notifier
        self.policy = policy or RetryPolicy.from_settings()
        self.registry = registry or ReferenceRegistry()
        max_workers = max_workers or settings.batch_max_workers

        self.normalizer = InputNormalizer(max_batch_size or settings.max_batch_size)
        self.validator = DraftValidator(
            agents,
            self.policy,
            default_currency=default_currency or settings.default_currency,
            max_description_length=max_description_length or settings.max_description_length,
        )
        self.deduplicator = Deduplicator(store, self.registry, self.policy)
        self.ledger = LedgerApplier(agents, store, self.policy)
        self.reporter = ReconciliationReporter()
        self.processor = BatchProcessor(
            self.validator,
            self.deduplicator,
            store,
            self.ledger,
            self.reporter,
            self.policy,
            notifier=notifier,
            max_workers=max_workers,
        )
        self.lifecycle = LifecycleManager(
            store,
            self.ledger,
            self.reporter,
            self.policy,
            notifier=notifier,
            max_workers=max_workers,
        )
        self.logger = logger.bind(service="earnings_engine")

    # Ingestion

    async def bulk_upload(
        self,
        rows: Any,
        uploaded_by: str,
        batch_description: Optional[str] = None,
        auto_confirm: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
        default_currency: Optional[str] = None,
        headers: Optional[List[str]] = None,
    ) -> BulkUploadResponse:
        """
        Normalize and process a batch of rows.

        FatalBatchError is raised before any record is touched; once per-record
        processing starts a complete report is always returned.
        """
        drafts = self.normalizer.normalize(rows, headers=headers)
        batch = BulkUploadBatch(
            entries=drafts,
            uploaded_by=uploaded_by,
            batch_description=batch_description,
            auto_confirm=auto_confirm,
            default_currency=default_currency,
            metadata=dict(metadata or {}),
        )
        return await self.processor.process(batch)

    async def upload_csv(
        self,
        text: str,
        uploaded_by: str,
        batch_description: Optional[str] = None,
        auto_confirm: bool = False,
        metadata: Optional[Dict[str, Any]] = None,
        default_currency: Optional[str] = None,
    ) -> BulkUploadResponse:
        headers, rows = parse_csv(text)
        return await self.bulk_upload(
            rows,
            uploaded_by,
            batch_description=batch_description,
            auto_confirm=auto_confirm,
            metadata={"source": "csv", **(metadata or {})},
            default_currency=default_currency,
            headers=headers,
        )

    async def create_earning(
        self,
        draft: EarningDraft,
        created_by: str,
        auto_confirm: bool = False,
    ) -> EarningRecord:
        """
        Manual single entry through the batch path.

        Validation and duplicate failures raise instead of being reported.
        """
        validated = await self.validator.validate(draft)

        reference_id = draft.reference_id
        if reference_id:
            await self.deduplicator.reserve(reference_id)

        status = EarningStatus.CONFIRMED if auto_confirm else EarningStatus.PENDING
        record = build_earning_record(
            validated, status, created_by=created_by, metadata={"source": "manual"}
        )
        try:
            created = await call_with_retry(
                "create_earning",
                lambda: self.store.create(record),
                self.policy,
            )
        finally:
            if reference_id:
                await self.deduplicator.release(reference_id)

        self.logger.info(
            "Manual earning created",
            earning_id=created.id,
            agent_code=created.agent_code,
            amount=str(created.amount),
            status=created.status.value,
            created_by=created_by
        )

        if created.status is EarningStatus.CONFIRMED:
            await self.ledger.apply(created)
            await notify_transition(self.notifier, created)
        return created

    # Lifecycle

    async def approve(self, earning_id: str, reviewed_by: str, notes: Optional[str] = None) -> EarningRecord:
        return await self.lifecycle.approve(earning_id, reviewed_by, notes)

    async def reject(
        self,
        earning_id: str,
        reviewed_by: str,
        reason: Optional[str],
        notes: Optional[str] = None,
    ) -> EarningRecord:
        return await self.lifecycle.reject(earning_id, reviewed_by, reason, notes)

    async def bulk_approve(
        self,
        earning_ids: List[str],
        reviewed_by: str,
        notes: Optional[str] = None,
    ) -> BulkActionSummary:
        return await self.lifecycle.bulk_approve(earning_ids, reviewed_by, notes)

    async def bulk_reject(
        self,
        earning_ids: List[str],
        reviewed_by: str,
        reason: Optional[str],
        notes: Optional[str] = None,
    ) -> BulkActionSummary:
        return await self.lifecycle.bulk_reject(earning_ids, reviewed_by, reason, notes)

    async def reapply_ledger(self, earning_id: str) -> LedgerApplication:
        """Re-run the ledger for a confirmed earning whose credit failed."""
        earning = await self.get_earning(earning_id)
        if earning.status is not EarningStatus.CONFIRMED:
            raise RecordValidationError(
                f"Earning {earning_id} is {earning.status.value}, only confirmed earnings can be re-applied",
                details={"earning_id": earning_id, "status": earning.status.value}
            )
        return await self.ledger.apply(earning)

    # Queries

    async def get_earning(self, earning_id: str) -> EarningRecord:
        earning = await call_with_retry(
            "get_earning",
            lambda: self.store.get(earning_id),
            self.policy,
        )
        if earning is None:
            raise EarningNotFoundError(earning_id)
        return earning

    async def list_earnings(self, query: EarningsQuery) -> EarningsPage:
        return await call_with_retry(
            "list_earnings",
            lambda: self.store.list_by_filter(query),
            self.policy,
        )

    async def list_pending(self, query: EarningsQuery) -> EarningsPage:
        return await self.list_earnings(query.with_status(EarningStatus.PENDING))

    async def summarize(self, query: Optional[EarningsQuery] = None) -> EarningsStats:
        query = query or EarningsQuery()
        return await call_with_retry(
            "summarize_earnings",
            lambda: self.store.summarize(query),
            self.policy,
        )

    async def export_csv(self, query: EarningsQuery, limit: Optional[int] = None) -> str:
        page = await self.list_earnings(query.unpaged(limit or settings.max_batch_size))
        return render_earnings_export(page.items)


# Global engine instance
_engine: Optional[EarningsEngine] = None


def get_earnings_engine() -> EarningsEngine:
    """Get or create the global engine backed by the SQL repositories."""
    global _engine
    if _engine is None:
        session_maker = get_session_maker()
        _engine = EarningsEngine(
            agents=SqlAgentDirectory(session_maker),
            store=SqlEarningsStore(session_maker),
            notifier=LoggingNotifier(),
        )
    return _engine


def reset_earnings_engine() -> None:
    """Drop the global engine instance (used when the database is closed)."""
    global _engine
    _engine = None
