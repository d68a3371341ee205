"""
Test bulk upload processing and its reconciliation report.
"""

import asyncio
from decimal import Decimal

import pytest

from agent_earnings.core.exceptions import (
    DuplicateReferenceError,
    FatalBatchError,
    RecordValidationError,
)
from agent_earnings.services.earnings.core.types import (
    EarningDraft,
    EarningStatus,
    EntryStatus,
    ErrorCategory,
)
from agent_earnings.services.earnings.engine import EarningsEngine

from tests.fakes import InMemoryEarningsStore, RecordingNotifier


class FlakyReferenceStore(InMemoryEarningsStore):
    """Store that hangs on reference SLOW and blows up on reference BOOM."""

    async def create(self, earning):
        if earning.reference_id == "SLOW":
            await asyncio.sleep(5)
        if earning.reference_id == "BOOM":
            raise RuntimeError("boom")
        return await super().create(earning)


def row(agent_code, amount, reference_id=None, **extra):
    values = {"Agent Code": agent_code, "Amount": amount}
    if reference_id is not None:
        values["Reference ID"] = reference_id
    values.update(extra)
    return values


MIXED_BATCH = [
    row("AG001", "10.00", "M-1"),
    row("AG404", "5"),
    row("AG002", "-1"),
    row("AG002", "7.50", "M-1"),
    row("AG002", "2.25", Type="bonus"),
]


@pytest.mark.asyncio
async def test_mixed_batch_report(engine, agents):
    """Every entry is accounted for exactly once, in submission order."""
    result = await engine.bulk_upload(MIXED_BATCH, uploaded_by="admin@example.com")

    assert result.total_processed == 5
    assert result.successful + result.failed + result.skipped == result.total_processed
    assert (result.successful, result.failed, result.skipped) == (2, 2, 1)
    assert result.total_amount == Decimal("12.25")
    assert result.updated_agents == ["AG001", "AG002"]
    assert [d.row_number for d in result.details] == [1, 2, 3, 4, 5]
    assert [d.status for d in result.details] == [
        EntryStatus.SUCCESS,
        EntryStatus.FAILED,
        EntryStatus.FAILED,
        EntryStatus.SKIPPED,
        EntryStatus.SUCCESS,
    ]

    summary = result.error_summary
    assert summary.invalid_agent_codes == ["AG404"]
    assert summary.duplicate_references == ["M-1"]
    assert len(summary.validation_errors) == 1
    assert summary.other_errors == []

    skipped = result.details[3]
    assert skipped.message == "Row 4: Duplicate reference ID: M-1"
    assert skipped.error_category is ErrorCategory.DUPLICATE_REFERENCE

    assert result.batch_info.batch_id.startswith("BATCH-")
    assert result.batch_info.uploaded_by == "admin@example.com"

    # Pending entries never touch balances
    assert agents.balance("AG001") == Decimal("0")
    assert agents.balance("AG002") == Decimal("0")


@pytest.mark.asyncio
async def test_total_amount_matches_successful_entries(engine):
    result = await engine.bulk_upload(MIXED_BATCH, uploaded_by="admin")

    expected = sum(
        (d.amount for d in result.details if d.status is EntryStatus.SUCCESS),
        Decimal("0"),
    )
    assert result.total_amount == expected


@pytest.mark.asyncio
async def test_pending_earnings_are_persisted(engine, store, notifier):
    result = await engine.bulk_upload(
        [row("AG001", "10", "P-1")],
        uploaded_by="admin",
        batch_description="January commissions",
        metadata={"source": "api"},
    )

    earning = store.earnings[result.details[0].earning_id]
    assert earning.status is EarningStatus.PENDING
    assert earning.batch_id == result.batch_info.batch_id
    assert earning.created_by == "admin"
    assert earning.reviewed_at is None
    assert earning.ledger_applied_at is None
    assert earning.metadata["batch_description"] == "January commissions"
    assert earning.metadata["source"] == "api"
    assert result.details[0].message == "Earning queued for review"
    assert notifier.events == []


@pytest.mark.asyncio
async def test_resubmitted_batch_is_fully_skipped(engine, store):
    """Re-sending a batch whose entries all carry references creates nothing."""
    rows = [row("AG001", "10", "R-1"), row("AG002", "20", "R-2")]
    first = await engine.bulk_upload(rows, uploaded_by="admin", auto_confirm=True)
    second = await engine.bulk_upload(rows, uploaded_by="admin", auto_confirm=True)

    assert first.successful == 2
    assert second.successful == 0
    assert second.skipped == 2
    assert second.total_amount == Decimal("0")
    assert second.updated_agents == []
    assert len(store.earnings) == 2


@pytest.mark.asyncio
async def test_auto_confirm_applies_each_reference_once(engine, agents, store, notifier):
    """[R1:10, R2:20, R1:5] credits 30: the repeated reference is skipped."""
    result = await engine.bulk_upload(
        [row("AG001", "10", "R1"), row("AG001", "20", "R2"), row("AG001", "5", "R1")],
        uploaded_by="admin",
        auto_confirm=True,
    )

    assert (result.successful, result.skipped) == (2, 1)
    assert result.total_amount == Decimal("30")
    assert agents.balance("AG001") == Decimal("30")
    assert agents.total_earnings("AG001") == Decimal("30")

    confirmed = [e for e in store.earnings.values() if e.status is EarningStatus.CONFIRMED]
    assert len(confirmed) == 2
    assert all(e.ledger_applied_at is not None for e in confirmed)
    assert all(e.reviewed_by == "admin" for e in confirmed)
    assert len(notifier.events) == 2
    assert result.details[0].message == "Earning confirmed"


@pytest.mark.asyncio
async def test_invalid_repeat_of_reference_is_skipped(engine, store):
    """A later row reusing a reference is skipped even when it would fail validation."""
    result = await engine.bulk_upload(
        [row("AG001", "10", "R1"), row("AG001", "abc", "R1"), row("AG404", "5", "R1")],
        uploaded_by="admin",
    )

    assert [d.status for d in result.details] == [
        EntryStatus.SUCCESS, EntryStatus.SKIPPED, EntryStatus.SKIPPED,
    ]
    assert result.error_summary.duplicate_references == ["R1"]
    assert result.error_summary.validation_errors == []
    assert result.error_summary.invalid_agent_codes == []
    assert len(store.earnings) == 1


@pytest.mark.asyncio
async def test_auto_confirm_credit_with_lost_acknowledgement(engine, agents):
    """The balance moves once even though the first credit attempt timed out."""
    agents.credit_stall = 1.0

    result = await engine.bulk_upload(
        [row("AG001", "10", "ACK-1")],
        uploaded_by="admin",
        auto_confirm=True,
    )

    assert result.details[0].status is EntryStatus.SUCCESS
    assert agents.credit_calls == 2
    assert agents.balance("AG001") == Decimal("10")


@pytest.mark.asyncio
async def test_penalty_debits_balance(engine, agents):
    await engine.bulk_upload(
        [row("AG001", "50", "B-1"), row("AG001", "15", "P-1", Type="penalty")],
        uploaded_by="admin",
        auto_confirm=True,
    )

    assert agents.balance("AG001") == Decimal("35")
    assert agents.total_earnings("AG001") == Decimal("50")


@pytest.mark.asyncio
async def test_unrecognised_headers_reject_whole_batch(engine, store):
    with pytest.raises(FatalBatchError) as exc_info:
        await engine.bulk_upload([{"Name": "Alice", "Value": "10"}], uploaded_by="admin")

    assert exc_info.value.message == "Upload must contain at least Agent Code and Amount columns"
    assert store.earnings == {}


@pytest.mark.asyncio
async def test_concurrent_batches_share_reference_guard(engine, store):
    """Two simultaneous batches with one reference produce one earning."""
    rows = [row("AG001", "10", "C-1")]
    first, second = await asyncio.gather(
        engine.bulk_upload(rows, uploaded_by="alice", auto_confirm=True),
        engine.bulk_upload(rows, uploaded_by="bob", auto_confirm=True),
    )

    assert first.successful + second.successful == 1
    assert first.skipped + second.skipped == 1
    assert len(store.earnings) == 1
    assert not engine.registry.is_reserved("C-1")


@pytest.mark.asyncio
async def test_concurrent_engines_rely_on_store_uniqueness(agents, store, policy):
    engines = [EarningsEngine(agents, store, policy=policy, max_workers=2) for _ in range(2)]
    rows = [row("AG002", "10", "C-2")]
    results = await asyncio.gather(*(e.bulk_upload(rows, uploaded_by="admin") for e in engines))

    assert sum(r.successful for r in results) == 1
    assert sum(r.skipped for r in results) == 1
    assert len(store.earnings) == 1


@pytest.mark.asyncio
async def test_timeout_fails_only_the_slow_entry(agents, policy):
    store = FlakyReferenceStore()
    engine = EarningsEngine(agents, store, policy=policy, max_workers=4)

    result = await engine.bulk_upload(
        [row("AG001", "10", "FAST-1"), row("AG001", "20", "SLOW"), row("AG002", "30", "FAST-2")],
        uploaded_by="admin",
    )

    assert (result.successful, result.failed, result.skipped) == (2, 1, 0)
    slow = result.details[1]
    assert slow.status is EntryStatus.FAILED
    assert slow.error_category is ErrorCategory.OTHER
    assert "timed out" in slow.error
    assert result.error_summary.other_errors == [slow.error]
    assert not engine.registry.is_reserved("SLOW")


@pytest.mark.asyncio
async def test_unexpected_error_is_contained(agents, policy):
    store = FlakyReferenceStore()
    engine = EarningsEngine(agents, store, policy=policy)

    result = await engine.bulk_upload(
        [row("AG001", "10", "BOOM"), row("AG001", "20", "OK-1")],
        uploaded_by="admin",
    )

    assert result.details[0].status is EntryStatus.FAILED
    assert result.details[0].error == "Row 1: unexpected error: boom"
    assert result.details[1].status is EntryStatus.SUCCESS


@pytest.mark.asyncio
async def test_transient_store_failure_is_retried(engine, store):
    store.create_failures = 1
    result = await engine.bulk_upload([row("AG001", "10", "T-1")], uploaded_by="admin")

    assert result.successful == 1
    assert len(store.earnings) == 1


@pytest.mark.asyncio
async def test_ledger_failure_reports_confirmed_earning(engine, agents, store):
    """A failed credit leaves a confirmed, unapplied earning that can be re-applied."""
    agents.credit_failures = 2
    result = await engine.bulk_upload(
        [row("AG001", "10", "L-1")], uploaded_by="admin", auto_confirm=True
    )

    detail = result.details[0]
    assert detail.status is EntryStatus.FAILED
    assert detail.earning_id is not None
    assert "confirmed but balance update failed" in detail.error

    earning = store.earnings[detail.earning_id]
    assert earning.status is EarningStatus.CONFIRMED
    assert earning.ledger_applied_at is None
    assert agents.balance("AG001") == Decimal("0")

    application = await engine.reapply_ledger(detail.earning_id)
    assert application.applied
    assert agents.balance("AG001") == Decimal("10")

    again = await engine.reapply_ledger(detail.earning_id)
    assert not again.applied
    assert agents.balance("AG001") == Decimal("10")


@pytest.mark.asyncio
async def test_notifier_failure_does_not_fail_entry(agents, store, policy):
    engine = EarningsEngine(agents, store, notifier=RecordingNotifier(fail=True), policy=policy)
    result = await engine.bulk_upload([row("AG001", "10")], uploaded_by="admin", auto_confirm=True)

    assert result.successful == 1
    assert agents.balance("AG001") == Decimal("10")


@pytest.mark.asyncio
async def test_upload_csv(engine, store):
    text = (
        "Agent Code,Amount,Type,Description,Reference ID,Commission Rate,Currency\n"
        "AG001,25.50,referral_commission,Commission for customer referral,TXN-12345,10.5,USD\n"
        "AG002,50.00,bonus,Monthly performance bonus,BONUS-JAN,,EUR\n"
    )
    result = await engine.upload_csv(text, uploaded_by="admin")

    assert result.successful == 2
    earning = store.earnings[result.details[1].earning_id]
    assert earning.currency == "EUR"
    assert earning.commission_rate is None
    assert earning.metadata["source"] == "csv"


@pytest.mark.asyncio
async def test_create_earning_raises_instead_of_reporting(engine, agents):
    draft = EarningDraft(row_number=1, agent_code="AG001", amount=Decimal("12"), reference_id="MAN-1")
    created = await engine.create_earning(draft, created_by="admin", auto_confirm=True)

    assert created.status is EarningStatus.CONFIRMED
    assert created.metadata == {"source": "manual"}
    assert agents.balance("AG001") == Decimal("12")

    with pytest.raises(DuplicateReferenceError):
        await engine.create_earning(draft, created_by="admin")

    with pytest.raises(RecordValidationError):
        await engine.create_earning(
            EarningDraft(row_number=1, agent_code="AG404", amount=Decimal("1")),
            created_by="admin",
        )
