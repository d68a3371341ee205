"""
Test reconciliation reports and CSV rendering.
"""

import csv
import io
from datetime import datetime, timezone
from decimal import Decimal

from agent_earnings.core.config import EngineConfig
from agent_earnings.services.earnings.core.types import (
    BatchEntryResult,
    BulkAction,
    BulkUploadBatch,
    EarningRecord,
    EarningStatus,
    EarningType,
    EntryStatus,
    ErrorCategory,
)
from agent_earnings.services.earnings.csv_io import (
    EXPORT_COLUMNS,
    csv_template,
    parse_csv,
    render_batch_report,
    render_earnings_export,
)
from agent_earnings.services.earnings.reporter import ReconciliationReporter, new_batch_id


RESULTS = [
    BatchEntryResult(1, "AG001", EntryStatus.SUCCESS, Decimal("10.00"), earning_id="e-1", message="Earning confirmed"),
    BatchEntryResult(
        2, "AG404", EntryStatus.FAILED, Decimal("5"),
        error="Row 2: agent code AG404 not found", error_category=ErrorCategory.INVALID_AGENT_CODE,
    ),
    BatchEntryResult(
        3, "AG404", EntryStatus.FAILED, Decimal("6"),
        error="Row 3: agent code AG404 not found", error_category=ErrorCategory.INVALID_AGENT_CODE,
    ),
    BatchEntryResult(
        4, "AG002", EntryStatus.SKIPPED, Decimal("7"),
        message="Row 4: Duplicate reference ID: R-1",
        error_category=ErrorCategory.DUPLICATE_REFERENCE, reference_id="R-1",
    ),
    BatchEntryResult(
        5, "AG002", EntryStatus.FAILED, Decimal("0"),
        error="Row 5: amount must be a positive number", error_category=ErrorCategory.VALIDATION,
    ),
    BatchEntryResult(6, "AG001", EntryStatus.SUCCESS, Decimal("2.50"), earning_id="e-2", message="Earning confirmed"),
]


def build_response():
    batch = BulkUploadBatch(entries=[], uploaded_by="admin", batch_description="Weekly")
    return ReconciliationReporter().build_upload_response(RESULTS, batch, "BATCH-20250101-abcd1234", 42)


def test_new_batch_id_format():
    batch_id = new_batch_id(datetime(2025, 3, 9, tzinfo=timezone.utc))
    assert batch_id.startswith("BATCH-20250309-")
    assert len(batch_id) == len("BATCH-20250309-") + 8
    assert new_batch_id() != new_batch_id()


def test_upload_response_counts():
    response = build_response()

    assert response.total_processed == 6
    assert (response.successful, response.failed, response.skipped) == (2, 3, 1)
    assert response.total_amount == Decimal("12.50")
    assert response.updated_agents == ["AG001"]
    assert response.batch_info.processing_time_ms == 42
    assert response.batch_info.batch_description == "Weekly"


def test_error_summary_buckets_are_deduplicated():
    summary = build_response().error_summary

    assert summary.invalid_agent_codes == ["AG404"]
    assert summary.duplicate_references == ["R-1"]
    assert summary.validation_errors == ["Row 5: amount must be a positive number"]
    assert summary.other_errors == []
    assert summary.total == 3


def test_bulk_summary_text():
    summary = ReconciliationReporter.build_bulk_summary(
        BulkAction.REJECT,
        requested=5,
        transitioned_ids=["a", "b"],
        excluded_ids=["c"],
        errors=[{"earningId": "d", "error": "boom"}, {"earningId": "e", "error": "boom"}],
        total_amount=Decimal("3"),
        processing_time_ms=1,
    )

    assert summary.summary == "Rejected 2 of 5 earnings (1 excluded, 2 failed)"
    assert (summary.transitioned, summary.excluded, summary.failed) == (2, 1, 2)


def test_template_is_parsable_upload():
    headers, rows = parse_csv(csv_template())

    assert headers == EngineConfig.CSV_TEMPLATE_COLUMNS
    assert len(rows) == 2
    assert rows[0]["Agent Code"] == "AG123456"
    assert rows[1]["Commission Rate"] == ""


def test_batch_report_layout():
    report = render_batch_report(build_response())
    lines = list(csv.reader(io.StringIO(report)))

    assert lines[0] == ["Bulk Earnings Upload Report"]
    assert lines[2] == ["Batch ID:", "BATCH-20250101-abcd1234"]
    assert ["Total Amount:", "12.50"] in lines

    header_index = lines.index(["Agent Code", "Status", "Amount", "Earning ID", "Message/Error"])
    assert lines[header_index - 1] == ["DETAILED RESULTS"]
    details = lines[header_index + 1:header_index + 7]
    assert details[0] == ["AG001", "success", "10.00", "e-1", "Earning confirmed"]
    assert details[3] == ["AG002", "skipped", "7", "", "Row 4: Duplicate reference ID: R-1"]

    invalid_index = lines.index(["INVALID AGENT CODES"])
    assert lines[invalid_index + 1:] == [["AG404"]]


def test_earnings_export():
    earning = EarningRecord(
        id="e-1",
        agent_id="a-1",
        agent_code="AG001",
        amount=Decimal("10.50"),
        currency="USD",
        type=EarningType.BONUS,
        description="Bonus, with comma",
        status=EarningStatus.CANCELLED,
        earned_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
        rejection_reason="Duplicate",
    )
    lines = list(csv.reader(io.StringIO(render_earnings_export([earning]))))

    assert lines[0] == EXPORT_COLUMNS
    exported = dict(zip(EXPORT_COLUMNS, lines[1]))
    assert exported["Amount"] == "10.50"
    assert exported["Description"] == "Bonus, with comma"
    assert exported["Status"] == "cancelled"
    assert exported["Commission Rate"] == ""
    assert exported["Earned At"] == "2025-01-01T00:00:00+00:00"
    assert exported["Rejection Reason"] == "Duplicate"
