"""
CSV helpers for the admin upload and export flows.
"""

import csv
import io
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Tuple

from agent_earnings.core.config import EngineConfig
from agent_earnings.core.exceptions import FatalBatchError
from .core.types import BulkUploadResponse, EarningRecord


TEMPLATE_EXAMPLE_ROWS = [
    ["AG123456", "25.50", "referral_commission", "Commission for customer referral", "TXN-12345", "10.5", "USD"],
    ["AG789012", "50.00", "bonus", "Monthly performance bonus", "BONUS-JAN-2025", "", "USD"],
]

EXPORT_COLUMNS = [
    "Earning ID",
    "Agent Code",
    "Amount",
    "Currency",
    "Type",
    "Status",
    "Description",
    "Reference ID",
    "Commission Rate",
    "Earned At",
    "Reviewed By",
    "Reviewed At",
    "Rejection Reason",
    "Batch ID",
]


def _write_rows(rows: Iterable[List[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerows(rows)
    return buffer.getvalue()


def _format_dt(value) -> str:
    return value.isoformat() if value else ""


def parse_csv(text: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """
    Parse CSV text into its header row and row dicts keyed by that header.

    Blank lines are ignored and a leading byte-order mark is stripped. Header
    matching is left to the normalizer.
    """
    if text.startswith("\ufeff"):
        text = text[1:]

    try:
        records = [
            values for values in csv.reader(io.StringIO(text))
            if any(value.strip() for value in values)
        ]
    except csv.Error as e:
        raise FatalBatchError(f"CSV upload could not be parsed: {e}") from e

    if not records:
        raise FatalBatchError("CSV upload is empty")

    headers = [header.strip() for header in records[0]]
    rows = []
    for values in records[1:]:
        row = {}
        for index, header in enumerate(headers):
            if header:
                row[header] = values[index].strip() if index < len(values) else ""
        rows.append(row)
    return headers, rows


def parse_csv_text(text: str) -> List[Dict[str, str]]:
    return parse_csv(text)[1]


def csv_template() -> str:
    """Canonical upload template: header row plus example rows."""
    return _write_rows([EngineConfig.CSV_TEMPLATE_COLUMNS, *TEMPLATE_EXAMPLE_ROWS])


def render_batch_report(response: BulkUploadResponse) -> str:
    info = response.batch_info
    rows = [
        ["Bulk Earnings Upload Report"],
        ["Generated:", datetime.now(timezone.utc).isoformat()],
        ["Batch ID:", info.batch_id],
        ["Uploaded By:", info.uploaded_by],
        ["Total Processed:", str(response.total_processed)],
        ["Successful:", str(response.successful)],
        ["Failed:", str(response.failed)],
        ["Skipped:", str(response.skipped)],
        ["Total Amount:", str(response.total_amount)],
        ["Processing Time (ms):", str(info.processing_time_ms)],
        [""],
        ["DETAILED RESULTS"],
        ["Agent Code", "Status", "Amount", "Earning ID", "Message/Error"],
    ]
    for detail in response.details:
        rows.append([
            detail.agent_code,
            detail.status.value,
            str(detail.amount),
            detail.earning_id or "",
            detail.message or detail.error or "",
        ])

    invalid_codes = response.error_summary.invalid_agent_codes
    if invalid_codes:
        rows.append([""])
        rows.append(["INVALID AGENT CODES"])
        rows.extend([code] for code in invalid_codes)

    return _write_rows(rows)


def render_earnings_export(earnings: Iterable[EarningRecord]) -> str:
    rows = [EXPORT_COLUMNS]
    for earning in earnings:
        rows.append([
            earning.id,
            earning.agent_code,
            str(earning.amount),
            earning.currency,
            earning.type.value,
            earning.status.value,
            earning.description,
            earning.reference_id or "",
            "" if earning.commission_rate is None else str(earning.commission_rate),
            _format_dt(earning.earned_at),
            earning.reviewed_by or "",
            _format_dt(earning.reviewed_at),
            earning.rejection_reason or "",
            earning.batch_id or "",
        ])
    return _write_rows(rows)
