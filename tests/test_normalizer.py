"""
Test input normalization and CSV parsing.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from agent_earnings.core.exceptions import (
    BatchTooLargeError,
    FatalBatchError,
    MissingColumnsError,
)
from agent_earnings.services.earnings.csv_io import parse_csv
from agent_earnings.services.earnings.ingestion import (
    InputNormalizer,
    parse_datetime,
    parse_decimal,
    resolve_header,
)


def test_resolve_header_variants():
    """Header spellings from CSV and JSON map onto the same field."""
    assert resolve_header("Agent Code") == "agent_code"
    assert resolve_header("agentCode") == "agent_code"
    assert resolve_header("agent_code") == "agent_code"
    assert resolve_header(" AMOUNT ") == "amount"
    assert resolve_header("Reference ID") == "reference_id"
    assert resolve_header("reference-id") == "reference_id"
    assert resolve_header("Commission Rate") == "commission_rate"
    assert resolve_header("Name") is None
    assert resolve_header("Value") is None


def test_parse_decimal():
    assert parse_decimal("25.50") == Decimal("25.50")
    assert parse_decimal("$1,250.00") == Decimal("1250.00")
    assert parse_decimal("10.5%") == Decimal("10.5")
    assert parse_decimal(12) == Decimal("12")
    assert parse_decimal(0.1) == Decimal("0.1")
    assert parse_decimal("") is None
    assert parse_decimal("abc") is None
    assert parse_decimal("NaN") is None
    assert parse_decimal("Infinity") is None
    assert parse_decimal(True) is None
    assert parse_decimal(None) is None


def test_parse_datetime():
    assert parse_datetime("2025-01-15") == datetime(2025, 1, 15, tzinfo=timezone.utc)
    assert parse_datetime("2025-01-15T10:30:00Z") == datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
    assert parse_datetime("not a date") is None
    assert parse_datetime("") is None


def test_normalize_csv_style_rows():
    """Rows keyed by template headers become drafts numbered from 1."""
    normalizer = InputNormalizer()
    drafts = normalizer.normalize([
        {
            "Agent Code": " AG001 ",
            "Amount": "25.50",
            "Type": "bonus",
            "Description": "Monthly bonus",
            "Reference ID": "TXN-1",
            "Commission Rate": "10.5",
            "Currency": "eur",
        },
        {"Agent Code": "AG002", "Amount": "10", "Type": "", "Reference ID": ""},
    ])

    assert [d.row_number for d in drafts] == [1, 2]
    first = drafts[0]
    assert first.agent_code == "AG001"
    assert first.amount == Decimal("25.50")
    assert first.type == "bonus"
    assert first.reference_id == "TXN-1"
    assert first.commission_rate == Decimal("10.5")
    assert first.currency == "EUR"

    second = drafts[1]
    assert second.type is None
    assert second.reference_id is None
    assert second.currency is None


def test_normalize_json_style_rows():
    normalizer = InputNormalizer()
    drafts = normalizer.normalize([
        {"agentCode": "AG001", "amount": 12.5, "referenceId": "R-1", "earnedAt": "2025-02-01"},
    ])

    assert drafts[0].agent_code == "AG001"
    assert drafts[0].amount == Decimal("12.5")
    assert drafts[0].reference_id == "R-1"
    assert drafts[0].earned_at == datetime(2025, 2, 1, tzinfo=timezone.utc)


def test_unparsable_amount_is_left_for_validation():
    drafts = InputNormalizer().normalize([{"Agent Code": "AG001", "Amount": "lots"}])
    assert drafts[0].amount == Decimal("0")


def test_blank_rows_are_dropped_before_numbering():
    drafts = InputNormalizer().normalize([
        {"Agent Code": "", "Amount": ""},
        {"Agent Code": "AG001", "Amount": "5"},
        {"Agent Code": "  ", "Amount": None},
        {"Agent Code": "AG002", "Amount": "6"},
    ])
    assert [(d.row_number, d.agent_code) for d in drafts] == [(1, "AG001"), (2, "AG002")]


def test_missing_required_columns_is_fatal():
    """Unrecognised headers reject the whole batch."""
    with pytest.raises(MissingColumnsError) as exc_info:
        InputNormalizer().normalize([{"Name": "Alice", "Value": "10"}])

    assert exc_info.value.message == "Upload must contain at least Agent Code and Amount columns"
    assert exc_info.value.details["missing"] == ["agent_code", "amount"]


def test_explicit_headers_are_checked_even_without_rows():
    with pytest.raises(MissingColumnsError):
        InputNormalizer().normalize([], headers=["Agent Code"])


def test_empty_payload_is_fatal():
    with pytest.raises(FatalBatchError):
        InputNormalizer().normalize([], headers=["Agent Code", "Amount"])


def test_non_list_payload_is_fatal():
    with pytest.raises(FatalBatchError):
        InputNormalizer().normalize({"Agent Code": "AG001", "Amount": "1"})

    with pytest.raises(FatalBatchError):
        InputNormalizer().normalize([{"Agent Code": "AG001", "Amount": "1"}, "oops"])


def test_batch_size_limit():
    rows = [{"Agent Code": "AG001", "Amount": "1"} for _ in range(4)]
    with pytest.raises(BatchTooLargeError) as exc_info:
        InputNormalizer(max_batch_size=3).normalize(rows)

    assert exc_info.value.status_code == 413
    assert len(InputNormalizer(max_batch_size=4).normalize(rows)) == 4


def test_parse_csv_strips_bom_and_blank_lines():
    text = "\ufeffAgent Code,Amount,Reference ID\n\nAG001, 25.50 ,TXN-1\nAG002,10\n\n"
    headers, rows = parse_csv(text)

    assert headers == ["Agent Code", "Amount", "Reference ID"]
    assert rows == [
        {"Agent Code": "AG001", "Amount": "25.50", "Reference ID": "TXN-1"},
        {"Agent Code": "AG002", "Amount": "10", "Reference ID": ""},
    ]


def test_parse_csv_empty_is_fatal():
    with pytest.raises(FatalBatchError):
        parse_csv("")

    with pytest.raises(FatalBatchError):
        parse_csv("\n\n")


def test_parse_csv_header_only_then_normalize():
    headers, rows = parse_csv("Agent Code,Amount\n")
    with pytest.raises(FatalBatchError) as exc_info:
        InputNormalizer().normalize(rows, headers=headers)

    assert exc_info.value.message == "No earnings entries found in upload"
