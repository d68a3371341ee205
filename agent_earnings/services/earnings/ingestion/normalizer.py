"""
Input normalizer: maps heterogeneous column headers and JSON fields onto
canonical EarningDraft fields.
"""

import re
from collections.abc import Mapping
from datetime import datetime, timezone, date
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

import structlog

from agent_earnings.core.exceptions import (
    BatchTooLargeError,
    FatalBatchError,
    MissingColumnsError,
)
from ..core.types import EarningDraft


logger = structlog.get_logger(__name__)


# Canonical field -> accepted header spellings (compared after _header_key)
FIELD_ALIASES: Dict[str, List[str]] = {
    "agent_code": ["agent code", "agentcode", "agent", "agent id", "code"],
    "amount": ["amount", "earning amount", "value amount", "sum"],
    "type": ["type", "earning type", "kind"],
    "description": ["description", "desc", "note", "notes"],
    "reference_id": ["reference id", "referenceid", "reference", "ref", "ref id"],
    "commission_rate": ["commission rate", "commissionrate", "rate"],
    "currency": ["currency", "ccy"],
    "earned_at": ["earned at", "earnedat", "date", "earned date"],
}

REQUIRED_FIELDS = ("agent_code", "amount")

_HEADER_STRIP = re.compile(r"[\s_\-]+")


def _header_key(header: str) -> str:
    return _HEADER_STRIP.sub("", str(header)).lower()


_ALIAS_LOOKUP: Dict[str, str] = {
    _header_key(alias): canonical
    for canonical, aliases in FIELD_ALIASES.items()
    for alias in aliases
}


def resolve_header(header: str) -> Optional[str]:
    """Return the canonical field for a header, or None if it is not recognised."""
    return _ALIAS_LOOKUP.get(_header_key(header))


def parse_decimal(value: Any) -> Optional[Decimal]:
    """Lenient decimal parsing; returns None for anything that is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    else:
        text = str(value).strip().replace(",", "").lstrip("$").rstrip("%").strip()
        if not text:
            return None
        try:
            result = Decimal(text)
        except InvalidOperation:
            return None
    if not result.is_finite():
        return None
    return result


def parse_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO dates/datetimes; naive values are taken as UTC."""
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _is_blank_row(row: Mapping) -> bool:
    return all(_clean_text(v) is None for v in row.values())


class InputNormalizer:
    """
    Turns already-parsed rows (CSV rows or JSON objects) into EarningDraft objects.

    Only missing required columns, an unparsable payload and batch-size overflow
    are fatal; malformed cells are coerced and left for the validator.
    """

    def __init__(self, max_batch_size: int = 1000):
        self.max_batch_size = max_batch_size
        self.logger = logger.bind(service="input_normalizer")

    def normalize(
        self,
        rows: Any,
        headers: Optional[Iterable[str]] = None,
    ) -> List[EarningDraft]:
        if not isinstance(rows, list):
            raise FatalBatchError(
                "Earnings payload must be a list of rows",
                {"received": type(rows).__name__}
            )

        for index, row in enumerate(rows):
            if not isinstance(row, Mapping):
                raise FatalBatchError(
                    f"Row {index + 1} is not an object",
                    {"row_number": index + 1, "received": type(row).__name__}
                )

        header_list = list(headers) if headers is not None else self._collect_headers(rows)
        column_map = self._build_column_map(header_list)

        missing = [f for f in REQUIRED_FIELDS if f not in column_map.values()]
        if missing:
            raise MissingColumnsError(missing=missing, headers=header_list)

        data_rows = [row for row in rows if not _is_blank_row(row)]
        if not data_rows:
            raise FatalBatchError("No earnings entries found in upload")

        if len(data_rows) > self.max_batch_size:
            raise BatchTooLargeError(size=len(data_rows), limit=self.max_batch_size)

        drafts = [
            self._to_draft(row_number, row, column_map)
            for row_number, row in enumerate(data_rows, start=1)
        ]

        self.logger.info(
            "Normalized earnings rows",
            rows=len(rows),
            drafts=len(drafts),
            columns=sorted(set(column_map.values()))
        )
        return drafts

    @staticmethod
    def _collect_headers(rows: List[Mapping]) -> List[str]:
        seen: Dict[str, None] = {}
        for row in rows:
            for key in row.keys():
                seen.setdefault(str(key), None)
        return list(seen)

    @staticmethod
    def _build_column_map(headers: List[str]) -> Dict[str, str]:
        """Map original header -> canonical field; the first header for a field wins."""
        column_map: Dict[str, str] = {}
        taken = set()
        for header in headers:
            canonical = resolve_header(header)
            if canonical and canonical not in taken:
                column_map[header] = canonical
                taken.add(canonical)
        return column_map

    @staticmethod
    def _to_draft(row_number: int, row: Mapping, column_map: Dict[str, str]) -> EarningDraft:
        values: Dict[str, Any] = {}
        for key, value in row.items():
            canonical = column_map.get(str(key))
            if canonical:
                values[canonical] = value

        amount = parse_decimal(values.get("amount"))
        currency = _clean_text(values.get("currency"))

        return EarningDraft(
            row_number=row_number,
            agent_code=_clean_text(values.get("agent_code")) or "",
            amount=amount if amount is not None else Decimal("0"),
            type=_clean_text(values.get("type")),
            description=_clean_text(values.get("description")),
            reference_id=_clean_text(values.get("reference_id")),
            commission_rate=parse_decimal(values.get("commission_rate")),
            currency=currency.upper() if currency else None,
            earned_at=parse_datetime(values.get("earned_at")),
            raw=dict(row),
        )
