"""
Batch ingestion: normalization, validation, deduplication and processing.
"""

from .normalizer import InputNormalizer, parse_decimal, parse_datetime, resolve_header
from .validator import DraftValidator
from .deduplicator import Deduplicator, ReferenceRegistry
from .batch_processor import BatchProcessor, build_earning_record

__all__ = [
    "InputNormalizer",
    "parse_decimal",
    "parse_datetime",
    "resolve_header",
    "DraftValidator",
    "Deduplicator",
    "ReferenceRegistry",
    "BatchProcessor",
    "build_earning_record",
]
