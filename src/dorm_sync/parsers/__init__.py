"""Readers and normalizers for the authoritative dataset."""

from .table_reader import read_table, resolve_columns, header_key
from .normalizer import (
    RecordNormalizer,
    NormalizationResult,
    coerce_date,
    coerce_number,
    excel_serial_to_datetime,
)

__all__ = [
    "read_table",
    "resolve_columns",
    "header_key",
    "RecordNormalizer",
    "NormalizationResult",
    "coerce_date",
    "coerce_number",
    "excel_serial_to_datetime",
]
