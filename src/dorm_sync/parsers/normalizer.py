"""
Record normalizer.
Turns raw spreadsheet rows into typed ExternalRecords, one per natural key.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Mapping, Optional
import logging
import math
import re

import pandas as pd

from ..config import CollectionSpec, FieldSpec, InputConfig
from ..models.records import ExternalRecord, RejectedRow
from ..utils.exceptions import InvalidDate, RowRejected
from .table_reader import header_key, resolve_columns

logger = logging.getLogger(__name__)

UNIX_EPOCH = datetime(1970, 1, 1)

# Serial number of 1970-01-01 in the 1900 date system; absorbs the
# phantom 1900-02-29 that spreadsheet serials count
SERIAL_CORRECTION_OFFSET = 25569

# Largest serial a spreadsheet accepts (9999-12-31)
MAX_SERIAL = 2958465

_NUMBER_JUNK = re.compile(r"[^0-9eE+\-.]")


def excel_serial_to_datetime(serial: float) -> datetime:
    """Convert a spreadsheet day serial to a midnight datetime."""
    moment = UNIX_EPOCH + timedelta(seconds=(serial - SERIAL_CORRECTION_OFFSET) * 86400)
    return datetime(moment.year, moment.month, moment.day)


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def coerce_date(value: Any, formats: list[str]) -> Optional[datetime]:
    """
    Parse a date cell.

    Accepts native dates, spreadsheet serials, and strings. Blank cells
    give None; anything else that cannot be parsed raises ValueError.
    """
    if is_blank(value):
        return None

    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return _serial_or_error(float(value))

    text = str(value).strip()
    for fmt in formats:
        try:
            parsed = datetime.strptime(text, fmt)
            return datetime(parsed.year, parsed.month, parsed.day)
        except ValueError:
            continue

    try:
        return _serial_or_error(float(text))
    except ValueError:
        pass

    # Try pandas parser as fallback
    parsed = pd.to_datetime(text, errors="coerce")
    if pd.isna(parsed):
        raise ValueError(f"unparseable date {value!r}")
    return datetime(parsed.year, parsed.month, parsed.day)


def _serial_or_error(serial: float) -> datetime:
    if math.isnan(serial) or not 0 < serial <= MAX_SERIAL:
        raise ValueError(f"date serial out of range: {serial}")
    return excel_serial_to_datetime(serial)


def coerce_number(value: Any) -> float:
    """Parse an amount; blank or non-numeric cells count as 0."""
    if is_blank(value) or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else 0.0
    cleaned = _NUMBER_JUNK.sub("", str(value))
    try:
        number = float(cleaned)
    except ValueError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def coerce_string(value: Any) -> Optional[str]:
    if is_blank(value):
        return None
    if isinstance(value, float) and value.is_integer():
        # Numeric cells such as contract numbers come back as floats
        return str(int(value))
    return str(value).strip()


def coerce_value(spec: FieldSpec, value: Any, formats: list[str]) -> Any:
    if spec.type == "date":
        return coerce_date(value, formats)
    if spec.type == "number":
        return coerce_number(value)
    if spec.type == "integer":
        return int(coerce_number(value))
    return coerce_string(value)


@dataclass
class NormalizationResult:
    """Outcome of normalizing a whole dataset."""

    records: list[ExternalRecord] = field(default_factory=list)
    rejected: list[RejectedRow] = field(default_factory=list)
    skipped_blank_rows: int = 0
    rows_total: int = 0

    def reference_names(self, id_field: str) -> list[str]:
        """Distinct raw names for one reference, in first-seen order."""
        names: list[str] = []
        for record in self.records:
            name = record.references.get(id_field)
            if name and name not in names:
                names.append(name)
        return names


class RecordNormalizer:
    """
    Normalizer for one collection's view of the dataset.

    Pure: rows in, records/rejections out. Missing required columns are
    fatal; per-row problems reject only that row.
    """

    def __init__(self, spec: CollectionSpec, input_config: Optional[InputConfig] = None):
        self.spec = spec
        self.input_config = input_config or InputConfig()
        self.aggregate_fields = {
            name for name, field_spec in spec.fields.items() if field_spec.aggregate
        }

    def required_columns(self) -> dict[str, bool]:
        wanted: dict[str, bool] = {self.spec.natural_key_column: True}
        for field_spec in self.spec.fields.values():
            wanted[field_spec.column] = wanted.get(field_spec.column, False) or field_spec.required
        for ref in self.spec.references:
            wanted[ref.column] = wanted.get(ref.column, False) or ref.required
        return wanted

    def normalize(self, df: pd.DataFrame) -> NormalizationResult:
        """
        Normalize a DataFrame and fold rows by natural key.

        Raises:
            MissingColumnsError: If a required column is absent
        """
        column_map = resolve_columns(df.columns, self.required_columns())
        result = NormalizationResult(rows_total=len(df))
        by_key: dict[str, ExternalRecord] = {}
        positions = {
            key: (df.columns.get_loc(actual) if actual is not None else None)
            for key, actual in column_map.items()
        }

        for idx, row in enumerate(df.itertuples(index=False, name=None)):
            # Header occupies spreadsheet row 1
            row_number = idx + 2
            values = {
                key: (row[pos] if pos is not None else None)
                for key, pos in positions.items()
            }
            try:
                record = self.normalize_row(values, row_number)
            except RowRejected as e:
                logger.warning(f"Rejected row: {e}")
                result.rejected.append(
                    RejectedRow(row_number=e.row_number, reason=e.reason, natural_key=e.natural_key)
                )
                continue

            if record is None:
                result.skipped_blank_rows += 1
                continue

            existing = by_key.get(record.natural_key)
            if existing is None:
                by_key[record.natural_key] = record
            else:
                logger.debug(
                    f"Row {row_number}: natural key {record.natural_key} repeated, merging"
                )
                existing.merge(record, self.aggregate_fields)

        result.records = list(by_key.values())
        logger.info(
            f"Normalized {result.rows_total} rows into {len(result.records)} records "
            f"({len(result.rejected)} rejected, {result.skipped_blank_rows} blank)"
        )
        return result

    def normalize_row(
        self, values: Mapping[str, Any], row_number: int
    ) -> Optional[ExternalRecord]:
        """
        Convert one row to an ExternalRecord.

        Args:
            values: Cell values keyed by normalized header name
            row_number: Spreadsheet row number for error reporting

        Returns:
            The record, or None for rows without a natural key

        Raises:
            RowRejected: If a cell cannot be coerced
        """
        natural_key = coerce_string(values.get(header_key(self.spec.natural_key_column)))
        if not natural_key:
            return None

        fields: dict[str, Any] = {}
        for name, field_spec in self.spec.fields.items():
            raw = values.get(header_key(field_spec.column))
            try:
                value = coerce_value(field_spec, raw, self.input_config.date_formats)
            except ValueError as e:
                if field_spec.type == "date":
                    raise InvalidDate(
                        row_number, field_spec.column, raw, natural_key=natural_key
                    ) from e
                raise RowRejected(
                    row_number,
                    f"invalid value in column '{field_spec.column}': {raw!r}",
                    natural_key=natural_key,
                ) from e
            if field_spec.aggregate:
                value = [value] if value is not None else []
            fields[name] = value

        references = {
            ref.id_field: coerce_string(values.get(header_key(ref.column)))
            for ref in self.spec.references
        }

        return ExternalRecord(
            natural_key=natural_key,
            fields=fields,
            references=references,
            source_rows=[row_number],
        )
