from datetime import datetime

import pandas as pd
import pytest

from dorm_sync.config import CollectionSpec, get_default_config
from dorm_sync.parsers.normalizer import (
    RecordNormalizer,
    coerce_date,
    coerce_number,
    excel_serial_to_datetime,
)
from dorm_sync.parsers.table_reader import read_table, resolve_columns
from dorm_sync.utils.exceptions import FatalInputError, MissingColumnsError

from helpers import EMPLOYEE_COLUMNS, csv_bytes, employee_row


def _spec(name="employees"):
    return CollectionSpec(**get_default_config()["collections"][name])


def _normalize(rows, columns=None, name="employees"):
    df = read_table(csv_bytes(rows, columns), filename="data.csv")
    return RecordNormalizer(_spec(name)).normalize(df)


def test_serial_conversion():
    assert excel_serial_to_datetime(45000) == datetime(2023, 3, 15)
    assert excel_serial_to_datetime(25569) == datetime(1970, 1, 1)


def test_coerce_date_inputs():
    formats = ["%Y-%m-%d", "%m/%d/%Y"]
    assert coerce_date(45000, formats) == datetime(2023, 3, 15)
    assert coerce_date("45000", formats) == datetime(2023, 3, 15)
    assert coerce_date("2024-02-29", formats) == datetime(2024, 2, 29)
    assert coerce_date("12/31/2024", formats) == datetime(2024, 12, 31)
    assert coerce_date(pd.Timestamp("2024-05-06 13:45"), formats) == datetime(2024, 5, 6)
    assert coerce_date(None, formats) is None
    assert coerce_date("  ", formats) is None


def test_coerce_date_rejects_garbage():
    with pytest.raises(ValueError):
        coerce_date("not-a-date", ["%Y-%m-%d"])
    with pytest.raises(ValueError):
        coerce_date(-5, ["%Y-%m-%d"])


def test_coerce_number_defaults_to_zero():
    assert coerce_number(None) == 0.0
    assert coerce_number("") == 0.0
    assert coerce_number("n/a") == 0.0
    assert coerce_number("$1,250.50") == 1250.5
    assert coerce_number(900) == 900.0


def test_rows_with_same_key_fold_last_seen_wins():
    rows = [
        employee_row("U1", employee="A"),
        employee_row("U1", employee="B"),
        employee_row("U1", employee="C", rent="4000"),
    ]
    result = _normalize(rows)

    assert len(result.records) == 1
    record = result.records[0]
    assert record.fields["name"] == "C"
    assert record.fields["rent"] == 4000.0
    assert record.source_rows == [2, 3, 4]


def test_typed_fields():
    result = _normalize([employee_row("U1", arrival="45000", frequency="2", rent="")])
    fields = result.records[0].fields

    assert fields["arrival"] == datetime(2023, 3, 15)
    assert fields["paymentFrequency"] == 2
    assert fields["rent"] == 0.0
    assert fields["end_date"] == datetime(2025, 8, 31)
    assert result.records[0].references == {"assigned_property_id": "東海"}


def test_invalid_date_rejects_only_that_row():
    rows = [
        employee_row("U1", arrival="not-a-date"),
        employee_row("U2"),
    ]
    result = _normalize(rows)

    assert [r.natural_key for r in result.records] == ["U2"]
    assert len(result.rejected) == 1
    rejected = result.rejected[0]
    assert rejected.row_number == 2
    assert rejected.natural_key == "U1"
    assert "arrival" in rejected.reason


def test_blank_key_rows_are_skipped():
    rows = [employee_row("U1"), employee_row("", employee="Nobody"), employee_row("U2")]
    result = _normalize(rows)

    assert [r.natural_key for r in result.records] == ["U1", "U2"]
    assert result.skipped_blank_rows == 1
    assert result.rejected == []


def test_headers_match_case_insensitively():
    columns = [c.upper() if c in ("uid", "employee") else f" {c} " for c in EMPLOYEE_COLUMNS]
    rows = [dict(zip(columns, employee_row("U1").values()))]
    result = _normalize(rows, columns=columns)

    assert result.records[0].natural_key == "U1"
    assert result.records[0].fields["name"] == "Worker U1"


def test_missing_required_columns_are_fatal():
    columns = [c for c in EMPLOYEE_COLUMNS if c not in ("rent", "arrival")]
    rows = [{c: v for c, v in employee_row("U1").items() if c in columns}]

    with pytest.raises(MissingColumnsError) as exc_info:
        _normalize(rows, columns=columns)

    assert sorted(exc_info.value.missing) == ["arrival", "rent"]


def test_resolve_columns_optional_column_absent():
    mapping = resolve_columns(["UID", "Name"], {"uid": True, "property": False})
    assert mapping == {"uid": "UID", "property": None}


def test_invoice_rows_aggregate_names():
    columns = [
        "recent_invoice",
        "ctr",
        "name",
        "rental_period_start_date",
        "rental_period_end_date",
        "rent",
    ]
    rows = [
        {
            "recent_invoice": "INV-7",
            "ctr": "CTR-9",
            "name": name,
            "rental_period_start_date": "2025-01-01",
            "rental_period_end_date": "2025-01-31",
            "rent": "6400",
        }
        for name in ("Chan", "Lee", "Chan")
    ]
    result = _normalize(rows, columns=columns, name="invoices")

    assert len(result.records) == 1
    record = result.records[0]
    assert record.fields["employee_names"] == ["Chan", "Lee"]
    assert record.fields["amount"] == 6400.0
    assert record.references == {"property_id": None}


def test_read_table_missing_file(tmp_path):
    with pytest.raises(FatalInputError):
        read_table(tmp_path / "nope.xlsx")


def test_read_table_xlsx(tmp_path):
    path = tmp_path / "dormitory.xlsx"
    pd.DataFrame([employee_row("U1", arrival=45000)]).to_excel(path, index=False)

    df = read_table(path)
    result = RecordNormalizer(_spec()).normalize(df)

    assert result.records[0].fields["arrival"] == datetime(2023, 3, 15)
