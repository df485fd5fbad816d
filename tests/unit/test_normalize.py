# tests/unit/test_normalize.py
# ------------------------------------------------------------
# Purpose: Unit tests for the schema normalizer: renaming to
#          snake_case and DATE / DECIMAL(10, 2) coercion.
# ------------------------------------------------------------

from datetime import date
from decimal import Decimal

import pandas as pd
import pytest
from sqlalchemy import inspect, select

from src.errors import AlreadyExistsError, DuplicateColumnError, NotFoundError, TypeCoercionError
from src.etl.normalize import (
    coerce_dates,
    coerce_decimals,
    coerce_types,
    normalize_schema,
    rename_columns,
)
from src.etl.snapshot import snapshot_table
from src.etl.table_ops import reflect_table
from src.schema import FIELDS, RENAME_MAP


@pytest.fixture
def snapshot(engine, source_table):
    snapshot_table(engine, source_table, "working")
    return "working"


def _column_types(engine, table):
    return {c["name"]: c["type"] for c in inspect(engine).get_columns(table)}


# -----------------------
# Renaming
# -----------------------
def test_rename_columns_applies_full_map(engine, snapshot):
    applied = rename_columns(engine, snapshot)

    # Every display name was renamed exactly once
    assert applied == RENAME_MAP
    assert list(_column_types(engine, snapshot)) == FIELDS


def test_rename_columns_rerun_raises_duplicate_column(engine, snapshot):
    rename_columns(engine, snapshot)

    with pytest.raises(DuplicateColumnError) as exc:
        rename_columns(engine, snapshot)
    # DuplicateColumnError is part of the AlreadyExists family
    assert isinstance(exc.value, AlreadyExistsError)
    assert exc.value.stage == "normalize"


def test_rename_columns_missing_source_column(engine, load_raw, raw_frame):
    load_raw(raw_frame.drop(columns=["Medication"]))
    snapshot_table(engine, "healthcare_dataset", "working")

    with pytest.raises(NotFoundError, match="Medication"):
        rename_columns(engine, "working")


def test_rename_columns_leaves_unmapped_columns(engine, load_raw, raw_frame):
    load_raw(raw_frame.assign(Notes="x"))
    snapshot_table(engine, "healthcare_dataset", "working")

    rename_columns(engine, "working")

    # The extra column survives untouched, after the renamed ones
    assert list(_column_types(engine, "working")) == FIELDS + ["Notes"]


def test_rename_columns_missing_table(engine):
    with pytest.raises(NotFoundError):
        rename_columns(engine, "missing")


# -----------------------
# Value converters
# -----------------------
def test_coerce_dates_accepts_iso_text_and_dates():
    values = pd.Series(["2024-01-31", "2024-02-01 00:00:00", date(2024, 3, 1), None, "  "], dtype=object)

    out = coerce_dates(values, "date_of_admission")

    assert list(out) == [date(2024, 1, 31), date(2024, 2, 1), date(2024, 3, 1), None, None]


def test_coerce_dates_reports_row_and_column():
    values = pd.Series(["2024-01-31", "2024-13-40", "yesterday"], dtype=object)

    with pytest.raises(TypeCoercionError) as exc:
        coerce_dates(values, "discharge_date")

    # First offending record is row 2 (1-based), nothing silently dropped
    assert exc.value.row == 2
    assert exc.value.column == "discharge_date"
    assert exc.value.value == "2024-13-40"
    assert exc.value.target == "DATE"


def test_coerce_dates_mixed_offsets():
    values = pd.Series(["2024-01-05", "2024-01-06T10:00:00+02:00", "2024-01-07 23:30:00"], dtype=object)

    out = coerce_dates(values, "date_of_admission")

    # The calendar date as written, offset or not
    assert list(out) == [date(2024, 1, 5), date(2024, 1, 6), date(2024, 1, 7)]


def test_coerce_dates_mixed_offsets_with_bad_value_names_row():
    values = pd.Series(["2024-01-05", "2024-01-06T10:00:00+02:00", "06/01/2024"], dtype=object)

    with pytest.raises(TypeCoercionError) as exc:
        coerce_dates(values, "date_of_admission")

    assert exc.value.row == 3
    assert exc.value.column == "date_of_admission"


def test_coerce_dates_keeps_far_future_sentinel():
    values = pd.Series(["2024-01-05", "9999-12-31", "0001-01-01"], dtype=object)

    out = coerce_dates(values, "discharge_date")

    assert list(out) == [date(2024, 1, 5), date(9999, 12, 31), date(1, 1, 1)]


def test_coerce_decimals_rounds_half_up_and_strips_currency():
    values = pd.Series([18856.281305978155, "$1,234.505", Decimal("7"), 0.125, None], dtype=object)

    out = coerce_decimals(values, "billing_amount")

    assert list(out) == [Decimal("18856.28"), Decimal("1234.51"), Decimal("7.00"), Decimal("0.13"), None]


@pytest.mark.parametrize("bad", ["n/a", "12.3.4", "NaN", 123456789.0])
def test_coerce_decimals_rejects_unparseable_or_out_of_range(bad):
    values = pd.Series([10.0, bad], dtype=object)

    with pytest.raises(TypeCoercionError) as exc:
        coerce_decimals(values, "billing_amount")

    assert exc.value.row == 2
    assert exc.value.target == "DECIMAL(10, 2)"


# -----------------------
# Table-level coercion
# -----------------------
def test_normalize_schema_retypes_columns(engine, snapshot):
    rows = normalize_schema(engine, snapshot)
    assert rows == 6

    types = _column_types(engine, snapshot)
    # DATE and NUMERIC(10, 2) replace the raw text / float storage
    assert types["date_of_admission"].python_type is date
    assert types["discharge_date"].python_type is date
    assert (types["billing_amount"].precision, types["billing_amount"].scale) == (10, 2)

    with engine.connect() as conn:
        tbl = reflect_table(conn, snapshot)
        first = conn.execute(select(tbl).limit(1)).mappings().one()
    assert first["date_of_admission"] == date(2024, 1, 5)
    assert first["billing_amount"] == Decimal("1000.00")
    # Row order is preserved by the rebuild
    assert first["full_name"] == "Alice Smith"


def test_coerce_types_failure_leaves_table_untouched(engine, load_raw, raw_frame):
    bad = raw_frame.copy()
    bad.loc[3, "Discharge Date"] = "not a date"
    load_raw(bad)
    snapshot_table(engine, "healthcare_dataset", "working")
    rename_columns(engine, "working")

    with pytest.raises(TypeCoercionError) as exc:
        coerce_types(engine, "working")
    assert exc.value.row == 4
    assert "discharge_date" in str(exc.value)

    # Nothing was written: the column still holds the raw text
    stored = pd.read_sql_table("working", engine)
    assert stored.loc[3, "discharge_date"] == "not a date"


def test_coerce_types_is_repeatable(engine, snapshot):
    normalize_schema(engine, snapshot)

    # Values already in DATE / DECIMAL form convert to themselves
    assert coerce_types(engine, snapshot) == 6
