# =========================================
# 📄 File: src/etl/normalize.py
# Purpose: Schema Normalizer stage
# - Rename display-name columns to snake_case identifiers
# - Coerce date-like text to DATE and currency-like values to DECIMAL(10, 2)
# - Surface every unparseable value (row + column), never drop it
# =========================================

import logging
import re
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict

import pandas as pd
from sqlalchemy import Date, Numeric, text
from sqlalchemy.types import TypeEngine

from src.errors import DuplicateColumnError, NotFoundError, TypeCoercionError
from src.etl.table_ops import copy_column, quote, read_table, rebuild_table, reflect_table
from src.schema import RENAME_MAP, TYPE_TARGETS

log = logging.getLogger(__name__)

STAGE = "normalize"

_CURRENCY_NOISE = re.compile(r"[$,\s]")  # "$1,234.50 " -> "1234.50"


# -----------------------
# Renaming
# -----------------------
def rename_columns(engine, table: str, mapping: Dict[str, str] = RENAME_MAP) -> Dict[str, str]:
    """
    Rename every mapped column exactly once.
    Raises DuplicateColumnError if a target name is already present (table already normalized)
    and NotFoundError if a mapped source column is missing.
    Returns the renames that were applied.
    """
    with engine.begin() as conn:
        current = [c.name for c in reflect_table(conn, table, stage=STAGE).columns]

        clashes = [new for old, new in mapping.items() if new in current and new != old]
        if clashes:
            raise DuplicateColumnError(
                f"{table} already has column(s) {clashes}; schema looks normalized already",
                stage=STAGE,
            )

        missing = [old for old in mapping if old not in current]
        if missing:
            raise NotFoundError(f"{table} has no column(s) {missing}", stage=STAGE)

        unmapped = [c for c in current if c not in mapping]
        if unmapped:
            log.warning(f"{table}: columns without a rename rule left as-is: {unmapped}")

        applied = {}
        for old, new in mapping.items():
            if old == new:
                continue
            conn.execute(
                text(f"ALTER TABLE {quote(conn, table)} RENAME COLUMN {quote(conn, old)} TO {quote(conn, new)}")
            )
            applied[old] = new

    log.info(f"Renamed {len(applied)} columns on {table}")
    return applied


# -----------------------
# Type coercion
# -----------------------
def _is_blank(value) -> bool:
    """NULLs and empty/whitespace text count as missing, not as bad values."""
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return bool(pd.isna(value))


def _parse_date(value) -> date:
    """ISO-8601 text or a date/datetime value -> datetime.date (any offset is dropped, wall date kept)."""
    if isinstance(value, datetime):                        # includes pd.Timestamp
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(str(value).strip()).date()


def coerce_dates(values: pd.Series, column: str) -> pd.Series:
    """
    Convert ISO-8601 text (or existing date/datetime values) to datetime.date.
    Values are parsed one by one, so mixed offsets and far-future sentinels
    such as 9999-12-31 are accepted.
    Blank values become None; anything else that fails to parse raises TypeCoercionError.
    """
    out = []
    for position, value in enumerate(values, start=1):
        if _is_blank(value):
            out.append(None)
            continue
        try:
            out.append(_parse_date(value))
        except ValueError as e:
            raise TypeCoercionError(column, position, value, "DATE", stage=STAGE) from e

    return pd.Series(out, index=values.index, dtype=object)


def coerce_decimals(values: pd.Series, column: str, precision: int = 10, scale: int = 2) -> pd.Series:
    """
    Convert numbers or currency-like text to Decimal rounded half-up to `scale` places.
    Values that are not numeric, or do not fit DECIMAL(precision, scale), raise TypeCoercionError.
    """
    quantum = Decimal(1).scaleb(-scale)                    # 2 -> Decimal("0.01")
    limit = Decimal(10) ** (precision - scale)
    target = f"DECIMAL({precision}, {scale})"

    out = []
    for position, value in enumerate(values, start=1):
        if _is_blank(value):
            out.append(None)
            continue
        raw = _CURRENCY_NOISE.sub("", value) if isinstance(value, str) else value
        try:
            amount = Decimal(str(raw)).quantize(quantum, rounding=ROUND_HALF_UP)
        except ArithmeticError as e:                         # decimal.InvalidOperation
            raise TypeCoercionError(column, position, value, target, stage=STAGE) from e
        if not amount.is_finite() or abs(amount) >= limit:
            raise TypeCoercionError(column, position, value, target, stage=STAGE)
        out.append(amount)

    return pd.Series(out, index=values.index, dtype=object)


def _coerce_column(values: pd.Series, column: str, target: TypeEngine) -> pd.Series:
    if isinstance(target, Date):
        return coerce_dates(values, column)
    if isinstance(target, Numeric):
        return coerce_decimals(values, column, precision=target.precision, scale=target.scale)
    raise ValueError(f"No coercion rule for {column} -> {target!r}")


def coerce_types(engine, table: str, targets: Dict[str, TypeEngine] = TYPE_TARGETS) -> int:
    """
    Convert the target columns in place (table rebuilt with the new column types).
    All values are checked before anything is written.
    Returns the number of rows rewritten.
    """
    with engine.begin() as conn:
        current = reflect_table(conn, table, stage=STAGE)

        missing = [c for c in targets if c not in current.c]
        if missing:
            raise NotFoundError(f"{table} has no column(s) {missing}", stage=STAGE)

        df = read_table(conn, current)
        for column, target in targets.items():
            df[column] = _coerce_column(df[column], column, target)

        columns = [copy_column(c, targets.get(c.name)) for c in current.columns]
        rebuild_table(conn, table, columns, df)

    log.info(f"Coerced {', '.join(targets)} on {table} ({len(df)} rows)")
    return len(df)


def normalize_schema(engine, table: str) -> int:
    """Rename then coerce; returns the number of rows in the normalized table."""
    rename_columns(engine, table)
    return coerce_types(engine, table)
