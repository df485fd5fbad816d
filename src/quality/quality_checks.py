# =========================================
# 📄 File: src/quality/quality_checks.py
# Purpose: Data Quality Check stage
# - Find records with a missing (NULL) value in any business field
# - Count NULLs per field
# - Create data quality report (markdown)
# - Optional alerting (fail when missing values are found)
# =========================================

import os  # Used for paths
import logging  # Used for logging
from datetime import datetime, timezone  # Used to timestamp reports
from typing import Any, Dict, List  # Type hints for clarity
import pandas as pd  # Result sets for the checks
from sqlalchemy import func, or_, select  # Query building (no f-string SQL)

from src.errors import DataQualityError, NotFoundError
from src.etl.table_ops import reflect_table
from src.schema import FIELDS, KEY_COLUMN

log = logging.getLogger(__name__)  # Module logger

STAGE = "quality_check"


def _checked_columns(table, fields: List[str]) -> List:
    """Resolve the business fields to check; every one of them must exist."""
    missing = [f for f in fields if f not in table.c]
    if missing:
        raise NotFoundError(f"{table.name} has no column(s) {missing}", stage=STAGE)
    return [table.c[f] for f in fields]


def find_missing_values(engine, table: str, fields: List[str] = FIELDS) -> pd.DataFrame:
    """
    Expectation: no business field holds NULL.
    Returns every record where at least one field is NULL (empty frame if none).
    """
    with engine.connect() as conn:
        tbl = reflect_table(conn, table, stage=STAGE)  # Fail fast on a missing table
        cols = _checked_columns(tbl, fields)
        stmt = select(tbl).where(or_(*[c.is_(None) for c in cols]))  # field IS NULL OR ...
        if KEY_COLUMN in tbl.c:
            stmt = stmt.order_by(tbl.c[KEY_COLUMN])  # Stable output once keys exist
        missing = pd.read_sql(stmt, conn)
    log.debug(f"{table}: {len(missing)} records with missing values")
    return missing


def missing_value_counts(engine, table: str, fields: List[str] = FIELDS) -> Dict[str, int]:
    """
    NULL count per field (COUNT(*) - COUNT(field)), in header order.
    """
    with engine.connect() as conn:
        tbl = reflect_table(conn, table, stage=STAGE)
        cols = _checked_columns(tbl, fields)
        stmt = select(*[(func.count() - func.count(c)).label(c.name) for c in cols]).select_from(tbl)
        row = conn.execute(stmt).mappings().one()
    return {name: int(row[name] or 0) for name in row.keys()}  # Empty table -> zeros


def write_quality_report(
    path: str,
    table: str,
    environment: str,
    counts: Dict[str, int],
    missing_rows: int,
) -> str:
    """
    Write the markdown report (per-field NULL counts + lineage notes).
    Returns the report path.
    """
    report_dir = os.path.dirname(path)
    if report_dir:
        os.makedirs(report_dir, exist_ok=True)  # Ensure logs/ exists
    ts = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%SZ")  # Current UTC timestamp

    with open(path, "w", encoding="utf-8") as f:
        f.write("# Data Quality Report\n\n")
        f.write(f"- Generated at: {ts}\n")
        f.write(f"- Environment: **{environment}**\n\n")
        f.write("## Lineage (simplified)\n")
        f.write("- Source: raw healthcare export (display-name columns)\n")
        f.write(f"- Working copy: `{table}` (renamed, retyped, keyed)\n")
        f.write("- Downstream: aggregation queries (reports/*.csv)\n\n")
        f.write("## Missing values per field\n\n")
        for field, n in counts.items():
            mark = "✅" if n == 0 else "❌"
            f.write(f"- {mark} `{field}`: {n}\n")
        f.write(f"\n**Records with at least one missing value:** {missing_rows}\n")

    return path


def run_quality_checks(engine, table: str, cfg: Dict[str, Any]) -> pd.DataFrame:
    """
    Runs the NULL scan over every business field, writes the markdown report,
    and returns the records with missing values.
    Raises DataQualityError when quality.fail_on_missing is set and anything is missing.
    """
    missing = find_missing_values(engine, table)
    counts = missing_value_counts(engine, table)
    report_path = write_quality_report(
        cfg["quality"]["report_path"], table, cfg["environment"], counts, len(missing)
    )

    if missing.empty:
        log.info(f"Data quality passed. Report at {report_path}")
        return missing

    log.warning(f"{len(missing)} records with missing values. See {report_path}")
    if cfg["quality"]["fail_on_missing"]:  # Alerting: make orchestration fail fast
        raise DataQualityError(
            f"{len(missing)} records with missing values in {table}", stage=STAGE
        )
    return missing
