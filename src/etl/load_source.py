#!/usr/bin/env python3
"""
Source Loading
--------------
 - Loads the raw healthcare CSV (local path or s3:// URI) into the source table
 - Keeps the original display-name header; the pipeline renames on its working copy
 - Uses an audit table (with timestamps) to record every stage run
"""

import os
import logging
from datetime import datetime

import pandas as pd
from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, String, Table, Text

from src.cloud.s3_handler import read_csv_from_s3
from src.schema import SOURCE_COLUMNS

log = logging.getLogger(__name__)

AUDIT_TABLE = "pipeline_audit"

_audit_md = MetaData()
audit_runs = Table(
    AUDIT_TABLE,
    _audit_md,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("stage", String(64), nullable=False),
    Column("table_name", String(255), nullable=False),
    Column("started_at", DateTime(timezone=True), nullable=False),
    Column("finished_at", DateTime(timezone=True), nullable=False),
    Column("row_count", Integer, nullable=False),
    Column("success", Boolean, nullable=False),
    Column("error", Text),
)


# -----------------------
# Data preparation
# -----------------------
def read_csv(path: str) -> pd.DataFrame:
    """Read the source CSV from disk or S3."""
    if path.startswith("s3://"):
        df = read_csv_from_s3(path)
    else:
        if not os.path.exists(path):
            raise FileNotFoundError(path)
        df = pd.read_csv(path)
    log.info(f"Loaded {len(df)} rows from {path}")
    return df


def prepare_dataframe(df: pd.DataFrame) -> pd.DataFrame:
    """
    Keep the fifteen source columns in header order.
    Header names are matched after trimming stray whitespace.
    """
    out = df.rename(columns=lambda c: str(c).strip())
    missing = [c for c in SOURCE_COLUMNS if c not in out.columns]
    if missing:
        raise ValueError(f"source CSV: missing required columns: {missing}")
    extra = [c for c in out.columns if c not in SOURCE_COLUMNS]
    if extra:
        log.warning(f"source CSV: ignoring unexpected columns {extra}")
    return out[SOURCE_COLUMNS].copy()


# -----------------------
# Data loading
# -----------------------
def load_source(engine, path: str, table: str) -> int:
    """
    Replace `table` with the contents of the CSV at `path`.
    Values are stored as read (dates and amounts stay text/float until normalization).
    Returns the number of rows loaded.
    """
    df = prepare_dataframe(read_csv(path))
    with engine.begin() as conn:
        df.to_sql(table, conn, index=False, if_exists="replace", chunksize=5000)
    log.info(f"Loaded {len(df)} rows into {table}")
    return len(df)


# -----------------------
# Audit logging
# -----------------------
def ensure_audit_table(engine):
    """Create audit table for tracking stage runs if it doesn’t exist."""
    _audit_md.create_all(engine, tables=[audit_runs], checkfirst=True)
    log.debug("Ensured pipeline_audit table exists.")


def audit(engine, stage: str, table: str, start: datetime, end: datetime, rows: int, success=True, error=None):
    """Record audit trail for every stage run using SQLAlchemy Core insert()."""
    with engine.begin() as conn:
        conn.execute(
            audit_runs.insert().values(
                stage=stage,
                table_name=table,
                started_at=start,
                finished_at=end,
                row_count=rows,
                success=success,
                error=error,
            )
        )
