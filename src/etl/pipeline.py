# =========================================
# 📄 File: src/etl/pipeline.py
# Purpose: Healthcare dataset pipeline (single entry point)
# - Snapshot the source table into a working copy
# - Normalize schema (rename + retype), add surrogate key and indexes
# - Check missing values, run the analytical queries, export results
# =========================================

import time  # Used to measure processing time for performance metrics
import logging  # Used for structured logging of pipeline stages
from dataclasses import dataclass, field
from datetime import datetime, timezone  # timezone-aware UTC
from typing import Any, Callable, Dict, Optional

import pandas as pd

from src.analysis.aggregations import export_results, run_all_queries
from src.errors import HealthcareEtlError
from src.etl.keys import provision_keys
from src.etl.load_source import audit, ensure_audit_table, load_source
from src.etl.normalize import normalize_schema
from src.etl.snapshot import snapshot_table
from src.quality.quality_checks import run_quality_checks

log = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    rows: int
    missing: pd.DataFrame
    results: Dict[str, pd.DataFrame] = field(default_factory=dict)
    exported: Dict[str, str] = field(default_factory=dict)
    elapsed: float = 0.0


def _row_count(outcome) -> int:
    if isinstance(outcome, int):
        return outcome
    if isinstance(outcome, (pd.DataFrame, dict)):
        return len(outcome)  # records, or result sets for the aggregate stage
    return 0


def run_stage(engine, stage: str, table: str, step: Callable[[], Any]):
    """
    Run one stage, audit it, and fail fast.
    Errors are tagged with the stage name, logged, audited and re-raised;
    nothing already done by earlier stages is rolled back.
    """
    start = datetime.now(timezone.utc)
    try:
        outcome = step()
    except Exception as e:
        if isinstance(e, HealthcareEtlError) and e.stage is None:
            e.stage = stage
        log.error(f"Stage '{stage}' failed on {table}: {e}")
        audit(engine, stage, table, start, datetime.now(timezone.utc), 0, success=False, error=str(e))
        raise
    audit(engine, stage, table, start, datetime.now(timezone.utc), _row_count(outcome))
    log.info(f"Stage '{stage}' done")
    return outcome


def run_pipeline(
    engine,
    cfg: Dict[str, Any],
    load_csv: Optional[str] = None,
    export: bool = True,
) -> PipelineResult:
    """
    Stages, in order (each depends only on the previous one's table):
      0) Load source CSV (only when load_csv is given).
      1) Snapshot source -> working copy.
      2) Normalize schema (rename + coerce types).
      3) Provision surrogate key + indexes.
      4) Quality check (missing values + report).
      5) Aggregations (+ CSV export).
    """
    started = time.time()
    env = cfg.get("environment", "dev")
    source = cfg["tables"]["source"]
    working = cfg["tables"]["working"]

    ensure_audit_table(engine)

    if load_csv:
        run_stage(engine, "load_source", source, lambda: load_source(engine, load_csv, source))

    rows = run_stage(engine, "snapshot", working, lambda: snapshot_table(engine, source, working))
    run_stage(engine, "normalize", working, lambda: normalize_schema(engine, working))
    run_stage(
        engine,
        "provision_keys",
        working,
        lambda: provision_keys(engine, working, key_length=cfg["index_key_length"]),
    )
    missing = run_stage(engine, "quality_check", working, lambda: run_quality_checks(engine, working, cfg))
    results = run_stage(engine, "aggregate", working, lambda: run_all_queries(engine, working))

    exported = export_results(results, cfg["output_dir"]) if export else {}

    elapsed = time.time() - started
    log.info(
        f"[{str(env).upper()}] Pipeline completed in {elapsed:.2f}s | "
        f"ROWS={rows} MISSING={len(missing)} QUERIES={len(results)}"
    )
    return PipelineResult(rows=rows, missing=missing, results=results, exported=exported, elapsed=elapsed)
