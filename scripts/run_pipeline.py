#!/usr/bin/env python3
# =========================================
# 📄 File: scripts/run_pipeline.py
# Purpose: Run the healthcare dataset pipeline end to end, using YAML config
# =========================================

import os
import sys
import logging
import argparse

from sqlalchemy import create_engine

sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from config.config_loader import get_config, build_db_url, mask_db_url
from src.cloud.s3_handler import upload_reports
from src.errors import HealthcareEtlError
from src.etl.pipeline import run_pipeline

log = logging.getLogger(__name__)


# -----------------------
# Engine / helpers
# -----------------------
def get_engine(cfg, echo: bool = False):
    """
    Create SQLAlchemy engine using the connection string built from YAML config.
    """
    db_url = build_db_url(cfg)
    log.info(f"Connecting to database at: {mask_db_url(cfg)}")

    if cfg["database"]["driver"] == "sqlite":
        folder = os.path.dirname(cfg["database"]["name"])
        if folder:
            os.makedirs(folder, exist_ok=True)  # sqlite creates the file, not its folder

    return create_engine(db_url, echo=echo, pool_pre_ping=True, future=True)


# -----------------------
# CLI interface
# -----------------------
def parse_args(argv=None):
    """
    Command-line interface options:
    --echo         : print SQL statements being executed
    --load-csv     : (re)load the source table from a CSV path or s3:// URI first
    --output-dir   : where result CSVs go (defaults to output_dir from config)
    --skip-export  : run the queries without writing CSVs
    --upload       : push exported CSVs to the configured S3 bucket
    """
    p = argparse.ArgumentParser(description="Healthcare dataset pipeline (YAML config enabled)")
    p.add_argument("--echo", action="store_true", help="Print SQL statements")
    p.add_argument(
        "--load-csv",
        nargs="?",
        const="",
        default=None,
        help="Load the source table from this CSV first (no value: source_csv from config)",
    )
    p.add_argument("--output-dir", type=str, default=None, help="Directory for result CSVs")
    p.add_argument("--skip-export", action="store_true", help="Do not write result CSVs")
    p.add_argument("--upload", action="store_true", help="Upload result CSVs to S3 after export")
    return p.parse_args(argv)


def main(argv=None):
    """
    Main execution flow:
    - Reads config and sets up logging
    - Creates engine
    - Runs the pipeline stages
    - Optionally uploads reports
    """
    args = parse_args(argv)
    cfg = get_config()

    logging.basicConfig(
        level=cfg["log_level"],  # Uses "DEBUG" or "INFO" from YAML
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    if args.output_dir:
        cfg["output_dir"] = args.output_dir
    load_csv = None
    if args.load_csv is not None:
        load_csv = args.load_csv or cfg["source_csv"]

    try:
        engine = get_engine(cfg, echo=args.echo)
        run_pipeline(engine, cfg, load_csv=load_csv, export=not args.skip_export)

        if args.upload and not args.skip_export:
            upload_reports(cfg["output_dir"], cfg["s3_bucket"])

        log.info("✅ Healthcare pipeline complete.")
        return 0
    except HealthcareEtlError as e:
        log.error(f"❌ Pipeline aborted: {e}")
        return 1
    except Exception as e:
        log.exception(f"❌ Pipeline failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
