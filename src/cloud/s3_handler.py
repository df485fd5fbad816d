#!/usr/bin/env python3
"""
S3 Integration: source download and report upload
--------------------------------------------------
- Reads the raw healthcare CSV straight from s3://<bucket>/<key>
- Uploads exported query results into S3 with partitioned paths:
  s3://<bucket>/<prefix>/year=YYYY/month=MM/day=DD/<result>_<UTCVER>.csv
- Implements simple file versioning by appending a UTC timestamp to the filename.
- Adds basic exponential backoff retry logic.
"""

import io
import time
import logging
from datetime import datetime, timezone, date
from pathlib import Path
from typing import List, Optional, Tuple

import boto3
import pandas as pd
from botocore.exceptions import BotoCoreError, ClientError

log = logging.getLogger(__name__)

# -----------------------
# Constants
# -----------------------
BASE_PREFIX = "reports"
MAX_RETRIES = 5
INITIAL_BACKOFF_SECS = 1.0


def _s3_client(region: Optional[str] = None):
    """
    Create an S3 client using the default AWS credential chain:
    - ~/.aws/credentials or AWS SSO/profile you’ve already configured
    - EC2/ECS role, etc.
    """
    return boto3.client("s3", region_name=region) if region else boto3.client("s3")


def parse_s3_uri(uri: str) -> Tuple[str, str]:
    """Split s3://bucket/some/key.csv into ("bucket", "some/key.csv")."""
    if not uri.startswith("s3://"):
        raise ValueError(f"Not an S3 URI: {uri}")
    bucket, _, key = uri[len("s3://"):].partition("/")
    if not bucket or not key:
        raise ValueError(f"S3 URI needs both bucket and key: {uri}")
    return bucket, key


def _utc_version_tag() -> str:
    """UTC timestamp tag for filename versioning, e.g., 20251024T152530Z"""
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _partition_path(prefix: str = BASE_PREFIX, run_date: Optional[date] = None) -> str:
    """Partition path <prefix>/year=YYYY/month=MM/day=DD"""
    d = run_date or date.today()
    return f"{prefix}/year={d.year:04d}/month={d.month:02d}/day={d.day:02d}"


def read_csv_from_s3(uri: str, s3=None) -> pd.DataFrame:
    """
    Read a CSV object into a DataFrame.
    A missing object surfaces as FileNotFoundError, like a missing local file.
    """
    bucket, key = parse_s3_uri(uri)
    s3 = s3 or _s3_client()
    try:
        obj = s3.get_object(Bucket=bucket, Key=key)
    except ClientError as e:
        code = e.response.get("Error", {}).get("Code")
        if code in ("NoSuchKey", "404", "NoSuchBucket"):
            raise FileNotFoundError(uri) from e
        raise
    body = obj["Body"].read()
    return pd.read_csv(io.BytesIO(body))


def _upload_with_retries(
    s3,
    file_path: Path,
    bucket: str,
    key: str,
    extra_args: Optional[dict] = None,
):
    """Upload with exponential backoff retries."""
    extra_args = extra_args or {}
    attempt = 0
    backoff = INITIAL_BACKOFF_SECS

    while True:
        try:
            s3.upload_file(
                Filename=str(file_path),
                Bucket=bucket,
                Key=key,
                ExtraArgs=extra_args,
            )
            return
        except (BotoCoreError, ClientError) as e:
            attempt += 1
            if attempt > MAX_RETRIES:
                raise
            log.warning(
                f"Upload failed for s3://{bucket}/{key} (attempt {attempt}/{MAX_RETRIES}): {e}. "
                f"Retrying in {backoff:.1f}s..."
            )
            time.sleep(backoff)
            backoff *= 2


def upload_reports(
    output_dir: str,
    bucket: str,
    prefix: str = BASE_PREFIX,
    run_date: Optional[date] = None,
    s3=None,
) -> List[str]:
    """
    Upload every CSV in output_dir to:
      <prefix>/year=YYYY/month=MM/day=DD/<stem>_<UTCVER>.csv
    Returns the object keys written.
    """
    if not bucket:
        raise ValueError("No S3 bucket configured (s3_bucket).")

    files = sorted(Path(output_dir).glob("*.csv"))
    if not files:
        raise FileNotFoundError(f"No CSV reports under {output_dir}")

    partition = _partition_path(prefix, run_date)
    version = _utc_version_tag()
    s3 = s3 or _s3_client()

    keys = []
    for src in files:
        key = f"{partition}/{src.stem}_{version}.csv"
        extra_args = {
            "ContentType": "text/csv",
            "Metadata": {
                "source": "healthcare-pipeline",
                "version_tag": version,
                "result": src.stem,
            },
        }
        log.info(f"Uploading {src} → s3://{bucket}/{key}")
        _upload_with_retries(s3, src, bucket, key, extra_args=extra_args)
        keys.append(key)

    log.info(f"✅ {len(keys)} reports uploaded to s3://{bucket}/{partition}")
    return keys
