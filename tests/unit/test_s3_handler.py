# tests/unit/test_s3_handler.py
# ------------------------------------------------------------
# Purpose: S3 helpers with a stubbed client (no AWS calls).
# ------------------------------------------------------------

import io
from datetime import date

import pytest
from botocore.exceptions import ClientError

from src.cloud import s3_handler
from src.cloud.s3_handler import parse_s3_uri, read_csv_from_s3, upload_reports


class FakeS3:
    """Records uploads; can fail a number of times before succeeding."""

    def __init__(self, objects=None, failures=0):
        self.objects = objects or {}
        self.failures = failures
        self.uploads = []

    def get_object(self, Bucket, Key):
        if (Bucket, Key) not in self.objects:
            raise ClientError({"Error": {"Code": "NoSuchKey", "Message": "missing"}}, "GetObject")
        return {"Body": io.BytesIO(self.objects[(Bucket, Key)])}

    def upload_file(self, Filename, Bucket, Key, ExtraArgs):
        if self.failures:
            self.failures -= 1
            raise ClientError({"Error": {"Code": "SlowDown", "Message": "retry"}}, "PutObject")
        self.uploads.append((Filename, Bucket, Key, ExtraArgs))


def test_parse_s3_uri():
    assert parse_s3_uri("s3://bucket/raw/data.csv") == ("bucket", "raw/data.csv")
    with pytest.raises(ValueError):
        parse_s3_uri("/local/path.csv")
    with pytest.raises(ValueError):
        parse_s3_uri("s3://bucket-only")


def test_read_csv_from_s3(raw_frame):
    body = raw_frame.to_csv(index=False).encode("utf-8")
    s3 = FakeS3(objects={("bucket", "raw/healthcare.csv"): body})

    df = read_csv_from_s3("s3://bucket/raw/healthcare.csv", s3=s3)

    assert len(df) == 6
    assert df.loc[0, "Name"] == "Alice Smith"


def test_read_csv_from_s3_missing_object():
    with pytest.raises(FileNotFoundError):
        read_csv_from_s3("s3://bucket/missing.csv", s3=FakeS3())


def test_upload_reports_partitioned_and_versioned(tmp_path):
    (tmp_path / "patients_per_doctor.csv").write_text("doctor,patient_count\n")
    (tmp_path / "billing_by_age_group.csv").write_text("age_group,average_billing_amount\n")
    s3 = FakeS3()

    keys = upload_reports(str(tmp_path), "bucket", run_date=date(2024, 3, 7), s3=s3)

    assert len(keys) == 2
    assert all(k.startswith("reports/year=2024/month=03/day=07/") for k in keys)
    assert keys[0].split("/")[-1].startswith("billing_by_age_group_")
    assert s3.uploads[0][3]["ContentType"] == "text/csv"


def test_upload_reports_retries_with_backoff(tmp_path, monkeypatch):
    (tmp_path / "a.csv").write_text("x\n")
    sleeps = []
    monkeypatch.setattr(s3_handler.time, "sleep", sleeps.append)
    s3 = FakeS3(failures=2)

    upload_reports(str(tmp_path), "bucket", s3=s3)

    # Two failures -> two waits, doubling each time
    assert sleeps == [1.0, 2.0]
    assert len(s3.uploads) == 1


def test_upload_reports_gives_up_after_max_retries(tmp_path, monkeypatch):
    (tmp_path / "a.csv").write_text("x\n")
    monkeypatch.setattr(s3_handler.time, "sleep", lambda _: None)

    with pytest.raises(ClientError):
        upload_reports(str(tmp_path), "bucket", s3=FakeS3(failures=s3_handler.MAX_RETRIES + 1))


def test_upload_reports_requires_bucket(tmp_path):
    with pytest.raises(ValueError):
        upload_reports(str(tmp_path), None, s3=FakeS3())
