# tests/conftest.py
# ------------------------------------------------------------
# Purpose: Shared fixtures. Every test gets its own file-backed
# SQLite database and a small admissions dataset in the raw
# display-name schema, so no real server or secrets are needed.
# ------------------------------------------------------------

import os

import pandas as pd
import pytest
from sqlalchemy import create_engine

from src.etl.keys import provision_keys
from src.etl.normalize import normalize_schema
from src.etl.snapshot import snapshot_table

SOURCE = "healthcare_dataset"
WORKING = "healthcare_dataset_copy"

# Six admissions chosen so every aggregate has an easy hand-checked answer:
#  - doctors: Matthew Smith 3, Samantha Davies 2, Tiffany Mitchell 1
#  - stays (days): 5, 10, 1, 10, 4, 5  -> mean 35 / 6
#  - age bands: 25 & 29 -> 18-29, 34, 45, 58, 70 -> one each
_RAW_ROWS = [
    ("Alice Smith", 25, "Female", "A+", "Diabetes", "2024-01-05", "Matthew Smith", "Sons and Miller",
     "Aetna", 1000.0, 101, "Urgent", "2024-01-10", "Paracetamol", "Normal"),
    ("Bob Jones", 34, "Male", "O-", "Cancer", "2024-01-20", "Matthew Smith", "Kim Inc",
     "Medicare", 3000.0, 102, "Emergency", "2024-01-30", "Aspirin", "Abnormal"),
    ("Cara Diaz", 45, "Female", "B+", "Diabetes", "2024-02-03", "Samantha Davies", "Kim Inc",
     "Cigna", 2000.0, 103, "Elective", "2024-02-04", "Ibuprofen", "Normal"),
    ("Dan Wu", 58, "Male", "AB+", "Asthma", "2024-02-14", "Samantha Davies", "Kim Inc",
     "Aetna", 4000.0, 104, "Urgent", "2024-02-24", "Lipitor", "Inconclusive"),
    ("Eve Long", 70, "Female", "A-", "Cancer", "2024-03-01", "Tiffany Mitchell", "Sons and Miller",
     "Blue Cross", 5000.0, 105, "Emergency", "2024-03-05", "Penicillin", "Normal"),
    ("Finn Ray", 29, "Male", "O+", "Asthma", "2023-12-30", "Matthew Smith", "Cook PLC",
     "Aetna", 600.0, 106, "Elective", "2024-01-04", "Aspirin", "Abnormal"),
]

_RAW_COLUMNS = [
    "Name", "Age", "Gender", "Blood Type", "Medical Condition", "Date of Admission", "Doctor",
    "Hospital", "Insurance Provider", "Billing Amount", "Room Number", "Admission Type",
    "Discharge Date", "Medication", "Test Results",
]


@pytest.fixture
def raw_frame():
    """The six admissions with the original export header."""
    return pd.DataFrame(_RAW_ROWS, columns=_RAW_COLUMNS)


@pytest.fixture
def engine(tmp_path):
    """Fresh SQLite database per test."""
    eng = create_engine(f"sqlite:///{tmp_path / 'healthcare.db'}", future=True)
    yield eng
    eng.dispose()


@pytest.fixture
def load_raw(engine):
    """Write any raw-schema DataFrame into the source table."""
    def _load(frame):
        frame.to_sql(SOURCE, engine, index=False, if_exists="replace")
        return SOURCE
    return _load


@pytest.fixture
def source_table(load_raw, raw_frame):
    return load_raw(raw_frame)


@pytest.fixture
def working_table(engine, source_table):
    """Working copy after snapshot + normalize + key/index provisioning."""
    snapshot_table(engine, source_table, WORKING)
    normalize_schema(engine, WORKING)
    provision_keys(engine, WORKING)
    return WORKING


@pytest.fixture
def cfg(tmp_path):
    """Config dict shaped like config/*.yaml, with all outputs under tmp_path."""
    return {
        "environment": "test",
        "log_level": "WARNING",
        "database": {"driver": "sqlite", "name": str(tmp_path / "healthcare.db")},
        "tables": {"source": SOURCE, "working": WORKING},
        "source_csv": str(tmp_path / "healthcare_dataset.csv"),
        "index_key_length": 255,
        "output_dir": os.path.join(str(tmp_path), "reports"),
        "quality": {
            "report_path": os.path.join(str(tmp_path), "logs", "quality_report.md"),
            "fail_on_missing": False,
        },
        "s3_bucket": None,
        "aws_region": None,
    }
