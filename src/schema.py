# =========================================
# 📄 File: src/schema.py
# Purpose: The one fixed schema the pipeline works on
# - Original display header and the snake_case renaming map
# - Type targets, surrogate key, indexes, age bands
# =========================================

from typing import Dict, List, Tuple

from sqlalchemy import Date, Numeric
from sqlalchemy.types import TypeEngine

# Header exactly as it arrives from the source export
SOURCE_COLUMNS: List[str] = [
    "Name",
    "Age",
    "Gender",
    "Blood Type",
    "Medical Condition",
    "Date of Admission",
    "Doctor",
    "Hospital",
    "Insurance Provider",
    "Billing Amount",
    "Room Number",
    "Admission Type",
    "Discharge Date",
    "Medication",
    "Test Results",
]

RENAME_MAP: Dict[str, str] = {
    "Name": "full_name",
    "Age": "age",
    "Gender": "gender",
    "Blood Type": "blood_type",
    "Medical Condition": "medical_condition",
    "Date of Admission": "date_of_admission",
    "Doctor": "doctor",
    "Hospital": "hospital",
    "Insurance Provider": "insurance_provider",
    "Billing Amount": "billing_amount",
    "Room Number": "room_number",
    "Admission Type": "admission_type",
    "Discharge Date": "discharge_date",
    "Medication": "medication",
    "Test Results": "test_results",
}

# Business columns after renaming, in header order
FIELDS: List[str] = [RENAME_MAP[c] for c in SOURCE_COLUMNS]

BILLING_SCALE = 2

TYPE_TARGETS: Dict[str, TypeEngine] = {
    "date_of_admission": Date(),
    "discharge_date": Date(),
    "billing_amount": Numeric(10, BILLING_SCALE),
}

KEY_COLUMN = "patient_id"

# index name -> indexed column
INDEXES: Dict[str, str] = {
    "idx_healthcare_doctor": "doctor",
    "idx_healthcare_hospital": "hospital",
}

CATEGORICAL_FIELDS: List[str] = [
    "gender",
    "blood_type",
    "medical_condition",
    "doctor",
    "hospital",
    "insurance_provider",
    "admission_type",
    "medication",
    "test_results",
]

# (label, lowest age, highest age); None means unbounded on that side
AGE_BANDS: List[Tuple[str, int | None, int | None]] = [
    ("18-29", None, 29),
    ("30-39", 30, 39),
    ("40-49", 40, 49),
    ("50-64", 50, 64),
    ("65+", 65, None),
]
