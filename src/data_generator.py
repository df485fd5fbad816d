import argparse
import csv
import os
import random
import sys
from datetime import date, timedelta

from src.schema import SOURCE_COLUMNS

# === Helper functions ===


def save_csv(filename, data, headers):
    """Write a list of dicts to a CSV file, exiting with a clear message on failure."""
    try:
        folder = os.path.dirname(filename)
        if folder:
            os.makedirs(folder, exist_ok=True)
        with open(filename, "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=headers)
            writer.writeheader()
            writer.writerows(data)
        print(f"[OK] File saved: {filename}")
    except PermissionError:
        print(f"[ERROR] No permission to write {filename}")
        sys.exit(1)
    except OSError as e:
        print(f"[ERROR] Failed to save {filename}: {e}")
        sys.exit(1)


FIRST_NAMES = [
    "Bobby", "Leslie", "Danny", "Andrew", "Adrienne", "Emily", "Edward", "Christina",
    "Jasmine", "Christopher", "Michelle", "Aaron", "Connor", "Robert", "Brooke",
]
LAST_NAMES = [
    "Jackson", "Terry", "Smith", "Watts", "Bass", "Martinez", "Johnson", "Hughes",
    "Walker", "Lopez", "Hamilton", "Garcia", "Davis", "Cox", "Mills",
]
GENDERS = ["Male", "Female"]
BLOOD_TYPES = ["A+", "A-", "B+", "B-", "AB+", "AB-", "O+", "O-"]
CONDITIONS = ["Cancer", "Obesity", "Diabetes", "Asthma", "Hypertension", "Arthritis"]
INSURERS = ["Aetna", "Blue Cross", "Cigna", "UnitedHealthcare", "Medicare"]
ADMISSION_TYPES = ["Urgent", "Emergency", "Elective"]
MEDICATIONS = ["Paracetamol", "Ibuprofen", "Aspirin", "Penicillin", "Lipitor"]
TEST_RESULTS = ["Normal", "Abnormal", "Inconclusive"]
HOSPITAL_SUFFIXES = ["Ltd", "Group", "Inc", "PLC", "and Sons"]

FIRST_ADMISSION = date(2019, 5, 8)
ADMISSION_WINDOW_DAYS = 5 * 365


def generate_records(rows, seed=None):
    """Build `rows` synthetic admissions keyed by the source display-name header."""
    rng = random.Random(seed)  # nosec B311
    doctors = [f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}" for _ in range(max(rows // 3, 1))]
    hospitals = [f"{rng.choice(LAST_NAMES)} {rng.choice(HOSPITAL_SUFFIXES)}" for _ in range(max(rows // 4, 1))]

    records = []
    for _ in range(rows):
        admitted = FIRST_ADMISSION + timedelta(days=rng.randint(0, ADMISSION_WINDOW_DAYS))
        discharged = admitted + timedelta(days=rng.randint(1, 30))
        records.append(
            {
                "Name": f"{rng.choice(FIRST_NAMES)} {rng.choice(LAST_NAMES)}",
                "Age": rng.randint(18, 85),
                "Gender": rng.choice(GENDERS),
                "Blood Type": rng.choice(BLOOD_TYPES),
                "Medical Condition": rng.choice(CONDITIONS),
                "Date of Admission": admitted.isoformat(),
                "Doctor": rng.choice(doctors),
                "Hospital": rng.choice(hospitals),
                "Insurance Provider": rng.choice(INSURERS),
                "Billing Amount": rng.uniform(1000, 50000),  # unrounded, like the raw export
                "Room Number": rng.randint(101, 500),
                "Admission Type": rng.choice(ADMISSION_TYPES),
                "Discharge Date": discharged.isoformat(),
                "Medication": rng.choice(MEDICATIONS),
                "Test Results": rng.choice(TEST_RESULTS),
            }
        )
    return records


def generate_data(path, rows=1000, seed=None):
    """Generate the synthetic healthcare CSV at `path`."""
    records = generate_records(rows, seed)
    save_csv(path, records, SOURCE_COLUMNS)
    print(f"✅ {rows} synthetic admissions generated.")
    return path


def main():
    p = argparse.ArgumentParser(description="Generate a synthetic healthcare dataset CSV")
    p.add_argument("--out", default="data/raw/healthcare_dataset.csv", help="Output CSV path")
    p.add_argument("--rows", type=int, default=1000, help="Number of admissions")
    p.add_argument("--seed", type=int, default=None, help="Random seed for reproducible output")
    args = p.parse_args()
    generate_data(args.out, args.rows, args.seed)


if __name__ == "__main__":
    main()
