# =========================================
# 📄 File: src/analysis/aggregations.py
# Purpose: Analytical queries over the normalized working table
# - Distinct values of categorical fields
# - Patients per doctor / admissions per hospital
# - Average length of stay, monthly admission trend, earliest/latest admissions
# - Average billing by age group and by medical condition
# Every query is read-only and independent; results are DataFrames.
# =========================================

import os
import logging
from typing import Dict

import pandas as pd
from sqlalchemy import and_, case, extract, func, select

from src.errors import NotFoundError
from src.etl.table_ops import reflect_table
from src.schema import AGE_BANDS, CATEGORICAL_FIELDS

log = logging.getLogger(__name__)

STAGE = "aggregate"

ADMISSION_DATE_SAMPLE = 10  # dates shown at each end of the admission range


def _read(engine, table: str, build) -> pd.DataFrame:
    """Reflect `table`, build a Select from it and load the result."""
    with engine.connect() as conn:
        tbl = reflect_table(conn, table, stage=STAGE)
        stmt = build(tbl)
        return pd.read_sql(stmt, conn)


def _column(tbl, field: str):
    if field not in tbl.c:
        raise NotFoundError(f"{tbl.name} has no column '{field}'", stage=STAGE)
    return tbl.c[field]


# -----------------------
# Distinct values
# -----------------------
def distinct_values(engine, table: str, field: str) -> pd.DataFrame:
    """SELECT DISTINCT field; each value once, ordered for reproducible output."""
    def build(tbl):
        col = _column(tbl, field)
        return select(col).distinct().order_by(col)
    return _read(engine, table, build)


def distinct_categories(engine, table: str) -> Dict[str, pd.DataFrame]:
    """Distinct values for every categorical field."""
    return {field: distinct_values(engine, table, field) for field in CATEGORICAL_FIELDS}


# -----------------------
# Counts
# -----------------------
def _count_by(engine, table: str, field: str, label: str) -> pd.DataFrame:
    def build(tbl):
        col = _column(tbl, field)
        count = func.count().label(label)
        return select(col, count).group_by(col).order_by(count.desc(), col.asc())
    return _read(engine, table, build)


def patients_per_doctor(engine, table: str) -> pd.DataFrame:
    """Patients per doctor, most patients first (ties by doctor name)."""
    return _count_by(engine, table, "doctor", "patient_count")


def admissions_per_hospital(engine, table: str) -> pd.DataFrame:
    """Admissions per hospital, busiest first (ties by hospital name)."""
    return _count_by(engine, table, "hospital", "admission_count")


# -----------------------
# Dates
# -----------------------
def average_length_of_stay(engine, table: str) -> pd.DataFrame:
    """
    Mean of (discharge_date - date_of_admission) in whole days.
    Records missing either date are left out of the mean entirely; NaN when none qualify.
    Day differences use plain date arithmetic, so any DATE value (9999-12-31 too) is fine.
    """
    def build(tbl):
        admitted = _column(tbl, "date_of_admission")
        discharged = _column(tbl, "discharge_date")
        return select(admitted, discharged).where(admitted.is_not(None), discharged.is_not(None))

    dates = _read(engine, table, build)
    stay_days = [
        (discharged - admitted).days
        for admitted, discharged in zip(dates["date_of_admission"], dates["discharge_date"])
    ]
    return pd.DataFrame({"average_length_of_stay": [pd.Series(stay_days, dtype=float).mean()]})


def monthly_admission_trend(engine, table: str) -> pd.DataFrame:
    """Admissions per (year, month) of admission, oldest month first."""
    def build(tbl):
        admitted = _column(tbl, "date_of_admission")
        year = extract("year", admitted).label("year")
        month = extract("month", admitted).label("month")
        return (
            select(year, month, func.count().label("admission_by_month"))
            .where(admitted.is_not(None))
            .group_by(year, month)
            .order_by(year, month)
        )
    trend = _read(engine, table, build)
    return trend.astype({"year": int, "month": int, "admission_by_month": int})


def admission_dates(engine, table: str, descending: bool = False, limit: int | None = None) -> pd.DataFrame:
    """Known admission dates in order; handy to eyeball sparse first/last months."""
    def build(tbl):
        admitted = _column(tbl, "date_of_admission")
        stmt = select(admitted).where(admitted.is_not(None))
        stmt = stmt.order_by(admitted.desc() if descending else admitted.asc())
        return stmt.limit(limit) if limit is not None else stmt
    return _read(engine, table, build)


# -----------------------
# Billing
# -----------------------
def _age_group(age):
    """CASE expression mapping age to its band label."""
    whens = []
    for label, low, high in AGE_BANDS:
        if low is None:
            whens.append((age <= high, label))
        elif high is None:
            whens.append((age >= low, label))
        else:
            whens.append((and_(age >= low, age <= high), label))
    return case(*whens)


def billing_by_age_group(engine, table: str) -> pd.DataFrame:
    """Average billing amount per age band, ordered by band label."""
    def build(tbl):
        age = _column(tbl, "age")
        billing = _column(tbl, "billing_amount")
        with_groups = select(billing, _age_group(age).label("age_group")).cte("healthcare_dataset_age_groups")
        return (
            select(with_groups.c.age_group, func.avg(with_groups.c.billing_amount).label("average_billing_amount"))
            .where(with_groups.c.age_group.is_not(None))
            .group_by(with_groups.c.age_group)
            .order_by(with_groups.c.age_group)
        )
    result = _read(engine, table, build)
    return result.astype({"average_billing_amount": float})


def billing_by_medical_condition(engine, table: str) -> pd.DataFrame:
    """Average billing amount per medical condition, most expensive first."""
    def build(tbl):
        condition = _column(tbl, "medical_condition")
        average = func.avg(_column(tbl, "billing_amount")).label("average_billing_amount")
        return select(condition, average).group_by(condition).order_by(average.desc(), condition.asc())
    result = _read(engine, table, build)
    return result.astype({"average_billing_amount": float})


# -----------------------
# Run / export
# -----------------------
def run_all_queries(engine, table: str) -> Dict[str, pd.DataFrame]:
    """Every analytical query, keyed by a file-friendly name."""
    results: Dict[str, pd.DataFrame] = {}
    for field, frame in distinct_categories(engine, table).items():
        results[f"distinct_{field}"] = frame
    results["patients_per_doctor"] = patients_per_doctor(engine, table)
    results["admissions_per_hospital"] = admissions_per_hospital(engine, table)
    results["average_length_of_stay"] = average_length_of_stay(engine, table)
    results["monthly_admission_trend"] = monthly_admission_trend(engine, table)
    results["earliest_admissions"] = admission_dates(engine, table, limit=ADMISSION_DATE_SAMPLE)
    results["latest_admissions"] = admission_dates(engine, table, descending=True, limit=ADMISSION_DATE_SAMPLE)
    results["billing_by_age_group"] = billing_by_age_group(engine, table)
    results["billing_by_medical_condition"] = billing_by_medical_condition(engine, table)
    log.info(f"Ran {len(results)} analytical queries on {table}")
    return results


def export_results(results: Dict[str, pd.DataFrame], output_dir: str) -> Dict[str, str]:
    """Write each result to <output_dir>/<name>.csv; returns name -> path."""
    os.makedirs(output_dir, exist_ok=True)
    paths = {}
    for name, frame in results.items():
        path = os.path.join(output_dir, f"{name}.csv")
        frame.to_csv(path, index=False)
        paths[name] = path
    log.info(f"Exported {len(paths)} result sets to {output_dir}")
    return paths
