"""
Key / Index Provisioner stage
-----------------------------
 - Appends an auto-increment integer primary key (patient_id), numbered 1..n in stored order
 - Creates the doctor / hospital lookup indexes (bounded key length on MySQL)
 - Index creation is idempotent: an index that already exists is skipped
"""

import logging
from typing import Dict, List

from sqlalchemy import Column, Index, Integer, func, inspect, select, text

from src.errors import AlreadyExistsError, ConstraintViolationError, NotFoundError
from src.etl.table_ops import copy_column, read_table, rebuild_table, reflect_table
from src.schema import INDEXES, KEY_COLUMN

log = logging.getLogger(__name__)

STAGE = "provision_keys"


def _sync_sequence(conn, table: str, key: str, last_value: int) -> None:
    """
    PostgreSQL SERIAL sequences do not advance on explicit inserts;
    move the sequence past the assigned ids so future rows keep counting.
    (MySQL AUTO_INCREMENT and SQLite rowid follow max(id) on their own.)
    """
    if conn.dialect.name != "postgresql" or last_value < 1:
        return
    conn.execute(
        text("SELECT setval(pg_get_serial_sequence(:table, :key), :value)"),
        {"table": table, "key": key, "value": last_value},
    )


def _check_unique(conn, table, key: str) -> None:
    """Every key value must be distinct (guards the sequential assignment)."""
    total, distinct = conn.execute(
        select(func.count(), func.count(table.c[key].distinct())).select_from(table)
    ).one()
    if total != distinct:
        raise ConstraintViolationError(
            f"{table.name}.{key}: {total - distinct} duplicate key value(s)", stage=STAGE
        )


def add_surrogate_key(engine, table: str, key: str = KEY_COLUMN) -> int:
    """
    Append `key` as INTEGER PRIMARY KEY AUTO_INCREMENT.
    Existing rows get 1..n in their current order. Returns n.
    """
    with engine.begin() as conn:
        current = reflect_table(conn, table, stage=STAGE)
        if key in current.c:
            raise AlreadyExistsError(f"{table} already has key column '{key}'", stage=STAGE)

        df = read_table(conn, current)
        df[key] = list(range(1, len(df) + 1))

        columns = [copy_column(c) for c in current.columns]
        columns.append(Column(key, Integer, primary_key=True, autoincrement=True))
        rebuilt = rebuild_table(conn, table, columns, df)

        _check_unique(conn, rebuilt, key)
        _sync_sequence(conn, table, key, len(df))

    log.info(f"Added surrogate key {table}.{key} (1..{len(df)})")
    return len(df)


def create_indexes(
    engine, table: str, indexes: Dict[str, str] = INDEXES, key_length: int = 255
) -> List[str]:
    """
    Create the lookup indexes that are not there yet.
    `key_length` bounds the indexed prefix of TEXT columns on MySQL (doctor(255)).
    Returns the names of the indexes created by this call.
    """
    created = []
    with engine.begin() as conn:
        target = reflect_table(conn, table, stage=STAGE)
        existing = {ix["name"] for ix in inspect(conn).get_indexes(table)}

        for name, column in indexes.items():
            if column not in target.c:
                raise NotFoundError(f"{table} has no column '{column}' to index", stage=STAGE)
            if name in existing:
                log.info(f"Index {name} already present on {table}; skipping")
                continue
            Index(name, target.c[column], mysql_length=key_length).create(conn)
            created.append(name)
            log.info(f"Created index {name} on {table}({column})")

    return created


def provision_keys(engine, table: str, key_length: int = 255) -> int:
    """Surrogate key first, then indexes. Returns the number of keyed rows."""
    rows = add_surrogate_key(engine, table)
    create_indexes(engine, table, key_length=key_length)
    return rows
