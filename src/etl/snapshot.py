"""
Snapshot stage
--------------
 - Copies the source table into a working table (same columns, same rows)
 - Drops any previous working copy first so reruns start clean
 - Never writes to the source
"""

import logging

from sqlalchemy import MetaData, Table, func, select

from src.etl.table_ops import copy_column, drop_table_if_exists, reflect_table

log = logging.getLogger(__name__)

STAGE = "snapshot"


def snapshot_table(engine, source: str, working: str) -> int:
    """
    Create `working` as an independent copy of `source`.
    Returns the number of rows copied.
    """
    if source == working:
        raise ValueError("Working table must differ from the source table.")

    with engine.begin() as conn:
        src = reflect_table(conn, source, stage=STAGE)

        drop_table_if_exists(conn, working)
        copy = Table(working, MetaData(), *[copy_column(c) for c in src.columns])
        copy.create(conn)

        names = [c.name for c in src.columns]
        conn.execute(copy.insert().from_select(names, select(*src.columns)))

        rows = conn.execute(select(func.count()).select_from(copy)).scalar_one()

    log.info(f"Snapshot {source} -> {working}: {rows} rows")
    return rows
