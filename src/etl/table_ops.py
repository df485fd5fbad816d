"""
Table helpers shared by the pipeline stages
-------------------------------------------
 - Reflect tables and fail with NotFoundError when they are missing
 - Read a whole table into an object-typed DataFrame (values stay Python natives)
 - Rebuild a table through a staging copy when column types or keys change
"""

import logging
from typing import List

import pandas as pd
from sqlalchemy import Column, MetaData, Table, inspect, select, text
from sqlalchemy.engine import Connection

from src.errors import NotFoundError

log = logging.getLogger(__name__)


def quote(conn: Connection, name: str) -> str:
    """Quote an identifier for the connection's dialect (names may contain spaces)."""
    return conn.dialect.identifier_preparer.quote(name)


def has_table(conn: Connection, name: str) -> bool:
    return inspect(conn).has_table(name)


def reflect_table(conn: Connection, name: str, stage: str | None = None) -> Table:
    """Reflect `name` from the database, raising NotFoundError if it is absent."""
    if not has_table(conn, name):
        raise NotFoundError(f"Table '{name}' does not exist", stage=stage)
    return Table(name, MetaData(), autoload_with=conn)


def drop_table_if_exists(conn: Connection, name: str) -> None:
    conn.execute(text(f"DROP TABLE IF EXISTS {quote(conn, name)}"))


def read_table(conn: Connection, table: Table) -> pd.DataFrame:
    """
    Load every row of `table` in stored order.
    dtype=object keeps ints as ints and NULLs as None (no float/NaN drift).
    """
    result = conn.execute(select(table))
    rows = [tuple(row) for row in result.fetchall()]
    return pd.DataFrame(rows, columns=list(result.keys()), dtype=object)


def copy_column(column: Column, type_=None) -> Column:
    """Detached copy of a reflected column, optionally with a new type."""
    return Column(column.name, type_ if type_ is not None else column.type, nullable=column.nullable)


def swap_in(conn: Connection, staging: str, name: str) -> None:
    """
    Put table `staging` in place of table `name`.
    MySQL commits DDL implicitly, so there both renames happen in one
    RENAME TABLE statement and the old table is only dropped afterwards.
    """
    if conn.dialect.name == "mysql":
        backup = f"_old_{name}"
        drop_table_if_exists(conn, backup)
        conn.execute(
            text(
                f"RENAME TABLE {quote(conn, name)} TO {quote(conn, backup)}, "
                f"{quote(conn, staging)} TO {quote(conn, name)}"
            )
        )
        drop_table_if_exists(conn, backup)
        return
    drop_table_if_exists(conn, name)
    conn.execute(text(f"ALTER TABLE {quote(conn, staging)} RENAME TO {quote(conn, name)}"))


def rebuild_table(conn: Connection, name: str, columns: List[Column], df: pd.DataFrame) -> Table:
    """
    Replace table `name` with a new definition holding the rows of `df`.

    Key points:
      - Creates a staging table _tmp_<name> with the new columns and loads the rows into it.
      - Swaps the staging table into place (see swap_in).
      - The old table is only touched once the staging table is fully loaded, so a
        failed load (bad value, key collision) leaves it intact on every backend.
      - On MySQL each DDL statement commits on its own, so the swap there is one atomic
        RENAME TABLE; a failure after it can leave a stray _old_<name> table, dropped
        on the next rebuild. A stray _tmp_<name> is likewise dropped on the next rebuild.
    """
    tmp_name = f"_tmp_{name}"
    drop_table_if_exists(conn, tmp_name)

    staging = Table(tmp_name, MetaData(), *columns)
    staging.create(conn)

    records = df.to_dict(orient="records")
    if records:
        conn.execute(staging.insert(), records)

    swap_in(conn, tmp_name, name)
    log.debug(f"Rebuilt {name} with {len(records)} rows")

    return Table(name, MetaData(), autoload_with=conn)
