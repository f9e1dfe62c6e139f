# lux_core/edit_builder.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from lux_core.driver import POSTGRESQL, SQLITE
from lux_core.errors import MalformedCursor
from lux_core.escaping import literal, validate_ctid, validate_rowid
from lux_core.query_builder import render_text
from lux_core.schema_loader import Schema, Table

logger = logging.getLogger(__name__)


CTID_COLUMN = "ctid"
ROWID_COLUMN = "rowid"


# ----------------------------
# Row addressing
# ----------------------------

def locator_column(dialect: str) -> str:
    return ROWID_COLUMN if dialect == SQLITE else CTID_COLUMN


def locator_predicate(value: str, dialect: str = POSTGRESQL) -> str:
    """WHERE fragment for a physical row locator: rowid on SQLite, ctid elsewhere."""
    if dialect == SQLITE:
        if not validate_rowid(value):
            raise MalformedCursor(f"Invalid rowid: {value!r}")
        return f"rowid = {int(value)}"
    if not validate_ctid(value):
        raise MalformedCursor(f"Invalid ctid format: {value!r}")
    return f"ctid = {literal(value).sql}::tid"


@dataclass(frozen=True)
class RowTarget:
    """
    Identifies one row: by a key column value, or by physical row locator
    for tables that have no primary key.
    """
    pk_value: str
    pk_column: Optional[str] = None

    @classmethod
    def by_key(cls, column: str, value: str) -> "RowTarget":
        return cls(pk_value=value, pk_column=column)

    @classmethod
    def by_locator(cls, locator: str) -> "RowTarget":
        return cls(pk_value=locator, pk_column=None)

    @property
    def is_locator(self) -> bool:
        return self.pk_column is None

    def journal_column(self, dialect: str = POSTGRESQL) -> str:
        return locator_column(dialect) if self.pk_column is None else self.pk_column

    def where(self, table: Table, dialect: str = POSTGRESQL) -> str:
        if self.is_locator:
            return locator_predicate(self.pk_value, dialect)
        col = table.column(self.pk_column)
        return f"{col.sql} = {literal(self.pk_value).sql}"


# ----------------------------
# Builders
# ----------------------------

def build_update_cell(
    schema: Schema,
    table_name: str,
    column: str,
    value: str,
    target: RowTarget,
) -> str:
    table = schema.table(table_name)
    col = table.get_column(column)
    ident = table.column(column)
    cast = "::jsonb" if col.is_json and not schema.is_sqlite else ""
    sql = (
        f"UPDATE {table.identifier.sql} SET {ident.sql} = {literal(value).sql}{cast} "
        f"WHERE {target.where(table, schema.dialect)} RETURNING {ident.sql}"
    )
    logger.debug("update sql: %s", sql)
    return sql


def build_select_row(schema: Schema, table_name: str, target: RowTarget) -> str:
    table = schema.table(table_name)
    return f"SELECT * FROM {table.identifier.sql} WHERE {target.where(table, schema.dialect)} LIMIT 1"


def build_delete_row(schema: Schema, table_name: str, target: RowTarget) -> str:
    table = schema.table(table_name)
    sql = f"DELETE FROM {table.identifier.sql} WHERE {target.where(table, schema.dialect)}"
    logger.debug("delete sql: %s", sql)
    return sql


def build_insert_row(
    schema: Schema,
    table_name: str,
    values: Optional[Mapping[str, Optional[str]]] = None,
) -> str:
    """None values are inserted as NULL. No values at all means DEFAULT VALUES."""
    table = schema.table(table_name)
    if not values:
        return f"INSERT INTO {table.identifier.sql} DEFAULT VALUES RETURNING *"

    cols: List[str] = []
    vals: List[str] = []
    for name, value in values.items():
        cols.append(table.column(name).sql)
        vals.append("NULL" if value is None else literal(value).sql)

    sql = (
        f"INSERT INTO {table.identifier.sql} ({', '.join(cols)}) "
        f"VALUES ({', '.join(vals)}) RETURNING *"
    )
    logger.debug("insert sql: %s", sql)
    return sql


def build_bulk_update(
    schema: Schema,
    table_name: str,
    column: str,
    find: str,
    replace: str,
) -> Tuple[str, str]:
    """Return (preview count sql, update sql) for an exact-match find/replace."""
    table = schema.table(table_name)
    col = table.column(column)
    match = f"{render_text(col, schema.dialect)} = {literal(find).sql}"
    count_sql = f"SELECT COUNT(*) FROM {table.identifier.sql} WHERE {match}"
    update_sql = f"UPDATE {table.identifier.sql} SET {col.sql} = {literal(replace).sql} WHERE {match}"
    return count_sql, update_sql


def build_truncate(schema: Schema, table_name: str) -> str:
    table = schema.table(table_name)
    if schema.is_sqlite:
        # SQLite has no TRUNCATE; an unqualified DELETE empties the table.
        return f"DELETE FROM {table.identifier.sql}"
    return f"TRUNCATE TABLE {table.identifier.sql}"
