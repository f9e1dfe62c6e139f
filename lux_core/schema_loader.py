# lux_core/schema_loader.py
from __future__ import annotations

import hashlib
import json
import sqlite3
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from lux_core.driver import POSTGRESQL, SQLITE, Driver
from lux_core.errors import UnknownColumn, UnknownTable
from lux_core.escaping import ValidatedIdentifier, escape_identifier


# ----------------------------
# Data model
# ----------------------------

@dataclass(frozen=True)
class ForeignKey:
    from_column: str
    ref_table: str
    ref_column: str

@dataclass(frozen=True)
class Column:
    name: str
    type: str
    not_null: bool
    default: Optional[str]
    is_primary_key: bool

    @property
    def is_json(self) -> bool:
        return self.type.lower() in ("json", "jsonb")


@dataclass(frozen=True)
class Table:
    name: str
    columns: Tuple[Column, ...]
    primary_key: Tuple[str, ...]
    is_view: bool = False
    foreign_keys: Tuple[ForeignKey, ...] = field(default_factory=tuple)

    @property
    def identifier(self) -> ValidatedIdentifier:
        return ValidatedIdentifier(self.name)

    @property
    def single_primary_key(self) -> Optional[ValidatedIdentifier]:
        """The PK column when the key is exactly one column, else None."""
        if len(self.primary_key) != 1:
            return None
        return ValidatedIdentifier(self.primary_key[0])

    @property
    def uses_row_locator(self) -> bool:
        # Tables without a PK are addressed by physical row locator
        # (ctid on PostgreSQL, rowid on SQLite). Views have none.
        return not self.primary_key and not self.is_view

    def get_column(self, name: str) -> Column:
        for c in self.columns:
            if c.name == name:
                return c
        raise UnknownColumn(f"Unknown column {name!r} in table {self.name!r}")

    def column(self, name: str) -> ValidatedIdentifier:
        return ValidatedIdentifier(self.get_column(name).name)

    def has_column(self, name: str) -> bool:
        return any(c.name == name for c in self.columns)

    def foreign_key(self, column: str) -> Optional[ForeignKey]:
        self.get_column(column)
        for fk in self.foreign_keys:
            if fk.from_column == column:
                return fk
        return None

@dataclass(frozen=True)
class Schema:
    dialect: str
    tables: Tuple[Table, ...]
    schema_version: str  # stable hash of structure

    @property
    def is_sqlite(self) -> bool:
        return self.dialect == SQLITE

    def table(self, name: str) -> Table:
        for t in self.tables:
            if t.name == name:
                return t
        raise UnknownTable(f"Unknown table {name!r}")

    def table_names(self) -> List[str]:
        return [t.name for t in self.tables]


# ----------------------------
# SQLite loader
# ----------------------------

DEFAULT_EXCLUDE_TABLES_PREFIXES = ("sqlite_",)

def _fetchall(conn: sqlite3.Connection, sql: str, params: Tuple[Any, ...] = ()) -> List[Tuple[Any, ...]]:
    cur = conn.cursor()
    cur.execute(sql, params)
    return cur.fetchall()

def _list_relations(conn: sqlite3.Connection) -> List[Tuple[str, bool]]:
    rows = _fetchall(
        conn,
        """
        SELECT name, type
        FROM sqlite_master
        WHERE type IN ('table', 'view')
        ORDER BY name ASC
        """
    )
    return [
        (str(name), rtype == "view")
        for (name, rtype) in rows
        if not any(str(name).startswith(p) for p in DEFAULT_EXCLUDE_TABLES_PREFIXES)
    ]

def _table_columns(conn: sqlite3.Connection, table: str) -> Tuple[List[Column], List[str]]:
    # PRAGMA table_info: cid, name, type, notnull, dflt_value, pk
    # pk is the 1-based position inside the primary key, 0 when not part of it.
    rows = _fetchall(conn, f'PRAGMA table_info("{escape_identifier(table)}")')
    cols: List[Column] = []
    pk_positions: List[Tuple[int, str]] = []
    for (_, name, ctype, notnull, dflt_value, pk) in rows:
        cols.append(
            Column(
                name=str(name),
                type=str(ctype or "").upper(),
                not_null=bool(notnull),
                default=None if dflt_value is None else str(dflt_value),
                is_primary_key=bool(pk),
            )
        )
        if pk:
            pk_positions.append((int(pk), str(name)))
    pk_positions.sort()
    return cols, [name for _, name in pk_positions]

def _table_foreign_keys(conn: sqlite3.Connection, table: str) -> List[Tuple[str, str, Optional[str]]]:
    # PRAGMA foreign_key_list: id, seq, table, from, to, on_update, on_delete, match
    # "to" is NULL when the reference names the parent table only.
    rows = _fetchall(conn, f'PRAGMA foreign_key_list("{escape_identifier(table)}")')
    return [
        (str(from_col), str(ref_table), None if to_col is None else str(to_col))
        for (_id, _seq, ref_table, from_col, to_col, _upd, _del, _match) in rows
    ]

def load_sqlite_schema(conn: sqlite3.Connection) -> Schema:
    relations = _list_relations(conn)
    loaded: Dict[str, Tuple[List[Column], List[str], bool]] = {}
    for tname, is_view in relations:
        cols, pk = _table_columns(conn, tname)
        loaded[tname] = (cols, pk, is_view)

    tables: List[Table] = []
    for tname, is_view in relations:
        cols, pk, _ = loaded[tname]
        fks: List[ForeignKey] = []
        if not is_view:
            for from_col, ref_table, ref_col in _table_foreign_keys(conn, tname):
                if ref_col is None:
                    ref_pk = loaded.get(ref_table, ([], [], False))[1]
                    if len(ref_pk) != 1:
                        continue
                    ref_col = ref_pk[0]
                fks.append(ForeignKey(from_column=from_col, ref_table=ref_table, ref_column=ref_col))
        fks.sort(key=lambda fk: (fk.from_column, fk.ref_table, fk.ref_column))
        tables.append(
            Table(
                name=tname,
                columns=tuple(cols),
                primary_key=tuple(pk),
                is_view=is_view,
                foreign_keys=tuple(fks),
            )
        )
    return _build_schema(SQLITE, tables)

# ----------------------------
# PostgreSQL loader (via Driver)
# ----------------------------

PG_COLUMNS_SQL = (
    "SELECT c.table_name, c.column_name, c.data_type, c.is_nullable, c.column_default, "
    "CASE WHEN pk.column_name IS NOT NULL THEN 'true' ELSE 'false' END AS is_primary_key "
    "FROM information_schema.columns c "
    "LEFT JOIN ("
    "SELECT kcu.table_name, kcu.column_name "
    "FROM information_schema.table_constraints tc "
    "JOIN information_schema.key_column_usage kcu ON tc.constraint_name = kcu.constraint_name "
    "AND tc.table_schema = kcu.table_schema "
    "WHERE tc.constraint_type = 'PRIMARY KEY' AND tc.table_schema = 'public'"
    ") pk ON c.table_name = pk.table_name AND c.column_name = pk.column_name "
    "WHERE c.table_schema = 'public' ORDER BY c.table_name, c.ordinal_position"
)

PG_FOREIGN_KEYS_SQL = (
    "SELECT kcu.table_name, kcu.column_name, ccu.table_name AS target_table, "
    "ccu.column_name AS target_column "
    "FROM information_schema.table_constraints tc "
    "JOIN information_schema.key_column_usage kcu ON tc.constraint_name = kcu.constraint_name "
    "AND tc.table_schema = kcu.table_schema "
    "JOIN information_schema.constraint_column_usage ccu ON tc.constraint_name = ccu.constraint_name "
    "AND tc.table_schema = ccu.table_schema "
    "WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_schema = 'public'"
)

PG_VIEWS_SQL = (
    "SELECT c.relname FROM pg_class c "
    "JOIN pg_namespace n ON c.relnamespace = n.oid "
    "WHERE n.nspname = 'public' AND c.relkind IN ('v', 'm')"
)

def load_postgres_schema(driver: Driver) -> Schema:
    col_rows = driver.execute(PG_COLUMNS_SQL).rows
    fk_rows = driver.execute(PG_FOREIGN_KEYS_SQL).rows
    views = {str(r[0]) for r in driver.execute(PG_VIEWS_SQL).rows}

    # Rows arrive grouped by table, in ordinal order.
    grouped: Dict[str, List[Column]] = {}
    for (tname, cname, dtype, nullable, dflt, is_pk) in col_rows:
        grouped.setdefault(str(tname), []).append(
            Column(
                name=str(cname),
                type=str(dtype or ""),
                not_null=nullable == "NO",
                default=None if dflt is None or dflt == "" else str(dflt),
                is_primary_key=str(is_pk) == "true",
            )
        )

    fks: Dict[str, List[ForeignKey]] = {}
    for (tname, cname, target_table, target_column) in fk_rows:
        fks.setdefault(str(tname), []).append(
            ForeignKey(from_column=str(cname), ref_table=str(target_table), ref_column=str(target_column))
        )

    tables = [
        Table(
            name=tname,
            columns=tuple(cols),
            primary_key=tuple(c.name for c in cols if c.is_primary_key),
            is_view=tname in views,
            foreign_keys=tuple(
                sorted(fks.get(tname, []), key=lambda fk: (fk.from_column, fk.ref_table, fk.ref_column))
            ),
        )
        for tname, cols in grouped.items()
    ]
    tables.sort(key=lambda t: t.name)
    return _build_schema(POSTGRESQL, tables)

def load_schema(driver: Driver) -> Schema:
    """Load a snapshot from whatever database the driver is connected to."""
    connection = getattr(driver, "connection", None)
    if driver.dialect == SQLITE and isinstance(connection, sqlite3.Connection):
        return load_sqlite_schema(connection)
    return load_postgres_schema(driver)


# ----------------------------
# Versioning
# ----------------------------

def _schema_structure_dict(dialect: str, tables: List[Table]) -> Dict[str, Any]:
    return {
        "dialect": dialect,
        "tables": [
            {
                "name": t.name,
                "is_view": t.is_view,
                "columns": [
                    {
                        "name": c.name,
                        "type": c.type,
                        "not_null": c.not_null,
                        "default": c.default,
                        "is_primary_key": c.is_primary_key,
                    }
                    for c in t.columns
                ],
                "primary_key": list(t.primary_key),
                "foreign_keys": [
                    {"from": fk.from_column, "table": fk.ref_table, "to": fk.ref_column}
                    for fk in t.foreign_keys
                ],
            }
            for t in tables
        ],
    }

def _stable_hash(obj: Any) -> str:
    payload = json.dumps(obj, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()

def _build_schema(dialect: str, tables: List[Table]) -> Schema:
    schema_version = _stable_hash(_schema_structure_dict(dialect, tables))
    return Schema(dialect=dialect, tables=tuple(tables), schema_version=schema_version)
