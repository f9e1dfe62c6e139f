# lux_core/query_builder.py
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from lux_core.driver import POSTGRESQL, SQLITE
from lux_core.errors import NoForeignKey
from lux_core.escaping import (
    EscapedLiteral,
    ValidatedIdentifier,
    literal,
    require_identifier,
    require_literal,
)
from lux_core.schema_loader import Schema, Table

logger = logging.getLogger(__name__)


DEFAULT_PAGE_LIMIT = 50
MAX_PAGE_LIMIT = 10000
FK_LOOKUP_LIMIT = 20


class SortDir(str, enum.Enum):
    ASC = "ASC"
    DESC = "DESC"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "SortDir":
        # Anything other than "desc" sorts ascending.
        if raw is not None and raw.lower() == "desc":
            return cls.DESC
        return cls.ASC


class CountMode(str, enum.Enum):
    ESTIMATE = "estimate"
    EXACT = "exact"


class PkMode(str, enum.Enum):
    COLUMN = "column"
    CTID = "ctid"
    ROWID = "rowid"
    NONE = "none"


# ----------------------------
# Request / result objects
# ----------------------------

@dataclass(frozen=True)
class ColumnFilter:
    column: str
    value: str


@dataclass(frozen=True)
class PageRequest:
    table: str
    limit: Optional[int] = None  # None means the default page size
    offset: int = 0
    sort_column: Optional[str] = None
    sort_dir: SortDir = SortDir.ASC
    filters: Tuple[ColumnFilter, ...] = field(default_factory=tuple)
    after_cursor: Optional[str] = None
    before_cursor: Optional[str] = None
    count_mode: CountMode = CountMode.ESTIMATE

    def __post_init__(self) -> None:
        if self.limit is not None and self.limit < 0:
            raise ValueError(f"limit must be >= 0, got {self.limit}")
        if self.offset < 0:
            raise ValueError(f"offset must be >= 0, got {self.offset}")


@dataclass(frozen=True)
class PageQuery:
    count_sql: str
    data_sql: str
    use_keyset: bool
    descending: bool  # rows come back in reverse display order
    exact_count: bool
    pk_mode: PkMode
    pk_column: Optional[str]
    limit: int
    offset: int


# ----------------------------
# Fragment rendering
# ----------------------------

def render_text(column: ValidatedIdentifier, dialect: str = POSTGRESQL) -> str:
    column = require_identifier(column)
    if dialect == SQLITE:
        return f"CAST({column.sql} AS TEXT)"
    return f"{column.sql}::text"


def render_ilike(column: ValidatedIdentifier, value: EscapedLiteral, dialect: str = POSTGRESQL) -> str:
    value = require_literal(value)
    # SQLite LIKE already ignores ASCII case.
    op = "LIKE" if dialect == SQLITE else "ILIKE"
    return f"{render_text(column, dialect)} {op} '%{value.escaped}%'"


def render_compare(column: ValidatedIdentifier, op: str, value: EscapedLiteral) -> str:
    column = require_identifier(column)
    value = require_literal(value)
    return f"{column.sql} {op} {value.sql}"


def render_where(conditions: List[str]) -> str:
    if not conditions:
        return ""
    return " WHERE " + " AND ".join(conditions)


def select_list(table: Table, dialect: str = POSTGRESQL) -> str:
    if not table.uses_row_locator:
        return "*"
    return "rowid, *" if dialect == SQLITE else "ctid::text, *"


def estimate_count_sql(table: Table) -> str:
    return (
        "SELECT COALESCE(n_live_tup, 0) FROM pg_stat_user_tables "
        f"WHERE relname = {literal(table.name).sql}"
    )


# ----------------------------
# Page builder
# ----------------------------

def build_page(
    request: PageRequest,
    schema: Schema,
    *,
    default_limit: int = DEFAULT_PAGE_LIMIT,
    max_limit: int = MAX_PAGE_LIMIT,
) -> PageQuery:
    """
    Build the count and data statements for one page of a table.

    Every identifier is resolved through the schema snapshot (UnknownTable,
    UnknownColumn otherwise) and every value goes through literal().

    Pagination:
      - keyset when the table has a single-column PK and a cursor is given
        (after wins over before);
      - offset otherwise.
    A before-cursor page is fetched in descending PK order; the caller
    reverses it for display.
    """
    table = schema.table(request.table)
    tident = table.identifier

    limit = min(default_limit if request.limit is None else request.limit, max_limit)
    offset = request.offset

    sort_col: Optional[ValidatedIdentifier] = None
    if request.sort_column:
        sort_col = table.column(request.sort_column)

    conditions: List[str] = []
    for f in request.filters:
        col = table.column(f.column)
        if not f.value:
            continue
        conditions.append(render_ilike(col, literal(f.value), schema.dialect))
    has_filters = bool(conditions)

    pk = table.single_primary_key
    cursor = request.after_cursor if request.after_cursor is not None else request.before_cursor
    use_keyset = pk is not None and cursor is not None
    backward = use_keyset and request.after_cursor is None

    if use_keyset:
        op = "<" if backward else ">"
        conditions.append(render_compare(pk, op, literal(cursor)))

    where = render_where(conditions)
    cols = select_list(table, schema.dialect)

    # SQLite keeps no row estimates, so its counts are always exact.
    exact = request.count_mode == CountMode.EXACT or has_filters or schema.is_sqlite
    if exact:
        count_sql = f"SELECT COUNT(*) FROM {tident.sql}{where}"
    else:
        count_sql = estimate_count_sql(table)

    if backward:
        data_sql = f"SELECT {cols} FROM {tident.sql}{where} ORDER BY {pk.sql} DESC LIMIT {limit}"
    elif sort_col is not None:
        data_sql = (
            f"SELECT {cols} FROM {tident.sql}{where} "
            f"ORDER BY {sort_col.sql} {request.sort_dir.value} LIMIT {limit} OFFSET {offset}"
        )
    elif use_keyset:
        data_sql = f"SELECT {cols} FROM {tident.sql}{where} ORDER BY {pk.sql} ASC LIMIT {limit}"
    else:
        data_sql = f"SELECT {cols} FROM {tident.sql}{where} LIMIT {limit} OFFSET {offset}"

    if table.primary_key:
        pk_mode = PkMode.COLUMN
    elif table.uses_row_locator:
        pk_mode = PkMode.ROWID if schema.is_sqlite else PkMode.CTID
    else:
        pk_mode = PkMode.NONE

    logger.debug("page sql: count=%s data=%s", count_sql, data_sql)

    return PageQuery(
        count_sql=count_sql,
        data_sql=data_sql,
        use_keyset=use_keyset,
        descending=backward,
        exact_count=exact,
        pk_mode=pk_mode,
        pk_column=pk.name if pk is not None else None,
        limit=limit,
        offset=offset,
    )


# ----------------------------
# Foreign key lookup
# ----------------------------

def build_fk_lookup(schema: Schema, table_name: str, column: str, search: str = "") -> str:
    """
    Candidate values for a foreign key column: up to 20 values of the
    referenced column, optionally narrowed by a case-insensitive substring.
    """
    table = schema.table(table_name)
    fk = table.foreign_key(column)
    if fk is None:
        raise NoForeignKey(f"Column {column!r} of {table_name!r} has no foreign key")

    target = schema.table(fk.ref_table)
    target_col = target.column(fk.ref_column)
    sql = f"SELECT {target_col.sql} FROM {target.identifier.sql}"
    if search:
        sql += f" WHERE {render_ilike(target_col, literal(search), schema.dialect)}"
    sql += f" LIMIT {FK_LOOKUP_LIMIT}"
    logger.debug("fk lookup sql: %s", sql)
    return sql
