# lux_core/driver.py
from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from typing import Any, List, Optional, Protocol, Tuple, Type

from lux_core.classifier import has_multiple_statements
from lux_core.errors import DriverError


SQLITE = "sqlite"
POSTGRESQL = "postgresql"


# ----------------------------
# Result object
# ----------------------------

@dataclass(frozen=True)
class QueryResult:
    columns: Tuple[str, ...]
    rows: List[Tuple[Any, ...]]
    row_count: int

    def first_value(self) -> Optional[Any]:
        if not self.rows or not self.rows[0]:
            return None
        return self.rows[0][0]

    def as_dicts(self) -> List[dict]:
        return [dict(zip(self.columns, row)) for row in self.rows]


EMPTY_RESULT = QueryResult(columns=(), rows=[], row_count=0)


class Driver(Protocol):
    """
    Anything that can run one SQL string against a live database.

    execute() raises DriverError on failure; error_message() returns the
    text of the last failure ("" when the last call succeeded).
    """
    dialect: str

    def execute(self, sql: str) -> QueryResult:
        ...

    def error_message(self) -> str:
        ...


def _collect(cur: Any) -> QueryResult:
    if cur.description:
        columns = tuple([d[0] for d in cur.description])
        rows = [tuple(r) for r in cur.fetchall()]
        return QueryResult(columns=columns, rows=rows, row_count=len(rows))
    affected = cur.rowcount if cur.rowcount and cur.rowcount > 0 else 0
    return QueryResult(columns=(), rows=[], row_count=affected)


# ----------------------------
# SQLite
# ----------------------------

class SQLiteDriver:
    """
    Keeps one connection open in autocommit mode so explicit BEGIN/ROLLBACK
    issued by callers behave as on a server database.
    """

    dialect = SQLITE

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, isolation_level=None, check_same_thread=False)
        self._last_error = ""

    @property
    def connection(self) -> sqlite3.Connection:
        return self._conn

    def execute(self, sql: str) -> QueryResult:
        try:
            if has_multiple_statements(sql):
                # Scripts return no rows.
                self._conn.executescript(sql)
                result = EMPTY_RESULT
            else:
                cur = self._conn.cursor()
                try:
                    cur.execute(sql)
                    result = _collect(cur)
                finally:
                    cur.close()
        except sqlite3.Error as e:
            self._last_error = str(e)
            raise DriverError(self._last_error) from e

        self._last_error = ""
        return result

    def error_message(self) -> str:
        return self._last_error

    def close(self) -> None:
        self._conn.close()


# ----------------------------
# Generic DB-API 2.0
# ----------------------------

class DbApiDriver:
    """
    Wraps a caller-owned DB-API 2.0 connection (for PostgreSQL, e.g. a
    psycopg connection). The connection should be in autocommit mode.
    """

    def __init__(
        self,
        conn: Any,
        *,
        dialect: str = POSTGRESQL,
        error_types: Tuple[Type[BaseException], ...] = (Exception,),
    ):
        self._conn = conn
        self.dialect = dialect
        self._error_types = error_types
        self._last_error = ""

    def execute(self, sql: str) -> QueryResult:
        cur = self._conn.cursor()
        try:
            cur.execute(sql)
            result = _collect(cur)
        except self._error_types as e:
            self._last_error = str(e).strip()
            raise DriverError(self._last_error) from e
        finally:
            cur.close()

        self._last_error = ""
        return result

    def error_message(self) -> str:
        return self._last_error
