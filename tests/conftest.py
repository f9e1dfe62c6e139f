# tests/conftest.py
import pytest

from lux_core.console import SqlConsole
from lux_core.driver import QueryResult, SQLiteDriver
from lux_core.errors import DriverError
from lux_core.schema_loader import Column, ForeignKey, Schema, Table, load_schema
from lux_core.schema_service import SchemaService


SEED_SQL = """
CREATE TABLE users (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    profile JSON
);
CREATE TABLE items (
    id INTEGER PRIMARY KEY,
    label TEXT
);
CREATE TABLE logs (
    msg TEXT,
    level TEXT DEFAULT 'info'
);
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    user_id INTEGER REFERENCES users(id),
    item_id INTEGER REFERENCES items
);
CREATE TABLE order_lines (
    order_id INTEGER NOT NULL,
    line INTEGER NOT NULL,
    qty INTEGER,
    PRIMARY KEY (order_id, line)
);
CREATE VIEW named_users AS SELECT id, name FROM users WHERE name IS NOT NULL;
INSERT INTO users (id, name, email) VALUES (1, 'alice', 'alice@example.com');
INSERT INTO users (id, name, email) VALUES (2, 'bob', NULL);
INSERT INTO users (id, name, email) VALUES (3, 'O''Brien', 'ob@example.com');
INSERT INTO logs (msg) VALUES ('started');
INSERT INTO order_lines (order_id, line, qty) VALUES (1, 1, 5);
INSERT INTO order_lines (order_id, line, qty) VALUES (1, 2, 7);
"""


class RecordingDriver:
    """
    Fake driver: records every statement and answers from canned results
    keyed by a substring of the SQL.
    """

    dialect = "postgresql"

    def __init__(self):
        self.executed = []
        self.results = {}
        self.fail_on = None
        self._last_error = ""

    def execute(self, sql):
        self.executed.append(sql)
        if self.fail_on is not None and self.fail_on in sql:
            self._last_error = "ERROR:  simulated failure"
            raise DriverError(self._last_error)
        self._last_error = ""
        for needle, result in self.results.items():
            if needle in sql:
                return result
        return QueryResult(columns=(), rows=[], row_count=0)

    def error_message(self):
        return self._last_error


@pytest.fixture
def sqlite_driver():
    driver = SQLiteDriver(":memory:")
    driver.execute(SEED_SQL)
    driver.execute(
        "INSERT INTO items (id, label) VALUES "
        + ", ".join(f"({i}, 'item-{i:02d}')" for i in range(1, 26))
    )
    yield driver
    driver.close()


@pytest.fixture
def sqlite_schema(sqlite_driver):
    return load_schema(sqlite_driver)


@pytest.fixture
def console(sqlite_driver):
    c = SqlConsole(sqlite_driver)
    c.refresh_schema()
    return c


@pytest.fixture
def recording_driver():
    return RecordingDriver()


def _col(name, type_="text", pk=False):
    return Column(name=name, type=type_, not_null=pk, default=None, is_primary_key=pk)


@pytest.fixture
def pg_schema():
    """A PostgreSQL-shaped snapshot covering PK, no-PK, composite-PK and view tables."""
    tables = (
        Table(
            name="users",
            columns=(_col("id", "integer", pk=True), _col("name"), _col("email"), _col("profile", "jsonb")),
            primary_key=("id",),
        ),
        Table(
            name="events",
            columns=(_col("payload"), _col("created_at", "timestamp with time zone")),
            primary_key=(),
        ),
        Table(
            name="order_items",
            columns=(_col("order_id", "integer", pk=True), _col("item_id", "integer", pk=True), _col("qty", "integer")),
            primary_key=("order_id", "item_id"),
        ),
        Table(
            name="orders",
            columns=(_col("id", "integer", pk=True), _col("user_id", "integer"), _col("note")),
            primary_key=("id",),
            foreign_keys=(ForeignKey(from_column="user_id", ref_table="users", ref_column="id"),),
        ),
        Table(
            name="active_users",
            columns=(_col("id", "integer"), _col("name")),
            primary_key=(),
            is_view=True,
        ),
        Table(
            name='we"ird',
            columns=(_col('co"l'),),
            primary_key=(),
        ),
    )
    return Schema(dialect="postgresql", tables=tables, schema_version="test")


@pytest.fixture
def pg_console(recording_driver, pg_schema):
    return SqlConsole(recording_driver, schema_service=SchemaService(recording_driver, _schema=pg_schema))
