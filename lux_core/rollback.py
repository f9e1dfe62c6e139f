# lux_core/rollback.py
from __future__ import annotations

from typing import Optional

from lux_core.classifier import contains_word, find_word
from lux_core.escaping import escape_identifier
from lux_core.scanner import WHITESPACE

NO_ROLLBACK = "-- No automatic rollback available for this operation."
DROP_TABLE_WARNING = "-- WARNING: DROP TABLE cannot be automatically rolled back. Data will be lost."
TRUNCATE_WARNING = "-- WARNING: TRUNCATE cannot be automatically rolled back. Data will be lost."


def _next_token(text: str, stops: str = WHITESPACE) -> str:
    text = text.lstrip(WHITESPACE)
    end = 0
    while end < len(text) and text[end] not in stops:
        end += 1
    return text[:end].strip('"')


def _quote(name: str) -> str:
    return f'"{escape_identifier(name)}"'


def _add_column_rollback(sql: str) -> Optional[str]:
    add_pos = find_word(sql, "ADD")
    if add_pos < 0:
        return None
    before_add = sql[:add_pos]
    table_pos = find_word(before_add, "TABLE")
    if table_pos < 0:
        return None
    table_name = _next_token(before_add[table_pos + len("TABLE"):])

    after_add = sql[add_pos + len("ADD"):]
    col_pos = find_word(after_add, "COLUMN")
    if col_pos < 0:
        return None
    col_name = _next_token(after_add[col_pos + len("COLUMN"):])
    return f"ALTER TABLE {_quote(table_name)} DROP COLUMN {_quote(col_name)};"


def generate_rollback_sql(sql: str) -> str:
    """
    Best-effort inverse for common DDL, shown next to a schema-change preview.

        ALTER TABLE t ADD COLUMN c ...  ->  ALTER TABLE "t" DROP COLUMN "c";
        CREATE TABLE t (...)            ->  DROP TABLE IF EXISTS "t";
        CREATE INDEX i ON ...           ->  DROP INDEX IF EXISTS "i";

    DROP TABLE and TRUNCATE get a data-loss warning comment instead.
    """
    if all(contains_word(sql, w) for w in ("ALTER", "TABLE", "ADD", "COLUMN")):
        stmt = _add_column_rollback(sql)
        if stmt is not None:
            return stmt

    if contains_word(sql, "CREATE") and contains_word(sql, "TABLE"):
        table_name = _next_token(sql[find_word(sql, "TABLE") + len("TABLE"):], WHITESPACE + "(")
        return f"DROP TABLE IF EXISTS {_quote(table_name)};"

    if contains_word(sql, "CREATE") and contains_word(sql, "INDEX"):
        idx_name = _next_token(sql[find_word(sql, "INDEX") + len("INDEX"):])
        return f"DROP INDEX IF EXISTS {_quote(idx_name)};"

    if contains_word(sql, "DROP") and contains_word(sql, "TABLE"):
        return DROP_TABLE_WARNING

    if contains_word(sql, "TRUNCATE"):
        return TRUNCATE_WARNING

    return NO_ROLLBACK
