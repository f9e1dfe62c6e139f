# lux_core/classifier.py
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Tuple

from lux_core.scanner import (
    is_word_char,
    literal_end,
    skip_whitespace,
    starts_with_ignore_case,
)


WRITE_KEYWORDS: Tuple[str, ...] = (
    "INSERT", "UPDATE", "DELETE", "DROP", "ALTER",
    "TRUNCATE", "CREATE", "COPY", "GRANT", "REVOKE",
)


class DestructiveKind(str, enum.Enum):
    NONE = "none"
    DROP = "drop"
    TRUNCATE = "truncate"
    ALTER = "alter"
    DELETE = "delete"
    UPDATE = "update"


@dataclass(frozen=True)
class SqlGuardResult:
    is_destructive: bool
    kind: DestructiveKind
    operation: str
    warning: str


@dataclass(frozen=True)
class Classification:
    is_multi_statement: bool
    is_read_safe: bool
    is_destructive: bool
    destructive_kind: DestructiveKind
    warning: str


_NOT_DESTRUCTIVE = SqlGuardResult(
    is_destructive=False, kind=DestructiveKind.NONE, operation="", warning=""
)

# Checked in this order against the statement prefix.
_PREFIX_RULES: Tuple[Tuple[str, DestructiveKind, str, bool], ...] = (
    ("DROP", DestructiveKind.DROP,
     "This will permanently drop the object. This cannot be undone.", False),
    ("TRUNCATE", DestructiveKind.TRUNCATE,
     "This will delete ALL rows from the table. This cannot be undone.", False),
    ("ALTER", DestructiveKind.ALTER,
     "This will modify the table schema. Review carefully.", False),
    ("DELETE", DestructiveKind.DELETE,
     "DELETE without WHERE clause will delete ALL rows.", True),
    ("UPDATE", DestructiveKind.UPDATE,
     "UPDATE without WHERE clause will update ALL rows.", True),
)


# ----------------------------
# Lexical detectors
# ----------------------------

def has_multiple_statements(sql: str) -> bool:
    """
    True when a bare semicolon (outside strings, identifiers and comments)
    is followed by anything other than whitespace.
    """
    n = len(sql)
    i = 0
    while i < n:
        end = literal_end(sql, i)
        if end is not None:
            i = end
            continue
        if sql[i] == ";" and skip_whitespace(sql, i + 1) < n:
            return True
        i += 1
    return False


def contains_write_keyword(sql: str) -> bool:
    n = len(sql)
    i = 0
    while i < n:
        end = literal_end(sql, i)
        if end is not None:
            i = end
            continue
        if i == 0 or not is_word_char(sql[i - 1]):
            for kw in WRITE_KEYWORDS:
                after = i + len(kw)
                if starts_with_ignore_case(sql, i, kw) and (after >= n or not is_word_char(sql[after])):
                    return True
        i += 1
    return False


def find_word(haystack: str, needle: str) -> int:
    """
    Offset of the first standalone, case-insensitive occurrence of needle
    (upper-case ASCII), or -1.
    """
    # Plain text search: strings and comments are not skipped here.
    # Boundaries are letters and underscore only.
    def is_alpha(ch: str) -> bool:
        return ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ch == "_"

    upper = "".join(c.upper() if c.isascii() else c for c in haystack)
    start = upper.find(needle)
    while start >= 0:
        after = start + len(needle)
        before_ok = start == 0 or not is_alpha(haystack[start - 1])
        after_ok = after >= len(haystack) or not is_alpha(haystack[after])
        if before_ok and after_ok:
            return start
        start = upper.find(needle, start + 1)
    return -1


def contains_word(haystack: str, needle: str) -> bool:
    return find_word(haystack, needle) >= 0


# ----------------------------
# Policies
# ----------------------------

def is_sql_read_safe(sql: str) -> bool:
    """
    Whitelist check for read-only mode: SELECT, SHOW, EXPLAIN and WITH
    queries free of write keywords. Scripts are never read-safe.
    """
    if has_multiple_statements(sql):
        return False

    i = skip_whitespace(sql)
    if i >= len(sql):
        return False

    if starts_with_ignore_case(sql, i, "SELECT"):
        return True
    if starts_with_ignore_case(sql, i, "SHOW"):
        return True
    if starts_with_ignore_case(sql, i, "EXPLAIN"):
        # EXPLAIN ANALYZE runs its target statement.
        j = skip_whitespace(sql, i + len("EXPLAIN"))
        if starts_with_ignore_case(sql, j, "ANALYZE"):
            return not contains_write_keyword(sql)
        return True
    if starts_with_ignore_case(sql, i, "WITH"):
        return not contains_write_keyword(sql)

    return False


def analyze_sql(sql: str) -> SqlGuardResult:
    i = skip_whitespace(sql)
    if i >= len(sql):
        return _NOT_DESTRUCTIVE

    for prefix, kind, warning, where_saves in _PREFIX_RULES:
        if not starts_with_ignore_case(sql, i, prefix):
            continue
        if where_saves and contains_word(sql, "WHERE"):
            continue
        return SqlGuardResult(is_destructive=True, kind=kind, operation=prefix, warning=warning)

    return _NOT_DESTRUCTIVE


def classify(sql: str) -> Classification:
    guard = analyze_sql(sql)
    return Classification(
        is_multi_statement=has_multiple_statements(sql),
        is_read_safe=is_sql_read_safe(sql),
        is_destructive=guard.is_destructive,
        destructive_kind=guard.kind,
        warning=guard.warning,
    )

