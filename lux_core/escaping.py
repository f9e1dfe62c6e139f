# lux_core/escaping.py
from __future__ import annotations

import re
from dataclasses import dataclass

from lux_core.errors import InvalidCharacter


CTID_RE = re.compile(r"\([0-9]+,[0-9]+\)")
ROWID_RE = re.compile(r"-?[0-9]+")


def escape_value(value: str) -> str:
    """
    Escape a string for use inside a single-quoted SQL literal by doubling
    single quotes and backslashes.

    NUL bytes are rejected: the driver hands SQL over as a C string and a
    NUL would silently truncate everything after it.
    """
    if "\x00" in value:
        raise InvalidCharacter("Value contains a NUL byte")
    return value.replace("\\", "\\\\").replace("'", "''")


def escape_identifier(name: str) -> str:
    """Escape a name for use inside a double-quoted identifier."""
    if "\x00" in name:
        raise InvalidCharacter("Identifier contains a NUL byte")
    return name.replace('"', '""')


def validate_ctid(ctid: str) -> bool:
    """Physical row locators must look like (page,offset), digits only."""
    return CTID_RE.fullmatch(ctid) is not None


def validate_rowid(rowid: str) -> bool:
    return ROWID_RE.fullmatch(rowid) is not None


# ----------------------------
# Typed SQL fragments
# ----------------------------

@dataclass(frozen=True)
class EscapedLiteral:
    escaped: str

    @property
    def sql(self) -> str:
        return f"'{self.escaped}'"

    def __str__(self) -> str:
        return self.sql


@dataclass(frozen=True)
class ValidatedIdentifier:
    """
    A table or column name that was found in a schema snapshot.
    Only schema lookups (see schema_loader.Table) should construct these.
    """
    name: str

    @property
    def sql(self) -> str:
        return f'"{escape_identifier(self.name)}"'

    def __str__(self) -> str:
        return self.sql


def literal(value: str) -> EscapedLiteral:
    return EscapedLiteral(escape_value(value))


def require_literal(obj: object) -> EscapedLiteral:
    if not isinstance(obj, EscapedLiteral):
        raise TypeError(f"expected EscapedLiteral, got {type(obj).__name__}")
    return obj


def require_identifier(obj: object) -> ValidatedIdentifier:
    if not isinstance(obj, ValidatedIdentifier):
        raise TypeError(f"expected ValidatedIdentifier, got {type(obj).__name__}")
    return obj
