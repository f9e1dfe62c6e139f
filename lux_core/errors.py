# lux_core/errors.py
from __future__ import annotations

from typing import Any, Dict


# ----------------------------
# Error taxonomy
# ----------------------------

class LuxCoreError(Exception):
    code: str = "core_error"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": str(self)}


class InvalidCharacter(LuxCoreError):
    code = "invalid_character"


class UnknownTable(LuxCoreError):
    code = "unknown_table"


class UnknownColumn(LuxCoreError):
    code = "unknown_column"


class MalformedCursor(LuxCoreError):
    code = "malformed_cursor"


class StatementRejected(LuxCoreError):
    code = "statement_rejected"


class StatementTooLarge(LuxCoreError):
    code = "statement_too_large"


class SchemaNotLoaded(LuxCoreError):
    code = "schema_not_loaded"


class JournalEntryNotFound(LuxCoreError):
    code = "journal_entry_not_found"


class AlreadyUndone(LuxCoreError):
    code = "already_undone"


class UndoUnsupported(LuxCoreError):
    code = "undo_unsupported"


class DriverError(LuxCoreError):
    code = "driver_error"


class NoForeignKey(LuxCoreError):
    code = "no_foreign_key"
