# lux_core/journal.py
from __future__ import annotations

import enum
import logging
import threading
import time
from collections import OrderedDict
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional

from lux_core.driver import POSTGRESQL, Driver
from lux_core.edit_builder import locator_predicate
from lux_core.errors import AlreadyUndone, JournalEntryNotFound, UndoUnsupported
from lux_core.escaping import ValidatedIdentifier, literal

logger = logging.getLogger(__name__)


DEFAULT_JOURNAL_CAPACITY = 10000
DEFAULT_LIST_LIMIT = 100

# Display values for pk_column on entries that do not address a single row.
BULK_PK = "bulk"
ALL_ROWS_PK = "ALL"


class JournalOperation(str, enum.Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    TRUNCATE = "truncate"


class JournalScope(str, enum.Enum):
    ROW = "row"            # one row, by key column
    LOCATOR = "locator"    # one row, by physical row locator
    BULK = "bulk"          # every row matching a find value
    ALL_ROWS = "all"       # the whole table
    UNKEYED = "unkeyed"    # one row of a table without a single-column key


@dataclass
class JournalEntry:
    id: int
    timestamp: int
    table: str
    operation: JournalOperation
    column: str
    old_value: Optional[str]
    new_value: Optional[str]
    pk_column: str
    pk_value: str
    scope: JournalScope = JournalScope.ROW
    undone: bool = False

    def to_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["operation"] = self.operation.value
        d["scope"] = self.scope.value
        return d


def _row_predicate(entry: JournalEntry, dialect: str) -> str:
    if entry.scope == JournalScope.LOCATOR:
        return locator_predicate(entry.pk_value, dialect)
    # Names were schema-validated when the change was made.
    return f"{ValidatedIdentifier(entry.pk_column).sql} = {literal(entry.pk_value).sql}"


def undo_sql(entry: JournalEntry, dialect: str = POSTGRESQL) -> str:
    """
    Reverse statement for an entry. Only single-row updates and inserts can
    be reversed; everything else raises UndoUnsupported.
    """
    table = ValidatedIdentifier(entry.table)

    if entry.scope in (JournalScope.BULK, JournalScope.ALL_ROWS):
        raise UndoUnsupported(f"Undo of {entry.operation.value} on all matching rows is not supported")
    if entry.scope == JournalScope.UNKEYED:
        raise UndoUnsupported(f"Undo of {entry.operation.value} needs a single-column key on {entry.table!r}")

    if entry.operation == JournalOperation.UPDATE:
        col = ValidatedIdentifier(entry.column)
        old = "NULL" if entry.old_value is None else literal(entry.old_value).sql
        return f"UPDATE {table.sql} SET {col.sql} = {old} WHERE {_row_predicate(entry, dialect)}"
    if entry.operation == JournalOperation.INSERT:
        return f"DELETE FROM {table.sql} WHERE {_row_predicate(entry, dialect)}"

    raise UndoUnsupported(f"Undo {entry.operation.value} not yet supported")


class ChangeJournal:
    """
    Bounded, append-only record of row mutations with single-step undo.

    Ids start at 1 and are never reused, even after eviction. When full, the
    oldest entry is dropped before a new one is appended.
    """

    def __init__(self, capacity: int = DEFAULT_JOURNAL_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: "OrderedDict[int, JournalEntry]" = OrderedDict()
        self._next_id = 1
        self._lock = threading.Lock()

    def record(
        self,
        operation: JournalOperation,
        table: str,
        column: str = "",
        old_value: Optional[str] = "",
        new_value: Optional[str] = "",
        pk_column: str = "",
        pk_value: str = "",
        scope: JournalScope = JournalScope.ROW,
    ) -> int:
        op = JournalOperation(operation)
        scope = JournalScope(scope)
        with self._lock:
            if len(self._entries) >= self.capacity:
                self._entries.popitem(last=False)

            entry_id = self._next_id
            self._next_id += 1
            self._entries[entry_id] = JournalEntry(
                id=entry_id,
                timestamp=int(time.time()),
                table=table,
                operation=op,
                column=column,
                old_value=old_value,
                new_value=new_value,
                pk_column=pk_column,
                pk_value=pk_value,
                scope=scope,
            )

        logger.info("journal #%d: %s on %s", entry_id, op.value, table)
        return entry_id

    def undo(self, entry_id: int, driver: Driver) -> JournalEntry:
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                raise JournalEntryNotFound(f"Journal entry {entry_id} not found")
            if entry.undone:
                raise AlreadyUndone(f"Journal entry {entry_id} already undone")

            sql = undo_sql(entry, driver.dialect)
            logger.debug("undo sql: %s", sql)
            # The lock is held across the driver call, so record() waits for a slow undo.
            # DriverError propagates and the entry stays active.
            driver.execute(sql)
            entry.undone = True

        logger.info("journal #%d undone (%s on %s)", entry_id, entry.operation.value, entry.table)
        return entry

    def get(self, entry_id: int) -> Optional[JournalEntry]:
        with self._lock:
            return self._entries.get(entry_id)

    def list(self, limit: int = DEFAULT_LIST_LIMIT) -> List[JournalEntry]:
        """The most recent `limit` entries, oldest first."""
        with self._lock:
            entries = list(self._entries.values())
        if limit <= 0:
            return []
        return entries[-limit:]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
