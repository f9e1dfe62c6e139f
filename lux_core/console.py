# lux_core/console.py
from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from lux_core.classifier import analyze_sql, has_multiple_statements, is_sql_read_safe
from lux_core.config import CorePolicy
from lux_core.driver import Driver, QueryResult
from lux_core.edit_builder import (
    RowTarget,
    build_bulk_update,
    build_delete_row,
    build_insert_row,
    build_select_row,
    build_truncate,
    build_update_cell,
)
from lux_core.errors import DriverError, StatementRejected, StatementTooLarge
from lux_core.history import HistoryEntry, QueryHistory
from lux_core.journal import (
    ALL_ROWS_PK,
    BULK_PK,
    ChangeJournal,
    JournalEntry,
    JournalOperation,
    JournalScope,
)
from lux_core.query_builder import PageQuery, PageRequest, build_fk_lookup, build_page
from lux_core.rollback import generate_rollback_sql
from lux_core.schema_loader import Schema
from lux_core.schema_service import SchemaService

logger = logging.getLogger(__name__)


# ----------------------------
# Result objects
# ----------------------------

@dataclass(frozen=True)
class SqlOutcome:
    sql: str
    result: Optional[QueryResult]
    duration_ms: int
    requires_confirmation: bool = False
    operation: str = ""
    warning: str = ""


@dataclass(frozen=True)
class PreviewResult:
    affected_rows: int
    columns: Tuple[str, ...]
    rows: List[Tuple[Any, ...]]


@dataclass(frozen=True)
class SchemaChangePreview:
    operation: str
    warning: str
    rollback_sql: str


@dataclass(frozen=True)
class TablePage:
    query: PageQuery
    total: int
    columns: Tuple[str, ...]
    rows: List[Tuple[Any, ...]]

    def _cursor_at(self, rows: List[Tuple[Any, ...]], idx: int) -> Optional[str]:
        pk = self.query.pk_column
        if pk is None or pk not in self.columns or not rows:
            return None
        value = rows[idx][self.columns.index(pk)]
        return None if value is None else str(value)

    def in_display_order(self) -> List[Tuple[Any, ...]]:
        """Rows in ascending key order (before-cursor pages arrive reversed)."""
        if self.query.descending:
            return list(reversed(self.rows))
        return list(self.rows)

    @property
    def first_cursor(self) -> Optional[str]:
        return self._cursor_at(self.in_display_order(), 0)

    @property
    def last_cursor(self) -> Optional[str]:
        return self._cursor_at(self.in_display_order(), -1)


@dataclass(frozen=True)
class EditResult:
    journal_id: Optional[int]
    result: QueryResult


@dataclass(frozen=True)
class BulkUpdateResult:
    affected_rows: int
    requires_confirmation: bool
    journal_id: Optional[int] = None


def _elapsed_ms(start: float) -> int:
    return int((time.time() - start) * 1000)


def _as_text(value: Any) -> Optional[str]:
    """Text form of a fetched value that can be written back as a literal."""
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    return str(value)


# ----------------------------
# Console
# ----------------------------

class SqlConsole:
    """
    In-process entry point for everything an operator does against a live
    database: ad-hoc SQL, table browsing, row edits and undo.

    Read-only mode and destructive-statement confirmation are enforced
    here. Row edits are journaled; ad-hoc SQL attempts go to the history.
    """

    def __init__(
        self,
        driver: Driver,
        *,
        policy: Optional[CorePolicy] = None,
        journal: Optional[ChangeJournal] = None,
        history: Optional[QueryHistory] = None,
        schema_service: Optional[SchemaService] = None,
    ):
        self.driver = driver
        self.policy = policy or CorePolicy()
        self.journal = journal or ChangeJournal(self.policy.journal_capacity)
        self.history = history or QueryHistory(self.policy.history_capacity)
        self.schemas = schema_service or SchemaService(driver)

    # ---- settings / schema ----

    @property
    def read_only(self) -> bool:
        return self.policy.read_only

    def set_read_only(self, enabled: Optional[bool] = None) -> bool:
        """Set read-only mode, or toggle it when enabled is None. Returns the new state."""
        new_state = (not self.policy.read_only) if enabled is None else bool(enabled)
        self.policy = self.policy.with_read_only(new_state)
        logger.info("read-only mode %s", "enabled" if new_state else "disabled")
        return new_state

    def refresh_schema(self) -> Schema:
        schema = self.schemas.refresh()
        logger.info("schema loaded: %d tables, version %s", len(schema.tables), schema.schema_version[:12])
        return schema

    def _schema(self) -> Schema:
        return self.schemas.cached()

    # ---- guards ----

    def _require_writable(self) -> None:
        if self.policy.read_only:
            logger.warning("rejected edit: read-only mode")
            raise StatementRejected("Read-only mode is enabled. Disable it to make changes.")

    def _check_sql(self, sql: str, action: str) -> None:
        if not sql:
            raise StatementRejected("Empty SQL")
        if len(sql.encode("utf-8")) > self.policy.max_sql_bytes:
            raise StatementTooLarge(f"SQL too large (max {self.policy.max_sql_bytes // 1024}KB)")
        if self.policy.read_only and not is_sql_read_safe(sql):
            logger.warning("rejected statement in read-only mode: %.80s", sql)
            raise StatementRejected(f"Read-only mode is enabled. Disable it to {action} write operations.")

    def _execute(self, sql: str) -> QueryResult:
        try:
            return self.driver.execute(sql)
        except DriverError as e:
            logger.warning("execution failed: %s", e)
            raise

    # ---- SQL console ----

    def run_sql(self, sql: str, force: bool = False) -> SqlOutcome:
        """
        Run operator SQL. Destructive statements are not executed unless
        force=True; instead the outcome carries requires_confirmation and
        the warning to show.
        """
        self._check_sql(sql, "execute")

        if not force:
            guard = analyze_sql(sql)
            if guard.is_destructive:
                logger.warning("confirmation required for %s", guard.operation)
                return SqlOutcome(
                    sql=sql,
                    result=None,
                    duration_ms=0,
                    requires_confirmation=True,
                    operation=guard.operation,
                    warning=guard.warning,
                )

        start = time.time()
        try:
            result = self.driver.execute(sql)
        except DriverError as e:
            message = self.driver.error_message() or str(e)
            self.history.record(sql, _elapsed_ms(start), None, True, message)
            logger.warning("statement failed: %s", message)
            raise

        duration_ms = _elapsed_ms(start)
        self.history.record(sql, duration_ms, result.row_count, False, None)
        if not is_sql_read_safe(sql):
            logger.info("executed write statement (%d rows, %d ms)", result.row_count, duration_ms)
        return SqlOutcome(sql=sql, result=result, duration_ms=duration_ms)

    def preview_sql(self, sql: str) -> PreviewResult:
        """Run a statement inside BEGIN/ROLLBACK and report what it would do."""
        self._check_sql(sql, "preview")
        if has_multiple_statements(sql):
            raise StatementRejected("Preview supports a single statement")

        self._execute("BEGIN")
        try:
            result = self._execute(sql)
        finally:
            self._rollback()

        return PreviewResult(
            affected_rows=result.row_count,
            columns=result.columns,
            rows=result.rows[: self.policy.preview_rows],
        )

    def _rollback(self) -> None:
        try:
            self.driver.execute("ROLLBACK")
        except DriverError as e:
            logger.warning("rollback after preview failed: %s", e)

    def preview_schema_change(self, sql: str) -> SchemaChangePreview:
        self._require_writable()
        guard = analyze_sql(sql)
        return SchemaChangePreview(
            operation=guard.operation,
            warning=guard.warning,
            rollback_sql=generate_rollback_sql(sql),
        )

    def history_entries(self) -> List[HistoryEntry]:
        return self.history.list(self.policy.history_list_limit)

    # ---- table browsing ----

    def fetch_page(self, request: PageRequest) -> TablePage:
        pq = build_page(
            request,
            self._schema(),
            default_limit=self.policy.default_page_limit,
            max_limit=self.policy.max_page_limit,
        )
        count_value = self._execute(pq.count_sql).first_value()
        try:
            total = int(count_value) if count_value is not None else 0
        except (TypeError, ValueError):
            total = 0

        data = self._execute(pq.data_sql)
        return TablePage(query=pq, total=total, columns=data.columns, rows=data.rows)

    def fk_lookup(self, table: str, column: str, search: str = "") -> List[Optional[str]]:
        """Values of the column a foreign key points at, for picking a reference."""
        sql = build_fk_lookup(self._schema(), table, column, search)
        return [_as_text(row[0]) if row else None for row in self._execute(sql).rows]

    # ---- row edits ----

    def _target_scope(self, target: RowTarget) -> JournalScope:
        return JournalScope.LOCATOR if target.is_locator else JournalScope.ROW

    def update_cell(
        self,
        table: str,
        column: str,
        value: str,
        target: RowTarget,
        old_value: Optional[str] = None,
    ) -> EditResult:
        """
        Set one cell. When old_value is not supplied the current value is
        read first so the change can be undone.
        """
        self._require_writable()
        schema = self._schema()
        sql = build_update_cell(schema, table, column, value, target)

        if old_value is None:
            current = self._execute(build_select_row(schema, table, target)).as_dicts()
            if current:
                old_value = _as_text(current[0].get(column))

        result = self._execute(sql)
        pk_column = target.journal_column(schema.dialect)
        journal_id = self.journal.record(
            JournalOperation.UPDATE,
            table,
            column=column,
            old_value=old_value,
            new_value=value,
            pk_column=pk_column,
            pk_value=target.pk_value,
            scope=self._target_scope(target),
        )
        logger.info("updated %s.%s where %s = %s", table, column, pk_column, target.pk_value)
        return EditResult(journal_id=journal_id, result=result)

    def delete_row(self, table: str, target: RowTarget) -> EditResult:
        self._require_writable()
        schema = self._schema()
        sql = build_delete_row(schema, table, target)

        old_rows = self._execute(build_select_row(schema, table, target)).as_dicts()
        old_row = json.dumps(old_rows[0], default=str) if old_rows else ""

        result = self._execute(sql)
        pk_column = target.journal_column(schema.dialect)
        journal_id = self.journal.record(
            JournalOperation.DELETE,
            table,
            old_value=old_row,
            pk_column=pk_column,
            pk_value=target.pk_value,
            scope=self._target_scope(target),
        )
        logger.info("deleted row from %s where %s = %s", table, pk_column, target.pk_value)
        return EditResult(journal_id=journal_id, result=result)

    def insert_row(self, table: str, values: Optional[Mapping[str, Optional[str]]] = None) -> EditResult:
        """
        Insert one row. Only inserts into tables with a single-column key can
        be undone; others are journaled with the returned row for reference.
        """
        self._require_writable()
        schema = self._schema()
        sql = build_insert_row(schema, table, values)
        result = self._execute(sql)

        key = schema.table(table).single_primary_key
        if key is not None and key.name in result.columns and result.rows:
            pk_value = result.rows[0][result.columns.index(key.name)]
            journal_id = self.journal.record(
                JournalOperation.INSERT,
                table,
                pk_column=key.name,
                pk_value=_as_text(pk_value) or "",
            )
        else:
            new_row = json.dumps(result.as_dicts()[0], default=str) if result.rows else ""
            journal_id = self.journal.record(
                JournalOperation.INSERT,
                table,
                new_value=new_row,
                scope=JournalScope.UNKEYED,
            )
        logger.info("inserted row into %s", table)
        return EditResult(journal_id=journal_id, result=result)

    def bulk_update(
        self,
        table: str,
        column: str,
        find: str,
        replace: str,
        force: bool = False,
    ) -> BulkUpdateResult:
        """
        Exact-match find/replace over one column. Without force only the
        number of matching rows is returned.
        """
        self._require_writable()
        count_sql, update_sql = build_bulk_update(self._schema(), table, column, find, replace)

        if not force:
            count_value = self._execute(count_sql).first_value()
            return BulkUpdateResult(
                affected_rows=int(count_value or 0),
                requires_confirmation=True,
            )

        result = self._execute(update_sql)
        journal_id = self.journal.record(
            JournalOperation.UPDATE,
            table,
            column=column,
            old_value=find,
            new_value=replace,
            pk_column=BULK_PK,
            scope=JournalScope.BULK,
        )
        logger.info("bulk update on %s.%s: %d rows", table, column, result.row_count)
        return BulkUpdateResult(
            affected_rows=result.row_count,
            requires_confirmation=False,
            journal_id=journal_id,
        )

    def truncate_table(self, table: str) -> EditResult:
        self._require_writable()
        result = self._execute(build_truncate(self._schema(), table))
        journal_id = self.journal.record(
            JournalOperation.TRUNCATE, table, pk_column=ALL_ROWS_PK, scope=JournalScope.ALL_ROWS,
        )
        logger.info("truncated %s", table)
        return EditResult(journal_id=journal_id, result=result)

    # ---- journal ----

    def undo(self, entry_id: int) -> JournalEntry:
        self._require_writable()
        try:
            return self.journal.undo(entry_id, self.driver)
        except DriverError as e:
            logger.warning("undo of journal entry %d failed: %s", entry_id, e)
            raise

    def journal_entries(self) -> List[JournalEntry]:
        return self.journal.list(self.policy.journal_list_limit)
