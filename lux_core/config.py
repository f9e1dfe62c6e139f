# lux_core/config.py
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional


_TRUTHY = ("1", "true", "yes", "on")


@dataclass(frozen=True)
class CorePolicy:
    # Read-only mode: only whitelisted reads, no edits
    read_only: bool = False

    # Table browsing (enforced by query_builder)
    default_page_limit: int = 50
    max_page_limit: int = 10000

    # Bounded logs
    journal_capacity: int = 10000
    history_capacity: int = 500
    journal_list_limit: int = 100
    history_list_limit: int = 100

    # SQL console
    max_sql_bytes: int = 65536  # enough for multi-statement scripts
    preview_rows: int = 10

    def with_read_only(self, enabled: bool) -> "CorePolicy":
        return replace(self, read_only=enabled)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "CorePolicy":
        env = os.environ if environ is None else environ
        base = cls()

        def _int(key: str, default: int) -> int:
            raw = env.get(key)
            if raw is None or not raw.strip():
                return default
            value = int(raw)
            if value <= 0:
                raise ValueError(f"{key} must be positive, got {value}")
            return value

        return cls(
            read_only=env.get("LUX_READ_ONLY", "").strip().lower() in _TRUTHY,
            default_page_limit=base.default_page_limit,
            max_page_limit=_int("LUX_MAX_PAGE_LIMIT", base.max_page_limit),
            journal_capacity=_int("LUX_JOURNAL_CAPACITY", base.journal_capacity),
            history_capacity=_int("LUX_HISTORY_CAPACITY", base.history_capacity),
            journal_list_limit=base.journal_list_limit,
            history_list_limit=base.history_list_limit,
            max_sql_bytes=_int("LUX_MAX_SQL_BYTES", base.max_sql_bytes),
            preview_rows=base.preview_rows,
        )
