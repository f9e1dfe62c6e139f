# lux_core/history.py
from __future__ import annotations

import threading
import time
from collections import deque
from dataclasses import asdict, dataclass
from typing import Any, Deque, Dict, List, Optional


DEFAULT_HISTORY_CAPACITY = 500
DEFAULT_LIST_LIMIT = 100


@dataclass(frozen=True)
class HistoryEntry:
    sql: str
    timestamp: int
    duration_ms: int
    row_count: Optional[int]
    is_error: bool
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class QueryHistory:
    """Every SQL attempt from the console, success or failure. Oldest evicted first."""

    def __init__(self, capacity: int = DEFAULT_HISTORY_CAPACITY):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries: Deque[HistoryEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def record(
        self,
        sql: str,
        duration_ms: int,
        row_count: Optional[int] = None,
        is_error: bool = False,
        error_message: Optional[str] = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            sql=sql,
            timestamp=int(time.time()),
            duration_ms=max(0, int(duration_ms)),
            row_count=row_count,
            is_error=is_error,
            error_message=error_message,
        )
        with self._lock:
            self._entries.append(entry)
        return entry

    def list(self, limit: int = DEFAULT_LIST_LIMIT) -> List[HistoryEntry]:
        """Newest first."""
        with self._lock:
            entries = list(self._entries)
        entries.reverse()
        return entries[:max(0, limit)]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
