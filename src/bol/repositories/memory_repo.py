from __future__ import annotations

import sqlite3
import threading
from typing import Any, Sequence

from bol.repositories.contracts import QueryResult, ScopedConnection, StorageBackend
from bol.repositories.schema import SQLITE_SCHEMA
from bol.repositories.sqlite_repo import run_sqlite


class MemoryConnection(ScopedConnection):
    """Borrowed view of the shared in-memory database.

    Holding one of these holds the backend lock, so scoped connections are
    fully serialized; closing only hands the lock back.
    """

    def __init__(self, raw: sqlite3.Connection, lock: threading.RLock):
        super().__init__()
        self._raw = raw
        self._lock = lock

    def _begin(self) -> None:
        run_sqlite(self._raw, "BEGIN IMMEDIATE")

    def _commit(self) -> None:
        run_sqlite(self._raw, "COMMIT")

    def _rollback(self) -> None:
        self._raw.execute("ROLLBACK")

    def _close(self) -> None:
        self._lock.release()

    def query(self, statement: str, params: Sequence[Any] = ()) -> QueryResult:
        return run_sqlite(self._raw, statement, params)


class MemoryBackend(StorageBackend):
    """Degraded store used when no live backend could ever be initialized.

    Same schema and SQL as the embedded backend, so every ledger operation
    keeps its atomicity; the data lives only as long as the process.
    """

    name = "memory"
    schema = SQLITE_SCHEMA

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._raw = sqlite3.connect(":memory:", isolation_level=None, check_same_thread=False)
        self._raw.row_factory = sqlite3.Row
        self._raw.execute("PRAGMA foreign_keys = ON;")

    def connection(self) -> MemoryConnection:
        self._lock.acquire()
        return MemoryConnection(self._raw, self._lock)
