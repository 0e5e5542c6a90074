from __future__ import annotations

import sqlite3
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Sequence

from bol.domain.errors import BackendUnavailableError, ConflictError
from bol.repositories.contracts import QueryResult, ScopedConnection, StorageBackend, WriteHeader
from bol.repositories.schema import SQLITE_SCHEMA


def _bind(params: Sequence[Any]) -> tuple:
    out = []
    for value in params:
        if isinstance(value, bool):
            out.append(int(value))
        elif isinstance(value, Decimal):
            out.append(str(value))
        elif isinstance(value, datetime):
            out.append(value.isoformat(sep=" "))
        elif isinstance(value, date):
            out.append(value.isoformat())
        else:
            out.append(value)
    return tuple(out)


def run_sqlite(raw: sqlite3.Connection, statement: str, params: Sequence[Any] = ()) -> QueryResult:
    try:
        cur = raw.execute(statement, _bind(params))
    except sqlite3.IntegrityError as exc:
        if "UNIQUE" in str(exc):
            raise ConflictError(str(exc)) from exc
        raise
    except sqlite3.OperationalError as exc:
        raise BackendUnavailableError(str(exc)) from exc

    if cur.description is not None:
        return [dict(r) for r in cur.fetchall()]
    return WriteHeader(affected_rows=max(cur.rowcount, 0), insert_id=int(cur.lastrowid or 0))


class SqliteConnection(ScopedConnection):
    """One scoped connection; ``BEGIN IMMEDIATE`` takes the write lock up front."""

    def __init__(self, raw: sqlite3.Connection):
        super().__init__()
        self._raw = raw

    def _begin(self) -> None:
        run_sqlite(self._raw, "BEGIN IMMEDIATE")

    def _commit(self) -> None:
        run_sqlite(self._raw, "COMMIT")

    def _rollback(self) -> None:
        self._raw.execute("ROLLBACK")

    def _close(self) -> None:
        self._raw.close()

    def query(self, statement: str, params: Sequence[Any] = ()) -> QueryResult:
        return run_sqlite(self._raw, statement, params)


class SqliteBackend(StorageBackend):
    name = "sqlite"
    schema = SQLITE_SCHEMA

    def __init__(self, db_path: Path | str, busy_timeout: float = 30.0):
        self.db_path = str(db_path)
        self.busy_timeout = busy_timeout

    def _conn(self) -> sqlite3.Connection:
        # isolation_level=None: transactions are driven explicitly by the scoped connection
        conn = sqlite3.connect(self.db_path, timeout=self.busy_timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON;")
        return conn

    def connection(self) -> SqliteConnection:
        try:
            return SqliteConnection(self._conn())
        except sqlite3.Error as exc:
            raise BackendUnavailableError(f"Cannot open {self.db_path}: {exc}") from exc

    def initialize(self, bootstrap_hash) -> None:
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = self._conn()
        try:
            conn.execute("PRAGMA journal_mode = WAL;")
        finally:
            conn.close()
        super().initialize(bootstrap_hash)
