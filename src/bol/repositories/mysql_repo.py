from __future__ import annotations

import queue
import threading
from typing import Any, Callable, Sequence

import pymysql
import pymysql.cursors
from pymysql.constants import CLIENT

from bol.config import DatabaseSettings
from bol.domain.errors import BackendUnavailableError, ConflictError
from bol.repositories.contracts import QueryResult, ScopedConnection, StorageBackend, WriteHeader
from bol.repositories.schema import MYSQL_SCHEMA

ER_DUP_ENTRY = 1062


def translate_placeholders(statement: str, has_params: bool) -> str:
    """Rewrite qmark SQL to PyMySQL's ``format`` paramstyle.

    PyMySQL only %-formats the statement when arguments are passed, so literal
    percent signs are escaped in that case only.
    """
    if not has_params:
        return statement
    return statement.replace("%", "%%").replace("?", "%s")


class MySqlConnection(ScopedConnection):
    def __init__(self, raw: pymysql.connections.Connection, checkin: Callable[[Any, bool], None]):
        super().__init__()
        self._raw = raw
        self._checkin = checkin
        self._broken = False

    def _begin(self) -> None:
        self._guard(self._raw.begin)

    def _commit(self) -> None:
        self._guard(self._raw.commit)

    def _rollback(self) -> None:
        try:
            self._raw.rollback()
        except pymysql.err.Error:
            self._broken = True
            raise

    def _close(self) -> None:
        self._checkin(self._raw, self._raw.open and not self._broken)

    def _guard(self, fn, *args):
        try:
            return fn(*args)
        except pymysql.err.IntegrityError as exc:
            if exc.args and exc.args[0] == ER_DUP_ENTRY:
                raise ConflictError(str(exc)) from exc
            raise
        except pymysql.err.OperationalError as exc:
            self._broken = True
            raise BackendUnavailableError(str(exc)) from exc

    def query(self, statement: str, params: Sequence[Any] = ()) -> QueryResult:
        args = tuple(params) or None
        sql = translate_placeholders(statement, args is not None)
        with self._raw.cursor() as cur:
            self._guard(cur.execute, sql, args)
            if cur.description is not None:
                return list(cur.fetchall())
            return WriteHeader(affected_rows=int(cur.rowcount), insert_id=int(cur.lastrowid or 0))


class MySqlBackend(StorageBackend):
    """Networked backend over a bounded pool of PyMySQL connections.

    At most ``pool_size`` connections are checked out at once; further callers
    wait for one to be released. Idle connections are pinged before reuse and
    a connection that failed at the driver level is closed instead of pooled.
    """

    name = "mysql"
    schema = MYSQL_SCHEMA

    def __init__(self, settings: DatabaseSettings):
        self.settings = settings
        self._slots = threading.BoundedSemaphore(max(1, settings.pool_size))
        self._idle: queue.LifoQueue = queue.LifoQueue()

    def _conn(self) -> pymysql.connections.Connection:
        return pymysql.connect(
            host=self.settings.mysql_host,
            port=self.settings.mysql_port,
            user=self.settings.mysql_user,
            password=self.settings.mysql_password or "",
            database=self.settings.mysql_database,
            charset="utf8mb4",
            autocommit=True,
            connect_timeout=self.settings.connect_timeout,
            cursorclass=pymysql.cursors.DictCursor,
            # affected rows count matched rows, as on SQLite
            client_flag=CLIENT.FOUND_ROWS,
        )

    def _checkout(self) -> pymysql.connections.Connection:
        try:
            raw = self._idle.get_nowait()
        except queue.Empty:
            return self._conn()
        raw.ping(reconnect=True)
        return raw

    def _checkin(self, raw: pymysql.connections.Connection, reusable: bool) -> None:
        try:
            if reusable:
                self._idle.put(raw)
            else:
                try:
                    raw.close()
                except pymysql.err.Error:
                    # already closed by the server side
                    pass
        finally:
            self._slots.release()

    @property
    def idle_count(self) -> int:
        return self._idle.qsize()

    def connection(self) -> MySqlConnection:
        self._slots.acquire()
        try:
            raw = self._checkout()
        except pymysql.err.Error as exc:
            self._slots.release()
            raise BackendUnavailableError(
                f"Cannot reach MySQL at {self.settings.mysql_host}:{self.settings.mysql_port}: {exc}"
            ) from exc
        except BaseException:
            self._slots.release()
            raise
        return MySqlConnection(raw, self._checkin)
