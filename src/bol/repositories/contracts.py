from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, Protocol, Sequence, Union

from bol.repositories.schema import seed_privileged_account

log = logging.getLogger(__name__)

Row = dict[str, Any]


@dataclass(frozen=True)
class WriteHeader:
    affected_rows: int
    insert_id: int = 0


QueryResult = Union[list[Row], WriteHeader]


class Executor(Protocol):
    def query(self, statement: str, params: Sequence[Any] = ()) -> QueryResult: ...


class Connection(Protocol):
    def begin(self) -> None: ...
    def commit(self) -> None: ...
    def rollback(self) -> None: ...
    def query(self, statement: str, params: Sequence[Any] = ()) -> QueryResult: ...
    def release(self) -> None: ...


class ScopedConnection(ABC):
    """Transaction bookkeeping shared by every driver.

    Subclasses only provide the raw driver calls. ``release`` rolls back a
    transaction that is still open so an in-doubt write never leaks.
    """

    def __init__(self) -> None:
        self.in_transaction = False
        self.released = False

    @abstractmethod
    def _begin(self) -> None: ...

    @abstractmethod
    def _commit(self) -> None: ...

    @abstractmethod
    def _rollback(self) -> None: ...

    @abstractmethod
    def _close(self) -> None: ...

    @abstractmethod
    def query(self, statement: str, params: Sequence[Any] = ()) -> QueryResult: ...

    def begin(self) -> None:
        if self.in_transaction:
            return
        self._begin()
        self.in_transaction = True

    def commit(self) -> None:
        if not self.in_transaction:
            return
        self._commit()
        self.in_transaction = False

    def rollback(self) -> None:
        if not self.in_transaction:
            return
        try:
            self._rollback()
        finally:
            self.in_transaction = False

    def release(self) -> None:
        if self.released:
            return
        self.released = True
        try:
            if self.in_transaction:
                try:
                    self.rollback()
                except Exception:
                    log.warning("rollback_on_release_failed", exc_info=True)
        finally:
            self._close()


class StorageBackend(ABC):
    name = "abstract"
    schema: Sequence[str] = ()

    @abstractmethod
    def connection(self) -> ScopedConnection: ...

    def query(self, statement: str, params: Sequence[Any] = ()) -> QueryResult:
        conn = self.connection()
        try:
            return conn.query(statement, params)
        finally:
            conn.release()

    def initialize(self, bootstrap_hash: Callable[[], str]) -> None:
        conn = self.connection()
        try:
            for statement in self.schema:
                conn.query(statement)
            conn.begin()
            seed_privileged_account(conn, bootstrap_hash)
            conn.commit()
        finally:
            conn.release()
