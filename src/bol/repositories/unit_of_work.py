from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from bol.repositories.contracts import ScopedConnection, StorageBackend


@dataclass
class UnitOfWork:
    """Scoped transaction for compound ledger writes.

    Commits on a clean exit; any exception rolls back and propagates as-is.
    The connection is always released.
    """

    backend: StorageBackend
    conn: Optional[ScopedConnection] = field(default=None, init=False)

    def __enter__(self) -> ScopedConnection:
        self.conn = self.backend.connection()
        try:
            self.conn.begin()
        except BaseException:
            self.conn.release()
            raise
        return self.conn

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.conn is None:
            return
        try:
            if exc_type is None:
                self.conn.commit()
            else:
                self.conn.rollback()
        finally:
            self.conn.release()
            self.conn = None
