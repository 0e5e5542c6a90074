from __future__ import annotations

import json
import secrets
import sqlite3
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

CACHE_PREFIX = "offline_cache_v1:"


def cache_key_for(url: str, token: Optional[str] = None) -> str:
    return f"{CACHE_PREFIX}GET:{url}:t={token[:16] if token else 'anon'}"


@dataclass(frozen=True)
class QueuedMutation:
    id: str
    url: str
    method: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    created_at: float = 0.0
    retry_count: int = 0
    cache_key: Optional[str] = None


@dataclass(frozen=True)
class CachedSnapshot:
    key: str
    ts: float
    data: Any


class OfflineStore:
    """Client-side durable state: read cache and the pending mutation queue.

    Backed by a local SQLite file. Every write commits before returning, so
    a mutation accepted here is still queued after the process restarts.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        with self._lock:
            conn = self._conn()
            try:
                with conn:
                    conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS cache (
                            key TEXT PRIMARY KEY,
                            ts REAL NOT NULL,
                            data TEXT NOT NULL
                        )
                        """
                    )
                    conn.execute(
                        """
                        CREATE TABLE IF NOT EXISTS queue (
                            seq INTEGER PRIMARY KEY AUTOINCREMENT,
                            id TEXT NOT NULL UNIQUE,
                            url TEXT NOT NULL,
                            method TEXT NOT NULL,
                            headers TEXT NOT NULL,
                            body TEXT NULL,
                            created_at REAL NOT NULL,
                            retry_count INTEGER NOT NULL DEFAULT 0,
                            cache_key TEXT NULL
                        )
                        """
                    )
            finally:
                conn.close()

    def _conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        return conn

    def _write(self, statement: str, params: tuple = ()) -> int:
        with self._lock:
            conn = self._conn()
            try:
                with conn:
                    return conn.execute(statement, params).rowcount
            finally:
                conn.close()

    def _read(self, statement: str, params: tuple = ()) -> list[sqlite3.Row]:
        with self._lock:
            conn = self._conn()
            try:
                return conn.execute(statement, params).fetchall()
            finally:
                conn.close()

    # ---------- cache ----------
    def get_cached(self, key: str) -> Optional[CachedSnapshot]:
        rows = self._read("SELECT key, ts, data FROM cache WHERE key = ?", (key,))
        if not rows:
            return None
        r = rows[0]
        return CachedSnapshot(key=r["key"], ts=float(r["ts"]), data=json.loads(r["data"]))

    def set_cached(self, key: str, data: Any) -> None:
        self._write(
            "INSERT INTO cache (key, ts, data) VALUES (?, ?, ?) "
            "ON CONFLICT(key) DO UPDATE SET ts = excluded.ts, data = excluded.data",
            (key, time.time(), json.dumps(data)),
        )

    def remove_cached(self, key: str) -> None:
        self._write("DELETE FROM cache WHERE key = ?", (key,))

    # ---------- queue ----------
    def enqueue(
        self,
        url: str,
        method: str,
        headers: Optional[dict[str, str]] = None,
        body: Any = None,
        cache_key: Optional[str] = None,
    ) -> QueuedMutation:
        now = time.time()
        mutation = QueuedMutation(
            id=f"{int(now * 1000)}-{secrets.token_hex(4)}",
            url=url,
            method=method.upper(),
            headers=dict(headers or {}),
            body=body,
            created_at=now,
            retry_count=0,
            cache_key=cache_key,
        )
        self._write(
            """
            INSERT INTO queue (id, url, method, headers, body, created_at, retry_count, cache_key)
            VALUES (?, ?, ?, ?, ?, ?, 0, ?)
            """,
            (
                mutation.id,
                mutation.url,
                mutation.method,
                json.dumps(mutation.headers),
                None if body is None else json.dumps(body),
                mutation.created_at,
                cache_key,
            ),
        )
        return mutation

    @staticmethod
    def _to_mutation(r: sqlite3.Row) -> QueuedMutation:
        return QueuedMutation(
            id=r["id"],
            url=r["url"],
            method=r["method"],
            headers=json.loads(r["headers"]),
            body=None if r["body"] is None else json.loads(r["body"]),
            created_at=float(r["created_at"]),
            retry_count=int(r["retry_count"]),
            cache_key=r["cache_key"],
        )

    def pending(self) -> list[QueuedMutation]:
        rows = self._read(
            "SELECT id, url, method, headers, body, created_at, retry_count, cache_key FROM queue ORDER BY seq ASC"
        )
        return [self._to_mutation(r) for r in rows]

    def head(self) -> Optional[QueuedMutation]:
        rows = self._read(
            "SELECT id, url, method, headers, body, created_at, retry_count, cache_key "
            "FROM queue ORDER BY seq ASC LIMIT 1"
        )
        return self._to_mutation(rows[0]) if rows else None

    def pending_count(self) -> int:
        return int(self._read("SELECT COUNT(*) AS n FROM queue")[0]["n"])

    def remove(self, mutation_id: str) -> None:
        self._write("DELETE FROM queue WHERE id = ?", (mutation_id,))

    def bump_retry(self, mutation_id: str) -> int:
        self._write("UPDATE queue SET retry_count = retry_count + 1 WHERE id = ?", (mutation_id,))
        rows = self._read("SELECT retry_count FROM queue WHERE id = ?", (mutation_id,))
        return int(rows[0]["retry_count"]) if rows else 0
