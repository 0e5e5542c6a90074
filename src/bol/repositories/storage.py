from __future__ import annotations

import logging
import os
import secrets
import threading
from typing import Callable, Optional

from bol.config import AppPaths, DatabaseSettings
from bol.repositories.contracts import StorageBackend
from bol.repositories.memory_repo import MemoryBackend
from bol.repositories.schema import hash_password

log = logging.getLogger("bol.storage")


class StorageContext:
    """Process-wide handle on the storage backend.

    Built once at startup and handed to every service. The backend is chosen
    and initialized on first use, exactly once; the outcome is memoized,
    failure included. A process whose backend never initialized runs on the
    in-memory store for the rest of its lifetime and never retries.
    """

    def __init__(
        self,
        settings: DatabaseSettings,
        paths: AppPaths,
        backend_factory: Optional[Callable[[], StorageBackend]] = None,
    ):
        self.settings = settings
        self.paths = paths
        self._factory = backend_factory or self._select_backend
        self._lock = threading.Lock()
        self._backend: Optional[StorageBackend] = None
        self.degraded = False
        self.init_error: Optional[BaseException] = None
        self._seed_hash: Optional[str] = None

    def _select_backend(self) -> StorageBackend:
        if self.settings.has_network_store:
            from bol.repositories.mysql_repo import MySqlBackend

            return MySqlBackend(self.settings)
        from bol.repositories.sqlite_repo import SqliteBackend

        return SqliteBackend(self.paths.db_path)

    def backend(self) -> StorageBackend:
        with self._lock:
            if self._backend is None:
                self._backend = self._initialize()
            return self._backend

    def _initialize(self) -> StorageBackend:
        try:
            backend = self._factory()
            backend.initialize(self._bootstrap_hash)
            log.info("storage_ready backend=%s", backend.name)
            return backend
        except Exception as exc:
            self.init_error = exc
            self.degraded = True
            log.exception("storage_init_failed fallback=memory")

        fallback = MemoryBackend()
        fallback.initialize(self._bootstrap_hash)
        log.warning("storage_degraded backend=%s", fallback.name)
        return fallback

    def _bootstrap_hash(self) -> str:
        if self._seed_hash is None:
            secret = os.environ.get("BOL_BOOTSTRAP_PASSWORD", "").strip()
            if not secret:
                secret = secrets.token_urlsafe(12)
                self._write_bootstrap_secret(secret)
            self._seed_hash = hash_password(secret)
        return self._seed_hash

    def _write_bootstrap_secret(self, secret: str) -> None:
        # one-time local onboarding channel, never logged
        secret_file = self.paths.base_dir / ".admin_bootstrap_password"
        try:
            secret_file.parent.mkdir(parents=True, exist_ok=True)
            secret_file.touch(mode=0o600, exist_ok=True)
            secret_file.chmod(0o600)
            secret_file.write_text(secret + "\n", encoding="utf-8")
        except OSError as e:
            log.warning("bootstrap_secret_not_written path=%s error=%s", secret_file, e)
