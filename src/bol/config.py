from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
import os

DEFAULT_DB_FILENAME = "app.db"


@dataclass(frozen=True)
class AppPaths:
    base_dir: Path
    db_path: Path
    logs_dir: Path


@dataclass(frozen=True)
class DatabaseSettings:
    mysql_host: str | None = None
    mysql_port: int = 3306
    mysql_database: str | None = None
    mysql_user: str | None = None
    mysql_password: str | None = None
    connect_timeout: int = 10
    pool_size: int = 10

    @property
    def has_network_store(self) -> bool:
        return bool(self.mysql_host and self.mysql_database and self.mysql_user)

    @classmethod
    def from_env(cls) -> "DatabaseSettings":
        return cls(
            mysql_host=os.environ.get("MYSQL_HOST") or None,
            mysql_port=int(os.environ.get("MYSQL_PORT", "3306")),
            mysql_database=os.environ.get("MYSQL_DATABASE") or None,
            mysql_user=os.environ.get("MYSQL_USER") or None,
            mysql_password=os.environ.get("MYSQL_PASSWORD"),
            pool_size=int(os.environ.get("MYSQL_POOL_SIZE", "10")),
        )


@dataclass(frozen=True)
class SweepSettings:
    interval_hours: float = 24.0

    @classmethod
    def from_env(cls) -> "SweepSettings":
        return cls(interval_hours=float(os.environ.get("BOL_REMINDER_INTERVAL_HOURS", "24")))


@dataclass(frozen=True)
class SyncSettings:
    base_url: str
    store_path: Path
    poll_interval: float = 15.0
    max_attempts: int = 5
    backoff_base: float = 1.0
    backoff_cap: float = 30.0
    request_timeout: float = 10.0

    @classmethod
    def from_env(cls, paths: AppPaths) -> "SyncSettings":
        return cls(
            base_url=os.environ.get("BOL_API_BASE", "http://localhost:8080").rstrip("/"),
            store_path=paths.base_dir / "offline.db",
        )


def _default_data_dir() -> Path:
    if os.environ.get("LOCAL_DB_DIR"):
        return Path(os.environ["LOCAL_DB_DIR"]).resolve()
    if os.environ.get("PORTABLE_EXECUTABLE_DIR"):
        return (Path(os.environ["PORTABLE_EXECUTABLE_DIR"]) / "data").resolve()
    return (Path.cwd() / "data").resolve()


def get_app_paths() -> AppPaths:
    explicit = os.environ.get("LOCAL_DB_PATH")
    if explicit:
        db = Path(explicit).resolve()
        base = db.parent
    else:
        base = _default_data_dir()
        db = base / DEFAULT_DB_FILENAME

    logs = base / "logs"

    base.mkdir(parents=True, exist_ok=True)
    logs.mkdir(parents=True, exist_ok=True)

    return AppPaths(base_dir=base, db_path=db, logs_dir=logs)
