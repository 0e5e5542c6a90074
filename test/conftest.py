import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from bol.config import AppPaths, DatabaseSettings  # noqa: E402
from bol.repositories.storage import StorageContext  # noqa: E402


def make_paths(tmp_path: Path, name: str = "t.db") -> AppPaths:
    logs = tmp_path / "logs"
    logs.mkdir(parents=True, exist_ok=True)
    return AppPaths(base_dir=tmp_path, db_path=tmp_path / name, logs_dir=logs)


def make_storage(tmp_path: Path, backend_factory=None, name: str = "t.db") -> StorageContext:
    return StorageContext(DatabaseSettings(), make_paths(tmp_path, name), backend_factory=backend_factory)


@pytest.fixture(autouse=True)
def _bootstrap_password(monkeypatch):
    monkeypatch.setenv("BOL_BOOTSTRAP_PASSWORD", "Root#1234")
    for var in ("MYSQL_HOST", "MYSQL_DATABASE", "MYSQL_USER"):
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def storage(tmp_path: Path) -> StorageContext:
    return make_storage(tmp_path)


class FakeResponse:
    def __init__(self, status_code: int, payload=None, text: str = ""):
        self.status_code = status_code
        self._payload = payload
        self.text = text
        self.reason = ""

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json body")
        return self._payload


class FakeSession:
    """Scripted stand-in for ``requests.Session``.

    ``responses`` are consumed in order; an exception instance is raised
    instead of returned. Once exhausted, ``default`` answers every call.
    """

    def __init__(self, responses=None, default=None):
        self.responses = list(responses or [])
        self.default = default
        self.calls = []

    def request(self, method, url, headers=None, json=None, timeout=None):
        self.calls.append((method, url, json))
        item = self.responses.pop(0) if self.responses else self.default
        if isinstance(item, Exception):
            raise item
        if item is None:
            return FakeResponse(200, {})
        return item
