from pathlib import Path

import pytest
import requests

from conftest import FakeResponse, FakeSession

from bol.domain.errors import OfflineUnavailableError, RequestRejectedError
from bol.sync.client import ResourceClient
from bol.sync.connectivity import ConnectivityMonitor
from bol.sync.engine import DrainResult, SyncEngine
from bol.sync.store import OfflineStore, cache_key_for

BASE = "http://ledger.test"
USERS = "/api/admin/users"


def _engine(tmp_path: Path, session: FakeSession, online: bool = True) -> SyncEngine:
    store = OfflineStore(tmp_path / "offline.db")
    connectivity = ConnectivityMonitor(session, BASE, online=online)
    return SyncEngine(store, session, BASE, connectivity)


def test_cache_key_uses_token_prefix():
    assert cache_key_for(USERS, None) == "offline_cache_v1:GET:/api/admin/users:t=anon"
    assert cache_key_for(USERS, "abcdefghijklmnopqrstuvwxyz") == (
        "offline_cache_v1:GET:/api/admin/users:t=abcdefghijklmnop"
    )


def test_offline_create_is_queued_with_optimistic_cache(tmp_path: Path):
    session = FakeSession()
    engine = _engine(tmp_path, session, online=False)
    engine.store.set_cached(cache_key_for(USERS, "tok"), [{"id": "u-1", "name": "Old"}])
    client = ResourceClient(engine, USERS, token="tok")

    temp = client.create({"name": "New"})

    assert temp["id"].startswith("local-")
    assert temp["name"] == "New"
    assert [u["name"] for u in client.list()] == ["New", "Old"]
    assert engine.pending_count() == 1
    head = engine.store.head()
    assert head.method == "POST"
    assert head.body == {"name": "New"}
    assert head.headers == {"Authorization": "Bearer tok"}
    assert session.calls == []


def test_drain_success_removes_mutation_and_invalidates_cache(tmp_path: Path):
    session = FakeSession(default=FakeResponse(201, {"id": "u-2"}))
    engine = _engine(tmp_path, session, online=False)
    client = ResourceClient(engine, USERS)
    client.create({"name": "New"})

    engine.connectivity.set_online(True)
    result = engine.drain()

    assert result == DrainResult(replayed=1, discarded=0, dropped=0, remaining=0)
    assert engine.store.get_cached(client.cache_key) is None
    assert session.calls == [("POST", f"{BASE}{USERS}", {"name": "New"})]


def test_client_error_discards_after_single_attempt(tmp_path: Path):
    session = FakeSession(default=FakeResponse(400, {"error": "bad"}))
    engine = _engine(tmp_path, session)
    engine.store.enqueue(USERS, "POST", body={"name": "x"})

    result = engine.drain()

    assert result.discarded == 1
    assert engine.pending_count() == 0
    assert len(session.calls) == 1


def test_server_error_retries_then_drops_at_ceiling(tmp_path: Path):
    session = FakeSession(default=FakeResponse(503))
    engine = _engine(tmp_path, session)
    engine.store.enqueue(USERS, "POST", body={"name": "x"})

    for attempt in range(1, 5):
        result = engine.drain()
        assert result.remaining == 1
        assert engine.store.head().retry_count == attempt

    result = engine.drain()

    assert result.dropped == 1
    assert result.remaining == 0
    assert len(session.calls) == 5


def test_retryable_failure_blocks_later_mutations(tmp_path: Path):
    session = FakeSession(responses=[FakeResponse(500)], default=FakeResponse(200, {}))
    engine = _engine(tmp_path, session)
    first = engine.store.enqueue(USERS, "POST", body={"n": 1})
    engine.store.enqueue(f"{USERS}/u-1", "PUT", body={"n": 2})

    result = engine.drain()

    assert result == DrainResult(replayed=0, discarded=0, dropped=0, remaining=2)
    assert len(session.calls) == 1
    assert engine.store.head().id == first.id

    result = engine.drain()
    assert result.replayed == 2
    assert [c[0] for c in session.calls] == ["POST", "POST", "PUT"]


def test_network_error_marks_offline_and_keeps_mutation(tmp_path: Path):
    session = FakeSession(responses=[requests.ConnectionError("down")])
    engine = _engine(tmp_path, session)
    engine.store.enqueue(USERS, "DELETE")

    result = engine.drain()

    assert result.remaining == 1
    assert engine.connectivity.online is False
    assert engine.store.head().retry_count == 1
    assert engine.drain().remaining == 1
    assert len(session.calls) == 1


def test_queue_survives_store_reopen(tmp_path: Path):
    OfflineStore(tmp_path / "offline.db").enqueue(USERS, "POST", {"X-Trace": "1"}, {"name": "kept"})

    reopened = OfflineStore(tmp_path / "offline.db")

    pending = reopened.pending()
    assert len(pending) == 1
    assert pending[0].body == {"name": "kept"}
    assert pending[0].headers == {"X-Trace": "1"}


def test_next_delay_backs_off_from_head_retry_count(tmp_path: Path):
    engine = _engine(tmp_path, FakeSession())
    mutation = engine.store.enqueue(USERS, "POST")

    delays = []
    for _ in range(6):
        delays.append(engine.next_delay(DrainResult(remaining=1)))
        engine.store.bump_retry(mutation.id)

    assert delays == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0]
    assert engine.next_delay(DrainResult(remaining=0)) == 15.0


def test_network_error_drain_backs_off_instead_of_polling(tmp_path: Path):
    session = FakeSession(responses=[requests.ConnectionError("down")])
    engine = _engine(tmp_path, session)
    engine.store.enqueue(USERS, "POST", body={"name": "x"})

    result = engine.drain()

    assert engine.connectivity.online is False
    assert result.remaining == 1
    assert engine.next_delay(result) == 2.0


def test_probe_restores_connectivity_and_wakes_engine(tmp_path: Path):
    session = FakeSession(default=FakeResponse(200, {"status": "ok"}))
    engine = _engine(tmp_path, session, online=False)

    assert engine.connectivity.probe() is True
    assert engine.connectivity.online is True
    assert engine._wake.is_set()
    assert session.calls[0][:2] == ("GET", f"{BASE}/health")


def test_online_create_rejected_by_server_raises(tmp_path: Path):
    session = FakeSession(default=FakeResponse(409, {"error": "Username taken"}))
    engine = _engine(tmp_path, session)
    client = ResourceClient(engine, USERS)

    with pytest.raises(RequestRejectedError) as exc:
        client.create({"name": "dup"})

    assert exc.value.status_code == 409
    assert "Username taken" in str(exc.value)
    assert engine.pending_count() == 0


def test_online_server_error_falls_back_to_queue(tmp_path: Path):
    session = FakeSession(default=FakeResponse(502))
    engine = _engine(tmp_path, session)
    client = ResourceClient(engine, USERS)

    updated = client.update("u-1", {"name": "Later"})

    assert updated == {"id": "u-1", "name": "Later"}
    assert engine.pending_count() == 1
    assert engine.store.head().url == f"{USERS}/u-1"


def test_writes_queue_behind_pending_mutations(tmp_path: Path):
    session = FakeSession(default=FakeResponse(200, {"id": "u-9"}))
    engine = _engine(tmp_path, session)
    engine.store.enqueue(USERS, "POST", body={"name": "first"})
    client = ResourceClient(engine, USERS)

    client.delete("u-3")

    assert session.calls == []
    assert [m.method for m in engine.store.pending()] == ["POST", "DELETE"]


def test_list_refreshes_cache_online_and_serves_it_offline(tmp_path: Path):
    session = FakeSession(responses=[FakeResponse(200, {"users": [{"id": "u-1"}]})])
    engine = _engine(tmp_path, session)
    client = ResourceClient(engine, USERS, token="tok", envelope="users")

    assert client.list() == [{"id": "u-1"}]

    engine.connectivity.set_online(False)
    assert client.list() == [{"id": "u-1"}]
    assert len(session.calls) == 1


def test_list_offline_without_cache_raises(tmp_path: Path):
    engine = _engine(tmp_path, FakeSession(), online=False)

    with pytest.raises(OfflineUnavailableError):
        ResourceClient(engine, USERS).list()
