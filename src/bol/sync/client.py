from __future__ import annotations

import logging
import time
from typing import Any, Optional

import requests

from bol.domain.errors import OfflineUnavailableError, RequestRejectedError
from bol.sync.engine import SyncEngine
from bol.sync.store import cache_key_for

log = logging.getLogger("bol.sync")

LOCAL_ID_PREFIX = "local-"


def _error_message(resp: requests.Response) -> str:
    try:
        doc = resp.json()
    except ValueError:
        doc = None
    if isinstance(doc, dict) and doc.get("error"):
        return str(doc["error"])
    return resp.text or f"{resp.status_code} {resp.reason or ''}".strip()


class ResourceClient:
    """Offline-aware client for one REST collection.

    Online, requests go straight to the server and the cached list follows
    the server's answers. Offline, or when the server cannot take the write
    (network error or 5xx), the cached list is patched optimistically and the
    write is queued for replay. Writes are also queued while older ones are
    still pending, so they reach the server in order.
    """

    def __init__(
        self,
        engine: SyncEngine,
        collection_url: str,
        token: Optional[str] = None,
        envelope: Optional[str] = None,
        id_field: str = "id",
    ):
        self.engine = engine
        self.collection_url = collection_url.rstrip("/")
        self.token = token
        self.envelope = envelope
        self.id_field = id_field

    @property
    def cache_key(self) -> str:
        return cache_key_for(self.collection_url, self.token)

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def _cached_list(self) -> list[dict]:
        snap = self.engine.store.get_cached(self.cache_key)
        return list(snap.data) if snap and isinstance(snap.data, list) else []

    def _can_send(self) -> bool:
        return self.engine.connectivity.online and self.engine.pending_count() == 0

    def _try_send(self, method: str, url: str, body: Any = None) -> Optional[requests.Response]:
        """Send now; ``None`` means the write must be queued instead."""
        if not self._can_send():
            return None
        try:
            resp = self.engine.send(method, url, self._headers(), body)
        except requests.RequestException as e:
            log.warning("request_failed method=%s url=%s error=%s", method, url, e)
            self.engine.connectivity.set_online(False)
            return None
        if 400 <= resp.status_code < 500:
            raise RequestRejectedError(_error_message(resp), resp.status_code)
        if resp.status_code >= 500:
            log.warning("request_deferred method=%s url=%s status=%s", method, url, resp.status_code)
            return None
        return resp

    def _queue(self, method: str, url: str, body: Any = None) -> None:
        self.engine.enqueue(method, url, self._headers(), body, self.cache_key)

    def list(self) -> list[dict]:
        server_err: Optional[str] = None
        if self.engine.connectivity.online:
            try:
                resp = self.engine.send("GET", self.collection_url, self._headers())
            except requests.RequestException as e:
                log.warning("list_failed url=%s error=%s", self.collection_url, e)
                self.engine.connectivity.set_online(False)
            else:
                if resp.ok:
                    doc = resp.json()
                    data = doc[self.envelope] if self.envelope else doc
                    self.engine.store.set_cached(self.cache_key, data)
                    return data
                server_err = _error_message(resp)

        snap = self.engine.store.get_cached(self.cache_key)
        if snap is not None:
            return snap.data
        raise OfflineUnavailableError(server_err or f"{self.collection_url} is unavailable offline and not cached.")

    def create(self, payload: dict) -> dict:
        resp = self._try_send("POST", self.collection_url, payload)
        current = self._cached_list()
        if resp is not None:
            created = resp.json()
            kept = [r for r in current if not str(r.get(self.id_field, "")).startswith(LOCAL_ID_PREFIX)]
            self.engine.store.set_cached(self.cache_key, [created, *kept])
            return created

        temp = {**payload, self.id_field: f"{LOCAL_ID_PREFIX}{int(time.time() * 1000)}"}
        self.engine.store.set_cached(self.cache_key, [temp, *current])
        self._queue("POST", self.collection_url, payload)
        return temp

    def update(self, resource_id: str, patch: dict) -> dict:
        url = f"{self.collection_url}/{resource_id}"
        resp = self._try_send("PUT", url, patch)
        current = self._cached_list()
        if resp is not None:
            updated = resp.json()
            self.engine.store.set_cached(
                self.cache_key,
                [updated if r.get(self.id_field) == resource_id else r for r in current],
            )
            return updated

        patched = [{**r, **patch} if r.get(self.id_field) == resource_id else r for r in current]
        self.engine.store.set_cached(self.cache_key, patched)
        self._queue("PUT", url, patch)
        for r in patched:
            if r.get(self.id_field) == resource_id:
                return r
        return {self.id_field: resource_id, **patch}

    def delete(self, resource_id: str) -> None:
        url = f"{self.collection_url}/{resource_id}"
        resp = self._try_send("DELETE", url)
        remaining = [r for r in self._cached_list() if r.get(self.id_field) != resource_id]
        self.engine.store.set_cached(self.cache_key, remaining)
        if resp is None:
            self._queue("DELETE", url)
