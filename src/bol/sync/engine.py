from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Optional

import requests

from bol.sync.connectivity import ConnectivityMonitor
from bol.sync.store import OfflineStore, QueuedMutation

log = logging.getLogger("bol.sync")


@dataclass(frozen=True)
class DrainResult:
    replayed: int = 0
    discarded: int = 0
    dropped: int = 0
    remaining: int = 0


class SyncEngine:
    """Replays queued mutations against the server, oldest first.

    2xx removes the mutation and invalidates its cached read. 4xx discards it
    for good. A network error or 5xx bumps its retry count and ends the pass,
    so nothing queued later is sent ahead of it; once the count reaches
    ``max_attempts`` the mutation is dropped.
    """

    def __init__(
        self,
        store: OfflineStore,
        session: requests.Session,
        base_url: str,
        connectivity: ConnectivityMonitor,
        *,
        max_attempts: int = 5,
        backoff_base: float = 1.0,
        backoff_cap: float = 30.0,
        poll_interval: float = 15.0,
        timeout: float = 10.0,
    ):
        self.store = store
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.connectivity = connectivity
        self.max_attempts = max_attempts
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.poll_interval = poll_interval
        self.timeout = timeout
        self._drain_lock = threading.Lock()
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        connectivity.add_listener(self.notify_online)

    def absolute_url(self, url: str) -> str:
        if url.startswith(("http://", "https://")):
            return url
        return f"{self.base_url}/{url.lstrip('/')}"

    def send(self, method: str, url: str, headers: Optional[dict[str, str]] = None, body: Any = None) -> requests.Response:
        merged = {"Content-Type": "application/json", **(headers or {})}
        return self.session.request(
            method,
            self.absolute_url(url),
            headers=merged,
            json=body,
            timeout=self.timeout,
        )

    def enqueue(
        self,
        method: str,
        url: str,
        headers: Optional[dict[str, str]] = None,
        body: Any = None,
        cache_key: Optional[str] = None,
    ) -> QueuedMutation:
        mutation = self.store.enqueue(url, method, headers, body, cache_key)
        log.info("mutation_queued id=%s method=%s url=%s", mutation.id, mutation.method, mutation.url)
        return mutation

    def pending_count(self) -> int:
        return self.store.pending_count()

    def drain(self) -> DrainResult:
        if not self._drain_lock.acquire(blocking=False):
            return DrainResult(remaining=self.store.pending_count())
        try:
            return self._drain()
        finally:
            self._drain_lock.release()

    def _drain(self) -> DrainResult:
        replayed = discarded = dropped = 0
        while self.connectivity.online:
            head = self.store.head()
            if head is None:
                break
            try:
                resp = self.send(head.method, head.url, head.headers, head.body)
                status = resp.status_code
            except requests.RequestException as e:
                log.warning("mutation_replay_failed id=%s error=%s", head.id, e)
                self.connectivity.set_online(False)
                status = None

            if status is not None and 200 <= status < 300:
                self.store.remove(head.id)
                if head.cache_key:
                    self.store.remove_cached(head.cache_key)
                replayed += 1
                continue
            if status is not None and 400 <= status < 500:
                self.store.remove(head.id)
                discarded += 1
                log.warning("mutation_discarded id=%s status=%s", head.id, status)
                continue

            attempts = self.store.bump_retry(head.id)
            if attempts >= self.max_attempts:
                self.store.remove(head.id)
                dropped += 1
                log.warning("mutation_dropped id=%s attempts=%s", head.id, attempts)
                continue
            break

        result = DrainResult(replayed, discarded, dropped, self.store.pending_count())
        if replayed or discarded or dropped:
            log.info(
                "queue_drained replayed=%s discarded=%s dropped=%s remaining=%s",
                result.replayed,
                result.discarded,
                result.dropped,
                result.remaining,
            )
        return result

    def next_delay(self, result: DrainResult) -> float:
        if not result.remaining:
            return self.poll_interval
        head = self.store.head()
        retries = head.retry_count if head else 0
        return min(self.backoff_cap, self.backoff_base * 2**retries)

    def notify_online(self) -> None:
        self._wake.set()

    def _loop(self) -> None:
        while not self._stop.is_set():
            try:
                if not self.connectivity.online:
                    self.connectivity.probe()
                delay = self.next_delay(self.drain())
            except Exception:
                log.exception("sync_pass_failed")
                delay = self.poll_interval
            self._wake.wait(delay)
            self._wake.clear()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="bol-sync", daemon=True)
        self._thread.start()
        log.info("sync_started base_url=%s pending=%s", self.base_url, self.pending_count())

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        log.info("sync_stopped pending=%s", self.pending_count())
