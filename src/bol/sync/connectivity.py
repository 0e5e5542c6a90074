from __future__ import annotations

import logging
import threading
from typing import Callable

import requests

log = logging.getLogger("bol.sync")


class ConnectivityMonitor:
    """Tracks whether the server is reachable.

    Listeners fire on every offline to online transition, from the thread
    that observed it.
    """

    def __init__(self, session: requests.Session, base_url: str, timeout: float = 5.0, online: bool = True):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._online = online
        self._lock = threading.Lock()
        self._listeners: list[Callable[[], None]] = []

    @property
    def online(self) -> bool:
        return self._online

    def add_listener(self, fn: Callable[[], None]) -> None:
        self._listeners.append(fn)

    def set_online(self, value: bool) -> None:
        with self._lock:
            came_back = value and not self._online
            went_away = self._online and not value
            self._online = value
        if went_away:
            log.warning("connectivity_lost base_url=%s", self.base_url)
        if came_back:
            log.info("connectivity_restored base_url=%s", self.base_url)
            for fn in list(self._listeners):
                fn()

    def probe(self) -> bool:
        try:
            r = self.session.request("GET", f"{self.base_url}/health", timeout=self.timeout)
            ok = 200 <= r.status_code < 300
        except requests.RequestException as e:
            log.debug("health_probe_failed error=%s", e)
            ok = False
        self.set_online(ok)
        return ok
