from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

import requests

from bol.config import AppPaths, DatabaseSettings, SweepSettings, SyncSettings
from bol.repositories.contracts import StorageBackend
from bol.repositories.storage import StorageContext
from bol.services.installment_service import InstallmentService
from bol.services.inventory_service import InventoryService
from bol.services.ledger_service import LedgerService
from bol.services.project_service import ProjectService
from bol.services.reminder_service import DueInstallmentSweep
from bol.sync.connectivity import ConnectivityMonitor
from bol.sync.engine import SyncEngine
from bol.sync.store import OfflineStore


@dataclass(frozen=True)
class AppContainer:
    storage: StorageContext
    ledger: LedgerService
    inventory: InventoryService
    projects: ProjectService
    installments: InstallmentService
    sweep: DueInstallmentSweep
    offline_store: OfflineStore
    connectivity: ConnectivityMonitor
    sync: SyncEngine


def build_container(
    paths: AppPaths,
    db_settings: Optional[DatabaseSettings] = None,
    sweep_settings: Optional[SweepSettings] = None,
    sync_settings: Optional[SyncSettings] = None,
    session: Optional[requests.Session] = None,
    backend_factory: Optional[Callable[[], StorageBackend]] = None,
) -> AppContainer:
    db_settings = db_settings or DatabaseSettings.from_env()
    sweep_settings = sweep_settings or SweepSettings.from_env()
    sync_settings = sync_settings or SyncSettings.from_env(paths)
    session = session or requests.Session()

    storage = StorageContext(db_settings, paths, backend_factory=backend_factory)
    storage.backend()

    installments = InstallmentService(storage)
    sweep = DueInstallmentSweep(installments, interval=timedelta(hours=sweep_settings.interval_hours))

    offline_store = OfflineStore(sync_settings.store_path)
    connectivity = ConnectivityMonitor(session, sync_settings.base_url, timeout=sync_settings.request_timeout)
    sync = SyncEngine(
        offline_store,
        session,
        sync_settings.base_url,
        connectivity,
        max_attempts=sync_settings.max_attempts,
        backoff_base=sync_settings.backoff_base,
        backoff_cap=sync_settings.backoff_cap,
        poll_interval=sync_settings.poll_interval,
        timeout=sync_settings.request_timeout,
    )

    return AppContainer(
        storage=storage,
        ledger=LedgerService(storage),
        inventory=InventoryService(storage),
        projects=ProjectService(storage),
        installments=installments,
        sweep=sweep,
        offline_store=offline_store,
        connectivity=connectivity,
        sync=sync,
    )
