from .store import CachedSnapshot, OfflineStore, QueuedMutation, cache_key_for
from .connectivity import ConnectivityMonitor
from .engine import DrainResult, SyncEngine
from .client import ResourceClient

__all__ = [
    "CachedSnapshot",
    "OfflineStore",
    "QueuedMutation",
    "cache_key_for",
    "ConnectivityMonitor",
    "DrainResult",
    "SyncEngine",
    "ResourceClient",
]
