"""Local cache of HelmRelease objects kept in sync with the cluster."""

from .in_memory import InMemoryStore
from .informer import Informer, ListWatch, WatchEvent
from .store import (
    DeletedFinalStateUnknown,
    Store,
    StoreEvent,
    deletion_handling_key,
)

__all__ = [
    "DeletedFinalStateUnknown",
    "InMemoryStore",
    "Informer",
    "ListWatch",
    "Store",
    "StoreEvent",
    "WatchEvent",
    "deletion_handling_key",
]
