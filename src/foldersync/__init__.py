"""
Folder Sync - optimistic synchronization of the folder hierarchy.

Public entry points:
- FoldersAdapter: the single point of folder mutation and notification
- FolderChildrenReconciler: one live, sorted listing per displayed parent
- RootFolderList: root folders plus the active folder filter
- build_folder_sync: application wiring
"""
from .models import (
    Folder,
    FolderWithCounts,
    FolderOp,
    ChangeEvent,
    LocalReconcileEvent,
    FolderFilter,
    ItemState,
    OptimisticFolder,
    TrackedFresh,
    TrackedStale,
    FolderItem,
)
from .errors import (
    FolderSyncError,
    NotFoundError,
    ValidationError,
    TransientFetchError,
    ReconciliationAmbiguity,
)
from .cache import FolderCache, CacheKey
from .store import KeyValueStorage, MemoryStorage, FolderBackend, RecordingIndex, KeyValueFolderStore
from .adapter import FoldersAdapter
from .debounce import Debouncer
from .reconciler import FolderChildrenReconciler, reconcile_items
from .roots import RootFolderList
from .app import build_folder_sync

__all__ = [
    "Folder",
    "FolderWithCounts",
    "FolderOp",
    "ChangeEvent",
    "LocalReconcileEvent",
    "FolderFilter",
    "ItemState",
    "OptimisticFolder",
    "TrackedFresh",
    "TrackedStale",
    "FolderItem",
    "FolderSyncError",
    "NotFoundError",
    "ValidationError",
    "TransientFetchError",
    "ReconciliationAmbiguity",
    "FolderCache",
    "CacheKey",
    "KeyValueStorage",
    "MemoryStorage",
    "FolderBackend",
    "RecordingIndex",
    "KeyValueFolderStore",
    "FoldersAdapter",
    "Debouncer",
    "FolderChildrenReconciler",
    "reconcile_items",
    "RootFolderList",
    "build_folder_sync",
]
