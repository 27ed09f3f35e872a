"""
Folder Sync - Optimistic folder synchronization for the recordings library.

Keeps every folder listing in the app consistent while folders are created,
renamed, moved and deleted locally (optimistically) and by other instances.
"""

# Core systems
from src.core.base_system import BaseSystem
from src.core.locator import ServiceLocator
from src.core.config import ConfigManager, AppConfig, GeneralSettings, FolderSyncSettings
from src.core.events import EventBus, Events, Signal
from src.core.logging import setup_logging

# Folder synchronization
from src.foldersync.adapter import FoldersAdapter
from src.foldersync.reconciler import FolderChildrenReconciler
from src.foldersync.roots import RootFolderList
from src.foldersync.app import build_folder_sync

__version__ = "0.1.0"

__all__ = [
    # Core
    "BaseSystem",
    "ServiceLocator",
    "ConfigManager",
    "AppConfig",
    "GeneralSettings",
    "FolderSyncSettings",
    "EventBus",
    "Events",
    "Signal",
    "setup_logging",

    # Folder sync
    "FoldersAdapter",
    "FolderChildrenReconciler",
    "RootFolderList",
    "build_folder_sync",
]
