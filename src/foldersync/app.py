"""
Folder Sync - application wiring.

The one place where the process-wide EventBus and FoldersAdapter are created.
Views get the adapter from the returned locator and construct their own
FolderChildrenReconciler / RootFolderList around it.
"""
from typing import Optional

from src.core.config import ConfigManager
from src.core.events import EventBus
from src.core.locator import ServiceLocator
from .adapter import FoldersAdapter
from .store import FolderBackend, KeyValueFolderStore, KeyValueStorage, MemoryStorage, RecordingIndex


def build_folder_sync(
    config: Optional[ConfigManager] = None,
    storage: Optional[KeyValueStorage] = None,
    recordings: Optional[RecordingIndex] = None,
    backend: Optional[FolderBackend] = None,
) -> ServiceLocator:
    """
    Register the folder sync systems in a new ServiceLocator.
    
    Args:
        config: Configuration (in-memory defaults when omitted)
        storage: Key-value storage for the default KeyValueFolderStore
        recordings: Recording counts / detachment for the default store
        backend: Use this FolderBackend instead of a KeyValueFolderStore
        
    Returns:
        Locator with EventBus and FoldersAdapter registered; call
        ``await locator.start_all()`` before use.
    """
    config = config if config is not None else ConfigManager(None)
    locator = ServiceLocator(config)
    
    if backend is None:
        backend = KeyValueFolderStore(storage or MemoryStorage(), config.data.folders, recordings)
    
    locator.register_system(EventBus)
    locator.register_system(FoldersAdapter, backend=backend)
    return locator
