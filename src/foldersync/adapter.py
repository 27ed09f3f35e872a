"""
Folder Sync - FoldersAdapter

Single source of truth for folder operations: the only component that talks
to the backing store. Every successful mutation invalidates the snapshot
caches and publishes a versioned ChangeEvent on the EventBus.
"""
from typing import Any, Callable, List, Optional, Union

from loguru import logger

from src.core.base_system import BaseSystem
from src.core.config import FolderSyncSettings
from src.core.decorators import subscribe_event
from src.core.service_decorator import Service
from src.core.events import EventBus, Events
from .cache import CacheKey, FolderCache
from .errors import NotFoundError, TransientFetchError
from .models import ChangeEvent, Folder, FolderOp, FolderWithCounts, LocalReconcileEvent
from .naming import folder_depth, index_by_id, now_ms, sort_by_name
from .store import FolderBackend


@Service
class FoldersAdapter(BaseSystem):
    """
    Folder CRUD facade with live change notification.
    
    Read failures are logged and degrade to empty results; mutation failures
    are logged and re-raised to the caller.
    
    Usage:
        locator.register_system(EventBus)
        adapter = locator.register_system(FoldersAdapter, backend=store)
        await locator.start_all()
        
        unsubscribe = adapter.subscribe(on_folders_changed)
        folder = await adapter.create("Work")
    """
    
    depends_on = [EventBus]
    
    def __init__(self, locator, config, backend: FolderBackend, clock: Callable[[], float] = now_ms):
        super().__init__(locator, config)
        self._backend = backend
        self._clock = clock
        self._cache = FolderCache(ttl_ms=self.settings.cache_ttl_ms, clock=clock)
        self._version = 0
        self._bus: Optional[EventBus] = None
    
    @property
    def settings(self) -> FolderSyncSettings:
        return self.config.data.folders
    
    @property
    def version(self) -> int:
        """Number of successful mutations published by this adapter."""
        return self._version
    
    @property
    def cache(self) -> FolderCache:
        return self._cache
    
    async def initialize(self):
        self._bus = self.locator.get_system(EventBus)
        self.config.on_changed.connect(self._on_config_changed)
        await super().initialize()
    
    async def shutdown(self):
        self.config.on_changed.disconnect(self._on_config_changed)
        self._cache.invalidate()
        await super().shutdown()
    
    def _on_config_changed(self, section: str, key: str, value: Any) -> None:
        if section == "folders" and key == "cache_ttl_ms":
            self._cache.ttl_ms = value
            self._cache.invalidate()
    
    # ==================== Events ====================
    
    def subscribe(self, listener: Callable[[Any], None], topic: str = Events.FOLDERS_CHANGED) -> Callable[[], None]:
        """
        Watch folder changes.
        
        Listeners get a ChangeEvent, or None when something changed without
        detail (forces a full refetch). They run synchronously, in
        subscription order, inside the mutating call.
        
        Returns:
            Callable that removes the subscription
        """
        return self._require_bus().subscribe(topic, listener)
    
    def _require_bus(self) -> EventBus:
        if self._bus is None:
            raise RuntimeError("FoldersAdapter is not initialized")
        return self._bus
    
    def _resolve_name(self, folder_id: str, hint: Optional[str]) -> str:
        if hint:
            return hint
        cached = self._cache.peek(CacheKey.ALL_FOLDERS) or []
        for folder in cached:
            if folder.id == folder_id:
                return folder.name
        return ""
    
    def _emit(self, op: FolderOp, folder_id: str, parent_id: Optional[str], name: str) -> ChangeEvent:
        self._version += 1
        event = ChangeEvent(
            op=op,
            id=folder_id,
            parent_id=parent_id,
            name=name,
            timestamp=self._clock(),
            version=self._version,
        )
        logger.debug(f"FoldersAdapter emitting event: {event}")
        self._require_bus().publish_sync(Events.FOLDERS_CHANGED, event)
        return event
    
    def _commit(self, op: FolderOp, folder_id: str, parent_id: Optional[str], name_hint: Optional[str]) -> ChangeEvent:
        # Resolve before invalidating so the cache fallback still has data
        name = self._resolve_name(folder_id, name_hint)
        self._cache.invalidate()
        return self._emit(op, folder_id, parent_id, name)
    
    @subscribe_event(Events.FOLDERS_EXTERNAL_CHANGE)
    def notify_external_change(self, event: Optional[ChangeEvent] = None) -> None:
        """
        The backing store changed outside this adapter (another instance,
        recordings filed or removed). Drops the caches and relays the change.
        """
        logger.debug(f"FoldersAdapter: external change {event}")
        self._cache.invalidate()
        relayed = event if isinstance(event, ChangeEvent) else None
        self._require_bus().publish_sync(Events.FOLDERS_CHANGED, relayed)
    
    def publish_local_reconcile(
        self,
        temp_id: str,
        real: Union[Folder, FolderWithCounts],
        parent_id: Optional[str] = None,
    ) -> LocalReconcileEvent:
        """Tell every listing holding ``temp_id`` that it is now ``real``."""
        if not isinstance(real, FolderWithCounts):
            real = FolderWithCounts.from_folder(real)
        event = LocalReconcileEvent(
            temp_id=temp_id,
            real=real,
            parent_id=parent_id if parent_id is not None else real.parent_id,
            timestamp=self._clock(),
        )
        logger.debug(f"local:reconcile {temp_id} -> {real.id}")
        self._require_bus().publish_sync(Events.FOLDERS_LOCAL_RECONCILE, event)
        return event
    
    # ==================== Reads ====================
    
    async def list_roots(self) -> List[FolderWithCounts]:
        return await self.list_children(None)
    
    async def list_children(self, parent_id: Optional[str], strict: bool = False) -> List[FolderWithCounts]:
        """
        Children of ``parent_id`` with counts, straight from the backing store.
        
        Args:
            parent_id: Parent folder id, None for root folders
            strict: Raise TransientFetchError instead of returning []
        """
        try:
            logger.debug(f"FoldersAdapter.list_children called with parent_id: {parent_id}")
            return await self._backend.list_children(parent_id)
        except Exception as e:
            logger.error(f"Failed to list folder children of {parent_id}: {e}")
            if strict:
                raise TransientFetchError(f"Failed to load folders: {e}") from e
            return []
    
    async def get_all_folders(self) -> List[Folder]:
        try:
            return await self._cache.get_or_fetch(CacheKey.ALL_FOLDERS, self._backend.list_all)
        except Exception as e:
            logger.error(f"Failed to get all folders: {e}")
            return []
    
    async def get_valid_move_targets(self) -> List[Folder]:
        """Folders at depth <= ``move_target_max_depth``, sorted by name."""
        try:
            return await self._cache.get_or_fetch(CacheKey.VALID_MOVE_TARGETS, self._build_move_targets)
        except Exception as e:
            logger.error(f"Failed to get valid move targets: {e}")
            return []
    
    async def _build_move_targets(self) -> List[Folder]:
        folders = await self._cache.get_or_fetch(CacheKey.ALL_FOLDERS, self._backend.list_all)
        by_id = index_by_id(folders)
        limit = self.settings.move_target_max_depth
        return sort_by_name(f for f in folders if folder_depth(f.id, by_id.get) <= limit)
    
    async def get_folder_by_id(self, folder_id: str) -> Optional[Folder]:
        try:
            return await self._backend.get_folder_by_id(folder_id)
        except Exception as e:
            logger.error(f"Failed to get folder {folder_id}: {e}")
            return None
    
    async def get_path(self, folder_id: Optional[str]) -> List[Folder]:
        try:
            return await self._backend.get_folder_path(folder_id)
        except Exception as e:
            logger.error(f"Failed to get folder path: {e}")
            return []
    
    async def get_depth(self, folder_id: Optional[str]) -> int:
        folders = await self.get_all_folders()
        return folder_depth(folder_id, index_by_id(folders).get)
    
    async def exists_in_parent(self, name: str, parent_id: Optional[str]) -> bool:
        wanted = name.casefold()
        siblings = await self.list_children(parent_id)
        return any(folder.name.casefold() == wanted for folder in siblings)
    
    # ==================== Mutations ====================
    
    async def create(self, name: str, parent_id: Optional[str] = None) -> Folder:
        try:
            folder = await self._backend.create(name, parent_id)
        except Exception as e:
            logger.error(f"Failed to create folder: {e}")
            raise
        self._commit(FolderOp.CREATE, folder.id, folder.parent_id, folder.name)
        return folder
    
    async def rename(self, folder_id: str, name: str) -> Folder:
        try:
            folder = await self._backend.rename(folder_id, name)
        except Exception as e:
            logger.error(f"Failed to rename folder: {e}")
            raise
        self._commit(FolderOp.RENAME, folder_id, folder.parent_id, folder.name)
        return folder
    
    async def move(self, folder_id: str, new_parent_id: Optional[str]) -> Folder:
        try:
            folder = await self._backend.move(folder_id, new_parent_id)
        except Exception as e:
            logger.error(f"Failed to move folder: {e}")
            raise
        self._commit(FolderOp.MOVE, folder_id, folder.parent_id, folder.name)
        return folder
    
    async def remove(self, folder_id: str) -> None:
        try:
            # Parent is unknowable once the folder is gone
            folder = await self._backend.get_folder_by_id(folder_id)
            if folder is None:
                raise NotFoundError(folder_id)
            await self._backend.remove(folder_id)
        except Exception as e:
            logger.error(f"Failed to remove folder: {e}")
            raise
        self._commit(FolderOp.DELETE, folder_id, folder.parent_id, folder.name)
