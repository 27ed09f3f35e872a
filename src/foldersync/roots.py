"""
Folder Sync - Root folder list with the active folder filter.

Backs the library screen's folder chips: reloads the root folders on every
folder change and clears the filter when its folder is deleted.
"""
import asyncio
from typing import Callable, List, Optional, Set

from loguru import logger

from src.core.events import Signal
from .adapter import FoldersAdapter
from .models import ChangeEvent, Folder, FolderFilter, FolderWithCounts


class RootFolderList:
    """
    Root folders plus the folder filter chosen by the user.
    
    Usage:
        roots = RootFolderList(adapter)
        await roots.mount()
        roots.set_folder_filter(roots.folders[0])
        await roots.delete_folder(roots.folders[0].id)   # filter cleared
        roots.unmount()
    """
    
    def __init__(self, adapter: FoldersAdapter):
        self.adapter = adapter
        self._folders: List[FolderWithCounts] = []
        self._loading = False
        self._error: Optional[str] = None
        self._active_filter = FolderFilter()
        self._generation = 0
        self._mounted = False
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._tasks: Set[asyncio.Task] = set()
        self.on_changed = Signal("RootFoldersChanged")
    
    @property
    def folders(self) -> List[FolderWithCounts]:
        return list(self._folders)
    
    @property
    def loading(self) -> bool:
        return self._loading
    
    @property
    def error(self) -> Optional[str]:
        return self._error
    
    @property
    def active_filter(self) -> FolderFilter:
        return self._active_filter
    
    async def mount(self) -> None:
        if self._mounted:
            return
        self._mounted = True
        self._unsubscribe = self.adapter.subscribe(self._on_folder_event)
        await self.load()
    
    def unmount(self) -> None:
        self._mounted = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        for task in self._tasks:
            task.cancel()
        self._tasks.clear()
    
    async def load(self) -> None:
        """Reload root folders; a failure keeps the previous list."""
        self._generation += 1
        generation = self._generation
        self._loading = True
        self._error = None
        self.on_changed.emit(self)
        
        try:
            folders = await self.adapter.list_children(None, strict=True)
        except Exception as e:
            if generation == self._generation:
                self._error = "Failed to load folders"
                logger.error(f"Error loading root folders: {e}")
        else:
            if generation == self._generation:
                self._folders = folders
        finally:
            if generation == self._generation:
                self._loading = False
                self.on_changed.emit(self)
    
    async def create_folder(self, name: str) -> Folder:
        self._error = None
        try:
            return await self.adapter.create(name)
        except Exception as e:
            self._error = str(e) or "Failed to create folder"
            self.on_changed.emit(self)
            raise
    
    async def delete_folder(self, folder_id: str) -> None:
        self._error = None
        try:
            await self.adapter.remove(folder_id)
        except Exception as e:
            self._error = str(e) or "Failed to delete folder"
            self.on_changed.emit(self)
            raise
        if self._active_filter.folder_id == folder_id:
            self.clear_filter()
    
    def set_folder_filter(self, folder: Optional[Folder]) -> None:
        if folder is None:
            self.clear_filter()
            return
        self._active_filter = FolderFilter(folder_id=folder.id, folder_name=folder.name)
        self.on_changed.emit(self)
    
    def clear_filter(self) -> None:
        self._active_filter = FolderFilter()
        self.on_changed.emit(self)
    
    def _on_folder_event(self, event: Optional[ChangeEvent]) -> None:
        if not self._mounted:
            return
        logger.debug(f"RootFolderList: received folder change event: {event}")
        task = asyncio.ensure_future(self.load())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
