"""
Folder Sync - Backing Store

The adapter only sees the FolderBackend protocol. KeyValueFolderStore is the
implementation the app ships: the whole folder table kept as one JSON blob in
an async key-value storage, with the naming and nesting rules enforced on
every write.
"""
import asyncio
import json
from typing import Dict, List, Optional, Protocol, Set, runtime_checkable

from loguru import logger

from src.core.config import FolderSyncSettings
from .errors import NotFoundError, ValidationError
from .models import Folder, FolderWithCounts
from .naming import MAX_DEPTH_WALK, folder_depth, generate_folder_id, index_by_id, normalize_name, now_ms, sort_by_name


# ==================== Protocols ====================

@runtime_checkable
class KeyValueStorage(Protocol):
    """Async persistence primitive over opaque string blobs."""

    async def get(self, key: str) -> Optional[str]: ...

    async def set(self, key: str, value: str) -> None: ...

    async def remove(self, key: str) -> None: ...


@runtime_checkable
class FolderBackend(Protocol):
    """What FoldersAdapter needs from the authoritative store."""

    async def list_all(self) -> List[Folder]: ...

    async def list_children(self, parent_id: Optional[str]) -> List[FolderWithCounts]: ...

    async def create(self, name: str, parent_id: Optional[str]) -> Folder: ...

    async def rename(self, folder_id: str, name: str) -> Folder: ...

    async def move(self, folder_id: str, new_parent_id: Optional[str]) -> Folder: ...

    async def remove(self, folder_id: str) -> None: ...

    async def get_folder_by_id(self, folder_id: str) -> Optional[Folder]: ...

    async def get_folder_path(self, folder_id: Optional[str]) -> List[Folder]: ...


class RecordingIndex(Protocol):
    """Recordings filed into folders (owned by the recordings pipeline)."""

    async def count_in_folder(self, folder_id: str) -> int: ...

    async def detach_folder(self, folder_id: str) -> None: ...


# ==================== Storage ====================

class MemoryStorage:
    """Dict-backed KeyValueStorage."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    async def set(self, key: str, value: str) -> None:
        self._data[key] = value

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


# ==================== Folder store ====================

class KeyValueFolderStore:
    """
    FolderBackend over a KeyValueStorage.
    
    Rules enforced here (upstream of the adapter):
    - names are trimmed, non-empty and at most ``max_name_length`` characters
    - names are unique per parent, case-insensitively
    - a folder may only be created in or moved into a parent whose depth is
      below ``max_depth``
    - a folder cannot be moved into itself or one of its descendants
    
    Deleting a folder deletes its whole subtree and detaches the removed
    folders from recordings.
    """
    
    def __init__(
        self,
        storage: KeyValueStorage,
        settings: Optional[FolderSyncSettings] = None,
        recordings: Optional[RecordingIndex] = None,
    ):
        self._storage = storage
        self._settings = settings or FolderSyncSettings()
        self._recordings = recordings
        self._write_lock = asyncio.Lock()
        self._migration_checked = False
    
    # ==================== Reads ====================
    
    async def list_all(self) -> List[Folder]:
        await self._migrate_legacy()
        return sort_by_name(await self._load())
    
    async def list_children(self, parent_id: Optional[str]) -> List[FolderWithCounts]:
        folders = await self.list_all()
        by_id = index_by_id(folders)
        children = [f for f in folders if f.parent_id == parent_id]
        
        result = []
        for folder in children:
            subfolder_count = sum(1 for f in folders if f.parent_id == folder.id)
            recording_count = await self._count_recordings(folder.id)
            depth = folder_depth(folder.id, by_id.get)
            result.append(FolderWithCounts(
                **folder.model_dump(exclude={"is_read_only_due_to_depth"}),
                is_read_only_due_to_depth=depth > self._settings.max_depth,
                subfolder_count=subfolder_count,
                recording_count=recording_count,
            ))
        
        logger.debug(f"KeyValueFolderStore: {len(result)} children under {parent_id}")
        return result
    
    async def get_folder_by_id(self, folder_id: str) -> Optional[Folder]:
        for folder in await self.list_all():
            if folder.id == folder_id:
                return folder
        return None
    
    async def get_folder_path(self, folder_id: Optional[str]) -> List[Folder]:
        """Folders from the root down to ``folder_id`` (inclusive)."""
        if not folder_id:
            return []
        by_id = index_by_id(await self.list_all())
        path: List[Folder] = []
        current = folder_id
        while current and current in by_id and len(path) <= MAX_DEPTH_WALK:
            folder = by_id[current]
            path.insert(0, folder)
            current = folder.parent_id
        return path
    
    async def get_depth(self, folder_id: Optional[str]) -> int:
        by_id = index_by_id(await self.list_all())
        return folder_depth(folder_id, by_id.get)
    
    # ==================== Writes ====================
    
    async def create(self, name: str, parent_id: Optional[str] = None) -> Folder:
        async with self._write_lock:
            folders = await self.list_all()
            by_id = index_by_id(folders)
            clean = self._validate_name(name)
            
            if parent_id:
                if parent_id not in by_id:
                    raise NotFoundError(parent_id, "Parent folder not found")
                if folder_depth(parent_id, by_id.get) >= self._settings.max_depth:
                    raise ValidationError(f"Cannot create folders deeper than {self._settings.max_depth} levels")
            
            self._ensure_unique(clean, parent_id or None, folders)
            
            folder = Folder(id=generate_folder_id(), name=clean, parent_id=parent_id or None, created_at=now_ms())
            await self._save(folders + [folder])
            logger.info(f"Folder created: {folder.name} ({folder.id})")
            return folder
    
    async def rename(self, folder_id: str, name: str) -> Folder:
        async with self._write_lock:
            folders = await self.list_all()
            target = self._require(folder_id, folders)
            clean = self._validate_name(name)
            self._ensure_unique(clean, target.parent_id, folders, exclude_id=folder_id)
            
            renamed = target.model_copy(update={"name": clean})
            await self._save([renamed if f.id == folder_id else f for f in folders])
            logger.info(f"Folder renamed: {target.name} -> {renamed.name}")
            return renamed
    
    async def move(self, folder_id: str, new_parent_id: Optional[str]) -> Folder:
        async with self._write_lock:
            folders = await self.list_all()
            by_id = index_by_id(folders)
            target = self._require(folder_id, folders)
            new_parent_id = new_parent_id or None
            
            if new_parent_id:
                if new_parent_id not in by_id:
                    raise NotFoundError(new_parent_id, "Destination folder not found")
                if new_parent_id == folder_id or new_parent_id in self._descendant_ids(folder_id, folders):
                    raise ValidationError("Cannot move a folder into itself or one of its subfolders")
            
            if folder_depth(new_parent_id, by_id.get) >= self._settings.max_depth:
                raise ValidationError(
                    f"Cannot move folder: would exceed maximum depth of {self._settings.max_depth} levels"
                )
            
            try:
                self._ensure_unique(target.name, new_parent_id, folders, exclude_id=folder_id)
            except ValidationError:
                raise ValidationError("A folder with this name already exists in the destination") from None
            
            moved = target.model_copy(update={"parent_id": new_parent_id})
            await self._save([moved if f.id == folder_id else f for f in folders])
            logger.info(f"Folder moved: {folder_id} to parent: {new_parent_id}")
            return moved
    
    async def remove(self, folder_id: str) -> None:
        async with self._write_lock:
            folders = await self.list_all()
            self._require(folder_id, folders)
            
            # Children before parents
            doomed = list(reversed(self._descendant_ids(folder_id, folders))) + [folder_id]
            if self._recordings is not None:
                for doomed_id in doomed:
                    await self._recordings.detach_folder(doomed_id)
            
            doomed_set = set(doomed)
            await self._save([f for f in folders if f.id not in doomed_set])
            logger.info(f"Folder deleted: {folder_id} ({len(doomed) - 1} subfolders)")
    
    # ==================== Helpers ====================
    
    async def _load(self) -> List[Folder]:
        raw = await self._storage.get(self._settings.storage_key)
        if not raw:
            return []
        return [Folder.model_validate(item) for item in json.loads(raw)]
    
    async def _save(self, folders: List[Folder]) -> None:
        payload = json.dumps([f.model_dump(by_alias=True) for f in sort_by_name(folders)])
        await self._storage.set(self._settings.storage_key, payload)
    
    async def _count_recordings(self, folder_id: str) -> int:
        if self._recordings is None:
            return 0
        return await self._recordings.count_in_folder(folder_id)
    
    def _validate_name(self, name: str) -> str:
        clean = name.strip()
        if not clean:
            raise ValidationError("Folder name cannot be empty")
        if len(clean) > self._settings.max_name_length:
            raise ValidationError(f"Folder name must be {self._settings.max_name_length} characters or less")
        return clean
    
    def _ensure_unique(
        self,
        name: str,
        parent_id: Optional[str],
        folders: List[Folder],
        exclude_id: Optional[str] = None,
    ) -> None:
        wanted = normalize_name(name)
        for folder in folders:
            if folder.id != exclude_id and folder.parent_id == parent_id and normalize_name(folder.name) == wanted:
                raise ValidationError("A folder with this name already exists in this location")
    
    @staticmethod
    def _require(folder_id: str, folders: List[Folder]) -> Folder:
        for folder in folders:
            if folder.id == folder_id:
                return folder
        raise NotFoundError(folder_id)
    
    @staticmethod
    def _descendant_ids(folder_id: str, folders: List[Folder]) -> List[str]:
        """Descendants of ``folder_id``, parents before children."""
        result: List[str] = []
        frontier = [folder_id]
        seen: Set[str] = {folder_id}
        while frontier:
            current = frontier.pop(0)
            for folder in folders:
                if folder.parent_id == current and folder.id not in seen:
                    seen.add(folder.id)
                    result.append(folder.id)
                    frontier.append(folder.id)
        return result
    
    # ==================== Legacy migration ====================
    
    async def _migrate_legacy(self) -> None:
        """
        Fold folders saved under the legacy key into the unified blob, once.
        
        Name clashes with already-unified folders get a " (2)", " (3)", ...
        suffix and a fresh id. Failure is logged and never blocks reads.
        """
        if self._migration_checked:
            return
        self._migration_checked = True
        
        settings = self._settings
        try:
            if await self._storage.get(settings.migration_flag_key) == "true":
                return
            
            legacy_raw = await self._storage.get(settings.legacy_storage_key)
            legacy = [Folder.model_validate(item) for item in json.loads(legacy_raw)] if legacy_raw else []
            unified = await self._load()
            
            merged = list(unified)
            seen_ids = {f.id for f in unified}
            seen_names = {f.name.lower() for f in unified}
            for folder in legacy:
                if folder.id in seen_ids:
                    continue
                if folder.name.lower() in seen_names:
                    unique = self._unique_name(folder.name, seen_names)
                    logger.info(f"Resolving name collision: {folder.name} -> {unique}")
                    folder = folder.model_copy(update={"id": generate_folder_id(), "name": unique})
                merged.append(folder)
                seen_ids.add(folder.id)
                seen_names.add(folder.name.lower())
            
            if len(merged) != len(unified):
                await self._save(merged)
                logger.info(f"Folder migration merged {len(merged) - len(unified)} legacy folders")
            if legacy_raw is not None:
                await self._storage.remove(settings.legacy_storage_key)
            await self._storage.set(settings.migration_flag_key, "true")
        except Exception as e:
            logger.error(f"Folder migration failed: {e}")
    
    @staticmethod
    def _unique_name(base: str, taken: Set[str]) -> str:
        counter = 2
        candidate = f"{base} ({counter})"
        while candidate.lower() in taken:
            counter += 1
            candidate = f"{base} ({counter})"
        return candidate
