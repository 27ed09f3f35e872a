"""
Folder Sync - Optimistic Reconciler

One FolderChildrenReconciler per displayed folder listing. It merges locally
pending (optimistic) entries with the latest snapshot from the backing store
and keeps entries that went missing for a grace period, because the store may
still be catching up with a write that just completed.

Entry lifecycle:
    OptimisticFolder --(same name appears in a snapshot)--> dropped, the
                       snapshot's TrackedFresh takes its place
    OptimisticFolder --(replace_optimistic_folder)--> TrackedFresh
    TrackedFresh     --(missing from a snapshot)--> TrackedStale
    TrackedStale     --(back in a snapshot)--> TrackedFresh
    TrackedStale     --(still missing after stale_ttl_ms)--> evicted
    TrackedFresh     --(deleted, or moved to another parent)--> hidden until
                       a snapshot no longer lists it
"""
import asyncio
import warnings
from typing import Callable, FrozenSet, List, Optional, Set, Tuple, Union

from loguru import logger

from src.core.config import FolderSyncSettings
from src.core.events import Events, Signal
from .adapter import FoldersAdapter
from .debounce import Debouncer
from .errors import ReconciliationAmbiguity, ValidationError
from .models import (
    ChangeEvent,
    Folder,
    FolderItem,
    FolderOp,
    FolderWithCounts,
    LocalReconcileEvent,
    OptimisticFolder,
    TrackedFresh,
    TrackedStale,
)
from .naming import generate_temp_id, normalize_name, now_ms, sort_by_name


def reconcile_items(
    current: List[FolderItem],
    snapshot: List[FolderWithCounts],
    now: float,
    stale_ttl_ms: float,
    pending_deleted: Set[str],
) -> Tuple[List[FolderItem], Set[str]]:
    """
    Merge a fresh snapshot into the current entries.
    
    Args:
        current: Entries displayed right now (merged against, not a copy
            taken when the fetch started)
        snapshot: Children returned by the backing store
        now: Current time in ms
        stale_ttl_ms: Grace period for entries missing from the snapshot
        pending_deleted: Ids deleted or moved away locally; hidden even if
            the snapshot still lists them
    
    Returns:
        (sorted entries, ids still awaiting confirmation of their deletion)
    """
    snapshot_ids = {folder.id for folder in snapshot}
    # A deletion is confirmed once the store stops reporting the id
    still_pending = {folder_id for folder_id in pending_deleted if folder_id in snapshot_ids}
    
    fresh: List[FolderItem] = [TrackedFresh(folder) for folder in snapshot if folder.id not in still_pending]
    fresh_names = {normalize_name(item.name) for item in fresh}
    
    survivors: List[FolderItem] = []
    for item in current:
        if isinstance(item, OptimisticFolder):
            if normalize_name(item.name) in fresh_names:
                logger.debug(f"Auto-reconciling optimistic folder {item.temp_id} ({item.name})")
                continue
            survivors.append(item)
        elif isinstance(item, TrackedFresh):
            if item.id in snapshot_ids or item.id in pending_deleted:
                continue
            logger.debug(f"Folder {item.id} missing from snapshot, keeping as stale")
            survivors.append(item.mark_stale(now))
        elif isinstance(item, TrackedStale):
            if item.id in snapshot_ids or item.id in pending_deleted:
                continue
            if item.is_expired(now, stale_ttl_ms):
                logger.debug(f"Evicting stale folder {item.id} ({item.name})")
                continue
            survivors.append(item)
        else:
            raise TypeError(f"Unknown folder item: {item!r}")
    
    return sort_by_name(fresh + survivors), still_pending


class FolderChildrenReconciler:
    """
    Live, sorted listing of the folders under one parent.
    
    Exposes ``items``, ``loading`` and ``error`` plus the optimistic
    operations. ``on_changed`` fires (with the reconciler) after every state
    change so a view can re-render.
    
    Usage:
        async with FolderChildrenReconciler(adapter, parent_id=None) as listing:
            listing.on_changed.connect(render)
            temp_id = listing.add_optimistic_folder("Work")
            try:
                folder = await adapter.create("Work")
            except Exception:
                listing.remove_optimistic_folder(temp_id)
                raise
            listing.replace_optimistic_folder(temp_id, folder)
    """
    
    def __init__(
        self,
        adapter: FoldersAdapter,
        parent_id: Optional[str] = None,
        settings: Optional[FolderSyncSettings] = None,
        clock: Callable[[], float] = now_ms,
    ):
        self.adapter = adapter
        self.settings = settings or adapter.settings
        self._clock = clock
        self._parent_id = parent_id
        
        self._items: List[FolderItem] = []
        self._loading = True
        self._error: Optional[str] = None
        self._pending_deleted_ids: Set[str] = set()
        
        self._mounted = False
        self._generation = 0
        self._unsubscribers: List[Callable[[], None]] = []
        self._watchdogs: Set[asyncio.TimerHandle] = set()
        self._debouncer = Debouncer(self.refetch, delay_ms=self.settings.debounce_ms, name=f"Refetch[{parent_id}]")
        
        self.on_changed = Signal("FolderItemsChanged")
    
    # ==================== State ====================
    
    @property
    def parent_id(self) -> Optional[str]:
        return self._parent_id
    
    @property
    def items(self) -> List[FolderItem]:
        return list(self._items)
    
    @property
    def loading(self) -> bool:
        return self._loading
    
    @property
    def error(self) -> Optional[str]:
        return self._error
    
    @property
    def pending_deleted_ids(self) -> FrozenSet[str]:
        return frozenset(self._pending_deleted_ids)
    
    @property
    def is_mounted(self) -> bool:
        return self._mounted
    
    @property
    def debouncer(self) -> Debouncer:
        return self._debouncer
    
    def _commit(self) -> None:
        self.on_changed.emit(self)
    
    def _is_current(self, generation: int) -> bool:
        return self._mounted and generation == self._generation
    
    # ==================== Lifecycle ====================
    
    async def mount(self) -> None:
        """Start watching folder events and load the listing."""
        if self._mounted:
            return
        self._mounted = True
        self._unsubscribers = [
            self.adapter.subscribe(self._on_folder_event, Events.FOLDERS_CHANGED),
            self.adapter.subscribe(self._on_local_reconcile, Events.FOLDERS_LOCAL_RECONCILE),
        ]
        await self.refetch()
    
    def unmount(self) -> None:
        """Stop watching; results of fetches still in flight are discarded."""
        self._mounted = False
        self._debouncer.cancel()
        for handle in self._watchdogs:
            handle.cancel()
        self._watchdogs.clear()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
    
    async def __aenter__(self):
        await self.mount()
        return self
    
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.unmount()
    
    async def set_parent(self, parent_id: Optional[str]) -> None:
        """Show another folder: state resets to empty/loading, then reloads."""
        if parent_id == self._parent_id:
            return
        self._parent_id = parent_id
        self._generation += 1
        self._debouncer.cancel()
        self._items = []
        self._loading = True
        self._error = None
        self._pending_deleted_ids.clear()
        self._commit()
        if self._mounted:
            await self.refetch()
    
    # ==================== Fetching ====================
    
    async def refetch(self) -> None:
        """
        Load the children of the current parent and reconcile them with what
        is displayed. A failure keeps the last good entries and sets ``error``.
        Only the most recently issued fetch may commit.
        """
        if not self._mounted:
            return
        
        self._generation += 1
        generation = self._generation
        parent_id = self._parent_id
        
        self._loading = True
        self._error = None
        self._commit()
        logger.debug(f"Refetching folders for parent_id: {parent_id} (generation {generation})")
        
        try:
            snapshot = await self.adapter.list_children(parent_id, strict=True)
        except Exception as e:
            if not self._is_current(generation):
                return
            self._error = str(e) or "Failed to load folders"
            self._loading = False
            logger.error(f"Error loading folders for {parent_id}: {e}")
            self._commit()
            return
        
        if not self._is_current(generation):
            logger.debug(f"Discarding superseded fetch for {parent_id} (generation {generation})")
            return
        
        self._items, self._pending_deleted_ids = reconcile_items(
            self._items,
            snapshot,
            now=self._clock(),
            stale_ttl_ms=self.settings.stale_ttl_ms,
            pending_deleted=self._pending_deleted_ids,
        )
        self._loading = False
        self._commit()
        self._schedule_stale_sweep()
    
    def schedule_refetch(self, delay_ms: Optional[float] = None) -> None:
        """Debounced refetch; the default window is ``debounce_ms``."""
        self._debouncer.schedule(delay_ms)
    
    def debounced_refetch(self) -> None:
        self.schedule_refetch()
    
    def _schedule_stale_sweep(self) -> None:
        # Stale entries are only evicted by a refetch; make sure one happens
        if self._debouncer.pending:
            return
        if any(isinstance(item, TrackedStale) for item in self._items):
            self.schedule_refetch(self.settings.stale_ttl_ms + self.settings.debounce_ms)
    
    # ==================== Optimistic entries ====================
    
    def add_optimistic_folder(self, name: str) -> str:
        """Show ``name`` immediately; returns the temp id to confirm or roll back."""
        clean = name.strip()
        temp_id = generate_temp_id(self.settings.temp_id_prefix)
        wanted = normalize_name(clean)
        
        if any(isinstance(item, OptimisticFolder) and normalize_name(item.name) == wanted for item in self._items):
            warnings.warn(
                ReconciliationAmbiguity(f"Two pending folders named {clean!r} under {self._parent_id}"),
                stacklevel=2,
            )
        
        optimistic = OptimisticFolder(
            temp_id=temp_id,
            name=clean,
            parent_id=self._parent_id,
            created_at=self._clock(),
        )
        self._items = sort_by_name(self._items + [optimistic])
        logger.debug(f"optimistic:add {temp_id} name={clean!r} parent_id={self._parent_id}")
        self._commit()
        return temp_id
    
    def remove_optimistic_folder(self, temp_id: str) -> None:
        """Roll back a pending entry (the caller's mutation failed)."""
        remaining = [
            item for item in self._items
            if not (isinstance(item, OptimisticFolder) and item.temp_id == temp_id)
        ]
        if len(remaining) == len(self._items):
            return
        self._items = remaining
        logger.debug(f"optimistic:remove {temp_id}")
        self._commit()
    
    def replace_optimistic_folder(self, temp_id: str, real: Union[Folder, FolderWithCounts]) -> None:
        """Swap a pending entry for the confirmed folder at the same position."""
        index = next(
            (i for i, item in enumerate(self._items)
             if isinstance(item, OptimisticFolder) and item.temp_id == temp_id),
            None,
        )
        if index is None:
            return
        if not isinstance(real, FolderWithCounts):
            real = FolderWithCounts.from_folder(real)
        
        items = list(self._items)
        if any(not isinstance(item, OptimisticFolder) and item.id == real.id for item in items):
            # A refetch already brought the folder in
            del items[index]
        else:
            items[index] = TrackedFresh(real)
        self._items = sort_by_name(items)
        logger.debug(f"optimistic:replace {temp_id} -> {real.id} ({real.name})")
        self._commit()
    
    def has_pending(self, temp_id: str) -> bool:
        return any(isinstance(item, OptimisticFolder) and item.temp_id == temp_id for item in self._items)
    
    async def create_folder(self, name: str) -> Folder:
        """
        Create a folder under the current parent, showing it before the store
        confirms it.
        
        A watchdog refetches after ``create_watchdog_refetch_ms`` and drops the
        pending entry after ``create_watchdog_timeout_ms`` if the create has
        not completed by then. On failure the pending entry is removed and the
        error re-raised.
        """
        started = self._clock()
        clean = name.strip()
        wanted = normalize_name(clean)
        
        if any(not isinstance(item, OptimisticFolder) and normalize_name(item.name) == wanted for item in self._items):
            raise ValidationError("A folder with this name already exists in this location")
        if await self.adapter.get_depth(self._parent_id) >= self.settings.max_depth:
            raise ValidationError(f"Cannot create folders deeper than {self.settings.max_depth} levels")
        
        parent_id = self._parent_id
        temp_id = self.add_optimistic_folder(clean)
        optimistic_ms = self._clock() - started
        
        loop = asyncio.get_running_loop()
        watchdogs = [
            loop.call_later(self.settings.create_watchdog_refetch_ms / 1000, self._watchdog_refetch, temp_id),
            loop.call_later(self.settings.create_watchdog_timeout_ms / 1000, self._watchdog_expire, temp_id),
        ]
        self._watchdogs.update(watchdogs)
        
        ok = False
        try:
            folder = await self.adapter.create(clean, parent_id)
            ok = True
        except Exception:
            logger.debug(f"removeTemp {temp_id}")
            self.remove_optimistic_folder(temp_id)
            raise
        finally:
            for handle in watchdogs:
                handle.cancel()
                self._watchdogs.discard(handle)
            logger.info(
                f"folder_create: parent_id={parent_id} name_length={len(clean)} "
                f"optimistic_ms={optimistic_ms:.0f} total_ms={self._clock() - started:.0f} ok={ok}"
            )
        
        self.adapter.publish_local_reconcile(temp_id, folder, parent_id)
        return folder
    
    def _watchdog_refetch(self, temp_id: str) -> None:
        if self._mounted and self.has_pending(temp_id):
            logger.debug(f"Watchdog refetch triggered for {temp_id}")
            self.debounced_refetch()
    
    def _watchdog_expire(self, temp_id: str) -> None:
        if self.has_pending(temp_id):
            logger.warning(f"Watchdog removing stuck optimistic folder {temp_id}")
            self.remove_optimistic_folder(temp_id)
    
    # ==================== Event handling ====================
    
    def _displays(self, folder_id: str) -> bool:
        return any(
            not isinstance(item, OptimisticFolder) and item.id == folder_id
            for item in self._items
        )
    
    def _hide_until_gone(self, folder_id: str) -> None:
        self._pending_deleted_ids.add(folder_id)
        remaining = [
            item for item in self._items
            if isinstance(item, OptimisticFolder) or item.id != folder_id
        ]
        if len(remaining) != len(self._items):
            self._items = remaining
            logger.debug(f"Removed folder {folder_id} ahead of refetch")
            self._commit()
    
    def _on_folder_event(self, event: Optional[ChangeEvent]) -> None:
        if not self._mounted:
            return
        
        if event is None:
            logger.debug(f"Generic folder change event, refetching {self._parent_id}")
            self.debounced_refetch()
            return
        
        logger.debug(f"events:{event.op.value} id={event.id} parent_id={event.parent_id} current={self._parent_id}")
        
        displayed = self._displays(event.id)
        here = event.parent_id == self._parent_id
        
        if event.op is FolderOp.DELETE:
            if here or displayed:
                self._hide_until_gone(event.id)
                self.debounced_refetch()
            return
        
        if event.op is FolderOp.MOVE:
            if displayed and not here:
                # Moved out of this listing: gone here once the store agrees
                self._hide_until_gone(event.id)
                self.debounced_refetch()
                return
            if here:
                self._pending_deleted_ids.discard(event.id)
        
        if not here:
            return
        
        if event.op is FolderOp.CREATE and here:
            pending = [item for item in self._items if isinstance(item, OptimisticFolder)]
            if not event.name:
                if pending:
                    warnings.warn(
                        ReconciliationAmbiguity(f"Create event {event.id} carries no name; {len(pending)} pending folders"),
                        stacklevel=2,
                    )
            else:
                wanted = normalize_name(event.name)
                match = next((item for item in pending if normalize_name(item.name) == wanted), None)
                if match is not None:
                    logger.debug(f"Found matching optimistic folder for reconciliation: {match.temp_id}")
        
        self.debounced_refetch()
    
    def _on_local_reconcile(self, event: LocalReconcileEvent) -> None:
        if not self._mounted or not self.has_pending(event.temp_id):
            return
        self.replace_optimistic_folder(event.temp_id, event.real)
