"""
FoldersAdapter - change events, cache invalidation and read degradation.
"""
import pytest
from unittest.mock import MagicMock

from src.core.events import Events
from src.foldersync.adapter import FoldersAdapter
from src.foldersync.cache import CacheKey
from src.foldersync.errors import NotFoundError, TransientFetchError, ValidationError
from src.foldersync.models import ChangeEvent, Folder, FolderOp, FolderWithCounts, LocalReconcileEvent


def counted(id, name, parent_id=None, **counts):
    return FolderWithCounts(id=id, name=name, parent_id=parent_id, created_at=1.0, **counts)


class TestMutationEvents:
    """Every successful mutation publishes exactly one versioned event."""
    
    @pytest.mark.asyncio
    async def test_create_publishes_event_with_name_and_parent(self, adapter, clock):
        received = []
        adapter.subscribe(received.append)
        
        folder = await adapter.create("Work", None)
        
        assert received == [ChangeEvent(
            op=FolderOp.CREATE, id=folder.id, parent_id=None, name="Work",
            timestamp=clock.now, version=1,
        )]
    
    @pytest.mark.asyncio
    async def test_versions_increase_per_mutation(self, adapter):
        received = []
        adapter.subscribe(received.append)
        
        work = await adapter.create("Work")
        await adapter.rename(work.id, "Job")
        await adapter.remove(work.id)
        
        assert [e.version for e in received] == [1, 2, 3]
        assert [e.op for e in received] == [FolderOp.CREATE, FolderOp.RENAME, FolderOp.DELETE]
        assert received[1].name == "Job"
        assert adapter.version == 3
    
    @pytest.mark.asyncio
    async def test_move_event_carries_destination(self, adapter):
        received = []
        work = await adapter.create("Work")
        notes = await adapter.create("Notes")
        adapter.subscribe(received.append)
        
        await adapter.move(notes.id, work.id)
        
        assert received[0].op is FolderOp.MOVE
        assert received[0].parent_id == work.id
        assert received[0].name == "Notes"
    
    @pytest.mark.asyncio
    async def test_remove_event_uses_parent_looked_up_before_delete(self, adapter, backend):
        backend.all = [Folder(id="p", name="Parent"), Folder(id="c", name="Child", parent_id="p")]
        received = []
        adapter.subscribe(received.append)
        
        await adapter.remove("c")
        
        assert received[0].op is FolderOp.DELETE
        assert received[0].parent_id == "p"
        assert received[0].name == "Child"
        assert backend.removed == ["c"]
    
    @pytest.mark.asyncio
    async def test_remove_missing_raises_without_event(self, adapter):
        received = []
        adapter.subscribe(received.append)
        
        with pytest.raises(NotFoundError):
            await adapter.remove("ghost")
        assert received == []
        assert adapter.version == 0
    
    @pytest.mark.asyncio
    async def test_failed_mutation_propagates_and_keeps_cache(self, adapter, backend):
        backend.all = [Folder(id="a", name="A")]
        await adapter.get_all_folders()
        
        async def refuse(name, parent_id):
            raise ValidationError("A folder with this name already exists in this location")
        backend.create = refuse
        
        with pytest.raises(ValidationError):
            await adapter.create("A")
        assert adapter.cache.peek(CacheKey.ALL_FOLDERS) is not None
    
    @pytest.mark.asyncio
    async def test_unsubscribe_stops_delivery(self, adapter):
        received = []
        unsubscribe = adapter.subscribe(received.append)
        unsubscribe()
        
        await adapter.create("Work")
        
        assert received == []


class TestCaching:
    
    @pytest.mark.asyncio
    async def test_all_folders_cached_until_mutation(self, adapter, backend):
        backend.all = [Folder(id="a", name="A")]
        
        first = await adapter.get_all_folders()
        second = await adapter.get_all_folders()
        assert first is second
        assert backend.list_all_calls == 1
        
        await adapter.create("B")
        names = [f.name for f in await adapter.get_all_folders()]
        
        assert names == ["A", "B"]
        assert backend.list_all_calls == 2
    
    @pytest.mark.asyncio
    async def test_cache_expires_after_ttl(self, adapter, backend, clock):
        backend.all = [Folder(id="a", name="A")]
        await adapter.get_all_folders()
        
        clock.advance(5000)
        await adapter.get_all_folders()
        
        assert backend.list_all_calls == 2
    
    @pytest.mark.asyncio
    async def test_ttl_follows_config(self, adapter, backend, config):
        backend.all = [Folder(id="a", name="A")]
        await adapter.get_all_folders()
        
        config.update("folders", "cache_ttl_ms", 100)
        
        assert adapter.cache.ttl_ms == 100
        assert adapter.cache.peek(CacheKey.ALL_FOLDERS) is None
    
    @pytest.mark.asyncio
    async def test_nameless_result_falls_back_to_cached_snapshot(self, adapter, backend):
        backend.all = [Folder(id="a", name="A")]
        await adapter.get_all_folders()
        
        async def nameless_rename(folder_id, name):
            return Folder(id=folder_id, name="")
        backend.rename = nameless_rename
        received = []
        adapter.subscribe(received.append)
        
        await adapter.rename("a", "B")
        
        assert received[0].op is FolderOp.RENAME
        assert received[0].name == "A"
        assert adapter.cache.peek(CacheKey.ALL_FOLDERS) is None
    
    @pytest.mark.asyncio
    async def test_nameless_result_without_cache_gives_empty_name(self, adapter, backend):
        backend.all = [Folder(id="a", name="A")]
        
        async def nameless_move(folder_id, new_parent_id):
            return Folder(id=folder_id, name="", parent_id=new_parent_id)
        backend.move = nameless_move
        received = []
        adapter.subscribe(received.append)
        
        await adapter.move("a", "p")
        
        assert received[0].name == ""
        assert received[0].parent_id == "p"


class TestReads:
    
    @pytest.mark.asyncio
    async def test_list_children_is_never_cached(self, adapter, backend):
        backend.children[None] = [counted("a", "A")]
        
        await adapter.list_roots()
        await adapter.list_children(None)
        
        assert backend.list_children_calls == 2
    
    @pytest.mark.asyncio
    async def test_read_failure_degrades_to_empty(self, adapter, backend):
        backend.fail_reads = True
        
        assert await adapter.list_children(None) == []
        assert await adapter.get_all_folders() == []
        assert await adapter.get_valid_move_targets() == []
    
    @pytest.mark.asyncio
    async def test_strict_read_raises(self, adapter, backend):
        backend.fail_reads = True
        
        with pytest.raises(TransientFetchError, match="storage offline"):
            await adapter.list_children(None, strict=True)
    
    @pytest.mark.asyncio
    async def test_failed_read_is_not_cached(self, adapter, backend):
        backend.fail_reads = True
        await adapter.get_all_folders()
        
        backend.fail_reads = False
        backend.all = [Folder(id="a", name="A")]
        
        assert [f.id for f in await adapter.get_all_folders()] == ["a"]
    
    @pytest.mark.asyncio
    async def test_valid_move_targets_are_root_folders_sorted(self, adapter, backend):
        backend.all = [
            Folder(id="w", name="work"),
            Folder(id="c", name="Child", parent_id="w"),
            Folder(id="a", name="Archive"),
        ]
        
        targets = await adapter.get_valid_move_targets()
        
        assert [f.id for f in targets] == ["a", "w"]
        assert await adapter.get_valid_move_targets() is targets
    
    @pytest.mark.asyncio
    async def test_depth_and_path(self, adapter, backend):
        backend.all = [Folder(id="w", name="Work"), Folder(id="c", name="Child", parent_id="w")]
        
        assert await adapter.get_depth(None) == 0
        assert await adapter.get_depth("c") == 2
        assert [f.id for f in await adapter.get_path("w")] == ["w"]
        assert (await adapter.get_folder_by_id("c")).name == "Child"
        assert await adapter.get_folder_by_id("zzz") is None
    
    @pytest.mark.asyncio
    async def test_exists_in_parent_ignores_case_only(self, adapter, backend):
        backend.children["w"] = [counted("n", "Notes", "w")]
        
        assert await adapter.exists_in_parent("notes", "w")
        assert not await adapter.exists_in_parent("notes", None)
        assert not await adapter.exists_in_parent("note", "w")


class TestRelayedEvents:
    
    @pytest.mark.asyncio
    async def test_external_change_invalidates_and_relays(self, adapter, backend, bus):
        backend.all = [Folder(id="a", name="A")]
        await adapter.get_all_folders()
        received = []
        adapter.subscribe(received.append)
        
        bus.publish_sync(Events.FOLDERS_EXTERNAL_CHANGE)
        
        assert received == [None]
        assert adapter.cache.peek(CacheKey.ALL_FOLDERS) is None
    
    @pytest.mark.asyncio
    async def test_external_change_keeps_event_detail(self, adapter, bus):
        event = ChangeEvent(op=FolderOp.RENAME, id="x", parent_id=None, name="X", timestamp=1.0, version=7)
        received = []
        adapter.subscribe(received.append)
        
        bus.publish_sync(Events.FOLDERS_EXTERNAL_CHANGE, event)
        
        assert received == [event]
    
    @pytest.mark.asyncio
    async def test_local_reconcile_published_on_its_own_topic(self, adapter):
        changes, reconciles = [], []
        adapter.subscribe(changes.append)
        adapter.subscribe(reconciles.append, Events.FOLDERS_LOCAL_RECONCILE)
        
        event = adapter.publish_local_reconcile("tmp-1", Folder(id="f1", name="Work"))
        
        assert changes == []
        assert reconciles == [event]
        assert isinstance(event, LocalReconcileEvent)
        assert isinstance(event.real, FolderWithCounts)
        assert event.parent_id is None
    
    @pytest.mark.asyncio
    async def test_subscribe_before_initialize_fails(self, config, backend):
        adapter = FoldersAdapter(MagicMock(), config, backend=backend)
        
        with pytest.raises(RuntimeError):
            adapter.subscribe(print)
