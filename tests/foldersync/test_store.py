"""
KeyValueFolderStore - naming rules, nesting limits, cascade delete, migration.
"""
import json

import pytest
from unittest.mock import AsyncMock

from src.core.config import FolderSyncSettings
from src.foldersync.errors import NotFoundError, ValidationError
from src.foldersync.store import KeyValueFolderStore, MemoryStorage


class TestCreateAndRename:
    
    @pytest.mark.asyncio
    async def test_create_trims_and_persists_camel_case(self, store, storage):
        folder = await store.create("  Work  ", None)
        
        assert folder.name == "Work"
        assert folder.parent_id is None
        assert not folder.id.startswith("tmp-")
        saved = json.loads(await storage.get("rg.folders.v1"))
        assert saved[0]["id"] == folder.id
        assert saved[0]["parentId"] is None
        assert "createdAt" in saved[0]
    
    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   ", "x" * 33])
    async def test_create_rejects_bad_names(self, store, name):
        with pytest.raises(ValidationError):
            await store.create(name, None)
    
    @pytest.mark.asyncio
    async def test_create_rejects_case_insensitive_duplicate_in_same_parent(self, store):
        await store.create("Notes", None)
        with pytest.raises(ValidationError):
            await store.create("notes ", None)
    
    @pytest.mark.asyncio
    async def test_same_name_allowed_under_different_parents(self, store):
        parent = await store.create("Work", None)
        await store.create("Notes", None)
        child = await store.create("Notes", parent.id)
        
        assert child.parent_id == parent.id
    
    @pytest.mark.asyncio
    async def test_create_under_missing_parent(self, store):
        with pytest.raises(NotFoundError):
            await store.create("Orphan", "nope")
    
    @pytest.mark.asyncio
    async def test_create_depth_limit(self, store):
        top = await store.create("Top", None)
        middle = await store.create("Middle", top.id)
        
        with pytest.raises(ValidationError):
            await store.create("Bottom", middle.id)
    
    @pytest.mark.asyncio
    async def test_rename_checks_siblings_but_not_itself(self, store):
        a = await store.create("Alpha", None)
        await store.create("Beta", None)
        
        renamed = await store.rename(a.id, "ALPHA")
        assert renamed.name == "ALPHA"
        with pytest.raises(ValidationError):
            await store.rename(a.id, "beta")
        with pytest.raises(NotFoundError):
            await store.rename("missing", "Gamma")


class TestMoveAndRemove:
    
    @pytest.mark.asyncio
    async def test_move_to_new_parent(self, store):
        work = await store.create("Work", None)
        notes = await store.create("Notes", None)
        
        moved = await store.move(notes.id, work.id)
        
        assert moved.parent_id == work.id
        assert [f.id for f in await store.list_children(work.id)] == [notes.id]
    
    @pytest.mark.asyncio
    async def test_move_into_descendant_rejected(self, store):
        work = await store.create("Work", None)
        child = await store.create("Child", work.id)
        
        with pytest.raises(ValidationError):
            await store.move(work.id, child.id)
        with pytest.raises(ValidationError):
            await store.move(work.id, work.id)
    
    @pytest.mark.asyncio
    async def test_move_name_clash_in_destination(self, store):
        work = await store.create("Work", None)
        await store.create("Notes", work.id)
        notes = await store.create("notes", None)
        
        with pytest.raises(ValidationError):
            await store.move(notes.id, work.id)
    
    @pytest.mark.asyncio
    async def test_remove_cascades_and_detaches_recordings(self, storage):
        recordings = AsyncMock()
        recordings.count_in_folder.return_value = 0
        store = KeyValueFolderStore(storage, FolderSyncSettings(), recordings)
        work = await store.create("Work", None)
        child = await store.create("Child", work.id)
        keep = await store.create("Keep", None)
        
        await store.remove(work.id)
        
        remaining = await store.list_all()
        assert [f.id for f in remaining] == [keep.id]
        detached = [call.args[0] for call in recordings.detach_folder.await_args_list]
        assert detached == [child.id, work.id]
    
    @pytest.mark.asyncio
    async def test_remove_missing(self, store):
        with pytest.raises(NotFoundError):
            await store.remove("missing")


class TestReads:
    
    @pytest.mark.asyncio
    async def test_list_children_counts(self, storage):
        recordings = AsyncMock()
        recordings.count_in_folder.side_effect = lambda folder_id: 3 if folder_id else 0
        store = KeyValueFolderStore(storage, FolderSyncSettings(), recordings)
        work = await store.create("Work", None)
        await store.create("A", work.id)
        await store.create("B", work.id)
        
        [listed] = await store.list_children(None)
        
        assert listed.id == work.id
        assert listed.subfolder_count == 2
        assert listed.recording_count == 3
        assert listed.is_read_only_due_to_depth is False
    
    @pytest.mark.asyncio
    async def test_list_children_sorted_by_display_name(self, store):
        for name in ["beta", "Alpha", "gamma"]:
            await store.create(name, None)
        
        assert [f.name for f in await store.list_children(None)] == ["Alpha", "beta", "gamma"]
    
    @pytest.mark.asyncio
    async def test_path_and_depth(self, store):
        top = await store.create("Top", None)
        middle = await store.create("Middle", top.id)
        
        assert [f.name for f in await store.get_folder_path(middle.id)] == ["Top", "Middle"]
        assert await store.get_folder_path(None) == []
        assert await store.get_depth(middle.id) == 2
        assert await store.get_folder_by_id("missing") is None


class TestLegacyMigration:
    
    @pytest.mark.asyncio
    async def test_legacy_folders_merged_with_collision_suffix(self):
        storage = MemoryStorage({
            "rg.folders.v1": json.dumps([{"id": "u1", "name": "Work", "parentId": None, "createdAt": 1}]),
            "folders": json.dumps([
                {"id": "l1", "name": "work", "parentId": None, "createdAt": 2},
                {"id": "l2", "name": "Ideas", "parentId": None, "createdAt": 3},
                {"id": "u1", "name": "Work", "parentId": None, "createdAt": 1},
            ]),
        })
        store = KeyValueFolderStore(storage)
        
        names = sorted(f.name for f in await store.list_all())
        
        assert names == ["Ideas", "Work", "work (2)"]
        assert await storage.get("folders") is None
        assert await storage.get("folders_migration_v1_complete") == "true"
    
    @pytest.mark.asyncio
    async def test_migration_skipped_once_flagged(self):
        storage = MemoryStorage({
            "folders": json.dumps([{"id": "l1", "name": "Old", "parentId": None, "createdAt": 2}]),
            "folders_migration_v1_complete": "true",
        })
        store = KeyValueFolderStore(storage)
        
        assert await store.list_all() == []
        assert await storage.get("folders") is not None
    
    @pytest.mark.asyncio
    async def test_corrupt_legacy_blob_does_not_block_reads(self):
        storage = MemoryStorage({"folders": "{broken"})
        store = KeyValueFolderStore(storage)
        
        assert await store.list_all() == []
