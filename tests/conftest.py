import asyncio
from typing import Dict, List, Optional

import pytest
import pytest_asyncio

from src.core.config import ConfigManager
from src.core.events import EventBus
from src.core.locator import ServiceLocator
from src.foldersync.adapter import FoldersAdapter
from src.foldersync.errors import NotFoundError
from src.foldersync.models import Folder, FolderWithCounts
from src.foldersync.store import KeyValueFolderStore, MemoryStorage


class FakeClock:
    """Millisecond clock advanced by hand."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class ScriptedBackend:
    """
    FolderBackend whose children listings are set by the test, to play a
    backing store that lags behind (or races ahead of) the writes.
    """

    def __init__(self):
        self.children: Dict[Optional[str], List[FolderWithCounts]] = {}
        self.all: List[Folder] = []
        self.list_children_calls = 0
        self.list_all_calls = 0
        self.fail_reads = False
        self.delays: List[float] = []
        self.created: List[Folder] = []
        self.removed: List[str] = []

    async def list_all(self) -> List[Folder]:
        self.list_all_calls += 1
        if self.fail_reads:
            raise ConnectionError("storage offline")
        return list(self.all)

    async def list_children(self, parent_id: Optional[str]) -> List[FolderWithCounts]:
        self.list_children_calls += 1
        # Snapshot taken when the call starts, delivered after the delay
        result = list(self.children.get(parent_id, []))
        if self.delays:
            await asyncio.sleep(self.delays.pop(0))
        if self.fail_reads:
            raise ConnectionError("storage offline")
        return result

    async def create(self, name: str, parent_id: Optional[str]) -> Folder:
        folder = Folder(id=f"f{len(self.created) + 1}", name=name.strip(), parent_id=parent_id, created_at=1.0)
        self.created.append(folder)
        self.all.append(folder)
        return folder

    async def rename(self, folder_id: str, name: str) -> Folder:
        folder = await self._require(folder_id)
        renamed = folder.model_copy(update={"name": name})
        self.all = [renamed if f.id == folder_id else f for f in self.all]
        return renamed

    async def move(self, folder_id: str, new_parent_id: Optional[str]) -> Folder:
        folder = await self._require(folder_id)
        moved = folder.model_copy(update={"parent_id": new_parent_id})
        self.all = [moved if f.id == folder_id else f for f in self.all]
        return moved

    async def remove(self, folder_id: str) -> None:
        await self._require(folder_id)
        self.removed.append(folder_id)
        self.all = [f for f in self.all if f.id != folder_id]

    async def get_folder_by_id(self, folder_id: str) -> Optional[Folder]:
        return next((f for f in self.all if f.id == folder_id), None)

    async def get_folder_path(self, folder_id: Optional[str]) -> List[Folder]:
        folder = await self.get_folder_by_id(folder_id) if folder_id else None
        return [folder] if folder else []

    async def _require(self, folder_id: str) -> Folder:
        folder = await self.get_folder_by_id(folder_id)
        if folder is None:
            raise NotFoundError(folder_id)
        return folder


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return ConfigManager(None)


@pytest.fixture
def backend():
    return ScriptedBackend()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(storage, config):
    return KeyValueFolderStore(storage, config.data.folders)


@pytest_asyncio.fixture
async def locator(config, backend, clock):
    """Locator with EventBus and a FoldersAdapter over the scripted backend."""
    sl = ServiceLocator(config)
    sl.register_system(EventBus)
    sl.register_system(FoldersAdapter, backend=backend, clock=clock)
    await sl.start_all()
    yield sl
    await sl.stop_all()


@pytest.fixture
def adapter(locator):
    return locator.get_system(FoldersAdapter)


@pytest.fixture
def bus(locator):
    return locator.get_system(EventBus)
