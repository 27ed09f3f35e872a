"""
Folder Sync - Data Models

Persisted shapes (Folder, FolderWithCounts) are pydantic models that read and
write the camelCase JSON used by the backing store. Listing entries and bus
payloads are plain dataclasses that never leave the process.
"""
from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .naming import now_ms


class Folder(BaseModel):
    """A folder as stored by the backing store. ``parent_id=None`` is a root folder."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    parent_id: Optional[str] = None
    created_at: float = Field(default_factory=now_ms)
    is_read_only_due_to_depth: bool = False


class FolderWithCounts(Folder):
    """Folder plus counts computed by the backing store at query time."""
    subfolder_count: int = Field(default=0, ge=0)
    recording_count: int = Field(default=0, ge=0)

    @classmethod
    def from_folder(cls, folder: Folder, subfolder_count: int = 0, recording_count: int = 0) -> "FolderWithCounts":
        return cls(
            **folder.model_dump(),
            subfolder_count=subfolder_count,
            recording_count=recording_count,
        )


class FolderOp(str, Enum):
    CREATE = "create"
    RENAME = "rename"
    MOVE = "move"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """
    One successful mutation, as published on ``Events.FOLDERS_CHANGED``.

    ``parent_id`` is where the change is visible: the parent for create,
    rename and delete, the destination for move. ``version`` is for
    diagnostics only; consumers do not use it to detect gaps.
    """
    op: FolderOp
    id: str
    parent_id: Optional[str]
    name: str
    timestamp: float
    version: int


@dataclass(frozen=True, slots=True)
class LocalReconcileEvent:
    """An optimistic entry confirmed in this process; published on ``Events.FOLDERS_LOCAL_RECONCILE``."""
    temp_id: str
    real: FolderWithCounts
    parent_id: Optional[str]
    timestamp: float


@dataclass(frozen=True, slots=True)
class FolderFilter:
    folder_id: Optional[str] = None
    folder_name: Optional[str] = None

    @property
    def is_active(self) -> bool:
        return self.folder_id is not None


# ==================== Listing entries ====================

class ItemState(str, Enum):
    OPTIMISTIC = "optimistic"
    FRESH = "fresh"
    STALE = "stale"


@dataclass(frozen=True, slots=True)
class OptimisticFolder:
    """Shown immediately after a local create, before the store confirms it."""
    temp_id: str
    name: str
    parent_id: Optional[str]
    created_at: float
    subfolder_count: int = 0
    recording_count: int = 0

    state: ClassVar[ItemState] = ItemState.OPTIMISTIC


@dataclass(frozen=True, slots=True)
class TrackedFresh:
    """Present in the latest snapshot from the backing store."""
    folder: FolderWithCounts

    state: ClassVar[ItemState] = ItemState.FRESH

    @property
    def id(self) -> str:
        return self.folder.id

    @property
    def name(self) -> str:
        return self.folder.name

    @property
    def parent_id(self) -> Optional[str]:
        return self.folder.parent_id

    def mark_stale(self, now: float) -> "TrackedStale":
        return TrackedStale(folder=self.folder, stale_at=now)


@dataclass(frozen=True, slots=True)
class TrackedStale:
    """Confirmed earlier, missing since ``stale_at``; kept until the grace period runs out."""
    folder: FolderWithCounts
    stale_at: float

    state: ClassVar[ItemState] = ItemState.STALE

    @property
    def id(self) -> str:
        return self.folder.id

    @property
    def name(self) -> str:
        return self.folder.name

    @property
    def parent_id(self) -> Optional[str]:
        return self.folder.parent_id

    def is_expired(self, now: float, ttl_ms: float) -> bool:
        return now - self.stale_at > ttl_ms


FolderItem = Union[OptimisticFolder, TrackedFresh, TrackedStale]
