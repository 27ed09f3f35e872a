"""
Folder Sync - TTL Cache Facade

Short-lived memoization of the two folder-wide snapshots the UI asks for
repeatedly (all folders, valid move targets). Children listings are never
cached here.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Optional

from loguru import logger

from .models import Folder
from .naming import now_ms


class CacheKey(str, Enum):
    ALL_FOLDERS = "all_folders"
    VALID_MOVE_TARGETS = "valid_move_targets"


@dataclass(slots=True)
class CacheEntry:
    data: List[Folder]
    timestamp: float


class FolderCache:
    """
    Independently keyed snapshot caches with a shared TTL.

    ``invalidate()`` drops every entry. A fetch that was already in flight
    when the cache was invalidated returns its result to its caller but is
    not stored.
    """

    def __init__(self, ttl_ms: float = 5000, clock: Callable[[], float] = now_ms):
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._epoch = 0

    def get(self, key: CacheKey) -> Optional[List[Folder]]:
        """Cached data if present and younger than the TTL."""
        entry = self._entries.get(key)
        if entry is not None and self._clock() - entry.timestamp < self.ttl_ms:
            return entry.data
        return None

    def peek(self, key: CacheKey) -> Optional[List[Folder]]:
        """Cached data regardless of age."""
        entry = self._entries.get(key)
        return entry.data if entry is not None else None

    async def get_or_fetch(self, key: CacheKey, fetch: Callable[[], Awaitable[List[Folder]]]) -> List[Folder]:
        now = self._clock()
        cached = self.get(key)
        if cached is not None:
            logger.debug(f"FolderCache: using cached {key.value}")
            return cached

        logger.debug(f"FolderCache: cache miss, fetching fresh {key.value}")
        epoch = self._epoch
        data = await fetch()

        if epoch == self._epoch:
            self._entries[key] = CacheEntry(data=data, timestamp=now)
        else:
            logger.debug(f"FolderCache: invalidated during fetch, not storing {key.value}")
        return data

    def invalidate(self) -> None:
        logger.debug("FolderCache: invalidating all caches")
        self._entries.clear()
        self._epoch += 1
