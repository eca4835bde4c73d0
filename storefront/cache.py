
"""In-process query cache with staleness and garbage-collection windows.

Entries are keyed by ``(kind, params)``. A fresh entry is served without
calling the loader; a stale entry is served while a background refresh runs;
a missing entry is loaded in the foreground.

Every write and invalidation advances a version counter. A load that started
before a later write or invalidation of its key does not write its result
back, so a read that raced a mutation cannot resurrect data the mutation
invalidated. Per-key versions are only kept while a load of that key is in
flight.
"""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from dataclasses import dataclass
from typing import Any, TypeAlias

logger = logging.getLogger(__name__)

QueryKey: TypeAlias = tuple[str, tuple[Hashable, ...]]
Loader: TypeAlias = Callable[[], Awaitable[Any]]

# Windows in seconds
DEFAULT_STALE_AFTER = 5 * 60
DEFAULT_GC_AFTER = 10 * 60


@dataclass
class CacheEntry:
    """A cached query result.

    Attributes:
        value: The cached result
        fetched_at: Clock time of the load
        stale_after: Seconds after fetched_at when the entry becomes stale
        gc_after: Seconds of disuse after which the entry may be evicted
        last_accessed: Clock time of the last read or write
    """

    value: Any
    fetched_at: float
    stale_after: float
    gc_after: float
    last_accessed: float

    def is_stale(self, now: float) -> bool:
        return now - self.fetched_at >= self.stale_after

    def is_collectable(self, now: float) -> bool:
        return now - self.last_accessed >= self.gc_after


class QueryCache:
    """Query result cache with coarse, kind-level invalidation."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: dict[QueryKey, CacheEntry] = {}
        self._version = 0
        # Version of the last invalidation per kind
        self._kind_versions: dict[str, int] = {}
        # Version of the last write per key, only for keys with loads in flight
        self._key_versions: dict[QueryKey, int] = {}
        self._loading: dict[QueryKey, int] = {}
        self._refreshing: dict[QueryKey, asyncio.Task[Any]] = {}

    def __contains__(self, key: QueryKey) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def keys(self) -> list[QueryKey]:
        return list(self._entries)

    def _mark_written(self, key: QueryKey) -> None:
        self._version += 1
        if key in self._loading:
            self._key_versions[key] = self._version

    def _superseded(self, key: QueryKey, started: int) -> bool:
        return (
            self._kind_versions.get(key[0], 0) > started
            or self._key_versions.get(key, 0) > started
        )

    def _finish_load(self, key: QueryKey) -> None:
        remaining = self._loading[key] - 1
        if remaining:
            self._loading[key] = remaining
        else:
            del self._loading[key]
            self._key_versions.pop(key, None)

    def get(self, key: QueryKey) -> CacheEntry | None:
        """Return the entry for ``key`` without loading anything."""
        entry = self._entries.get(key)
        if entry is not None:
            entry.last_accessed = self._clock()
        return entry

    def get_value(self, key: QueryKey, default: Any = None) -> Any:
        entry = self.get(key)
        return entry.value if entry is not None else default

    def set(
        self,
        key: QueryKey,
        value: Any,
        stale_after: float = DEFAULT_STALE_AFTER,
        gc_after: float = DEFAULT_GC_AFTER,
    ) -> None:
        """Store a value as freshly fetched.

        Pending loads for the key are superseded and will not overwrite it.
        """
        now = self._clock()
        self._mark_written(key)
        self._entries[key] = CacheEntry(
            value=value,
            fetched_at=now,
            stale_after=stale_after,
            gc_after=gc_after,
            last_accessed=now,
        )

    def remove(self, key: QueryKey) -> bool:
        """Evict a single entry. Returns whether it was present."""
        self._mark_written(key)
        return self._entries.pop(key, None) is not None

    def invalidate(self, kind: str) -> int:
        """Evict every entry of a kind, whatever its parameters.

        Returns:
            Number of evicted entries.
        """
        self._version += 1
        self._kind_versions[kind] = self._version
        doomed = [key for key in self._entries if key[0] == kind]
        for key in doomed:
            del self._entries[key]
        if doomed:
            logger.debug("Invalidated %d cached %s queries", len(doomed), kind)
        return len(doomed)

    def clear(self) -> None:
        for kind in {key[0] for key in self._entries}:
            self.invalidate(kind)

    def collect_garbage(self) -> int:
        """Evict entries unused for longer than their GC window."""
        now = self._clock()
        doomed = [key for key, entry in self._entries.items() if entry.is_collectable(now)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    async def _load(
        self,
        key: QueryKey,
        loader: Loader,
        stale_after: float,
        gc_after: float,
    ) -> Any:
        started = self._version
        self._loading[key] = self._loading.get(key, 0) + 1
        try:
            value = await loader()
            if self._superseded(key, started):
                logger.debug("Discarding result for %s: invalidated while loading", key)
            else:
                self.set(key, value, stale_after, gc_after)
        finally:
            self._finish_load(key)
        return value

    async def _refresh(
        self,
        key: QueryKey,
        loader: Loader,
        stale_after: float,
        gc_after: float,
    ) -> None:
        try:
            await self._load(key, loader, stale_after, gc_after)
        except Exception as e:
            # The stale value stays in place; the next read tries again.
            logger.warning("Background refresh of %s failed: %s", key, e)
        finally:
            self._refreshing.pop(key, None)

    async def fetch(
        self,
        key: QueryKey,
        loader: Loader,
        stale_after: float = DEFAULT_STALE_AFTER,
        gc_after: float = DEFAULT_GC_AFTER,
    ) -> Any:
        """Return the value for ``key``, loading it if needed.

        Args:
            key: Cache key
            loader: Coroutine factory producing a fresh value
            stale_after: Staleness window in seconds
            gc_after: Garbage-collection window in seconds

        Returns:
            The cached or freshly loaded value.
        """
        self.collect_garbage()
        entry = self.get(key)

        if entry is None:
            return await self._load(key, loader, stale_after, gc_after)

        if entry.is_stale(self._clock()) and key not in self._refreshing:
            self._refreshing[key] = asyncio.create_task(
                self._refresh(key, loader, stale_after, gc_after)
            )

        return entry.value

    async def wait_for_refreshes(self) -> None:
        """Wait until all background refreshes have finished."""
        tasks = list(self._refreshing.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
