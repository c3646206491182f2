"""Two-tier cache: process memory in front of a persistent key-value store.

Reads check memory first, then the persistent tier, promoting hits back into
memory. Expiry is evaluated lazily on read and by ``clear_expired``; there is
no background eviction. Store failures are logged and read as misses.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable

from .models.cache import CacheEntry, CacheOptions, CacheStats
from .storage import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache_"


def storage_key(key: str) -> str:
    return f"{CACHE_PREFIX}{key}"


class TieredCache:
    """Read-through/write-through cache for JSON-serializable values.

    ``None`` is the miss marker, so a cached ``None`` reads as absent.
    The memory tier is plain dicts mutated only between awaits; it is safe on
    a single event loop and nowhere else.
    """

    def __init__(
        self,
        store: KeyValueStore,
        default_options: CacheOptions | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.default_options = default_options or CacheOptions()
        self._clock = clock
        self._memory: dict[str, CacheEntry] = {}

    # Memory tier

    def _set_memory(self, key: str, value: Any, ttl_s: float) -> None:
        self._memory[key] = CacheEntry(
            key=key, value=value, stored_at=self._clock(), ttl_s=ttl_s
        )

    def _get_memory(self, key: str) -> Any:
        entry = self._memory.get(key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            self._memory.pop(key, None)
            return None
        return entry.value

    # Persistent tier

    async def _set_persistent(self, key: str, value: Any, ttl_s: float) -> None:
        entry = CacheEntry(key=key, value=value, stored_at=self._clock(), ttl_s=ttl_s)
        try:
            await self.store.set(storage_key(key), entry.to_json())
        except Exception:
            logger.exception("Failed to write persistent cache for %s", key)

    async def _get_persistent(self, key: str) -> CacheEntry | None:
        skey = storage_key(key)
        try:
            raw = await self.store.get(skey)
        except Exception:
            logger.exception("Failed to read persistent cache for %s", key)
            return None
        if raw is None:
            return None
        try:
            entry = CacheEntry.from_json(raw)
        except (ValueError, TypeError, KeyError):
            logger.warning("Discarding undecodable cache entry %s", key)
            await self._remove_persistent(skey)
            return None
        if entry.is_expired(self._clock()):
            await self._remove_persistent(skey)
            return None
        return entry

    async def _remove_persistent(self, skey: str) -> None:
        try:
            await self.store.remove(skey)
        except Exception:
            logger.exception("Failed to remove persistent cache key %s", skey)

    async def _cache_keys(self) -> list[str]:
        keys = await self.store.list_keys()
        return [k for k in keys if k.startswith(CACHE_PREFIX)]

    # Public API

    async def get(self, key: str) -> Any:
        value = self._get_memory(key)
        if value is not None:
            return value
        entry = await self._get_persistent(key)
        if entry is None or entry.value is None:
            return None
        # Promotion never outlives the persistent entry.
        remaining = entry.stored_at + entry.ttl_s - self._clock()
        self._set_memory(
            key, entry.value, min(self.default_options.memory_ttl_s, remaining)
        )
        return entry.value

    async def set(self, key: str, value: Any, options: CacheOptions | None = None) -> None:
        opts = options or self.default_options
        if not opts.persistent_only:
            self._set_memory(key, value, opts.memory_ttl_s)
        await self._set_persistent(key, value, opts.persistent_ttl_s)

    async def invalidate(self, key: str) -> None:
        self._memory.pop(key, None)
        await self._remove_persistent(storage_key(key))

    async def clear_expired(self) -> int:
        """Remove expired and undecodable persistent entries.

        Returns:
            Number of persistent entries removed.
        """
        now = self._clock()
        try:
            keys = await self._cache_keys()
            stale: list[str] = []
            for skey in keys:
                raw = await self.store.get(skey)
                if raw is None:
                    continue
                try:
                    entry = CacheEntry.from_json(raw)
                except (ValueError, TypeError, KeyError):
                    stale.append(skey)
                    continue
                if entry.is_expired(now):
                    stale.append(skey)
            if stale:
                await self.store.remove_many(stale)
                logger.info("Cleared %d expired cache entries", len(stale))
            return len(stale)
        except Exception:
            logger.exception("Failed to clear expired cache entries")
            return 0

    async def clear_all(self) -> None:
        self._memory.clear()
        try:
            keys = await self._cache_keys()
            await self.store.remove_many(keys)
            logger.info("Cleared cache (%d persistent entries)", len(keys))
        except Exception:
            logger.exception("Failed to clear persistent cache")

    async def stats(self) -> CacheStats:
        now = self._clock()
        result = CacheStats(
            memory_items=sum(
                1 for entry in self._memory.values() if not entry.is_expired(now)
            )
        )
        try:
            keys = await self._cache_keys()
            for skey in keys:
                raw = await self.store.get(skey)
                if raw is None:
                    continue
                result.total_size_bytes += len(raw.encode("utf-8"))
                try:
                    entry = CacheEntry.from_json(raw)
                except (ValueError, TypeError, KeyError):
                    result.expired_items += 1
                    continue
                if entry.is_expired(now):
                    result.expired_items += 1
                else:
                    result.persistent_items += 1
        except Exception:
            logger.exception("Failed to collect persistent cache stats")
            result.persistent_items = 0
            result.expired_items = 0
            result.total_size_bytes = 0
        return result
