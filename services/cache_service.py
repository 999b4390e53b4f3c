from __future__ import annotations

import asyncio
import fnmatch
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Mapping, Optional, Tuple

from app.config import settings
from app.core.logging import get_logger
from services.cache_store_service import DurableStore, build_durable_store

logger = get_logger().bind(module="cache_service")

SEARCH_NAMESPACE = "search"
EXTRACT_NAMESPACE = "extract"
DECISION_NAMESPACE = "decision"


def namespaced(namespace: str, key: str) -> str:
    return f"{namespace}:{key}"


@dataclass
class CacheStats:
    local_hits: int = 0
    durable_hits: int = 0
    misses: int = 0
    errors: int = 0
    writes: int = 0
    evictions: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {
            "local_hits": self.local_hits,
            "durable_hits": self.durable_hits,
            "misses": self.misses,
            "errors": self.errors,
            "writes": self.writes,
            "evictions": self.evictions,
        }


@dataclass
class _LocalEntry:
    value: Any
    expires_at: Optional[float]
    written_at: float = field(default=0.0)


class LocalTTLCache:
    """
    Process-local tier: dict + asyncio.Lock, capacity-bounded.

    When the bound is exceeded, expired entries go first, then the oldest
    writes. Entries are treated as immutable once stored.
    """

    def __init__(
        self,
        *,
        capacity: int = 1000,
        default_ttl_s: Optional[float] = 300,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capacity = max(1, capacity)
        self.default_ttl_s = default_ttl_s
        self._clock = clock
        self._entries: Dict[str, _LocalEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def _effective_ttl(self, ttl_s: Optional[float]) -> Optional[float]:
        if ttl_s is None:
            return self.default_ttl_s
        if self.default_ttl_s is None:
            return ttl_s
        return min(ttl_s, self.default_ttl_s)

    async def get(self, key: str) -> Tuple[bool, Any]:
        async with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return False, None
            if entry.expires_at is not None and self._clock() >= entry.expires_at:
                del self._entries[key]
                return False, None
            return True, entry.value

    async def set(self, key: str, value: Any, ttl_s: Optional[float] = None) -> int:
        """Store a value; returns the number of entries evicted to make room."""
        now = self._clock()
        ttl = self._effective_ttl(ttl_s)
        async with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = _LocalEntry(
                value=value,
                expires_at=(now + ttl) if ttl is not None else None,
                written_at=now,
            )
            return self._evict_locked(now)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._entries.pop(key, None)

    async def delete_matching(self, predicate: Callable[[str], bool]) -> int:
        async with self._lock:
            doomed = [k for k in self._entries if predicate(k)]
            for k in doomed:
                del self._entries[k]
            return len(doomed)

    def _evict_locked(self, now: float) -> int:
        if len(self._entries) <= self.capacity:
            return 0
        evicted = 0
        for k in [k for k, e in self._entries.items() if e.expires_at is not None and now >= e.expires_at]:
            del self._entries[k]
            evicted += 1
        # dict keeps insertion order and set() re-inserts, so the head is the oldest write
        while len(self._entries) > self.capacity:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            evicted += 1
        return evicted


class CacheService:
    """
    Two-tier cache: process-local LocalTTLCache in front of a DurableStore.

    Read path is local -> durable -> absent, promoting durable hits. Writes
    go local first and are mirrored to the durable store. Any error from
    either tier is logged and treated as a miss; nothing here raises to
    callers. Construct once per process and pass it to the components.
    """

    def __init__(
        self,
        store: Optional[DurableStore] = None,
        *,
        local: Optional[LocalTTLCache] = None,
    ) -> None:
        self.store = store if store is not None else build_durable_store()
        self.local = local or LocalTTLCache(
            capacity=settings.LOCAL_CACHE_CAPACITY,
            default_ttl_s=settings.LOCAL_CACHE_TTL_S,
        )
        self._stats = CacheStats()

    async def get(self, key: str) -> Optional[Any]:
        try:
            found, value = await self.local.get(key)
        except Exception as exc:
            self._stats.errors += 1
            logger.warning("cache_local_get_failed", cache_key=key, error=str(exc))
            found, value = False, None
        if found:
            self._stats.local_hits += 1
            return value

        try:
            row = await self.store.get(key)
        except Exception as exc:
            self._stats.errors += 1
            self._stats.misses += 1
            logger.warning("cache_durable_get_failed", cache_key=key, error=str(exc))
            return None

        if row is None:
            self._stats.misses += 1
            return None

        if not row.is_valid():
            self._stats.misses += 1
            logger.info("cache_durable_expired", cache_key=key)
            await self._safe_durable_delete(key)
            return None

        self._stats.durable_hits += 1
        remaining = self._remaining_ttl(row.ttl_at)
        try:
            self._stats.evictions += await self.local.set(key, row.payload, remaining)
        except Exception as exc:
            self._stats.errors += 1
            logger.warning("cache_local_promote_failed", cache_key=key, error=str(exc))
        return row.payload

    async def set(self, key: str, value: Any, ttl_s: Optional[float] = None) -> None:
        """ttl_s=None stores without expiry in the durable tier."""
        self._stats.writes += 1
        try:
            self._stats.evictions += await self.local.set(key, value, ttl_s)
        except Exception as exc:
            self._stats.errors += 1
            logger.warning("cache_local_set_failed", cache_key=key, error=str(exc))
        try:
            await self.store.upsert(key, value, ttl_s)
        except Exception as exc:
            self._stats.errors += 1
            logger.warning("cache_durable_set_failed", cache_key=key, error=str(exc))

    async def delete(self, key: str) -> None:
        try:
            await self.local.delete(key)
        except Exception as exc:
            self._stats.errors += 1
            logger.warning("cache_local_delete_failed", cache_key=key, error=str(exc))
        await self._safe_durable_delete(key)

    async def exists(self, key: str) -> bool:
        return (await self.get(key)) is not None

    async def multi_get(self, keys: Iterable[str]) -> Dict[str, Any]:
        unique = list(dict.fromkeys(keys))
        values = await asyncio.gather(*(self.get(k) for k in unique))
        return {k: v for k, v in zip(unique, values) if v is not None}

    async def multi_set(self, items: Mapping[str, Any], ttl_s: Optional[float] = None) -> None:
        await asyncio.gather(*(self.set(k, v, ttl_s) for k, v in items.items()))

    async def delete_pattern(self, pattern: str) -> int:
        removed = 0
        try:
            removed += await self.local.delete_matching(lambda k: fnmatch.fnmatchcase(k, pattern))
        except Exception as exc:
            self._stats.errors += 1
            logger.warning("cache_local_delete_pattern_failed", pattern=pattern, error=str(exc))
        try:
            removed += await self.store.delete_pattern(pattern)
        except Exception as exc:
            self._stats.errors += 1
            logger.warning("cache_durable_delete_pattern_failed", pattern=pattern, error=str(exc))
        return removed

    def stats(self) -> Dict[str, int]:
        data = self._stats.as_dict()
        data["local_size"] = len(self.local)
        return data

    async def _safe_durable_delete(self, key: str) -> None:
        try:
            await self.store.delete(key)
        except Exception as exc:
            self._stats.errors += 1
            logger.warning("cache_durable_delete_failed", cache_key=key, error=str(exc))

    @staticmethod
    def _remaining_ttl(ttl_at: Optional[datetime]) -> Optional[float]:
        if ttl_at is None:
            return None
        if ttl_at.tzinfo is None:
            ttl_at = ttl_at.replace(tzinfo=timezone.utc)
        return max(0.0, (ttl_at - datetime.now(timezone.utc)).total_seconds())


def build_cache_service() -> CacheService:
    """Process-start factory; the result is passed to every component."""
    return CacheService(build_durable_store())
