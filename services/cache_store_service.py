"""
Durable keyed stores backing the second cache tier.

The store is the system of record across process restarts; it is addressed
by the same key as the process-local tier. Implementations raise on I/O
failure: CacheService is the layer that turns errors into misses.
"""

from __future__ import annotations

import asyncio
import fnmatch
import json
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from app.models.cache import CacheEntry
from services import db_service

CACHE_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS cache_entries (
    cache_key   TEXT PRIMARY KEY,
    namespace   TEXT NOT NULL DEFAULT '',
    payload     JSONB NOT NULL,
    written_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
    ttl_at      TIMESTAMPTZ NULL
)
"""


def _ttl_at(ttl_s: Optional[float], now: datetime) -> Optional[datetime]:
    if ttl_s is None:
        return None
    return now + timedelta(seconds=float(ttl_s))


class DurableStore(ABC):
    """
    Abstract durable key/value store.

    get() returns the raw row even when expired; TTL is evaluated by the
    caller at read time.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[CacheEntry]:
        pass

    @abstractmethod
    async def upsert(self, key: str, payload: Any, ttl_s: Optional[float] = None) -> None:
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        pass

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete keys matching a glob pattern (``*`` wildcard). Returns the count."""
        pass


class InMemoryCacheStore(DurableStore):
    """Process-bound stand-in used when no DATABASE_URL is configured."""

    def __init__(self) -> None:
        self._rows: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[CacheEntry]:
        async with self._lock:
            row = self._rows.get(key)
            return row.model_copy(deep=True) if row is not None else None

    async def upsert(self, key: str, payload: Any, ttl_s: Optional[float] = None) -> None:
        now = datetime.now(timezone.utc)
        # round-trip through JSON so stored payloads match what Postgres would return
        stored = json.loads(json.dumps(payload, ensure_ascii=False))
        async with self._lock:
            self._rows[key] = CacheEntry(key=key, payload=stored, written_at=now, ttl_at=_ttl_at(ttl_s, now))

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._rows.pop(key, None)

    async def delete_pattern(self, pattern: str) -> int:
        async with self._lock:
            doomed = [k for k in self._rows if fnmatch.fnmatchcase(k, pattern)]
            for k in doomed:
                del self._rows[k]
            return len(doomed)


class PostgresCacheStore(DurableStore):
    """cache_entries table via the shared asyncpg pool."""

    def __init__(self) -> None:
        self._schema_ready = False

    async def ensure_schema(self) -> None:
        if self._schema_ready:
            return
        await db_service.execute(CACHE_TABLE_DDL)
        self._schema_ready = True

    async def get(self, key: str) -> Optional[CacheEntry]:
        await self.ensure_schema()
        row = await db_service.fetchrow(
            """
            SELECT cache_key, payload, written_at, ttl_at
            FROM cache_entries
            WHERE cache_key = $1
            """,
            key,
        )
        if not row:
            return None
        payload = row["payload"]
        if isinstance(payload, str):
            payload = json.loads(payload)
        return CacheEntry(
            key=row["cache_key"],
            payload=payload,
            written_at=row["written_at"],
            ttl_at=row["ttl_at"],
        )

    async def upsert(self, key: str, payload: Any, ttl_s: Optional[float] = None) -> None:
        await self.ensure_schema()
        now = datetime.now(timezone.utc)
        await db_service.execute(
            """
            INSERT INTO cache_entries (cache_key, namespace, payload, written_at, ttl_at)
            VALUES ($1, $2, CAST($3 AS JSONB), $4, $5)
            ON CONFLICT (cache_key) DO UPDATE
            SET payload = EXCLUDED.payload,
                written_at = EXCLUDED.written_at,
                ttl_at = EXCLUDED.ttl_at
            """,
            key,
            key.split(":", 1)[0] if ":" in key else "",
            json.dumps(payload, ensure_ascii=False),
            now,
            _ttl_at(ttl_s, now),
        )

    async def delete(self, key: str) -> None:
        await self.ensure_schema()
        await db_service.execute("DELETE FROM cache_entries WHERE cache_key = $1", key)

    async def delete_pattern(self, pattern: str) -> int:
        await self.ensure_schema()
        like = (
            pattern.replace("\\", "\\\\")
            .replace("%", "\\%")
            .replace("_", "\\_")
            .replace("*", "%")
        )
        status = await db_service.execute("DELETE FROM cache_entries WHERE cache_key LIKE $1", like)
        # asyncpg returns the command tag, e.g. "DELETE 3"
        try:
            return int(str(status).split()[-1])
        except (ValueError, IndexError):
            return 0


def build_durable_store() -> DurableStore:
    if db_service.is_configured():
        return PostgresCacheStore()
    return InMemoryCacheStore()
