# services/db_service.py
from __future__ import annotations

import os
from typing import Any, AsyncIterator, Optional
import asyncio
from contextlib import asynccontextmanager
from time import monotonic
from urllib.parse import urlparse

import logging
import asyncpg

from app.config import settings

logger = logging.getLogger(__name__)

APPLICATION_NAME = "event-acquisition-pipeline"
STATEMENT_TIMEOUT_MS = int(os.getenv("STATEMENT_TIMEOUT_MS", "15000"))
DB_POOL_MIN_SIZE = int(os.getenv("DB_POOL_MIN_SIZE", "1"))
DB_POOL_MAX_SIZE = int(os.getenv("DB_POOL_MAX_SIZE", "4"))
DEFAULT_QUERY_TIMEOUT_MS = int(os.getenv("DEFAULT_QUERY_TIMEOUT_MS", "10000"))
SLOW_QUERY_THRESHOLD_MS = 1_000


def normalize_database_url(raw_dsn: str) -> str:
    """
    asyncpg only understands postgresql://; rewrite SQLAlchemy-style
    postgresql+asyncpg:// DSNs and leave everything else untouched.
    """
    raw_dsn = raw_dsn.strip()
    if raw_dsn.startswith("postgresql+asyncpg://"):
        raw_dsn = "postgresql://" + raw_dsn[len("postgresql+asyncpg://"):]
    return raw_dsn


def is_configured() -> bool:
    return bool((settings.DATABASE_URL or "").strip())


# --------------------------------------------------------------------
# Lazy asyncpg pool
# --------------------------------------------------------------------
_pool: asyncpg.Pool | None = None
_pool_lock = asyncio.Lock()


async def ensure_pool() -> asyncpg.Pool:
    global _pool
    if _pool is not None:
        return _pool

    async with _pool_lock:
        if _pool is not None:
            return _pool

        if not is_configured():
            raise RuntimeError("DATABASE_URL not set in environment/.env")
        final_dsn = normalize_database_url(settings.DATABASE_URL or "")

        logger.info(
            "db_pool_initializing",
            extra={
                "dsn_host": urlparse(final_dsn).hostname,
                "application_name": APPLICATION_NAME,
            },
        )
        _pool = await asyncpg.create_pool(
            dsn=final_dsn,
            min_size=DB_POOL_MIN_SIZE,
            max_size=DB_POOL_MAX_SIZE,
            command_timeout=30,
            timeout=30,
            statement_cache_size=0,
            server_settings={
                "application_name": APPLICATION_NAME,
                "statement_timeout": str(STATEMENT_TIMEOUT_MS),
            },
        )
        return _pool


async def close_pool() -> None:
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None


async def _execute_with_timing(
    conn: asyncpg.Connection,
    method: str,
    query: str,
    *args: Any,
    timeout: Optional[float] = None,
) -> Any:
    start_ms = monotonic() * 1000
    try:
        func = getattr(conn, method)
        effective_timeout = timeout if timeout is not None else DEFAULT_QUERY_TIMEOUT_MS / 1000
        return await func(query, *args, timeout=effective_timeout)
    finally:
        duration_ms = (monotonic() * 1000) - start_ms
        if duration_ms >= SLOW_QUERY_THRESHOLD_MS:
            logger.warning(
                "db_slow_query",
                extra={
                    "duration_ms": round(duration_ms, 2),
                    "method": method,
                    "query_snippet": query.strip().split("\n")[0][:200],
                },
            )


@asynccontextmanager
async def _connection() -> AsyncIterator[asyncpg.Connection]:
    pool = await ensure_pool()
    async with pool.acquire() as conn:
        yield conn


async def fetchrow(query: str, *args: Any, timeout: Optional[float] = None) -> Optional[asyncpg.Record]:
    async with _connection() as conn:
        return await _execute_with_timing(conn, "fetchrow", query, *args, timeout=timeout)


async def execute(query: str, *args: Any, timeout: Optional[float] = None) -> str:
    async with _connection() as conn:
        return await _execute_with_timing(conn, "execute", query, *args, timeout=timeout)
