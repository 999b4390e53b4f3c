"""
Tiered extraction for a batch of candidate URLs.

Per URL: per-URL cache -> fetch HTML once -> JSON-LD -> managed extraction
-> regex heuristics -> stub. The first rich (or final) result wins and is
written to the `extract:` namespace without expiry, so warm runs return the
stored record and never reach the managed service again.

Output always holds exactly one EventRecord per requested URL, in input
order. Any unexpected error for a URL degrades to the stub for that URL.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

import httpx
from pydantic import ValidationError

from app.config import settings
from app.core.logging import get_logger
from app.models.events import EventRecord, ExtractionResponse, TraceStep
from app.models.search import SearchConfig
from services.base_scraper_service import BaseScraperService
from services.cache_service import EXTRACT_NAMESPACE, CacheService, namespaced
from services.event_normalization_service import guess_country_from_host, normalize_url
from services.extraction import (
    ExtractionContext,
    ExtractionError,
    ExtractionStrategy,
    FirecrawlService,
    HeuristicStrategy,
    JsonLdStrategy,
    ManagedExtractionStrategy,
    StubStrategy,
    build_stub,
)
from services.search_config_service import get_search_config

logger = get_logger()

GENERIC_TITLES = {"event", "untitled event"}
HIGH_QUALITY_CONFIDENCE = 0.7


class HostPacer:
    """
    Minimum gap between requests to the same host. Slots are reserved under
    the lock and slept outside it, so other hosts are never blocked.
    """

    def __init__(
        self,
        gap_ms: Optional[int] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.gap_s = (gap_ms if gap_ms is not None else settings.EXTRACTION_HOST_GAP_MS) / 1000.0
        self._clock = clock
        self._sleep = sleep
        self._lock = asyncio.Lock()
        self._last: Dict[str, float] = {}

    async def wait(self, url: str) -> float:
        """Sleep until this host may be hit again; returns the delay."""
        host = (urlparse(url).hostname or "").lower()
        async with self._lock:
            now = self._clock()
            last = self._last.get(host)
            slot = now if last is None else max(now, last + self.gap_s)
            self._last[host] = slot
        delay = slot - now
        if delay > 0:
            await self._sleep(delay)
        return delay


@dataclass
class ExtractionBatch:
    records: List[EventRecord] = field(default_factory=list)
    trace: List[TraceStep] = field(default_factory=list)


def extraction_cache_key(url: str) -> str:
    return namespaced(EXTRACT_NAMESPACE, normalize_url(url))


def rank_events(
    events: Sequence[EventRecord],
    *,
    floor: Optional[float] = None,
) -> Tuple[List[EventRecord], Dict[str, float]]:
    """
    Drop records under the confidence floor and generic titles, then sort
    by confidence (desc) with dated events first on ties.
    """
    threshold = settings.CONFIDENCE_FLOOR if floor is None else floor
    kept = [
        e for e in events
        if e.confidence >= threshold and e.title.strip().lower() not in GENERIC_TITLES
    ]
    kept.sort(key=lambda e: (-e.confidence, 0 if e.starts_at else 1))
    total = len(events)
    stats: Dict[str, float] = {
        "total_extracted": total,
        "filtered_count": len(kept),
        "average_confidence": round(sum(e.confidence for e in events) / total, 4) if total else 0.0,
        "high_quality_count": sum(1 for e in events if e.confidence >= HIGH_QUALITY_CONFIDENCE),
    }
    return kept, stats


class ExtractionPipeline:
    def __init__(
        self,
        cache: CacheService,
        *,
        fetcher: Optional[BaseScraperService] = None,
        firecrawl: Optional[FirecrawlService] = None,
        strategies: Optional[List[ExtractionStrategy]] = None,
        concurrency: Optional[int] = None,
        pacer: Optional[HostPacer] = None,
        config: Optional[SearchConfig] = None,
    ) -> None:
        self.cache = cache
        self.fetcher = fetcher or BaseScraperService()
        if firecrawl is None and settings.FIRECRAWL_API_KEY:
            firecrawl = FirecrawlService()
        self.firecrawl = firecrawl
        self.strategies = strategies if strategies is not None else self._default_strategies()
        self.concurrency = max(1, concurrency or settings.EXTRACTION_CONCURRENCY)
        self.pacer = pacer or HostPacer()
        self._config = config
        self._stack: Optional[AsyncExitStack] = None

    def _default_strategies(self) -> List[ExtractionStrategy]:
        chain: List[ExtractionStrategy] = [JsonLdStrategy()]
        if self.firecrawl is not None:
            chain.append(ManagedExtractionStrategy(self.firecrawl))
        chain.extend([HeuristicStrategy(), StubStrategy()])
        return chain

    async def __aenter__(self) -> "ExtractionPipeline":
        self._stack = AsyncExitStack()
        await self._stack.enter_async_context(self.fetcher)
        if self.firecrawl is not None:
            await self._stack.enter_async_context(self.firecrawl)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._stack is not None:
            await self._stack.aclose()
            self._stack = None

    @property
    def config(self) -> SearchConfig:
        if self._config is None:
            self._config = get_search_config()
        return self._config

    async def extract(self, urls: Sequence[str], *, locale: Optional[str] = None) -> ExtractionBatch:
        sem = asyncio.Semaphore(self.concurrency)

        async def _bounded(url: str) -> Tuple[EventRecord, List[TraceStep]]:
            async with sem:
                return await self._extract_one(url, locale)

        results = await asyncio.gather(*(_bounded(u) for u in urls))
        batch = ExtractionBatch()
        for record, steps in results:
            batch.records.append(record)
            batch.trace.extend(steps)
        logger.info(
            "extraction_batch_done",
            urls=len(urls),
            rich=sum(1 for r in batch.records if r.is_rich),
        )
        return batch

    async def extract_ranked(
        self,
        urls: Sequence[str],
        *,
        locale: Optional[str] = None,
        floor: Optional[float] = None,
    ) -> ExtractionResponse:
        batch = await self.extract(urls, locale=locale)
        events, stats = rank_events(batch.records, floor=floor)
        trace = batch.trace + [TraceStep(step="quality_filter", stats=stats)]
        return ExtractionResponse(events=events, trace=trace, quality_stats=stats)

    async def _extract_one(self, url: str, locale: Optional[str]) -> Tuple[EventRecord, List[TraceStep]]:
        steps: List[TraceStep] = []
        host_country = guess_country_from_host(url)
        try:
            cached = await self._cached(url)
            steps.append(TraceStep(url=url, step="cache", hit=cached is not None))
            if cached is not None:
                return cached, steps

            ctx = ExtractionContext(
                url=url,
                html=await self._fetch_html(url),
                host_country=host_country,
                config=self.config,
                locale=locale,
            )
            for strategy in self.strategies:
                try:
                    result = await strategy.attempt(ctx)
                except ExtractionError as exc:
                    logger.warning("extraction_tier_failed", url=url, tier=strategy.name, error=str(exc))
                    steps.append(TraceStep(url=url, step=strategy.name, rich=False, note=str(exc)[:200]))
                    continue
                if result is None:
                    steps.append(TraceStep(url=url, step=strategy.name, rich=False, note="no_result"))
                    continue

                steps.append(TraceStep(url=url, step=strategy.name, rich=result.rich, note=result.note))
                logger.info("extraction_tier_result", url=url, tier=strategy.name, rich=result.rich)
                done = result.rich or result.final
                if done or result.cache:
                    await self._store(url, result.record)
                if done:
                    return result.record, steps

            # chain without a final tier
            record = build_stub(url, host_country)
            steps.append(TraceStep(url=url, step="stub", rich=False))
            await self._store(url, record)
            return record, steps
        except Exception as exc:
            logger.warning("extraction_url_failed", url=url, error=str(exc))
            steps.append(TraceStep(url=url, step="exception", note=str(exc)[:200]))
            return build_stub(url, host_country), steps

    async def _cached(self, url: str) -> Optional[EventRecord]:
        payload = await self.cache.get(extraction_cache_key(url))
        if payload is None:
            return None
        try:
            return EventRecord.model_validate(payload)
        except ValidationError as exc:
            logger.warning("extraction_cache_payload_invalid", url=url, error=str(exc))
            return None

    async def _store(self, url: str, record: EventRecord) -> None:
        await self.cache.set(extraction_cache_key(url), record.model_dump(mode="json"), ttl_s=None)

    async def _fetch_html(self, url: str) -> str:
        await self.pacer.wait(url)
        try:
            return await self.fetcher.fetch_html(url)
        except httpx.HTTPError as exc:
            logger.info("extraction_fetch_failed", url=url, error=str(exc))
            return ""
