"""
End-to-end event acquisition run.

search (relevance filter inside) -> top PIPELINE_MAX_URLS links ->
tiered extraction -> event-date window -> dedupe -> rank ->
speaker enrichment (only with an AI key).

External failures degrade inside each stage; the response always has the
success shape and reports degradation through `provider` and `trace`.
"""

from __future__ import annotations

from contextlib import AsyncExitStack
from typing import List, Optional

from app.config import settings
from app.core.logging import get_logger
from app.models.events import PipelineRequest, PipelineResponse, TraceStep
from app.models.search import SearchHit
from services.cache_service import CacheService
from services.dedupe_service import dedupe_events
from services.event_normalization_service import normalize_url
from services.extraction_pipeline_service import ExtractionPipeline, rank_events
from services.relevance_filter_service import RelevanceFilter
from services.search_service import SearchService, filter_events_by_date
from services.speaker_enrichment_service import SpeakerEnricher

logger = get_logger()


def select_urls(items: List[SearchHit], limit: int) -> List[str]:
    """First `limit` distinct links (by normalized URL), in ranking order."""
    seen = set()
    urls: List[str] = []
    for item in items:
        if not item.link:
            continue
        key = normalize_url(item.link)
        if key in seen:
            continue
        seen.add(key)
        urls.append(item.link)
        if len(urls) >= limit:
            break
    return urls


class EventPipeline:
    def __init__(
        self,
        cache: CacheService,
        *,
        search: Optional[SearchService] = None,
        extraction: Optional[ExtractionPipeline] = None,
        enricher: Optional[SpeakerEnricher] = None,
        max_urls: Optional[int] = None,
        floor: Optional[float] = None,
    ) -> None:
        self.cache = cache
        self.search = search or SearchService(cache, RelevanceFilter(cache))
        self.extraction = extraction or ExtractionPipeline(cache)
        self.enricher = enricher or SpeakerEnricher()
        self.max_urls = max(1, max_urls or settings.PIPELINE_MAX_URLS)
        self.floor = floor
        self._stack: Optional[AsyncExitStack] = None

    async def __aenter__(self) -> "EventPipeline":
        self._stack = AsyncExitStack()
        await self._stack.enter_async_context(self.search)
        await self._stack.enter_async_context(self.extraction)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self._stack is not None:
            await self._stack.aclose()
            self._stack = None
        await self.search.relevance.drain()

    async def run(self, request: PipelineRequest) -> PipelineResponse:
        logger.info(
            "pipeline_run_started",
            query=request.query,
            country=request.country,
            date_from=request.date_from,
            date_to=request.date_to,
        )
        trace: List[TraceStep] = []

        found = await self.search.search(
            request.query,
            request.country,
            request.date_from,
            request.date_to,
            request.result_count,
        )
        trace.append(
            TraceStep(
                step="search",
                note=found.note,
                stats={"provider": found.provider, "items": len(found.items), "cached": int(found.cached)},
            )
        )

        urls = select_urls(found.items, self.max_urls)
        if not urls:
            logger.info("pipeline_run_no_urls", provider=found.provider)
            return PipelineResponse(provider=found.provider, events=[], trace=trace)

        batch = await self.extraction.extract(urls)
        trace.extend(batch.trace)

        in_window = filter_events_by_date(batch.records, request.date_from, request.date_to)
        unique = dedupe_events(in_window)
        ranked, stats = rank_events(unique, floor=self.floor)
        trace.append(
            TraceStep(
                step="quality_filter",
                stats={**stats, "outside_window": len(batch.records) - len(in_window), "merged": len(in_window) - len(unique)},
            )
        )

        if self.enricher.enabled and any(e.speakers for e in ranked):
            ranked = await self.enricher.enrich_events(ranked)
            trace.append(
                TraceStep(
                    step="speaker_enrichment",
                    stats={"speakers": sum(len(e.speakers) for e in ranked)},
                )
            )

        logger.info(
            "pipeline_run_done",
            provider=found.provider,
            urls=len(urls),
            events=len(ranked),
        )
        return PipelineResponse(provider=found.provider, events=ranked, trace=trace)
