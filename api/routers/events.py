from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from app.models.events import (
    ExtractionResponse,
    ExtractRequest,
    PipelineRequest,
    PipelineResponse,
    SearchRequest,
)
from app.models.search import SearchResponse
from services.cache_service import CacheService, build_cache_service
from services.event_pipeline_service import EventPipeline
from services.extraction_pipeline_service import ExtractionPipeline
from services.relevance_filter_service import RelevanceFilter
from services.search_service import SearchService

router = APIRouter(
    prefix="/events",
    tags=["events"],
)


def get_cache(request: Request) -> CacheService:
    """Process-wide cache; built on first use when the startup hook did not run."""
    cache = getattr(request.app.state, "cache", None)
    if cache is None:
        cache = build_cache_service()
        request.app.state.cache = cache
    return cache


@router.post("/search", response_model=SearchResponse)
async def search_events(
    body: SearchRequest,
    cache: CacheService = Depends(get_cache),
) -> SearchResponse:
    relevance = RelevanceFilter(cache)
    async with SearchService(cache, relevance) as search:
        response = await search.search(
            body.query,
            body.country,
            body.date_from,
            body.date_to,
            body.result_count,
            rerank=body.rerank,
        )
    await relevance.drain()
    return response


@router.post("/extract", response_model=ExtractionResponse)
async def extract_events(
    body: ExtractRequest,
    cache: CacheService = Depends(get_cache),
) -> ExtractionResponse:
    async with ExtractionPipeline(cache) as pipeline:
        return await pipeline.extract_ranked(body.urls, locale=body.locale)


@router.post("/run", response_model=PipelineResponse)
async def run_pipeline(
    body: PipelineRequest,
    cache: CacheService = Depends(get_cache),
) -> PipelineResponse:
    async with EventPipeline(cache) as pipeline:
        return await pipeline.run(body)


@router.get("/cache/stats")
async def cache_stats(cache: CacheService = Depends(get_cache)):
    return {"ok": True, "stats": cache.stats()}
