from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import pytest

from app.models.events import PipelineRequest
from app.models.search import SearchConfig, SearchResponse
from services.event_pipeline_service import EventPipeline, select_urls
from services.extraction_pipeline_service import ExtractionBatch, ExtractionPipeline, HostPacer
from services.speaker_enrichment_service import SpeakerEnricher
from tests.fixtures import jsonld_page, make_cache, make_event, make_hit, make_speaker

DEMO_URLS = ["https://example.com/demo1", "https://example.com/demo2"]


class FakeEnrichmentAI:
    def __init__(self, answers: Optional[List[Dict[str, Any]]] = None) -> None:
        self.answers = answers or []
        self.calls = 0

    async def generate_json(self, system_prompt, user_prompt, response_model, action_type="generic") -> Tuple[Any, Dict]:
        self.calls += 1
        return response_model.model_validate({"speakers": self.answers}), {"ok": True}


def _serve_demo_pages(httpx_mock, start_date: str = "2026-11-12") -> None:
    for url in DEMO_URLS:
        httpx_mock.add_response(url=url, text=jsonld_page(name="Demo Compliance Summit", start_date=start_date))


def _pipeline(cache, enricher: Optional[SpeakerEnricher] = None) -> EventPipeline:
    extraction = ExtractionPipeline(cache, pacer=HostPacer(0), config=SearchConfig())
    return EventPipeline(cache, extraction=extraction, enricher=enricher)


def test_select_urls_dedupes_and_limits():
    hits = [
        make_hit(link="https://a.de/x"),
        make_hit(link="https://A.de/x/"),
        make_hit(link=""),
        make_hit(link="https://b.de"),
        make_hit(link="https://c.de"),
    ]
    assert select_urls(hits, 2) == ["https://a.de/x", "https://b.de"]


@pytest.mark.asyncio
async def test_demo_run_merges_duplicate_pages(httpx_mock):
    _serve_demo_pages(httpx_mock)
    cache = make_cache()
    request = PipelineRequest(query="compliance", country="de", date_from="2026-11-01", date_to="2026-11-30")

    async with _pipeline(cache) as pipeline:
        response = await pipeline.run(request)

    assert response.provider == "demo"
    assert len(response.events) == 1
    event = response.events[0]
    assert event.title == "Demo Compliance Summit"
    assert event.city == "Berlin"
    steps = [s.step for s in response.trace]
    assert steps[0] == "search"
    assert "jsonld" in steps
    assert steps[-1] == "quality_filter"
    assert response.trace[-1].stats["merged"] == 1


@pytest.mark.asyncio
async def test_events_outside_window_are_dropped(httpx_mock):
    _serve_demo_pages(httpx_mock, start_date="2027-03-01")
    request = PipelineRequest(date_from="2026-11-01", date_to="2026-11-30")

    async with _pipeline(make_cache()) as pipeline:
        response = await pipeline.run(request)

    assert response.events == []
    assert response.trace[-1].stats["outside_window"] == 2


@pytest.mark.asyncio
async def test_second_run_is_served_from_cache(httpx_mock):
    _serve_demo_pages(httpx_mock)
    cache = make_cache()
    request = PipelineRequest(date_from="2026-11-01", date_to="2026-11-30")

    async with _pipeline(cache) as pipeline:
        first = await pipeline.run(request)
    async with _pipeline(cache) as pipeline:
        second = await pipeline.run(request)

    assert len(httpx_mock.get_requests()) == 2
    assert [e.model_dump() for e in second.events] == [e.model_dump() for e in first.events]
    assert [s.hit for s in second.trace if s.step == "cache"] == [True, True]


@pytest.mark.asyncio
async def test_enrichment_skipped_when_no_event_has_speakers(httpx_mock):
    _serve_demo_pages(httpx_mock)
    ai = FakeEnrichmentAI()
    request = PipelineRequest(date_from="2026-11-01", date_to="2026-11-30")

    async with _pipeline(make_cache(), enricher=SpeakerEnricher(ai=ai)) as pipeline:
        response = await pipeline.run(request)

    assert len(response.events) == 1
    assert ai.calls == 0
    assert response.trace[-1].step == "quality_filter"


@pytest.mark.asyncio
async def test_speakers_are_enriched_after_ranking(monkeypatch):
    event = make_event(speakers=[make_speaker(name="Anna Weber")])
    ai = FakeEnrichmentAI([{"index": 0, "bio": "Chief compliance officer."}])
    pipeline = _pipeline(make_cache(), enricher=SpeakerEnricher(ai=ai))

    async def fake_search(*args, **kwargs):
        return SearchResponse(provider="demo", items=[make_hit(link=event.source_url)])

    async def fake_extract(urls):
        return ExtractionBatch(records=[event], trace=[])

    monkeypatch.setattr(pipeline.search, "search", fake_search)
    monkeypatch.setattr(pipeline.extraction, "extract", fake_extract)

    response = await pipeline.run(PipelineRequest(date_from="2026-11-01", date_to="2026-11-30"))

    assert response.events[0].speakers[0].bio == "Chief compliance officer."
    assert response.trace[-1].step == "speaker_enrichment"
    assert ai.calls == 1
