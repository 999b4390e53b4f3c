from __future__ import annotations

from datetime import date

import httpx
import pytest

from app.config import settings
from app.models.search import SearchConfig
from services.relevance_filter_service import RelevanceFilter
from services.search_service import (
    PROVIDER_CURATED,
    PROVIDER_DEMO,
    PROVIDER_REAL,
    SearchService,
    build_date_restrict,
    filter_events_by_date,
    search_cache_key,
)
from tests.fixtures import make_cache, make_event

CONFIG = SearchConfig(industry="legal-compliance", industry_terms=["compliance"])


def _service(cache):
    return SearchService(cache, RelevanceFilter(cache), config=CONFIG)


@pytest.fixture
def provider_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(settings, "SEARCH_API_KEY", "test-key")
    monkeypatch.setattr(settings, "SEARCH_ENGINE_ID", "test-cx")


@pytest.mark.asyncio
async def test_search_without_key_returns_demo():
    cache = make_cache()
    async with _service(cache) as search:
        response = await search.search("compliance", "de")

    assert response.provider == PROVIDER_DEMO
    assert len(response.items) == 2
    assert response.cached is False


@pytest.mark.asyncio
async def test_quota_exceeded_falls_back_to_curated(httpx_mock, provider_key):
    httpx_mock.add_response(status_code=429)

    cache = make_cache()
    async with _service(cache) as search:
        response = await search.search("", "de")

    assert response.provider == PROVIDER_CURATED
    assert response.items
    assert all(
        any(city in item.snippet for city in ("Berlin", "Frankfurt", "Munich")) for item in response.items
    )
    assert "unavailable" in (response.note or "")
    # fallbacks are never cached
    assert await cache.get(search_cache_key("", "de", None, None)) is None


@pytest.mark.asyncio
async def test_quota_check_network_error_falls_back_to_curated(httpx_mock, provider_key):
    httpx_mock.add_exception(httpx.ConnectTimeout("quota check timed out"))

    async with _service(make_cache()) as search:
        response = await search.search("privacy", "")

    assert response.provider == PROVIDER_CURATED
    assert [item.title for item in response.items] == ["Data Privacy Summit Europe"]


@pytest.mark.asyncio
async def test_real_search_filters_and_caches(httpx_mock, provider_key):
    httpx_mock.add_response(json={"items": []})
    httpx_mock.add_response(
        json={
            "items": [
                {"title": "Compliance Summit 2026 - Agenda", "link": "https://compliance-summit.de/2026", "snippet": "Berlin conference"},
                {"title": "404 Not Found", "link": "https://broken.de/x", "snippet": ""},
                {"title": "Compliance conference thread", "link": "https://www.reddit.com/r/x", "snippet": "forum"},
            ]
        }
    )

    cache = make_cache()
    async with _service(cache) as search:
        first = await search.search("compliance", "de", "2026-11-01", "2026-11-30")
        second = await search.search("compliance", "de", "2026-11-01", "2026-11-30")

    assert first.provider == PROVIDER_REAL
    assert [item.link for item in first.items] == ["https://compliance-summit.de/2026"]
    assert first.cached is False
    assert second.cached is True
    assert second.items == first.items
    assert len(httpx_mock.get_requests()) == 2


@pytest.mark.asyncio
async def test_provider_error_after_quota_check_falls_back(httpx_mock, provider_key):
    httpx_mock.add_response(json={})
    httpx_mock.add_response(status_code=500)

    async with _service(make_cache()) as search:
        response = await search.search("compliance", "fr")

    assert response.provider == PROVIDER_CURATED


@pytest.mark.asyncio
async def test_quota_check_sends_engine_id(httpx_mock, provider_key):
    httpx_mock.add_response(status_code=429)

    async with _service(make_cache()) as search:
        await search.search("x", "")

    request = httpx_mock.get_requests()[0]
    assert request.url.params["cx"] == "test-cx"
    assert request.url.params["num"] == "1"


def test_build_params_country_and_clamp(provider_key):
    search = _service(make_cache())
    params = search.build_params("compliance", "gb", None, None, 25)

    assert params["num"] == "10"
    assert params["gl"] == "uk"
    assert params["cr"] == "countryUK"
    assert params["lr"] == "lang_en"
    assert params["cx"] == "test-cx"
    assert "dateRestrict" not in params


def test_date_restrict_only_for_past_windows():
    today = date(2026, 6, 1)
    assert build_date_restrict("2026-07-01", "2026-07-31", today=today) is None
    assert build_date_restrict("2026-05-01", "2026-05-05", today=today) == "w1"
    assert build_date_restrict("2026-04-01", "2026-04-30", today=today) == "m1"
    assert build_date_restrict("2026-01-01", "2026-03-01", today=today) == "m3"
    assert build_date_restrict("2025-01-01", "2025-12-31", today=today) == "y1"


def test_filter_events_by_date_keeps_undated_and_in_window():
    events = [
        make_event(source_url="https://a.de", starts_at="2026-11-12"),
        make_event(source_url="https://b.de", starts_at="2027-06-01"),
        make_event(source_url="https://c.de", starts_at=None),
    ]

    kept = filter_events_by_date(events, "2026-11-01", "2026-11-30")

    assert [e.source_url for e in kept] == ["https://a.de", "https://c.de"]
    assert filter_events_by_date(events, None, None) == events


@pytest.mark.asyncio
async def test_client_outside_context_raises():
    search = _service(make_cache())
    with pytest.raises(RuntimeError, match="not initialized"):
        search.client
