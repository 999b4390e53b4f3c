"""
Test fixtures for the acquisition pipeline tests.

Factory functions for creating test data:
- make_cache()
- make_hit()
- make_event()
- make_speaker()
- jsonld_page()
"""

import json
from typing import Any, Dict, Optional

from app.models.events import EventRecord, SpeakerRecord
from app.models.search import SearchHit
from services.cache_service import CacheService, LocalTTLCache
from services.cache_store_service import InMemoryCacheStore


def make_cache(store: Optional[Any] = None, *, capacity: int = 100) -> CacheService:
    """CacheService over an in-process durable store."""
    return CacheService(
        store if store is not None else InMemoryCacheStore(),
        local=LocalTTLCache(capacity=capacity, default_ttl_s=300),
    )


def make_hit(
    title: str = "Compliance Summit 2026 - Agenda & Speakers",
    link: str = "https://compliance-summit.de/2026",
    snippet: str = "Berlin, 12-13 November 2026. Register now.",
) -> SearchHit:
    return SearchHit(title=title, link=link, snippet=snippet)


def make_event(
    source_url: str = "https://compliance-summit.de/2026",
    title: str = "Compliance Summit 2026",
    starts_at: Optional[str] = "2026-11-12",
    confidence: float = 0.8,
    **overrides: Any,
) -> EventRecord:
    """EventRecord with an explicit confidence (no scoring)."""
    fields: Dict[str, Any] = {
        "source_url": source_url,
        "title": title,
        "starts_at": starts_at,
        "confidence": confidence,
    }
    fields.update(overrides)
    return EventRecord(**fields)


def make_speaker(
    name: str = "Anna Weber",
    org: Optional[str] = "Acme",
    confidence: float = 0.8,
    **overrides: Any,
) -> SpeakerRecord:
    fields: Dict[str, Any] = {"name": name, "org": org, "confidence": confidence}
    fields.update(overrides)
    return SpeakerRecord(**fields)


def jsonld_page(
    name: str = "Compliance Summit 2026",
    start_date: Optional[str] = "2026-11-12",
    city: Optional[str] = "Berlin",
    country: Optional[str] = "DE",
    venue: Optional[str] = "Hotel Adlon",
) -> str:
    """HTML page carrying one schema.org Event block."""
    node: Dict[str, Any] = {
        "@context": "https://schema.org",
        "@type": "Event",
        "name": name,
        "location": {
            "@type": "Place",
            "name": venue,
            "address": {"addressLocality": city, "addressCountry": country},
        },
    }
    if start_date:
        node["startDate"] = start_date
    return (
        "<html><head><title>" + name + "</title>"
        '<script type="application/ld+json">' + json.dumps(node) + "</script>"
        "</head><body><h1>" + name + "</h1></body></html>"
    )
