from __future__ import annotations

import json

import pytest

from app.models.search import SearchConfig
from services.extraction import (
    ExtractionContext,
    HeuristicStrategy,
    JsonLdStrategy,
    StubStrategy,
    build_stub,
)
from services.extraction.heuristics import html_to_text, page_title, parse_location, parse_organizer
from services.extraction.json_ld import parse_json_ld
from tests.fixtures import jsonld_page

HEURISTIC_PAGE = """
<html>
  <head><title>Compliance Summit 2026</title><style>.x{color:red}</style></head>
  <body>
    <script>var tracking = "at Nowhere, Never";</script>
    <h1>Compliance Summit 2026</h1>
    <p>Join us on 12.-14.03.2026 at Hotel Adlon, Berlin.</p>
    <p>Organized by Acme Events</p>
  </body>
</html>
"""


def test_parse_json_ld_reads_graph_and_skips_broken_blocks():
    graph = {
        "@context": "https://schema.org",
        "@graph": [
            {"@type": "WebPage", "name": "Home"},
            {
                "@type": ["BusinessEvent"],
                "name": "Legal Ops Forum",
                "startDate": "2026-05-04T09:00",
                "endDate": "2026-05-05",
                "location": {"name": "Kongresshaus", "address": {"addressLocality": "Zürich", "addressCountry": {"name": "CH"}}},
                "organizer": {"@type": "Organization", "name": "Forum AG"},
            },
        ],
    }
    html = (
        '<script type="application/ld+json">{not json</script>'
        '<script type="application/ld+json">' + json.dumps(graph) + "</script>"
    )

    fields = parse_json_ld(html)

    assert fields == {
        "title": "Legal Ops Forum",
        "starts_at": "2026-05-04T09:00",
        "ends_at": "2026-05-05",
        "city": "Zürich",
        "country": "CH",
        "venue": "Kongresshaus",
        "organizer": "Forum AG",
    }


def test_parse_json_ld_without_event_node():
    assert parse_json_ld('<script type="application/ld+json">{"@type": "Organization"}</script>') is None
    assert parse_json_ld("") is None


@pytest.mark.asyncio
async def test_json_ld_strategy_is_rich_with_structured_event():
    ctx = ExtractionContext(url="https://compliance-summit.com/2026", html=jsonld_page())

    result = await JsonLdStrategy().attempt(ctx)

    assert result is not None
    assert result.rich
    assert result.record.title == "Compliance Summit 2026"
    assert result.record.starts_at == "2026-11-12"
    assert result.record.city == "Berlin"
    assert result.record.country == "Germany"


@pytest.mark.asyncio
async def test_json_ld_strategy_fills_country_from_host():
    html = jsonld_page(start_date=None, city=None, country=None, venue=None)
    ctx = ExtractionContext(url="https://forum.fr/x", html=html, host_country="France")

    result = await JsonLdStrategy().attempt(ctx)

    assert result.record.country == "France"


@pytest.mark.asyncio
async def test_json_ld_strategy_without_markup_returns_none():
    ctx = ExtractionContext(url="https://a.de", html="<html><body>plain</body></html>")
    assert await JsonLdStrategy().attempt(ctx) is None


def test_html_to_text_drops_scripts_and_styles():
    text = html_to_text(HEURISTIC_PAGE)
    assert "tracking" not in text
    assert "color" not in text
    assert "Join us on 12.-14.03.2026" in text


def test_heuristic_helpers():
    assert page_title(HEURISTIC_PAGE) == "Compliance Summit 2026"
    assert parse_location("Meet us at the Kongresszentrum, Hamburg.") == {"venue": "Kongresszentrum", "city": "Hamburg"}
    assert parse_location("no location here") == {"venue": None, "city": None}
    assert parse_organizer("Hosted by Legal Geeks, Berlin") == "Legal Geeks"


@pytest.mark.asyncio
async def test_heuristic_strategy_extracts_dates_location_and_organizer():
    ctx = ExtractionContext(url="https://compliance-summit.com/2026", html=HEURISTIC_PAGE)

    result = await HeuristicStrategy().attempt(ctx)

    record = result.record
    assert record.title == "Compliance Summit 2026"
    assert record.starts_at == "2026-03-12"
    assert record.ends_at == "2026-03-14"
    assert record.venue == "Hotel Adlon"
    assert record.city == "Berlin"
    assert record.organizer == "Acme Events"
    assert result.rich
    assert result.final


@pytest.mark.asyncio
async def test_heuristic_strategy_city_falls_back_to_gazetteer():
    html = "<html><head><title>Privacy Day</title></head><body>Privacy Day in Köln, Workshop Track</body></html>"
    ctx = ExtractionContext(url="https://privacy-day.com", html=html)

    result = await HeuristicStrategy().attempt(ctx)

    assert result.record.city == "Köln"


@pytest.mark.asyncio
async def test_heuristic_strategy_needs_html():
    assert await HeuristicStrategy().attempt(ExtractionContext(url="https://a.de")) is None


@pytest.mark.asyncio
async def test_stub_strategy_is_final_and_never_rich():
    ctx = ExtractionContext(url="https://www.summit.de/events/legal-tech-days/", host_country="Germany", config=SearchConfig())

    result = await StubStrategy().attempt(ctx)

    assert result.final
    assert result.rich is False
    assert result.record.title == "Legal tech days"
    assert result.record.country == "Germany"
    assert result.record.source_url == "https://www.summit.de/events/legal-tech-days/"


def test_build_stub_host_title():
    assert build_stub("https://www.legal-summit.eu/").title == "legal-summit.eu"
