"""
Regex heuristics over the raw page: last tier before the stub.

Works on the visible page text (scripts and styles stripped) and the
<title> element. Dates go through the shared multilingual parser; venue and
city come from "at X, Y" / "in X, Y" phrases with a known-city fallback.
"""

from __future__ import annotations

import re
from typing import Dict, Optional

from selectolax.parser import HTMLParser

from services.event_date_parser import parse_dates
from services.event_normalization_service import clean_city_text, shape_event
from services.extraction.base import ExtractionContext, ExtractionResult, ExtractionStrategy

MAX_TEXT_CHARS = 50_000

KNOWN_CITIES = [
    "Berlin", "München", "Munich", "Hamburg", "Köln", "Cologne", "Frankfurt", "Stuttgart",
    "Düsseldorf", "Leipzig", "Bremen", "Dresden", "Hannover", "Nürnberg", "Nuremberg",
    "Heidelberg", "Freiburg", "Aachen", "Bonn", "Münster", "Mainz", "Wiesbaden",
    "Vienna", "Wien", "Zurich", "Zürich", "Paris", "Brussels", "Amsterdam", "London",
]
CITY_RE = re.compile(r"\b(" + "|".join(re.escape(c) for c in KNOWN_CITIES) + r")\b", re.IGNORECASE)

_LOCATION_PATTERNS = (
    re.compile(r"\bat\s+([^,.\n]{2,80}),\s*([^,.\n]{2,60})", re.IGNORECASE),
    re.compile(r"\bin\s+([^,.\n]{2,80}),\s*([^,.\n]{2,60})", re.IGNORECASE),
)
_VENUE_NOISE = re.compile(r"\b(venue|location|place|address|at|in|on|the)\b", re.IGNORECASE)
_CITY_NOISE = re.compile(r"\b(venue|location|place|address|at|in|on|the|germany|deutschland|de)\b", re.IGNORECASE)
_EDGE_NOISE = re.compile(r"^[,\s]+|[,\s]+$")

ORGANIZER_PATTERNS = (
    re.compile(r"organi[sz]ed by\s+([^,.\n]+)", re.IGNORECASE),
    re.compile(r"hosted by\s+([^,.\n]+)", re.IGNORECASE),
    re.compile(r"presented by\s+([^,.\n]+)", re.IGNORECASE),
    re.compile(r"sponsored by\s+([^,.\n]+)", re.IGNORECASE),
    re.compile(r"veranstaltet von\s+([^,.\n]+)", re.IGNORECASE),
)

_WS_RE = re.compile(r"\s+")


def html_to_text(html: str) -> str:
    if not html:
        return ""
    parser = HTMLParser(html)
    for node in parser.css("script, style, noscript"):
        node.decompose()
    root = parser.body or parser.root
    text = root.text(separator=" ") if root is not None else ""
    return _WS_RE.sub(" ", text).strip()[:MAX_TEXT_CHARS]


def page_title(html: str) -> Optional[str]:
    if not html:
        return None
    node = HTMLParser(html).css_first("title")
    if node is None:
        return None
    title = _WS_RE.sub(" ", node.text() or "").strip()
    return title or None


def _scrub(value: str, noise: re.Pattern) -> Optional[str]:
    cleaned = _EDGE_NOISE.sub("", noise.sub("", value))
    cleaned = _WS_RE.sub(" ", cleaned).strip()
    return cleaned or None


def parse_location(text: str) -> Dict[str, Optional[str]]:
    """venue/city from the first "at X, Y" or "in X, Y" phrase."""
    for pattern in _LOCATION_PATTERNS:
        m = pattern.search(text)
        if not m:
            continue
        venue = _scrub(m.group(1), _VENUE_NOISE)
        city = _scrub(m.group(2), _CITY_NOISE)
        if city and len(city) > 50:
            known = CITY_RE.search(text)
            city = known.group(1) if known else None
        return {"venue": venue, "city": city}
    return {"venue": None, "city": None}


def parse_organizer(text: str) -> Optional[str]:
    for pattern in ORGANIZER_PATTERNS:
        m = pattern.search(text)
        if m:
            return m.group(1).strip() or None
    return None


class HeuristicStrategy(ExtractionStrategy):
    name = "regex"

    async def attempt(self, ctx: ExtractionContext) -> Optional[ExtractionResult]:
        if not ctx.html:
            return None
        text = html_to_text(ctx.html)
        dates = parse_dates(text)
        location = parse_location(text)
        title = page_title(ctx.html)

        city = clean_city_text(location["city"])
        if city is None:
            known = CITY_RE.search(text)
            city = known.group(1) if known else None

        record = shape_event(
            ctx.url,
            {
                "title": title,
                "starts_at": dates.starts_at,
                "ends_at": dates.ends_at,
                "city": city,
                "country": ctx.host_country,
                "venue": location["venue"],
                "organizer": parse_organizer(text),
            },
        )
        return ExtractionResult(record=record, rich=record.is_rich, final=record.is_rich or bool(title))
