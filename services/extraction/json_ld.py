from __future__ import annotations

import json
from typing import Any, Dict, Iterator, Optional

from selectolax.parser import HTMLParser

from app.core.logging import get_logger
from services.event_normalization_service import shape_event
from services.extraction.base import ExtractionContext, ExtractionResult, ExtractionStrategy

logger = get_logger()

JSON_LD_SCRIPT = "script[type='application/ld+json']"


def _iter_nodes(payload: Any) -> Iterator[Dict[str, Any]]:
    if isinstance(payload, list):
        for item in payload:
            yield from _iter_nodes(item)
    elif isinstance(payload, dict):
        yield payload
        graph = payload.get("@graph")
        if isinstance(graph, list):
            for item in graph:
                yield from _iter_nodes(item)


def _type_is_event(node: Dict[str, Any]) -> bool:
    raw = node.get("@type") or node.get("type") or ""
    types = raw if isinstance(raw, list) else [raw]
    return any("event" in str(t).lower() for t in types)


def _name(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("name")
    if isinstance(value, list):
        value = value[0] if value else None
        return _name(value)
    return str(value) if value else None


def _event_fields(node: Dict[str, Any]) -> Dict[str, Any]:
    location = node.get("location") or {}
    if isinstance(location, list):
        location = location[0] if location else {}
    if not isinstance(location, dict):
        location = {"name": location}
    address = location.get("address") or {}
    if not isinstance(address, dict):
        address = {"streetAddress": address}
    return {
        "title": node.get("name"),
        "starts_at": node.get("startDate"),
        "ends_at": node.get("endDate"),
        "city": address.get("addressLocality"),
        "country": _name(address.get("addressCountry") or address.get("country")),
        "venue": location.get("name") or address.get("streetAddress"),
        "organizer": _name(node.get("organizer")),
    }


def parse_json_ld(html: str) -> Optional[Dict[str, Any]]:
    """
    Fields of the first schema.org *Event node on the page, or None.
    Broken script blocks are skipped.
    """
    if not html:
        return None
    parser = HTMLParser(html)
    for script in parser.css(JSON_LD_SCRIPT):
        text = (script.text() or "").strip()
        if not text:
            continue
        try:
            payload = json.loads(text)
        except ValueError:
            logger.debug("jsonld_block_invalid")
            continue
        for node in _iter_nodes(payload):
            if _type_is_event(node):
                return _event_fields(node)
    return None


class JsonLdStrategy(ExtractionStrategy):
    name = "jsonld"

    async def attempt(self, ctx: ExtractionContext) -> Optional[ExtractionResult]:
        fields = parse_json_ld(ctx.html)
        if fields is None:
            return None
        if not fields.get("country"):
            fields["country"] = ctx.host_country
        record = shape_event(ctx.url, fields)
        return ExtractionResult(record=record, rich=record.is_rich)
