from __future__ import annotations

from typing import Optional

from services.event_normalization_service import shape_event
from services.extraction.base import ExtractionContext, ExtractionResult, ExtractionStrategy


def build_stub(url: str, host_country: Optional[str] = None):
    """Minimal record for any URL: title from the path or host, country from the TLD."""
    return shape_event(url, {"title": None, "country": host_country})


class StubStrategy(ExtractionStrategy):
    name = "stub"

    async def attempt(self, ctx: ExtractionContext) -> Optional[ExtractionResult]:
        record = build_stub(ctx.url, ctx.host_country)
        return ExtractionResult(record=record, rich=False, final=True)
