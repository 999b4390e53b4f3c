"""
Extraction tiers for event pages.

Each tier implements ExtractionStrategy.attempt(); the pipeline tries them
in order (JSON-LD, managed extraction, regex heuristics, stub) and stops at
the first rich or final result.
"""

from .base import ExtractionContext, ExtractionError, ExtractionResult, ExtractionStrategy
from .firecrawl import FirecrawlService, ManagedExtractionError, ManagedExtractionStrategy
from .heuristics import HeuristicStrategy
from .json_ld import JsonLdStrategy
from .stub import StubStrategy, build_stub

__all__ = [
    "ExtractionContext",
    "ExtractionError",
    "ExtractionResult",
    "ExtractionStrategy",
    "FirecrawlService",
    "ManagedExtractionError",
    "ManagedExtractionStrategy",
    "HeuristicStrategy",
    "JsonLdStrategy",
    "StubStrategy",
    "build_stub",
]
