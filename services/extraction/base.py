"""
Abstract base class for extraction tiers.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

from app.models.events import EventRecord
from app.models.search import SearchConfig


class ExtractionError(Exception):
    """
    Raised by a strategy that could not produce a result for a URL.
    The pipeline records it in the trace and moves on to the next tier.
    """


@dataclass
class ExtractionContext:
    """Per-URL input shared by every tier; html is fetched once up front."""

    url: str
    html: str = ""
    host_country: Optional[str] = None
    config: SearchConfig = field(default_factory=SearchConfig)
    locale: Optional[str] = None


@dataclass
class ExtractionResult:
    """
    record: shaped EventRecord for the URL
    rich:   record has a start date, city, country or venue
    final:  stop trying further tiers even when not rich
    cache:  persist the record even when processing continues
    """

    record: EventRecord
    rich: bool
    final: bool = False
    cache: bool = False
    note: Optional[str] = None


class ExtractionStrategy(ABC):
    """
    One tier of the extraction chain.

    attempt() returns None when the tier has nothing to say about the page
    (no markup, no HTML) and raises ExtractionError when it failed.
    """

    name: str = "strategy"

    @abstractmethod
    async def attempt(self, ctx: ExtractionContext) -> Optional[ExtractionResult]:
        pass
