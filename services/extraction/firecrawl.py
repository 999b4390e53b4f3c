"""
Managed extraction through the Firecrawl v2 extract API.

The API is job based: submit() posts the URLs with a JSON schema and a
prompt and returns a job id; poll() checks the job every
EXTRACTION_POLL_INTERVAL_S until it completes, fails or the overall
EXTRACTION_POLL_TIMEOUT_S deadline passes.
"""

from __future__ import annotations

import asyncio
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx

from app.config import require_firecrawl, settings
from app.core.logging import get_logger
from services.base_scraper_service import BaseScraperService
from services.event_normalization_service import shape_event
from services.extraction.base import (
    ExtractionContext,
    ExtractionError,
    ExtractionResult,
    ExtractionStrategy,
)

logger = get_logger()

PROMPT_PATH = Path(__file__).resolve().parents[1] / "prompts" / "event_extraction_prompt.txt"

SCRAPE_LANGUAGES = ["de-DE", "en-GB", "fr-FR", "it-IT", "es-ES", "nl-NL", "pt-PT", "pl-PL"]

_NULLABLE_STRING = {"type": ["string", "null"]}

EVENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "title": {"type": "string"},
        "starts_at": _NULLABLE_STRING,
        "ends_at": _NULLABLE_STRING,
        "city": _NULLABLE_STRING,
        "country": _NULLABLE_STRING,
        "venue": _NULLABLE_STRING,
        "organizer": _NULLABLE_STRING,
        "topics": {"type": "array", "items": {"type": "string"}},
        "speakers": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "org": {"type": "string"},
                    "title": {"type": "string"},
                    "speech_title": _NULLABLE_STRING,
                    "session": _NULLABLE_STRING,
                    "bio": _NULLABLE_STRING,
                },
            },
        },
        "sponsors": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "level": _NULLABLE_STRING,
                    "description": _NULLABLE_STRING,
                },
            },
        },
        "participating_organizations": {"type": "array", "items": {"type": "string"}},
        "partners": {"type": "array", "items": {"type": "string"}},
        "competitors": {"type": "array", "items": {"type": "string"}},
    },
    "required": ["title"],
}

_TERMINAL_FAILURES = {"failed", "cancelled"}


class ManagedExtractionError(Exception):
    """
    The managed extraction service rejected the job or answered with
    something unusable.
    """


def _load_prompt() -> str:
    if PROMPT_PATH.exists():
        return PROMPT_PATH.read_text(encoding="utf-8").strip()
    return "Extract event details (title, dates as YYYY-MM-DD, city, country, venue, organizer, speakers) as JSON."


def build_extraction_prompt(ctx: ExtractionContext) -> str:
    locale = (ctx.locale or ctx.host_country or "DE").upper()
    prompt = f"{_load_prompt()}\n\nLocale: {locale}"
    if ctx.config.industry_terms:
        terms = ", ".join(ctx.config.industry_terms[:5])
        prompt += f" Focus on {ctx.config.industry} industry events. Key terms: {terms}."
    return prompt


def build_scrape_options(country: str, *, max_depth: int = 3) -> Dict[str, Any]:
    return {
        "onlyMainContent": True,
        "formats": ["markdown", "html"],
        "parsers": ["pdf"],
        "waitFor": 1200,
        "location": {"country": country.upper(), "languages": SCRAPE_LANGUAGES},
        "blockAds": True,
        "removeBase64Images": True,
        "crawlerOptions": {
            "maxDepth": min(3, max_depth),
            "maxPagesToCrawl": 12,
            "allowSubdomains": True,
            "prompt": (
                "Crawl pages related to event details, speakers, presenters, agenda, program, "
                "schedule, registration and venue information, including linked PDF programs."
            ),
        },
    }


def pick_data(data: Any) -> Optional[Any]:
    """First extracted object from the job data, whatever its envelope."""
    if not data:
        return None
    if isinstance(data, list):
        return data[0] if data else None
    if isinstance(data, dict):
        results = data.get("results")
        if isinstance(results, list) and results:
            first = results[0]
            if isinstance(first, dict) and first.get("data") is not None:
                return first["data"]
            return first
    return data


class FirecrawlService(BaseScraperService):
    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        base_url: Optional[str] = None,
        poll_timeout_s: Optional[float] = None,
        poll_interval_s: Optional[float] = None,
        timeout_s: float = 10.0,
    ) -> None:
        super().__init__(timeout_s=timeout_s)
        self.api_key = api_key or require_firecrawl()
        self.base_url = (base_url or settings.FIRECRAWL_API_URL).rstrip("/")
        self.poll_timeout_s = poll_timeout_s if poll_timeout_s is not None else settings.EXTRACTION_POLL_TIMEOUT_S
        self.poll_interval_s = poll_interval_s if poll_interval_s is not None else settings.EXTRACTION_POLL_INTERVAL_S

    async def __aenter__(self) -> "FirecrawlService":
        self._client = httpx.AsyncClient(
            timeout=self.timeout_s,
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
        )
        return self

    async def submit(
        self,
        urls: List[str],
        schema: Dict[str, Any],
        prompt: str,
        options: Optional[Dict[str, Any]] = None,
    ) -> str:
        body: Dict[str, Any] = {
            "urls": urls,
            "schema": schema,
            "prompt": prompt,
            "showSources": False,
            "ignoreInvalidURLs": True,
        }
        if options:
            body["scrapeOptions"] = options
        try:
            response = await self.client.post(self.base_url, json=body)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise ManagedExtractionError(f"submit failed: {exc}") from exc
        job_id = payload.get("id") if isinstance(payload, dict) else None
        if not job_id:
            raise ManagedExtractionError("no job id returned")
        logger.info("firecrawl_job_submitted", job_id=job_id, urls=len(urls))
        return str(job_id)

    async def poll(self, job_id: str) -> Optional[Any]:
        """
        Job data once completed; None on failed/cancelled jobs or when the
        poll deadline passes.
        """
        deadline = time.monotonic() + self.poll_timeout_s
        while True:
            try:
                response = await self.client.get(f"{self.base_url}/{job_id}")
                response.raise_for_status()
                payload = response.json()
            except (httpx.HTTPError, ValueError) as exc:
                raise ManagedExtractionError(f"poll failed: {exc}") from exc

            status = payload.get("status") if isinstance(payload, dict) else None
            if status == "completed":
                return payload.get("data")
            if status in _TERMINAL_FAILURES:
                logger.warning("firecrawl_job_failed", job_id=job_id, status=status)
                return None
            if time.monotonic() + self.poll_interval_s > deadline:
                logger.warning("firecrawl_job_timeout", job_id=job_id, timeout_s=self.poll_timeout_s)
                return None
            await asyncio.sleep(self.poll_interval_s)


class ManagedExtractionStrategy(ExtractionStrategy):
    name = "firecrawl"

    def __init__(self, service: FirecrawlService) -> None:
        self.service = service

    async def attempt(self, ctx: ExtractionContext) -> Optional[ExtractionResult]:
        country = ctx.locale or ctx.host_country or "DE"
        try:
            job_id = await self.service.submit(
                [ctx.url],
                EVENT_SCHEMA,
                build_extraction_prompt(ctx),
                build_scrape_options(country),
            )
            data = await self.service.poll(job_id)
        except ManagedExtractionError as exc:
            raise ExtractionError(str(exc)) from exc

        picked = pick_data(data)
        if picked is None:
            return None
        if not isinstance(picked, dict):
            raise ExtractionError(f"unexpected payload type {type(picked).__name__}")
        record = shape_event(ctx.url, picked)
        return ExtractionResult(record=record, rich=record.is_rich, cache=True)
