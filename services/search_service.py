"""
Search provider facade (Google Custom Search JSON API).

Every call returns a SearchResponse: cached results, real provider results,
a curated fallback when the provider is unavailable, or a fixed demo set when
nothing is configured. Provider failures never reach the caller.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, TypeVar

import httpx

from app.config import settings
from app.core.logging import get_logger
from app.models.search import SearchConfig, SearchHit, SearchResponse
from services.cache_service import SEARCH_NAMESPACE, CacheService, namespaced
from services.query_builder_service import build_geographic_context, build_search_query
from services.relevance_filter_service import RelevanceFilter
from services.search_config_service import get_search_config

logger = get_logger()

T = TypeVar("T")

PROVIDER_REAL = "cse"
PROVIDER_CURATED = "enhanced_demo"
PROVIDER_DEMO = "demo"

DEMO_ITEMS: List[Dict[str, str]] = [
    {"title": "Demo Compliance Summit", "link": "https://example.com/demo1", "snippet": "Berlin • Oct 12–13"},
    {"title": "Investigations Forum Europe", "link": "https://example.com/demo2", "snippet": "Paris • Oct 9"},
]

BASIC_DEMO_ITEMS: List[Dict[str, str]] = DEMO_ITEMS + [
    {"title": "Legal Tech Conference 2025", "link": "https://example.com/demo3", "snippet": "London • Mar 15-16"},
    {"title": "Data Privacy Summit", "link": "https://example.com/demo4", "snippet": "Amsterdam • Apr 8-9"},
    {"title": "Regulatory Compliance Forum", "link": "https://example.com/demo5", "snippet": "Frankfurt • May 12"},
]

CURATED_EVENTS: List[Dict[str, str]] = [
    {"title": "Legal Tech Conference 2025", "link": "https://legaltechconf.com/2025", "snippet": "London • Mar 15-16 • Legal technology and innovation"},
    {"title": "Data Privacy Summit Europe", "link": "https://dataprivacysummit.eu", "snippet": "Amsterdam • Apr 8-9 • GDPR compliance and data protection"},
    {"title": "Regulatory Compliance Forum", "link": "https://regcompliance.eu", "snippet": "Frankfurt • May 12 • Financial services compliance"},
    {"title": "Investigations & eDiscovery Summit", "link": "https://investigations-summit.com", "snippet": "Paris • Jun 18-19 • Digital forensics and investigations"},
    {"title": "ESG & Sustainability Conference", "link": "https://esg-conference.eu", "snippet": "Berlin • Jul 22-23 • Environmental, social, and governance"},
    {"title": "Cybersecurity & Risk Management", "link": "https://cyber-risk.eu", "snippet": "Brussels • Aug 14-15 • Information security and risk"},
    {"title": "Anti-Money Laundering Forum", "link": "https://aml-forum.eu", "snippet": "Vienna • Sep 9-10 • AML compliance and financial crime"},
    {"title": "Corporate Governance Summit", "link": "https://corpgov-summit.eu", "snippet": "Zurich • Oct 7-8 • Board governance and oversight"},
    {"title": "RegTech Innovation Conference", "link": "https://regtech-innovation.eu", "snippet": "Dublin • Nov 12-13 • Regulatory technology solutions"},
    {"title": "Compliance & Ethics Forum", "link": "https://compliance-ethics.eu", "snippet": "Copenhagen • Dec 5-6 • Corporate ethics and compliance"},
]

COUNTRY_CITIES: Dict[str, List[str]] = {
    "de": ["Berlin", "Frankfurt", "Munich"],
    "fr": ["Paris"],
    "nl": ["Amsterdam"],
    "gb": ["London"],
    "es": ["Madrid", "Barcelona"],
    "it": ["Milan", "Rome"],
    "ch": ["Zurich", "Geneva"],
    "at": ["Vienna"],
    "ie": ["Dublin"],
    "dk": ["Copenhagen"],
    "be": ["Brussels"],
    "pl": ["Warsaw"],
    "se": ["Stockholm"],
    "no": ["Oslo"],
    "pt": ["Lisbon"],
    "cz": ["Prague"],
}

# Google's country restrict table uses countryUK for Great Britain
CR: Dict[str, str] = {
    "de": "countryDE", "fr": "countryFR", "nl": "countryNL", "gb": "countryUK", "es": "countryES",
    "it": "countryIT", "se": "countrySE", "pl": "countryPL", "be": "countryBE", "ch": "countryCH",
}

GL: Dict[str, str] = {
    "de": "de", "fr": "fr", "nl": "nl", "gb": "uk", "es": "es",
    "it": "it", "se": "se", "pl": "pl", "be": "be", "ch": "ch",
}

LR: Dict[str, str] = {
    "de": "lang_de|lang_en",
    "fr": "lang_fr|lang_en",
    "nl": "lang_nl|lang_en",
    "gb": "lang_en",
    "es": "lang_es|lang_en",
    "it": "lang_it|lang_en",
    "se": "lang_sv|lang_en",
    "pl": "lang_pl|lang_en",
    "be": "lang_fr|lang_nl|lang_en",
    "ch": "lang_de|lang_fr|lang_it|lang_en",
}


def search_cache_key(query: str, country: str, date_from: Optional[str], date_to: Optional[str]) -> str:
    return namespaced(SEARCH_NAMESPACE, f"{query}|{country}|{date_from or ''}|{date_to or ''}")


def _parse_day(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def _today() -> date:
    return datetime.now(timezone.utc).date()


def is_past_window(date_from: Optional[str], date_to: Optional[str], *, today: Optional[date] = None) -> bool:
    if not date_from or not date_to:
        return False
    return date_to[:10] < (today or _today()).isoformat()


def build_date_restrict(
    date_from: Optional[str],
    date_to: Optional[str],
    *,
    today: Optional[date] = None,
) -> Optional[str]:
    """
    The provider filters by page publish date only, so future windows are
    never restricted here; the orchestrator filters by event date instead.
    """
    if not is_past_window(date_from, date_to, today=today):
        return None
    start = _parse_day(date_from)
    end = _parse_day(date_to)
    if start is None or end is None:
        return "w1"
    days = max(1, (end - start).days + 1)
    if days <= 7:
        return "w1"
    if days <= 31:
        return "m1"
    if days <= 93:
        return "m3"
    return "y1"


def filter_events_by_date(
    events: Sequence[T],
    date_from: Optional[str],
    date_to: Optional[str],
    *,
    today: Optional[date] = None,
) -> List[T]:
    """
    Keep events whose starts_at lies in [from, to]; undated events are kept.
    Missing bounds default to today and one year ahead.
    """
    if not date_from and not date_to:
        return list(events)
    now = today or _today()
    start = _parse_day(date_from) or now
    end = _parse_day(date_to) or (now + timedelta(days=365))
    kept: List[T] = []
    for event in events:
        starts_at = getattr(event, "starts_at", None)
        if starts_at is None and isinstance(event, dict):
            starts_at = event.get("starts_at")
        day = _parse_day(starts_at)
        if day is None or start <= day <= end:
            kept.append(event)
    return kept


class SearchService:
    def __init__(
        self,
        cache: CacheService,
        relevance: RelevanceFilter,
        *,
        client: Optional[httpx.AsyncClient] = None,
        config: Optional[SearchConfig] = None,
    ) -> None:
        self.cache = cache
        self.relevance = relevance
        self._client = client
        self._owns_client = client is None
        self._config = config

    async def __aenter__(self) -> "SearchService":
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=settings.SEARCH_TIMEOUT_S, follow_redirects=True)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(f"{self.__class__.__name__} HTTP client not initialized")
        return self._client

    @property
    def config(self) -> SearchConfig:
        if self._config is None:
            self._config = get_search_config()
        return self._config

    async def search(
        self,
        query: str = "",
        country: str = "",
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        num: int = 10,
        *,
        rerank: bool = False,
    ) -> SearchResponse:
        country = (country or "").strip().lower()
        cache_key = search_cache_key(query, country, date_from, date_to)
        cached = await self.cache.get(cache_key)
        if cached is not None:
            try:
                response = SearchResponse.model_validate(cached)
                logger.info("search_cache_hit", cache_key=cache_key)
                return response.model_copy(update={"cached": True})
            except ValueError as exc:
                logger.warning("search_cache_payload_invalid", cache_key=cache_key, error=str(exc))
        logger.info("search_cache_miss", cache_key=cache_key)

        if not settings.SEARCH_API_KEY:
            return SearchResponse(provider=PROVIDER_DEMO, items=[SearchHit(**i) for i in DEMO_ITEMS])

        if not await self._check_quota():
            return self.alternative_search(query, country, num)

        try:
            items = await self._real_search(query, country, date_from, date_to, num)
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("search_provider_failed", error=str(exc))
            return self.alternative_search(query, country, num)

        filtered = await self.relevance.filter(items, self.config, rerank=rerank)
        response = SearchResponse(provider=PROVIDER_REAL, items=filtered)
        await self.cache.set(cache_key, response.model_dump(), ttl_s=settings.SEARCH_CACHE_TTL_S)
        return response

    async def _check_quota(self) -> bool:
        params = {"q": "test", "key": settings.SEARCH_API_KEY, "num": "1", "safe": "off", "hl": "en", "filter": "1"}
        if settings.SEARCH_ENGINE_ID:
            params["cx"] = settings.SEARCH_ENGINE_ID
        try:
            res = await self.client.get(settings.SEARCH_API_URL, params=params, timeout=settings.SEARCH_QUOTA_CHECK_TIMEOUT_S)
        except httpx.HTTPError as exc:
            logger.warning("search_quota_check_failed", error=str(exc))
            return False
        if res.status_code == 429:
            logger.warning("search_quota_exceeded", status=res.status_code)
            return False
        if res.status_code != 200:
            logger.warning("search_quota_check_failed", status=res.status_code)
            return False
        return True

    def build_params(
        self,
        query: str,
        country: str,
        date_from: Optional[str],
        date_to: Optional[str],
        num: int,
    ) -> Dict[str, Any]:
        effective = " ".join(build_search_query(query, self.config, country).replace('\\"', '"').split())
        params: Dict[str, Any] = {
            "q": effective,
            "key": settings.SEARCH_API_KEY,
            "num": str(max(1, min(10, num))),
            "safe": "off",
            "hl": "en",
            "filter": "1",
        }
        if settings.SEARCH_ENGINE_ID:
            params["cx"] = settings.SEARCH_ENGINE_ID
        geo = build_geographic_context(country)
        if geo and geo not in effective:
            params["hq"] = geo
        if country in GL:
            params["gl"] = GL[country]
        if country in CR:
            params["cr"] = CR[country]
        if country in LR:
            params["lr"] = LR[country]
        restrict = build_date_restrict(date_from, date_to)
        if restrict:
            params["dateRestrict"] = restrict
        return params

    async def _real_search(
        self,
        query: str,
        country: str,
        date_from: Optional[str],
        date_to: Optional[str],
        num: int,
    ) -> List[SearchHit]:
        params = self.build_params(query, country, date_from, date_to, num)
        logger.info("search_provider_call", query=params["q"], country=country)
        res = await self.client.get(settings.SEARCH_API_URL, params=params)
        res.raise_for_status()
        data = res.json()
        raw_items = (data.get("items") or []) if isinstance(data, dict) else []
        logger.info("search_provider_result", status=res.status_code, items=len(raw_items))
        return [SearchHit.model_validate(it) for it in raw_items if isinstance(it, dict)]

    def alternative_search(self, query: str, country: str, num: int = 10) -> SearchResponse:
        """Curated fallback used when the provider is unreachable or over quota."""
        try:
            events = list(CURATED_EVENTS)
            needle = (query or "").strip().lower()
            if needle:
                events = [e for e in events if needle in e["title"].lower() or needle in e["snippet"].lower()]
            if country and country.lower() != "europe":
                cities = COUNTRY_CITIES.get(country.lower(), [])
                if cities:
                    events = [e for e in events if any(city in e["snippet"] for city in cities)]
            items = [SearchHit(**e) for e in events[: max(0, num)]]
            return SearchResponse(
                provider=PROVIDER_CURATED,
                items=items,
                note=f"Using enhanced demo data ({len(items)} events found) - search provider unavailable",
            )
        except Exception as exc:
            logger.error("search_alternative_failed", error=str(exc))
            return SearchResponse(
                provider=PROVIDER_DEMO,
                items=[SearchHit(**i) for i in BASIC_DEMO_ITEMS],
                note="Basic demo data - search provider and alternative search unavailable",
            )
