"""
Relevance filtering for search hits.

Hard rules (drop-title regex, banned hosts) always win. Remaining hits are
judged by cached decisions, then by the AI classifier in small batches, and
by keyword regexes whenever the classifier is unavailable or fails.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set
from urllib.parse import urlparse

from pydantic import ValidationError

from app.config import settings
from app.core.logging import get_logger
from app.models.classification import (
    ClassificationDecision,
    ClassifierBatchResponse,
    RerankResponse,
)
from app.models.search import SearchConfig, SearchHit
from services.cache_service import DECISION_NAMESPACE, CacheService, namespaced
from services.openai_service import OpenAIService

logger = get_logger()

BASE_DIR = Path(__file__).resolve().parent
RELEVANCE_SYSTEM_PATH = BASE_DIR / "prompts" / "relevance_filter_system.txt"
RERANK_SYSTEM_PATH = BASE_DIR / "prompts" / "relevance_rerank_system.txt"

DEFAULT_AI_CONFIDENCE = 0.8

DROP_TITLE = re.compile(r"\b(404|page not found|fehler 404|not found)\b", re.IGNORECASE)

BAN_HOSTS: Set[str] = {
    "reddit.com", "www.reddit.com",
    "mumsnet.com", "www.mumsnet.com",
    "instagram.com", "www.instagram.com",
    "facebook.com", "www.facebook.com",
    "twitter.com", "www.twitter.com", "x.com", "www.x.com",
    "linkedin.com", "www.linkedin.com",
    "youtube.com", "www.youtube.com",
    "tiktok.com", "www.tiktok.com",
}

EVENT_HINT = re.compile(
    r"\b(agenda|programm|program|anmeldung|register|speakers?|konferenz|kongress|symposium|conference|"
    r"summit|forum|veranstaltung|event|termin|schedule|meeting|workshop|seminar|training|webinar|"
    r"exhibition|trade show|expo|convention|gathering|networking|roundtable|panel|keynote|presentation|"
    r"session|breakout|track|day|2024|2025|2026|2027|january|february|march|april|may|june|july|august|"
    r"september|october|november|december|monday|tuesday|wednesday|thursday|friday|saturday|sunday)\b",
    re.IGNORECASE,
)

LOCATION_HINT = re.compile(
    r"\b(germany|deutschland|berlin|münchen|munich|frankfurt|hamburg|köln|cologne|stuttgart|düsseldorf|"
    r"leipzig|paris|brussels|vienna|zurich|amsterdam|europe)\b",
    re.IGNORECASE,
)

_JOB_TITLE_TERMS = ("job", "career", "hiring")
_JOB_LINK_HOSTS = ("linkedin.com", "indeed.com")


class ClassifierResponseError(Exception):
    """
    Raised when a classifier batch cannot be obtained or parsed.
    """


def item_hash(title: str, link: str) -> str:
    return hashlib.sha256(f"{(title or '').strip()}|{(link or '').strip()}".encode("utf-8")).hexdigest()


def _hit_text(hit: SearchHit) -> str:
    return f"{hit.title} {hit.snippet}"


def _host(link: str) -> Optional[str]:
    try:
        host = urlparse(link).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def hard_reject_reason(hit: SearchHit, ban_hosts: Set[str] = BAN_HOSTS) -> Optional[str]:
    """'drop_title', 'banned_host', 'bad_url' or None."""
    if DROP_TITLE.search(_hit_text(hit)):
        return "drop_title"
    host = _host(hit.link)
    if not host:
        return "bad_url"
    if host in ban_hosts:
        return "banned_host"
    return None


def is_job_posting(hit: SearchHit) -> bool:
    title = hit.title.lower()
    link = hit.link.lower()
    if any(term in title for term in _JOB_TITLE_TERMS):
        return True
    return any(host in link for host in _JOB_LINK_HOSTS)


def regex_keep(hit: SearchHit, *, strict: bool) -> bool:
    """
    Keyword heuristic. Strict mode (classifier failed) requires an event
    signal; lenient mode (no classifier) lets every page through so the
    extraction stage can judge it.
    """
    text = _hit_text(hit)
    if EVENT_HINT.search(text):
        return True
    if strict:
        return False
    if not LOCATION_HINT.search(text):
        logger.debug("relevance_soft_pass", link=hit.link)
    return True


def _load_prompt(path: Path, fallback: str) -> str:
    if path.exists():
        return path.read_text(encoding="utf-8")
    return fallback


class RelevanceFilter:
    def __init__(
        self,
        cache: CacheService,
        *,
        ai: Optional[OpenAIService] = None,
        batch_size: Optional[int] = None,
        ban_hosts: Optional[Set[str]] = None,
    ) -> None:
        self.cache = cache
        self.ai = ai if ai is not None else self._default_ai()
        self.batch_size = max(1, batch_size or settings.CLASSIFIER_BATCH_SIZE)
        self.ban_hosts = ban_hosts or BAN_HOSTS
        self.system_prompt = _load_prompt(
            RELEVANCE_SYSTEM_PATH,
            "You filter search results down to real business events. "
            'Return JSON: {"decisions": [{"index": 0, "isEvent": true, "reason": "...", "confidence": 0.9}]}',
        )
        self.rerank_prompt = _load_prompt(
            RERANK_SYSTEM_PATH,
            'Rerank event pages best-to-worst. Return JSON: {"order": [0, 1, 2]}',
        )
        self._pending: Set[asyncio.Task] = set()

    @staticmethod
    def _default_ai() -> Optional[OpenAIService]:
        if not settings.OPENAI_API_KEY:
            return None
        return OpenAIService()

    async def filter(
        self,
        hits: Sequence[SearchHit],
        config: Optional[SearchConfig] = None,
        *,
        rerank: bool = False,
    ) -> List[SearchHit]:
        cfg = config or SearchConfig()
        hashes = [item_hash(h.title, h.link) for h in hits]
        cached = await self.cache.multi_get(namespaced(DECISION_NAMESPACE, h) for h in hashes)

        keep: Dict[int, bool] = {}
        undecided: List[int] = []
        for idx, hit in enumerate(hits):
            reason = hard_reject_reason(hit, self.ban_hosts)
            if reason:
                logger.info("relevance_hard_reject", link=hit.link, reason=reason)
                keep[idx] = False
                continue
            raw = cached.get(namespaced(DECISION_NAMESPACE, hashes[idx]))
            decision = self._parse_cached(raw)
            if decision is not None:
                keep[idx] = decision.is_event
            else:
                undecided.append(idx)

        if undecided:
            if self.ai is None:
                for idx in undecided:
                    keep[idx] = regex_keep(hits[idx], strict=False)
            else:
                await self._classify(hits, hashes, undecided, cfg, keep)

        kept = [hit for idx, hit in enumerate(hits) if keep.get(idx)]
        logger.info(
            "relevance_filter_done",
            total=len(hits),
            kept=len(kept),
            undecided=len(undecided),
            classifier="ai" if self.ai is not None else "regex",
        )
        if rerank and self.ai is not None and len(kept) > 1:
            kept = await self._rerank(kept, cfg)
        return kept

    async def drain(self) -> None:
        """Wait for background decision writes (tests and worker shutdown)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @staticmethod
    def _parse_cached(raw: object) -> Optional[ClassificationDecision]:
        if raw is None:
            return None
        try:
            return ClassificationDecision.model_validate(raw)
        except ValidationError:
            logger.warning("relevance_cached_decision_invalid")
            return None

    async def _classify(
        self,
        hits: Sequence[SearchHit],
        hashes: Sequence[str],
        undecided: List[int],
        cfg: SearchConfig,
        keep: Dict[int, bool],
    ) -> None:
        candidates: List[int] = []
        for idx in undecided:
            if is_job_posting(hits[idx]):
                keep[idx] = False
            else:
                candidates.append(idx)

        batches = [candidates[i:i + self.batch_size] for i in range(0, len(candidates), self.batch_size)]
        results = await asyncio.gather(*(self._classify_batch(hits, batch, cfg) for batch in batches))

        fresh: List[ClassificationDecision] = []
        for batch, decisions in zip(batches, results):
            for idx in batch:
                decided = decisions.get(idx) if decisions is not None else None
                if decided is None:
                    keep[idx] = regex_keep(hits[idx], strict=True)
                    continue
                keep[idx] = decided.is_event
                fresh.append(
                    ClassificationDecision(
                        item_hash=hashes[idx],
                        is_event=decided.is_event,
                        confidence=decided.confidence if decided.confidence is not None else DEFAULT_AI_CONFIDENCE,
                        reason=decided.reason or "AI decision",
                    )
                )
        if fresh:
            task = asyncio.create_task(self._persist(fresh))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _classify_batch(self, hits: Sequence[SearchHit], batch: List[int], cfg: SearchConfig):
        """Returns {global_index: ClassifierDecision} or None when the batch failed."""
        try:
            response = await self._request_batch([hits[i] for i in batch], cfg)
        except ClassifierResponseError as exc:
            logger.warning("relevance_batch_failed", size=len(batch), error=str(exc))
            return None
        out = {}
        for decision in response.decisions:
            if 0 <= decision.index < len(batch):
                out[batch[decision.index]] = decision
        return out

    async def _request_batch(self, items: List[SearchHit], cfg: SearchConfig) -> ClassifierBatchResponse:
        assert self.ai is not None
        try:
            parsed, _meta = await self.ai.generate_json(
                system_prompt=self.system_prompt,
                user_prompt=self._build_user_prompt(items, cfg),
                response_model=ClassifierBatchResponse,
                action_type="events.relevance",
            )
        except Exception as exc:
            raise ClassifierResponseError(str(exc)) from exc
        if not isinstance(parsed, ClassifierBatchResponse):
            raise ClassifierResponseError("unexpected classifier response type")
        return parsed

    def _build_user_prompt(self, items: List[SearchHit], cfg: SearchConfig) -> str:
        payload = [{"index": i, **item.model_dump()} for i, item in enumerate(items)]
        lines = [
            f"Looking for: {cfg.industry or 'business'} events",
            f"Target audience: {', '.join(cfg.icp_terms) or 'professionals'}",
            f"Banned hosts: {', '.join(sorted(self.ban_hosts))}",
            f"Drop titles matching: {DROP_TITLE.pattern}",
            "",
            "Search results:",
            json.dumps(payload, ensure_ascii=False, indent=2),
        ]
        return "\n".join(lines)

    async def _persist(self, decisions: List[ClassificationDecision]) -> None:
        try:
            await self.cache.multi_set(
                {namespaced(DECISION_NAMESPACE, d.item_hash): d.model_dump() for d in decisions},
                ttl_s=None,
            )
        except Exception as exc:
            logger.warning("relevance_decision_persist_failed", count=len(decisions), error=str(exc))

    async def _rerank(self, kept: List[SearchHit], cfg: SearchConfig) -> List[SearchHit]:
        assert self.ai is not None
        listing = "\n".join(f"{i}: {h.title} | {h.link} | {h.snippet}" for i, h in enumerate(kept))
        try:
            parsed, _meta = await self.ai.generate_json(
                system_prompt=self.rerank_prompt,
                user_prompt=f"Industry: {cfg.industry or 'legal-compliance'}\n\nItems:\n{listing}",
                response_model=RerankResponse,
                action_type="events.rerank",
            )
        except Exception as exc:
            logger.warning("relevance_rerank_failed", error=str(exc))
            return kept
        seen: Set[int] = set()
        ordered: List[SearchHit] = []
        for idx in parsed.order:
            if 0 <= idx < len(kept) and idx not in seen:
                seen.add(idx)
                ordered.append(kept[idx])
        ordered.extend(h for i, h in enumerate(kept) if i not in seen)
        return ordered
