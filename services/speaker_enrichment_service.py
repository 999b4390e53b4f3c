"""
Best-effort speaker research.

Speakers are sent to the AI service in batches of at most
MAX_SPEAKERS_PER_BATCH. Answers only fill fields that are still empty;
the original name and organization are never replaced. Any failure leaves
the speakers as they were.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from app.config import settings
from app.core.logging import get_logger
from app.models.events import EnrichedSpeaker, EventRecord, SpeakerEnrichmentResponse, SpeakerRecord
from services.event_normalization_service import calculate_speaker_confidence
from services.openai_service import OpenAIService

logger = get_logger()

BASE_DIR = Path(__file__).resolve().parent
ENRICHMENT_SYSTEM_PATH = BASE_DIR / "prompts" / "speaker_enrichment_system.txt"

MAX_SPEAKERS_PER_BATCH = 50


def _load_prompt(path: Path, fallback: str) -> str:
    if path.exists():
        return path.read_text(encoding="utf-8")
    return fallback


def _clean_linkedin(value: Optional[str]) -> Optional[str]:
    if value and "linkedin.com" in value.lower():
        return value
    return None


def _clean_twitter(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    handle = value.rstrip("/").rsplit("/", 1)[-1].lstrip("@")
    return f"@{handle}" if handle else None


def _clean_profile_url(value: Optional[str]) -> Optional[str]:
    if value and value.lower().startswith(("http://", "https://")):
        return value
    return None


def apply_enrichment(speaker: SpeakerRecord, enriched: EnrichedSpeaker) -> SpeakerRecord:
    """Fill empty fields of `speaker`; confidence never drops."""
    fields: Dict[str, Any] = speaker.model_dump()
    candidates = {
        "title": enriched.title,
        "bio": enriched.bio,
        "linkedin": _clean_linkedin(enriched.linkedin),
        "twitter": _clean_twitter(enriched.twitter),
        "profile_url": _clean_profile_url(enriched.profile_url),
    }
    for name, value in candidates.items():
        if value and not fields.get(name):
            fields[name] = value
    if not fields["expertise_areas"]:
        fields["expertise_areas"] = enriched.expertise_areas
    fields["confidence"] = max(calculate_speaker_confidence(fields), speaker.confidence)
    return SpeakerRecord(**fields)


class SpeakerEnricher:
    def __init__(self, *, ai: Optional[OpenAIService] = None, batch_size: int = MAX_SPEAKERS_PER_BATCH) -> None:
        self.ai = ai if ai is not None else self._default_ai()
        self.batch_size = max(1, min(batch_size, MAX_SPEAKERS_PER_BATCH))
        self.system_prompt = _load_prompt(
            ENRICHMENT_SYSTEM_PATH,
            "You enrich speaker profiles. "
            'Return JSON: {"speakers": [{"index": 0, "bio": "...", "expertise_areas": ["..."]}]}',
        )

    @staticmethod
    def _default_ai() -> Optional[OpenAIService]:
        if not settings.OPENAI_API_KEY:
            return None
        return OpenAIService()

    @property
    def enabled(self) -> bool:
        return self.ai is not None

    async def enrich_speakers(self, speakers: Sequence[SpeakerRecord], *, context: str = "") -> List[SpeakerRecord]:
        if self.ai is None or not speakers:
            return list(speakers)
        out: List[SpeakerRecord] = []
        for start in range(0, len(speakers), self.batch_size):
            batch = list(speakers[start:start + self.batch_size])
            out.extend(await self._enrich_batch(batch, context))
        return out

    async def enrich_events(self, events: Sequence[EventRecord]) -> List[EventRecord]:
        if self.ai is None:
            return list(events)
        enriched = await asyncio.gather(
            *(self.enrich_speakers(e.speakers, context=e.title) for e in events)
        )
        return [
            e.model_copy(update={"speakers": speakers}) if e.speakers else e
            for e, speakers in zip(events, enriched)
        ]

    async def _enrich_batch(self, batch: List[SpeakerRecord], context: str) -> List[SpeakerRecord]:
        assert self.ai is not None
        payload = [
            {"index": i, "name": s.name, "org": s.org, "title": s.title}
            for i, s in enumerate(batch)
        ]
        user_prompt = f"Event: {context or 'unknown'}\n\nSpeakers:\n{json.dumps(payload, ensure_ascii=False, indent=2)}"
        try:
            parsed, _meta = await self.ai.generate_json(
                system_prompt=self.system_prompt,
                user_prompt=user_prompt,
                response_model=SpeakerEnrichmentResponse,
                action_type="speakers.enrich",
            )
        except Exception as exc:
            logger.warning("speaker_enrichment_failed", size=len(batch), error=str(exc))
            return batch
        if not isinstance(parsed, SpeakerEnrichmentResponse):
            logger.warning("speaker_enrichment_unexpected_type", size=len(batch))
            return batch

        out = list(batch)
        applied = 0
        for entry in parsed.speakers:
            if 0 <= entry.index < len(batch):
                out[entry.index] = apply_enrichment(batch[entry.index], entry)
                applied += 1
        logger.info("speaker_enrichment_done", size=len(batch), enriched=applied)
        return out
