from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def _clip01(x: Optional[float]) -> float:
    if x is None:
        return 0.0
    return round(max(0.0, min(1.0, float(x))), 4)


def _strip_or_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    cleaned = value.strip()
    return cleaned or None


# =========================
# Raw payloads (ingestion boundary)
# =========================

class RawSpeaker(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    org: Optional[str] = None
    title: Optional[str] = None
    speech_title: Optional[str] = None
    session: Optional[str] = None
    bio: Optional[str] = None
    profile_url: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        if isinstance(value, dict):
            value = value.get("name")
        return _strip_or_none(value)


class RawSponsor(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    level: Optional[str] = None
    description: Optional[str] = None

    @field_validator("*", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        return _strip_or_none(value)


class RawEventPayload(BaseModel):
    """
    Loosely-typed event data as produced by JSON-LD parsing, the managed
    extraction service or the regex heuristics. Everything is optional;
    shape_event() turns it into an EventRecord.
    """

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    starts_at: Optional[str] = None
    ends_at: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    venue: Optional[str] = None
    organizer: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    speakers: List[RawSpeaker] = Field(default_factory=list)
    sponsors: List[RawSponsor] = Field(default_factory=list)
    participating_organizations: List[str] = Field(default_factory=list)
    partners: List[str] = Field(default_factory=list)
    competitors: List[str] = Field(default_factory=list)

    @field_validator("title", "starts_at", "ends_at", "city", "country", "venue", "organizer", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Optional[str]:
        if isinstance(value, dict):
            value = value.get("name")
        return _strip_or_none(value)

    @field_validator("topics", "participating_organizations", "partners", "competitors", mode="before")
    @classmethod
    def _string_list(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = [value]
        out: List[str] = []
        for entry in value if isinstance(value, list) else []:
            if isinstance(entry, dict):
                entry = entry.get("name")
            cleaned = _strip_or_none(entry)
            if cleaned:
                out.append(cleaned)
        return out

    @field_validator("speakers", mode="before")
    @classmethod
    def _speaker_list(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [entry if isinstance(entry, dict) else {"name": entry} for entry in value if entry]

    @field_validator("sponsors", mode="before")
    @classmethod
    def _sponsor_list(cls, value: Any) -> List[Any]:
        if not isinstance(value, list):
            return []
        return [entry if isinstance(entry, dict) else {"name": entry} for entry in value if entry]


# =========================
# Normalized records
# =========================

class SpeakerRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    org: Optional[str] = None
    title: Optional[str] = None
    profile_url: Optional[str] = None
    source_url: Optional[str] = None
    speech_title: Optional[str] = None
    session: Optional[str] = None
    bio: Optional[str] = None
    expertise_areas: List[str] = Field(default_factory=list)
    linkedin: Optional[str] = None
    twitter: Optional[str] = None
    confidence: float = 0.0

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("name cannot be empty")
        return cleaned

    @field_validator(
        "org", "title", "profile_url", "source_url", "speech_title", "session", "bio", "linkedin", "twitter",
        mode="before",
    )
    @classmethod
    def _strip_optional(cls, value: Any) -> Optional[str]:
        return _strip_or_none(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clip_confidence(cls, v):
        return _clip01(v)


class SponsorRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    level: Optional[str] = None
    description: Optional[str] = None


class EventRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    source_url: str
    title: str = Field(..., min_length=1)
    starts_at: Optional[str] = None
    ends_at: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    venue: Optional[str] = None
    organizer: Optional[str] = None
    topics: List[str] = Field(default_factory=list)
    speakers: List[SpeakerRecord] = Field(default_factory=list)
    sponsors: List[SponsorRecord] = Field(default_factory=list)
    participating_organizations: List[str] = Field(default_factory=list)
    partners: List[str] = Field(default_factory=list)
    competitors: List[str] = Field(default_factory=list)
    confidence: float = 0.0

    @field_validator("starts_at", "ends_at", "city", "country", "venue", "organizer", mode="before")
    @classmethod
    def _strip_optional(cls, value: Any) -> Optional[str]:
        return _strip_or_none(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clip_confidence(cls, v):
        return _clip01(v)

    @property
    def is_rich(self) -> bool:
        return bool(self.starts_at or self.city or self.country or self.venue)


# =========================
# Speaker enrichment (AI answer)
# =========================

class EnrichedSpeaker(BaseModel):
    """
    One entry of the enrichment answer. `index` points into the batch that
    was sent; everything else is optional and only fills empty fields.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    index: int = Field(..., ge=0)
    title: Optional[str] = None
    bio: Optional[str] = None
    expertise_areas: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("expertise_areas", "expertiseAreas", "expertise"),
    )
    linkedin: Optional[str] = None
    twitter: Optional[str] = None
    profile_url: Optional[str] = Field(default=None, validation_alias=AliasChoices("profile_url", "profileUrl"))

    @field_validator("title", "bio", "linkedin", "twitter", "profile_url", mode="before")
    @classmethod
    def _strip_optional(cls, value: Any) -> Optional[str]:
        return _strip_or_none(value)

    @field_validator("expertise_areas", mode="before")
    @classmethod
    def _split_expertise(cls, value: Any) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(v).strip() for v in value if str(v).strip()]


class SpeakerEnrichmentResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    speakers: List[EnrichedSpeaker] = Field(default_factory=list)


# =========================
# Pipeline I/O
# =========================

class TraceStep(BaseModel):
    model_config = ConfigDict(extra="forbid")

    step: str
    url: Optional[str] = None
    rich: Optional[bool] = None
    hit: Optional[bool] = None
    note: Optional[str] = None
    stats: Optional[Dict[str, Union[int, float, str, None]]] = None


class PipelineRequest(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    query: str = ""
    country: str = ""
    date_from: Optional[str] = Field(default=None, alias="dateFrom")
    date_to: Optional[str] = Field(default=None, alias="dateTo")
    result_count: int = Field(default=10, ge=1, le=50, alias="resultCount")

    @field_validator("query", "country", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> str:
        return (str(value) if value is not None else "").strip()

    @field_validator("country")
    @classmethod
    def _lower_country(cls, value: str) -> str:
        return value.lower()


class PipelineResponse(BaseModel):
    provider: str
    events: List[EventRecord] = Field(default_factory=list)
    trace: List[TraceStep] = Field(default_factory=list)


class ExtractionResponse(BaseModel):
    events: List[EventRecord] = Field(default_factory=list)
    trace: List[TraceStep] = Field(default_factory=list)
    quality_stats: Dict[str, Union[int, float]] = Field(default_factory=dict)


class ExtractRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    urls: List[str] = Field(..., min_length=1, max_length=20)
    locale: Optional[str] = None

    @field_validator("urls")
    @classmethod
    def _clean_urls(cls, value: List[str]) -> List[str]:
        cleaned = [u.strip() for u in value if u and u.strip()]
        if not cleaned:
            raise ValueError("at least one non-empty url is required")
        return cleaned


class SearchRequest(PipelineRequest):
    rerank: bool = False
