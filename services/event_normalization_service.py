"""
Cleaning, canonicalization and confidence scoring for extracted events.

shape_event() is the single place where loosely-typed payloads (JSON-LD,
managed extraction output, regex heuristics, stubs) become EventRecords.
"""

from __future__ import annotations

import html
import re
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union
from urllib.parse import unquote, urlparse

from pydantic import ValidationError

from app.core.logging import get_logger
from app.models.events import EventRecord, RawEventPayload, RawSpeaker, SpeakerRecord, SponsorRecord
from services.event_date_parser import normalize_iso_date, parse_dates
from services.org_normalization_service import normalize_org
from services.speaker_validation_service import filter_speakers

logger = get_logger()

# =========================
# Text cleaning
# =========================

_TAG_RE = re.compile(r"<[^>]*>")
_WS_RE = re.compile(r"\s+")
_LEADING_NUMBER_RE = re.compile(r"^\d+\s*-\s*")
_LEADING_BULLET_RE = re.compile(r"^[•\-\*]\s*")
_TRAILING_BULLET_RE = re.compile(r"\s*[•\-\*]\s*$")
_LEADING_COLON_RE = re.compile(r"^[:\-]\s*")
_TRAILING_COLON_RE = re.compile(r"\s*[:\-]\s*$")


def clean_text(value: Optional[str]) -> Optional[str]:
    if not value:
        return None
    cleaned = html.unescape(str(value)).replace("\xa0", " ")
    cleaned = _TAG_RE.sub(" ", cleaned)
    cleaned = _WS_RE.sub(" ", cleaned).strip()
    for pattern in (
        _LEADING_NUMBER_RE,
        _LEADING_BULLET_RE,
        _TRAILING_BULLET_RE,
        _LEADING_COLON_RE,
        _TRAILING_COLON_RE,
    ):
        cleaned = pattern.sub("", cleaned)
    cleaned = cleaned.strip()
    return cleaned or None


_VENUE_PREFIX_RE = re.compile(r"^(venue|location|address|adresse|ort|veranstaltungsort)\s*:?\s*", re.IGNORECASE)
_VENUE_TAIL_RES = (
    re.compile(r"^(zur|für|von|der|die|das|den|dem|des|ein|eine|eines|einer|einen|einem)\s+", re.IGNORECASE),
    re.compile(r"\s+(zur|für|von|der|die|das|den|dem|des|ein|eine|eines|einer|einen|einem)\s+.*$", re.IGNORECASE),
    re.compile(r"\s+(Erlangung|Aufrechterhaltung|Sachkunde|Mitarbeiter|Studenten|Teilnehmer).*$", re.IGNORECASE),
    re.compile(r"\s+(up to|bis zu|maximal|maximum).*$", re.IGNORECASE),
)
_VENUE_REJECT_RE = re.compile(r"\b(Vorständ\w*|Mitarbeiter|Studenten|Teilnehmer|Personen|up to|bis zu)\b", re.IGNORECASE)


def clean_venue_text(value: Optional[str]) -> Optional[str]:
    """
    Venue name without label prefixes; None for headcount or audience text
    ("bis zu 200 Teilnehmer") and anything longer than 80 characters.
    """
    cleaned = clean_text(value)
    if not cleaned:
        return None
    cleaned = _VENUE_PREFIX_RE.sub("", cleaned)
    for pattern in _VENUE_TAIL_RES:
        cleaned = pattern.sub("", cleaned)
    cleaned = cleaned.strip()
    if len(cleaned) > 80 or _VENUE_REJECT_RE.search(cleaned):
        return None
    return cleaned or None


VALID_CITIES = {
    # Germany
    "berlin", "hamburg", "münchen", "munich", "köln", "cologne", "frankfurt", "stuttgart",
    "düsseldorf", "dortmund", "essen", "leipzig", "bremen", "dresden", "hannover",
    "nürnberg", "nuremberg", "duisburg", "bochum", "wuppertal", "bonn", "bielefeld",
    "mannheim", "karlsruhe", "münster", "wiesbaden", "augsburg", "aachen", "freiburg",
    "krefeld", "lübeck", "oberhausen", "erfurt", "mainz", "rostock", "kiel", "halle",
    "magdeburg", "braunschweig", "chemnitz", "mönchengladbach", "gelsenkirchen", "heidelberg",
    # France
    "paris", "lyon", "marseille", "toulouse", "nice", "nantes", "strasbourg", "montpellier",
    "bordeaux", "lille", "rennes", "reims", "saint-étienne", "toulon", "grenoble",
    # Netherlands
    "amsterdam", "rotterdam", "the hague", "den haag", "utrecht", "eindhoven", "groningen",
    "tilburg", "almere", "breda", "nijmegen", "enschede", "haarlem", "arnhem",
    # United Kingdom
    "london", "birmingham", "manchester", "glasgow", "liverpool", "leeds", "sheffield",
    "edinburgh", "bristol", "cardiff", "belfast", "newcastle", "nottingham", "leicester",
    # Rest of Europe
    "vienna", "wien", "zurich", "zürich", "brussels", "brussel", "copenhagen", "stockholm", "oslo",
    "helsinki", "dublin", "madrid", "barcelona", "rome", "milan", "warsaw", "prague", "lisbon",
    # transliterations
    "muenchen", "koeln", "duesseldorf", "nuernberg", "moenchengladbach",
}

INVALID_CITY_TERMS = (
    # German topic words
    "praxisnah", "whistleblowing", "politik", "forschung", "innovation", "entwicklung",
    # business / legal
    "compliance", "legal", "investigation", "ediscovery", "audit", "risk", "governance",
    "regulation", "policy", "framework", "standard", "procedure", "process",
    "management", "strategy", "implementation", "monitoring", "reporting",
    "training", "education", "certification", "accreditation", "assessment",
    # event vocabulary
    "online", "virtual", "hybrid", "webinar", "conference", "summit", "workshop",
    "seminar", "event", "meeting", "session", "track", "agenda", "program",
)

_CITY_PREFIX_RE = re.compile(r"^(city|stadt|ort|location)\s*:?\s*", re.IGNORECASE)
_CITY_TAIL_RES = (
    re.compile(r"\b(Vorständ\w*|Mitarbeiter|Studenten|Teilnehmer|Personen|up to|bis zu|maximal|maximum)\b.*$", re.IGNORECASE),
    re.compile(r"\b(Compliance|Officer|Manager|Director|Lead|Head|Chief)\b.*$", re.IGNORECASE),
)
_CITY_SHAPE_RE = re.compile(r"^[A-Za-zÀ-ÖØ-öø-ÿß\s\-]+$")


def clean_city_text(value: Optional[str]) -> Optional[str]:
    cleaned = clean_text(value)
    if not cleaned:
        return None
    cleaned = _CITY_PREFIX_RE.sub("", cleaned)
    for pattern in _CITY_TAIL_RES:
        cleaned = pattern.sub("", cleaned)
    cleaned = cleaned.strip(" ,")
    if not cleaned or len(cleaned) > 50:
        return None

    lowered = cleaned.lower()
    if any(term in lowered for term in INVALID_CITY_TERMS):
        return None
    if lowered in VALID_CITIES:
        return cleaned
    if len(cleaned) < 3 or not _CITY_SHAPE_RE.match(cleaned):
        return None
    return cleaned


# =========================
# Canonicalization
# =========================

COUNTRY_BY_CODE: Dict[str, str] = {
    "DE": "Germany", "FR": "France", "NL": "Netherlands", "IT": "Italy", "ES": "Spain",
    "PL": "Poland", "SE": "Sweden", "BE": "Belgium", "CH": "Switzerland", "AT": "Austria",
    "DK": "Denmark", "FI": "Finland", "NO": "Norway", "PT": "Portugal", "CZ": "Czechia",
    "IE": "Ireland", "UK": "United Kingdom", "GB": "United Kingdom",
}


def normalize_country(value: Optional[str]) -> Optional[str]:
    """Two-letter code → full name; anything else is passed through cleaned."""
    cleaned = clean_text(value)
    if not cleaned:
        return None
    return COUNTRY_BY_CODE.get(cleaned.upper(), cleaned)


def guess_country_from_host(url: str) -> Optional[str]:
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return None
    if "." not in host:
        return None
    return COUNTRY_BY_CODE.get(host.rsplit(".", 1)[-1].upper())


def normalize_url(url: str) -> str:
    """
    Identity key for a page: scheme and host lowercased, query string,
    fragment and trailing slashes dropped. Unparseable input is returned as is.
    """
    try:
        parsed = urlparse((url or "").strip())
    except ValueError:
        return url
    if not parsed.netloc:
        return url
    path = parsed.path.rstrip("/")
    return f"{parsed.scheme.lower()}://{parsed.netloc.lower()}{path}"


_GENERIC_SEGMENTS = {
    "index", "home", "default", "event", "events", "veranstaltung", "veranstaltungen",
    "de", "en", "fr", "nl", "it", "es", "page", "detail", "details",
}
_EXTENSION_RE = re.compile(r"\.[A-Za-z0-9]{1,5}$")


def title_from_url(url: str) -> str:
    """
    Human-ish title from the last meaningful path segment, else the host
    without "www.", else "Event".
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return "Event"
    segments = [unquote(s) for s in parsed.path.split("/") if s]
    for segment in reversed(segments):
        base = _EXTENSION_RE.sub("", segment)
        words = re.sub(r"[-_]+", " ", base).strip()
        if not words or words.isdigit() or words.lower() in _GENERIC_SEGMENTS:
            continue
        return words[0].upper() + words[1:]
    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[4:]
    return host or "Event"


# =========================
# Confidence scoring
# =========================

_GENERIC_TITLES = {"event", "untitled event"}
_BROKEN_TITLE_TERMS = ("404", "not found", "error")
_PLACEHOLDER_SPEAKER_TERMS = ("speaker", "tba", "tbd", "to be announced", "coming soon")
_SPEAKER_NAME_CHARS = re.compile(r"^[A-Za-zÀ-ÖØ-öø-ÿß\s\-'.]+$")


def _get(obj: Union[Mapping[str, Any], Any], name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _clamp(x: float) -> float:
    return round(max(0.0, min(1.0, x)), 4)


def calculate_event_confidence(event: Union[Mapping[str, Any], EventRecord], *, today: Optional[date] = None) -> float:
    score = 0.3
    title = _get(event, "title") or ""
    lowered = title.lower()

    if len(title) >= 10:
        score += 0.1
    if len(title) >= 20:
        score += 0.1
    if "untitled" not in lowered and "event" not in lowered:
        score += 0.1
    if lowered in _GENERIC_TITLES:
        score -= 0.2

    starts_at = _get(event, "starts_at")
    if starts_at:
        score += 0.2
        ref = today or datetime.now(timezone.utc).date()
        try:
            start = date.fromisoformat(str(starts_at)[:10])
        except ValueError:
            start = None
        if start is not None:
            try:
                low = ref.replace(year=ref.year - 1)
                high = ref.replace(year=ref.year + 2)
            except ValueError:  # Feb 29
                low = ref.replace(year=ref.year - 1, day=28)
                high = ref.replace(year=ref.year + 2, day=28)
            if low <= start <= high:
                score += 0.1

    for name in ("city", "country", "venue", "organizer"):
        if _get(event, name):
            score += 0.1
    if _get(event, "topics"):
        score += 0.1
    if _get(event, "speakers"):
        score += 0.1

    if any(term in lowered for term in _BROKEN_TITLE_TERMS) or len(title) < 3:
        score = 0.1
    return _clamp(score)


def calculate_speaker_confidence(speaker: Union[Mapping[str, Any], SpeakerRecord]) -> float:
    score = 0.5
    name = (_get(speaker, "name") or "").strip()
    lowered = name.lower()

    if len(name) >= 3:
        score += 0.1
    if len(name) >= 5:
        score += 0.1
    if _SPEAKER_NAME_CHARS.match(name):
        score += 0.1
    if len(name.split()) >= 2:
        score += 0.1

    for field_name in ("org", "title", "profile_url"):
        value = _get(speaker, field_name)
        if value and str(value).strip():
            score += 0.1
    for field_name in ("bio", "expertise_areas", "linkedin", "twitter"):
        if _get(speaker, field_name):
            score += 0.05

    if len(name) < 2 or any(term in lowered for term in _PLACEHOLDER_SPEAKER_TERMS):
        score = 0.1
    return _clamp(score)


# =========================
# Shaping
# =========================

def _dedupe_strings(values: Iterable[Optional[str]]) -> List[str]:
    seen = set()
    out: List[str] = []
    for value in values:
        if not value:
            continue
        key = value.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(value)
    return out


def _org_list(values: Iterable[str]) -> List[str]:
    return _dedupe_strings(normalize_org(clean_text(v)) for v in values)


def shape_speaker(raw: RawSpeaker, *, source_url: Optional[str] = None) -> Optional[SpeakerRecord]:
    """
    Cleaned SpeakerRecord for a raw speaker entry, or None without a name.
    Person validation happens in shape_event via filter_speakers.
    """
    name = clean_text(raw.name)
    if not name:
        return None
    org = normalize_org(clean_text(raw.org))
    fields = {
        "name": name,
        "org": org,
        "title": clean_text(raw.title),
        "profile_url": raw.profile_url,
        "source_url": source_url,
        "speech_title": clean_text(raw.speech_title),
        "session": clean_text(raw.session),
        "bio": clean_text(raw.bio),
    }
    fields["confidence"] = calculate_speaker_confidence(fields)
    return SpeakerRecord(**fields)


def shape_event(
    url: str,
    raw: Union[RawEventPayload, Mapping[str, Any], None],
    *,
    today: Optional[date] = None,
) -> EventRecord:
    """
    Build a clean, scored EventRecord for `url` from any raw payload.
    Malformed payloads degrade to a URL-derived record instead of raising.
    """
    if raw is None:
        payload = RawEventPayload()
    elif isinstance(raw, RawEventPayload):
        payload = raw
    else:
        try:
            payload = RawEventPayload.model_validate(dict(raw))
        except (ValidationError, TypeError, ValueError) as exc:
            logger.warning("event_payload_invalid", url=url, error=str(exc))
            payload = RawEventPayload()

    title = clean_text(payload.title) or clean_text(title_from_url(url)) or "Event"
    starts_at = normalize_iso_date(payload.starts_at)
    ends_at = normalize_iso_date(payload.ends_at)
    if payload.starts_at and not payload.ends_at:
        # "18./19.09.2025" carries both ends in one field
        ranged = parse_dates(payload.starts_at, today=today)
        if ranged.starts_at and ranged.ends_at:
            starts_at, ends_at = ranged.starts_at, ranged.ends_at
    if ends_at and (not starts_at or ends_at < starts_at):
        ends_at = None

    shaped = (shape_speaker(s, source_url=url) for s in payload.speakers)
    speakers: List[SpeakerRecord] = filter_speakers(s for s in shaped if s is not None)

    sponsors: List[SponsorRecord] = []
    for raw_sponsor in payload.sponsors:
        name = normalize_org(clean_text(raw_sponsor.name))
        if name and all(s.name.lower() != name.lower() for s in sponsors):
            sponsors.append(
                SponsorRecord(
                    name=name,
                    level=clean_text(raw_sponsor.level),
                    description=clean_text(raw_sponsor.description),
                )
            )

    fields: Dict[str, Any] = {
        "source_url": url,
        "title": title,
        "starts_at": starts_at,
        "ends_at": ends_at,
        "city": clean_city_text(payload.city),
        "country": normalize_country(payload.country),
        "venue": clean_venue_text(payload.venue),
        "organizer": clean_text(payload.organizer),
        "topics": _dedupe_strings(clean_text(t) for t in payload.topics),
        "speakers": speakers,
        "sponsors": sponsors,
        "participating_organizations": _org_list(payload.participating_organizations),
        "partners": _org_list(payload.partners),
        "competitors": _org_list(payload.competitors),
    }
    fields["confidence"] = calculate_event_confidence(fields, today=today)
    return EventRecord(**fields)
