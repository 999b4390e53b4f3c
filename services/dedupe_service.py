from __future__ import annotations

import re
from difflib import SequenceMatcher
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, TypeVar

from app.core.logging import get_logger
from app.models.events import EventRecord, SpeakerRecord, SponsorRecord
from services.event_normalization_service import calculate_event_confidence, calculate_speaker_confidence
from services.org_normalization_service import are_same_org, normalize_org

logger = get_logger()

TITLE_WEIGHT = 0.5
VENUE_WEIGHT = 0.3
DATE_WEIGHT = 0.2
DUPLICATE_SCORE_THRESHOLD = 0.8

_HONORIFIC_RE = re.compile(
    r"\b(dr|prof|professor|mr|mrs|ms|sir|dame|ra|ll\.?m|mba|ph\.?d|m\.?sc|b\.?sc|jr|sr)\b\.?",
    re.IGNORECASE,
)
_NON_WORD_RE = re.compile(r"[^\w\s\-']")
_WS_RE = re.compile(r"\s+")

SPEAKER_SCALARS = ("name", "org", "title", "profile_url", "source_url", "speech_title", "session", "bio", "linkedin", "twitter")
EVENT_SCALARS = ("source_url", "title", "starts_at", "ends_at", "city", "country", "venue", "organizer")
EVENT_STRING_LISTS = ("topics", "participating_organizations", "partners", "competitors")
SPONSOR_SCALARS = ("name", "level", "description")

T = TypeVar("T", SpeakerRecord, EventRecord)


def _normalize_text(value: Optional[str]) -> str:
    return _WS_RE.sub(" ", value).strip().lower() if isinstance(value, str) else ""


def _string_similarity(a: Optional[str], b: Optional[str]) -> float:
    a_norm = _normalize_text(a)
    b_norm = _normalize_text(b)
    if not a_norm or not b_norm:
        return 0.0
    return SequenceMatcher(None, a_norm, b_norm).ratio()


# -------- Speakers -----------------------------------------------------------

def normalize_person_name(name: Optional[str]) -> str:
    """Lowercase name without honorifics, degrees or punctuation."""
    if not name:
        return ""
    stripped = _HONORIFIC_RE.sub(" ", name)
    stripped = _NON_WORD_RE.sub(" ", stripped)
    return _normalize_text(stripped)


def normalize_org_key(org: Optional[str]) -> str:
    return _normalize_text(normalize_org(org))


def speaker_key(speaker: SpeakerRecord) -> str:
    return f"{normalize_person_name(speaker.name)}|{normalize_org_key(speaker.org)}"


def fuzzy_match_names(a: Optional[str], b: Optional[str]) -> bool:
    """
    Same person if the normalized names are equal, one contains the other,
    or both have first and last name and share a token longer than two chars.
    """
    na, nb = normalize_person_name(a), normalize_person_name(b)
    if not na or not nb:
        return False
    if na == nb or na in nb or nb in na:
        return True
    ta, tb = na.split(), nb.split()
    if len(ta) < 2 or len(tb) < 2:
        return False
    return any(len(tok) > 2 for tok in set(ta) & set(tb))


def orgs_match(a: Optional[str], b: Optional[str]) -> bool:
    ka, kb = normalize_org_key(a), normalize_org_key(b)
    if not ka or not kb:
        return True
    return are_same_org(a, b) or ka in kb or kb in ka


def speakers_match(a: SpeakerRecord, b: SpeakerRecord) -> bool:
    return fuzzy_match_names(a.name, b.name) and orgs_match(a.org, b.org)


# -------- Merge policy -------------------------------------------------------

def _filled(record: Any, fields: Sequence[str]) -> int:
    return sum(1 for f in fields if getattr(record, f, None))


def _empty(value: Any) -> bool:
    return value is None or value == "" or value == []


def _ranked(members: Sequence[T], fields: Sequence[str]) -> List[T]:
    """
    Most confident first, then most complete; remaining ties are broken by
    the serialized record, never by input position.
    """
    return sorted(members, key=lambda r: (-r.confidence, -_filled(r, fields), r.model_dump_json()))


def _first_filled(ranked: Sequence[Any], name: str) -> Any:
    for record in ranked:
        value = getattr(record, name)
        if not _empty(value):
            return value
    return None


def _union_strings(*groups: Sequence[str]) -> List[str]:
    by_key: Dict[str, str] = {}
    for group in groups:
        for value in group:
            key = value.lower()
            by_key[key] = max(by_key.get(key, value), value)
    return [by_key[k] for k in sorted(by_key)]


def fold_speakers(members: Sequence[SpeakerRecord]) -> SpeakerRecord:
    """
    One record from a cluster of the same person. Every scalar comes from
    the best-ranked original member that has it; list fields are unioned and
    confidence is recomputed. The result does not depend on member order.
    """
    ranked = _ranked(members, SPEAKER_SCALARS)
    fields: Dict[str, Any] = {f: _first_filled(ranked, f) for f in SPEAKER_SCALARS}
    fields["expertise_areas"] = _union_strings(*(m.expertise_areas for m in members))
    fields["confidence"] = calculate_speaker_confidence(fields)
    return SpeakerRecord(**fields)


def _merge_sponsors(sponsors: Sequence[SponsorRecord]) -> List[SponsorRecord]:
    by_key: Dict[str, List[SponsorRecord]] = {}
    for sponsor in sponsors:
        key = normalize_org_key(sponsor.name) or sponsor.name.lower()
        by_key.setdefault(key, []).append(sponsor)
    out: List[SponsorRecord] = []
    for key in sorted(by_key):
        group = sorted(by_key[key], key=lambda s: (-_filled(s, SPONSOR_SCALARS), s.model_dump_json()))
        out.append(SponsorRecord(**{f: _first_filled(group, f) for f in SPONSOR_SCALARS}))
    return out


def fold_events(members: Sequence[EventRecord]) -> EventRecord:
    ranked = _ranked(members, EVENT_SCALARS)
    fields: Dict[str, Any] = {f: _first_filled(ranked, f) for f in EVENT_SCALARS}
    for name in EVENT_STRING_LISTS:
        fields[name] = _union_strings(*(getattr(m, name) for m in members))
    fields["sponsors"] = _merge_sponsors([s for m in members for s in m.sponsors])
    fields["speakers"] = dedupe_speakers([s for m in members for s in m.speakers])
    if fields["ends_at"] and fields["starts_at"] and fields["ends_at"] < fields["starts_at"]:
        fields["ends_at"] = None
    fields["confidence"] = calculate_event_confidence(fields)
    return EventRecord(**fields)

# -------- Events -------------------------------------------------------------

def event_key(event: EventRecord) -> str:
    return f"{_normalize_text(event.title)}|{_normalize_text(event.venue)}|{event.starts_at or ''}"


def event_similarity(a: EventRecord, b: EventRecord) -> Tuple[float, float, float, float]:
    """(total, title, venue, date) with the weighted total first."""
    title_score = _string_similarity(a.title, b.title)
    venue_score = _string_similarity(a.venue, b.venue)
    date_score = 1.0 if a.starts_at and a.starts_at == b.starts_at else 0.0
    total = TITLE_WEIGHT * title_score + VENUE_WEIGHT * venue_score + DATE_WEIGHT * date_score
    return round(total, 4), title_score, venue_score, date_score


def events_match(a: EventRecord, b: EventRecord) -> bool:
    if event_key(a) == event_key(b):
        return True
    return event_similarity(a, b)[0] >= DUPLICATE_SCORE_THRESHOLD


# -------- Clustering ---------------------------------------------------------

def _cluster(
    records: Sequence[T],
    *,
    key: Callable[[T], str],
    match: Callable[[T, T], bool],
    fold: Callable[[Sequence[T]], T],
) -> List[T]:
    """
    Greedy clustering over a canonical ordering (key, -confidence, content)
    so neither the grouping nor the merged records depend on input order.
    Each group is folded once from its original members. Groups come back in
    order of their first appearance in the input.
    """
    indexed = sorted(enumerate(records), key=lambda p: (key(p[1]), -p[1].confidence, p[1].model_dump_json()))
    groups: List[Tuple[int, List[T], T]] = []
    for idx, record in indexed:
        for pos, (first_idx, members, current) in enumerate(groups):
            if match(current, record):
                members.append(record)
                groups[pos] = (min(first_idx, idx), members, fold(members))
                break
        else:
            groups.append((idx, [record], record))
    groups.sort(key=lambda g: g[0])
    return [fold(members) if len(members) > 1 else current for _, members, current in groups]


def dedupe_speakers(speakers: Sequence[SpeakerRecord]) -> List[SpeakerRecord]:
    out = _cluster(speakers, key=speaker_key, match=speakers_match, fold=fold_speakers)
    if len(out) != len(speakers):
        logger.debug("speakers_deduped", before=len(speakers), after=len(out))
    return out


def dedupe_events(events: Sequence[EventRecord]) -> List[EventRecord]:
    out = _cluster(events, key=event_key, match=events_match, fold=fold_events)
    if len(out) != len(events):
        logger.info("events_deduped", before=len(events), after=len(out))
    return out
