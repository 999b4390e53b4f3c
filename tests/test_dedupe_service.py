from __future__ import annotations

import itertools

from services.dedupe_service import (
    dedupe_events,
    dedupe_speakers,
    event_similarity,
    fuzzy_match_names,
    normalize_org_key,
    normalize_person_name,
    orgs_match,
)
from app.models.events import SpeakerRecord
from tests.fixtures import make_event, make_speaker


def test_normalize_person_name_drops_honorifics():
    assert normalize_person_name("Dr. John Smith") == "john smith"
    assert normalize_person_name("Prof. Dr. Anna  Weber, LL.M.") == "anna weber"
    assert normalize_person_name(None) == ""


def test_fuzzy_match_names():
    assert fuzzy_match_names("Dr. Anna Weber", "Anna Weber")
    assert fuzzy_match_names("Anna Weber", "Anna Weber-Schulz")
    assert fuzzy_match_names("Thomas Müller", "Thomas J. Müller")
    assert not fuzzy_match_names("Anna", "Bob Weber")
    assert not fuzzy_match_names("", "Anna Weber")


def test_orgs_match():
    assert orgs_match(None, "Acme")
    assert orgs_match("Acme GmbH", "acme")
    assert orgs_match("Acme", "Acme Compliance")
    assert not orgs_match("Acme", "Globex")


def test_speakers_with_same_person_merge():
    speakers = [
        make_speaker(name="Dr. John Smith", org="Acme", title="General Counsel"),
        make_speaker(name="John Smith", org="Acme Inc", bio="Leads legal ops."),
        make_speaker(name="Anna Weber", org="Globex"),
    ]

    out = dedupe_speakers(speakers)

    assert len(out) == 2
    merged = out[0]
    assert normalize_org_key(merged.org) == "acme"
    assert merged.title == "General Counsel"
    assert merged.bio == "Leads legal ops."
    assert out[1].name == "Anna Weber"


def test_same_name_different_org_stays_separate():
    out = dedupe_speakers([make_speaker(org="Acme"), make_speaker(org="Globex")])
    assert len(out) == 2


def test_same_event_merges_independent_of_order():
    a = make_event(venue="Hotel Adlon", city="Berlin", speakers=[make_speaker()], topics=["Compliance"])
    b = make_event(
        source_url="https://events.example.com/compliance-summit",
        venue="Hotel Adlon",
        organizer="Acme Events",
        topics=["ESG", "compliance"],
    )

    forward = dedupe_events([a, b])
    backward = dedupe_events([b, a])

    assert len(forward) == 1
    assert [e.model_dump() for e in forward] == [e.model_dump() for e in backward]
    merged = forward[0]
    assert merged.city == "Berlin"
    assert merged.organizer == "Acme Events"
    assert {t.lower() for t in merged.topics} == {"compliance", "esg"}
    assert len(merged.speakers) == 1


def test_near_duplicate_titles_merge():
    a = make_event(title="Compliance Summit 2026", venue="Hotel Adlon")
    b = make_event(source_url="https://b.de/x", title="Compliance Summit 2026 Berlin", venue="Hotel Adlon")

    assert event_similarity(a, b)[0] >= 0.8
    assert len(dedupe_events([a, b])) == 1


def test_distinct_events_stay_separate():
    a = make_event(venue="Hotel Adlon")
    b = make_event(source_url="https://b.de/x", title="Privacy Day", starts_at="2026-05-04", venue="Kongresshaus")
    # same title and date but venue only on one side
    c = make_event(source_url="https://c.de/x")

    out = dedupe_events([a, b, c])

    assert [e.source_url for e in out] == [a.source_url, b.source_url, c.source_url]


def test_speaker_merge_is_independent_of_permutation():
    a = SpeakerRecord(name="John Smith", org="Acme", title="CEO", confidence=0.8)
    b = SpeakerRecord(name="John Smith", org="Acme", profile_url="https://acme.example.com/john", confidence=0.8)
    c = SpeakerRecord(name="John Smith", org="Acme", title="CTO", confidence=0.8)

    results = [dedupe_speakers(list(order)) for order in itertools.permutations([a, b, c])]

    assert all(len(r) == 1 for r in results)
    assert len({r[0].title for r in results}) == 1
    assert len({r[0].model_dump_json() for r in results}) == 1
    assert results[0][0].profile_url == "https://acme.example.com/john"


def test_event_merge_is_independent_of_permutation():
    events = [
        make_event(venue="Hotel Adlon", city="Berlin"),
        make_event(source_url="https://b.de/x", venue="Hotel Adlon", city="Munich", organizer="Acme Events"),
        make_event(source_url="https://c.de/x", venue="Hotel Adlon", sponsors=[{"name": "Globex", "level": "Gold"}]),
    ]

    results = [dedupe_events(list(order)) for order in itertools.permutations(events)]

    assert len({tuple(e.model_dump_json() for e in r) for r in results}) == 1
    assert len(results[0]) == 1
    assert results[0][0].organizer == "Acme Events"
