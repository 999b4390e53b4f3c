from __future__ import annotations

from datetime import date

from app.models.events import RawEventPayload, RawSpeaker
from services.event_normalization_service import (
    calculate_event_confidence,
    calculate_speaker_confidence,
    clean_city_text,
    clean_text,
    clean_venue_text,
    guess_country_from_host,
    normalize_country,
    normalize_url,
    shape_event,
    shape_speaker,
    title_from_url,
)

TODAY = date(2026, 10, 1)


def test_clean_text_strips_markup_and_bullets():
    assert clean_text("  <b>1 - Keynote</b>&nbsp;&amp; Panel : ") == "Keynote & Panel"
    assert clean_text("• Agenda") == "Agenda"
    assert clean_text("   ") is None
    assert clean_text(None) is None


def test_clean_venue_text():
    assert clean_venue_text("Venue: Hotel Adlon") == "Hotel Adlon"
    assert clean_venue_text("bis zu 200 Teilnehmer") is None
    assert clean_venue_text("X" * 81) is None


def test_clean_city_text():
    assert clean_city_text("Berlin") == "Berlin"
    assert clean_city_text("City: München") == "München"
    assert clean_city_text("Compliance Week") is None
    assert clean_city_text("Online") is None
    assert clean_city_text("Tallinn") == "Tallinn"
    assert clean_city_text("Berlin 10117") is None
    assert clean_city_text("Xy") is None


def test_normalize_country():
    assert normalize_country("de") == "Germany"
    assert normalize_country("GB") == "United Kingdom"
    assert normalize_country("Österreich") == "Österreich"
    assert normalize_country(None) is None


def test_guess_country_from_host():
    assert guess_country_from_host("https://www.konferenz.de/2026") == "Germany"
    assert guess_country_from_host("https://summit.fr") == "France"
    assert guess_country_from_host("https://example.com") is None


def test_normalize_url():
    assert normalize_url("HTTPS://Example.COM/Events/?utm=1#top") == "https://example.com/Events"
    assert normalize_url("https://example.com/") == "https://example.com"
    assert normalize_url("not a url") == "not a url"


def test_title_from_url():
    assert title_from_url("https://example.com/events/compliance-summit_2026/") == "Compliance summit 2026"
    assert title_from_url("https://example.com/de/programm.pdf") == "Programm"
    assert title_from_url("https://www.example.com/events/2026") == "example.com"
    assert title_from_url("") == "Event"


def test_event_confidence_full_record():
    event = {
        "title": "Compliance Summit Berlin 2026",
        "starts_at": "2026-11-12",
        "city": "Berlin",
        "country": "Germany",
        "venue": "Hotel Adlon",
    }
    assert calculate_event_confidence(event, today=TODAY) == 1.0


def test_event_confidence_partial_record():
    event = {"title": "Compliance Summit Berlin 2026", "city": "Berlin"}
    assert calculate_event_confidence(event, today=TODAY) == 0.7


def test_event_confidence_far_future_date_earns_less():
    near = {"title": "Compliance Summit Berlin 2026", "starts_at": "2026-11-12"}
    far = {"title": "Compliance Summit Berlin 2026", "starts_at": "2031-11-12"}
    assert calculate_event_confidence(near, today=TODAY) == 0.9
    assert calculate_event_confidence(far, today=TODAY) == 0.8


def test_event_confidence_broken_and_generic_titles():
    assert calculate_event_confidence({"title": "404 Not Found", "city": "Berlin"}, today=TODAY) == 0.1
    assert calculate_event_confidence({"title": "Error"}, today=TODAY) == 0.1
    assert calculate_event_confidence({"title": "Event"}, today=TODAY) == 0.1


def test_speaker_confidence():
    assert calculate_speaker_confidence({"name": "Anna Weber", "org": "Acme", "title": "General Counsel"}) == 1.0
    assert calculate_speaker_confidence({"name": "Anna Weber"}) == 0.9
    assert calculate_speaker_confidence({"name": "TBA"}) == 0.1
    assert calculate_speaker_confidence({"name": "Speaker 1"}) == 0.1


def test_shape_speaker_cleans_fields():
    assert shape_speaker(RawSpeaker(name="  ")) is None
    speaker = shape_speaker(RawSpeaker(name="Dr. Anna Weber", org="Siemens AG"), source_url="https://a.de")
    assert speaker is not None
    assert speaker.org == "Siemens AG"
    assert speaker.source_url == "https://a.de"
    assert 0.0 <= speaker.confidence <= 1.0


def test_shape_event_cleans_and_scores():
    record = shape_event(
        "https://compliance-summit.de/2026",
        {
            "title": "<h1>Compliance Summit 2026</h1>",
            "starts_at": "2026-11-12T09:00:00+01:00",
            "ends_at": "2026-11-10",
            "city": "Berlin",
            "country": "DE",
            "venue": "Venue: Hotel Adlon",
            "topics": ["GDPR", "gdpr", "Sanctions"],
            "speakers": [
                {"name": "Register Now"},
                {"name": "Dr. Anna Weber", "org": "Siemens AG"},
                {"name": "Dr. Anna Weber", "org": "Siemens"},
            ],
            "sponsors": ["Deloitte LLP", {"name": "deloitte"}],
            "partners": ["PwC LLP", "pwc"],
        },
        today=TODAY,
    )

    assert record.title == "Compliance Summit 2026"
    assert record.starts_at == "2026-11-12"
    assert record.ends_at is None
    assert record.country == "Germany"
    assert record.venue == "Hotel Adlon"
    assert record.topics == ["GDPR", "Sanctions"]
    assert [s.name for s in record.speakers] == ["Dr. Anna Weber"]
    assert [s.name for s in record.sponsors] == ["Deloitte"]
    assert record.partners == ["PricewaterhouseCoopers"]
    assert record.confidence == 1.0
    assert record.is_rich


def test_shape_event_without_payload_uses_url_title():
    record = shape_event("https://example.com/events/legal-ops-forum", None, today=TODAY)
    assert record.title == "Legal ops forum"
    assert record.starts_at is None
    assert not record.is_rich


def test_shape_event_accepts_raw_payload_model():
    record = shape_event("https://a.de", RawEventPayload(title="Forum", city="Hamburg"), today=TODAY)
    assert record.city == "Hamburg"


def test_shape_event_splits_compact_range_in_start_field():
    record = shape_event(
        "https://a.de/forum",
        {"title": "Compliance Forum", "starts_at": "18./19.09.2025"},
        today=date(2025, 6, 1),
    )
    assert record.starts_at == "2025-09-18"
    assert record.ends_at == "2025-09-19"


def test_shape_event_keeps_explicit_end_date():
    record = shape_event(
        "https://a.de/forum",
        {"title": "Compliance Forum", "starts_at": "2025-09-18", "ends_at": "2025-09-20"},
        today=date(2025, 6, 1),
    )
    assert (record.starts_at, record.ends_at) == ("2025-09-18", "2025-09-20")


def test_shape_event_filters_non_person_speakers():
    record = shape_event(
        "https://a.de/forum",
        {
            "title": "Compliance Forum",
            "speakers": [{"name": "Learn More"}, {"name": "Peter Schulz"}, {"name": "peter schulz"}, {"name": "TBA"}],
        },
        today=TODAY,
    )
    assert [s.name for s in record.speakers] == ["Peter Schulz"]
