from __future__ import annotations

import pytest

from services.speaker_validation_service import filter_speakers, is_likely_person
from tests.fixtures import make_speaker


@pytest.mark.parametrize(
    "name, reason",
    [
        ("Tom", "empty_or_short"),
        ("Register Now", "ui_element"),
        ("Negotiating Cross-Border Deals", "action_verb_phrase"),
        ("Compliance Summit", "non_person_keyword"),
        ("Acme Consulting GmbH", "org_suffix_in_name"),
        ("Anna Maria Luisa Weber Schmidt", "name_too_long"),
        ("Madonna", "single_word_name"),
    ],
)
def test_rejections(name, reason):
    check = is_likely_person(name)
    assert check.ok is False
    assert check.reasons == [reason]


def test_accepts_common_names():
    assert is_likely_person("Anna Weber").ok
    assert is_likely_person("Dr. Thomas Müller").ok
    assert is_likely_person("Jan van der Berg").ok


def test_uncommon_given_name_still_passes_on_shape():
    check = is_likely_person("Zoltan Kovacs")
    assert check.ok
    assert "no_common_given_name" in check.reasons


def test_filter_speakers_dicts_and_models():
    raw = [
        {"name": "Anna Weber", "org": "Acme"},
        {"name": "anna weber", "org": "Acme"},
        {"name": "Learn More"},
        {"name": ""},
    ]
    assert filter_speakers(raw) == [{"name": "Anna Weber", "org": "Acme"}]

    models = [make_speaker(name="Peter Schulz"), make_speaker(name="Keynote Panel")]
    assert [s.name for s in filter_speakers(models)] == ["Peter Schulz"]
