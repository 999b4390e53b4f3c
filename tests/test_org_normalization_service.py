from __future__ import annotations

from services.org_normalization_service import are_same_org, normalize_org, strip_legal_suffix


def test_strip_legal_suffix_handles_stacked_forms():
    assert strip_legal_suffix("Foo Holdings Co. Ltd") == "Foo Holdings"
    assert strip_legal_suffix("Acme Inc.") == "Acme"
    assert strip_legal_suffix("Inc") == "Inc"


def test_normalize_org_aliases_and_suffixes():
    assert normalize_org("pwc llp") == "PricewaterhouseCoopers"
    assert normalize_org("  Ernst and Young ") == "Ernst & Young"
    assert normalize_org("Siemens AG") == "Siemens AG"
    assert normalize_org("Acme Inc") == "Acme"
    assert normalize_org("Acme Compliance GmbH") == "Acme Compliance"
    assert normalize_org("") is None
    assert normalize_org(None) is None


def test_are_same_org():
    assert are_same_org("Deloitte LLP", "deloitte")
    assert are_same_org("Acme Inc", "ACME")
    assert not are_same_org("Acme", "Globex")
    assert not are_same_org(None, "Acme")
