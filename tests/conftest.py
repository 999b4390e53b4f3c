from __future__ import annotations

import pytest

from app.config import settings


@pytest.fixture(autouse=True)
def offline_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    """No credentials, no database, no pacing or retry sleeps unless a test opts in."""
    monkeypatch.setattr(settings, "SEARCH_API_KEY", None)
    monkeypatch.setattr(settings, "SEARCH_ENGINE_ID", None)
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    monkeypatch.setattr(settings, "FIRECRAWL_API_KEY", None)
    monkeypatch.setattr(settings, "DATABASE_URL", None)
    monkeypatch.setattr(settings, "EXTRACTION_HOST_GAP_MS", 0)
    monkeypatch.setattr(settings, "FETCH_MAX_RETRIES", 0)
