# app/config.py
from __future__ import annotations

from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env sits next to pyproject.toml (project root = parent of app/)
ENV_FILE = Path(__file__).resolve().parents[1] / ".env"
load_dotenv(ENV_FILE, override=False)


class Settings(BaseSettings):
    # ---- App / Infra ----
    APP_VERSION: str = "0.1.0"
    ENVIRONMENT: str = "local"
    # Optional: without a DSN the durable cache tier lives in-process.
    DATABASE_URL: Optional[str] = None

    # ---- Search provider (Google Custom Search JSON API) ----
    SEARCH_API_KEY: Optional[str] = None
    SEARCH_ENGINE_ID: Optional[str] = None
    SEARCH_API_URL: str = "https://www.googleapis.com/customsearch/v1"
    SEARCH_QUOTA_CHECK_TIMEOUT_S: float = 8.0
    SEARCH_TIMEOUT_S: float = 10.0
    SEARCH_CACHE_TTL_S: int = 6 * 60 * 60

    # ---- OpenAI (relevance classifier) ----
    # Not required at class level; the relevance filter degrades to regex.
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4.1-mini"
    OPENAI_TIMEOUT_S: float = 30.0
    CLASSIFIER_BATCH_SIZE: int = Field(default=5, ge=1)

    # ---- Managed extraction service (Firecrawl v2) ----
    FIRECRAWL_API_KEY: Optional[str] = None
    FIRECRAWL_API_URL: str = "https://api.firecrawl.dev/v2/extract"
    EXTRACTION_POLL_TIMEOUT_S: float = 15.0
    EXTRACTION_POLL_INTERVAL_S: float = 0.8

    # ---- Extraction pipeline ----
    PIPELINE_MAX_URLS: int = Field(default=15, ge=1)
    EXTRACTION_CONCURRENCY: int = Field(default=4, ge=1)
    EXTRACTION_HOST_GAP_MS: int = Field(default=250, ge=0)
    FETCH_TIMEOUT_S: float = 8.0
    FETCH_MAX_RETRIES: int = Field(default=2, ge=0)

    # ---- Normalizer / scoring ----
    CONFIDENCE_FLOOR: float = Field(default=0.3, ge=0.0, le=1.0)
    QUERY_MAX_LENGTH: int = Field(default=200, ge=20)

    # ---- Cache ----
    LOCAL_CACHE_CAPACITY: int = Field(default=1000, ge=1)
    LOCAL_CACHE_TTL_S: int = 5 * 60

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


settings = Settings()


def require_openai() -> str:
    """
    Runtime check with a clear message when the classifier key is missing.
    """
    if not settings.OPENAI_API_KEY:
        raise RuntimeError(
            "OPENAI_API_KEY is missing. Check .env "
            f"(tried to load from: {ENV_FILE})."
        )
    return settings.OPENAI_API_KEY


def require_firecrawl() -> str:
    if not settings.FIRECRAWL_API_KEY:
        raise RuntimeError(
            "FIRECRAWL_API_KEY is missing. Check .env "
            f"(tried to load from: {ENV_FILE})."
        )
    return settings.FIRECRAWL_API_KEY
