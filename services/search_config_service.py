"""
Search configuration loader.

Parses config/search_config.yml into a SearchConfig. A missing or broken file
never stops the pipeline: the built-in legal/compliance profile is used.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from app.core.logging import get_logger
from app.models.search import SearchConfig

logger = get_logger()

THIS_FILE = Path(__file__).resolve()
REPO_ROOT = THIS_FILE.parent.parent
SEARCH_CONFIG_YML = REPO_ROOT / "config" / "search_config.yml"

DEFAULT_SEARCH_CONFIG: Dict[str, Any] = {
    "industry": "legal-compliance",
    "base_query": '(compliance OR "legal tech" OR investigation OR regtech) (conference OR summit OR forum)',
    "exclude_terms": 'reddit Mumsnet "legal advice" forum',
    "industry_terms": [
        "compliance", "investigations", "regtech", "ESG", "sanctions",
        "governance", "legal ops", "risk", "audit", "whistleblow",
    ],
    "icp_terms": [
        "general counsel", "chief compliance officer", "investigations lead",
        "compliance manager", "legal operations",
    ],
}


def _load_raw(cfg_path: Path) -> Optional[Dict[str, Any]]:
    try:
        text = cfg_path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.warning("search_config_not_found", path=str(cfg_path))
        return None
    except OSError as exc:
        logger.error("search_config_read_error", path=str(cfg_path), error=str(exc))
        return None

    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        logger.error("search_config_parse_error", path=str(cfg_path), error=str(exc))
        return None

    if not isinstance(data, dict):
        logger.error("search_config_invalid_root", path=str(cfg_path), root_type=type(data).__name__)
        return None
    return data


@lru_cache(maxsize=8)
def _load_from_path(path_str: str) -> SearchConfig:
    raw = _load_raw(Path(path_str))
    if raw is not None:
        try:
            cfg = SearchConfig.model_validate(raw)
            logger.info("search_config_loaded", path=path_str, industry=cfg.industry)
            return cfg
        except ValidationError as exc:
            logger.error("search_config_invalid", path=path_str, error=str(exc))
    return SearchConfig.model_validate(DEFAULT_SEARCH_CONFIG)


def get_search_config(path: Optional[Path] = None) -> SearchConfig:
    """Cached per path; returns a copy so callers may mutate freely."""
    cfg_path = Path(path) if path else SEARCH_CONFIG_YML
    return _load_from_path(str(cfg_path.resolve())).model_copy(deep=True)


def clear_search_config_cache() -> None:
    """Reset LRU cache (useful for tests)."""
    _load_from_path.cache_clear()
