# app/core/logging.py
from __future__ import annotations

import logging
import sys
from typing import Any, Dict
from datetime import datetime, timezone

import structlog

from app.core.request_id import get_request_id, get_run_id


# -------- Processors ---------------------------------------------------------

def _add_ts(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    event_dict.setdefault("ts", datetime.now(timezone.utc).isoformat(timespec="milliseconds"))
    return event_dict


def _add_level(_: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    # structlog passes the bound method name (info/warning/...) as method_name
    event_dict["level"] = str(event_dict.get("level") or method_name or "info").lower()
    return event_dict


def _add_service(service_name: str):
    def _inner(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service_name)
        return event_dict
    return _inner


def _add_request_or_run_ids(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    rid = get_request_id()
    if rid:
        event_dict.setdefault("request_id", rid)
    run = get_run_id()
    if run:
        event_dict.setdefault("run_id", run)
    return event_dict


# Provider credentials travel through headers and query params; never log them.
_SECRET_KEYS = {
    "authorization", "auth", "token", "access_token", "api_key", "apikey",
    "key", "firecrawl_api_key", "openai_api_key", "search_api_key",
    "password", "secret", "dsn",
}


def _secret_guard(_: Any, __: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    for k in list(event_dict.keys()):
        if str(k).lower() in _SECRET_KEYS:
            event_dict[k] = "***redacted***"
    return event_dict


# -------- Public API ---------------------------------------------------------

_logger: structlog.BoundLogger | None = None


def configure_logging(service_name: str = "pipeline", *, level: int = logging.INFO) -> None:
    """
    Configure the single structlog stack shared by the API, the worker CLI
    and the pipeline services. Output is one JSON object per line on stderr.
    """
    global _logger

    logging.basicConfig(
        level=level,
        format="%(message)s",
        stream=sys.stderr,
        force=True,
    )

    processors = [
        _add_ts,
        _add_level,
        _add_service(service_name),
        _add_request_or_run_ids,
        _secret_guard,
        structlog.processors.EventRenamer("event"),
        structlog.processors.dict_tracebacks,
        structlog.processors.JSONRenderer(),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    _logger = structlog.get_logger()


def get_logger() -> structlog.BoundLogger:
    global _logger
    if _logger is None:
        configure_logging("pipeline")
    return _logger


logger = get_logger()
