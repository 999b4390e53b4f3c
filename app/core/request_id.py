# app/core/request_id.py
from __future__ import annotations

import uuid
from contextlib import contextmanager
from typing import Iterator, Optional
import contextvars

_request_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("request_id", default=None)
_run_id_ctx: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar("run_id", default=None)


# -------- Request ID (API) ---------------------------------------------------

def new_request_id(incoming: Optional[str] = None) -> str:
    """Reuse a sane incoming X-Request-ID header value, otherwise mint one."""
    if incoming:
        candidate = incoming.strip()
        if 0 < len(candidate) <= 128:
            return candidate
    return uuid.uuid4().hex


def set_request_id(request_id: Optional[str]) -> None:
    _request_id_ctx.set(request_id)


def get_request_id() -> Optional[str]:
    return _request_id_ctx.get()


def clear_request_id() -> None:
    _request_id_ctx.set(None)


# -------- Run ID (pipeline runs / workers) -----------------------------------

def get_run_id() -> Optional[str]:
    return _run_id_ctx.get()


@contextmanager
def with_run_id(run_id: Optional[str] = None) -> Iterator[str]:
    """
    Scope a pipeline run so every log line carries the same run_id:

        with with_run_id():
            await pipeline.run(request)
    """
    previous = _run_id_ctx.get()
    rid = run_id or uuid.uuid4().hex
    _run_id_ctx.set(rid)
    try:
        yield rid
    finally:
        _run_id_ctx.set(previous)
