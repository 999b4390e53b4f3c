from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CacheEntry(BaseModel):
    """Row shape of the durable keyed store. ttl_at=None never expires."""

    key: str
    payload: Any = None
    written_at: datetime = Field(default_factory=_utcnow)
    ttl_at: Optional[datetime] = None

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        if self.ttl_at is None:
            return True
        ttl_at = self.ttl_at
        if ttl_at.tzinfo is None:
            ttl_at = ttl_at.replace(tzinfo=timezone.utc)
        return (now or _utcnow()) < ttl_at
