from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator


def _clip01(x: Optional[float]) -> Optional[float]:
    if x is None:
        return None
    return max(0.0, min(1.0, float(x)))


class ClassificationDecision(BaseModel):
    """
    Persisted classifier verdict for one search hit, keyed by the sha256 of
    "<title>|<link>". Immutable once written; re-classification overwrites.
    """

    item_hash: str
    is_event: bool
    confidence: Optional[float] = None
    reason: Optional[str] = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clip_confidence(cls, v):
        return _clip01(v) if v is not None else None


class ClassifierDecision(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    index: int = Field(..., ge=0)
    is_event: bool = Field(..., validation_alias=AliasChoices("is_event", "isEvent"))
    reason: Optional[str] = None
    confidence: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("confidence", "confidence_score", "score"),
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def _clip_confidence(cls, v):
        return _clip01(v) if v is not None else None


class ClassifierBatchResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    decisions: List[ClassifierDecision] = Field(default_factory=list)


class RerankResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    order: List[int] = Field(default_factory=list)
