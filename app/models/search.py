from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, AliasChoices, field_validator


class SearchHit(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str = ""
    link: str = ""
    snippet: str = ""

    @field_validator("title", "link", "snippet", mode="before")
    @classmethod
    def _coerce_text(cls, value: object) -> str:
        if value is None:
            return ""
        return str(value).strip()


class SearchResponse(BaseModel):
    provider: str
    items: List[SearchHit] = Field(default_factory=list)
    cached: bool = False
    note: Optional[str] = None


class SearchConfig(BaseModel):
    """
    Industry profile used to shape queries and classifier prompts.
    Accepts camelCase keys as stored by the admin config screen.
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    industry: str = "general"
    base_query: str = Field(default="", validation_alias=AliasChoices("base_query", "baseQuery"))
    industry_terms: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("industry_terms", "industryTerms"),
    )
    exclude_terms: str = Field(default="", validation_alias=AliasChoices("exclude_terms", "excludeTerms"))
    icp_terms: List[str] = Field(default_factory=list, validation_alias=AliasChoices("icp_terms", "icpTerms"))

    @field_validator("industry_terms", "icp_terms", mode="before")
    @classmethod
    def _split_terms(cls, value: object) -> List[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(term).strip() for term in value if str(term).strip()]

    @field_validator("exclude_terms", mode="before")
    @classmethod
    def _join_excludes(cls, value: object) -> str:
        if value is None:
            return ""
        if isinstance(value, (list, tuple)):
            return " ".join(str(term).strip() for term in value if str(term).strip())
        return str(value).strip()
