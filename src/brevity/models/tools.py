from __future__ import annotations

from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Origin(StrEnum):
    """Where a resolved summary came from."""

    CACHE = "cache"
    DEDUPLICATED = "deduplicated"
    FRESH = "fresh"


class SummaryResult(BaseModel):
    summary: str
    origin: Origin


class GetSummaryInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    text: str = Field(max_length=100_000)
    cache_key: str | None = Field(default=None, alias="cacheKey", max_length=200)

    @field_validator("text")
    @classmethod
    def validate_text(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("text must not be empty")
        return v

    @field_validator("cache_key")
    @classmethod
    def validate_cache_key(cls, v: str | None) -> str | None:
        if v is not None and not v.strip():
            return None
        return v


class GetSummaryOutput(BaseModel):
    summary: str
    source: Origin


class KeySourceOutput(BaseModel):
    source: Literal["config", "storage"]


class SetApiKeyInput(BaseModel):
    key: str = Field(min_length=1, max_length=500)

    @field_validator("key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("key must not be empty")
        return v
