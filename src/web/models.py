"""Pydantic request/response schemas for the history API."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EmotionRecordIn(BaseModel):
    """Incoming record; camelCase wire keys, extra provenance fields allowed."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(..., min_length=1)
    message: str = ""
    emotion: str = "neutral"
    intensity: float = 0.0
    createdAt: Optional[int] = None
    updatedAt: Optional[int] = None
    rev: int = 0
    deleted: bool = False
    source: Optional[str] = None

    @field_validator("intensity")
    @classmethod
    def validate_intensity(cls, v: float) -> float:
        if not 0.0 <= v <= 100.0:
            raise ValueError(f"intensity must be 0-1 (or a 0-100 percentage), got {v}")
        return v

    @field_validator("rev")
    @classmethod
    def validate_rev(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"rev must be >= 0, got {v}")
        return v


class PushRequest(BaseModel):
    records: list[dict[str, Any]] = Field(default_factory=list)


class PushResponse(BaseModel):
    acceptedIds: list[str] = Field(default_factory=list)
    rejected: list[str] = Field(default_factory=list)


class PullResponse(BaseModel):
    records: list[dict[str, Any]] = Field(default_factory=list)
    nextCursor: str


class ClearResponse(BaseModel):
    removed: int
