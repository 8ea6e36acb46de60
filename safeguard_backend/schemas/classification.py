from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from schemas.incident import RiskLevel


class Provenance(str, Enum):
    MODEL = "model"         # remote classifier answered with a valid payload
    FALLBACK = "fallback"   # deterministic rule, remote call failed or was untrustworthy
    CACHE = "cache"         # served from the fingerprint cache


class ClassifyRequest(BaseModel):
    speed: Optional[float] = Field(default=None, ge=0)   # km/h, unknown → 0
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    previous_latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    previous_longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class ModelVerdict(BaseModel):
    """The strict payload expected back from the remote model."""

    risk_level: RiskLevel
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str = ""

    @field_validator("risk_level", mode="before")
    @classmethod
    def _lowercase(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class ClassificationResult(BaseModel):
    risk_level: RiskLevel
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    source: Provenance
    analyzed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
