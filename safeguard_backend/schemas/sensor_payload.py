from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class MotionEventType(str, Enum):
    SHAKE = "shake"
    DROP = "drop"


class MotionPermission(str, Enum):
    UNKNOWN = "unknown"
    PROMPT = "prompt"
    GRANTED = "granted"
    DENIED = "denied"


class MotionSample(BaseModel):
    x: float                                  # m/s²
    y: float
    z: float
    includes_gravity: bool = True             # devicemotion accelerationIncludingGravity
    timestamp: Optional[float] = None         # device epoch seconds, informational; debounce uses the server clock


class PermissionReport(BaseModel):
    requires_consent: bool = False            # iOS-style explicit prompt
    granted: Optional[bool] = None            # outcome of the prompt, None if not asked yet


class PositionFix(BaseModel):
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: Optional[float] = None          # meters
    speed: Optional[float] = None             # m/s as reported by the device
    heading: Optional[float] = None           # degrees
    timestamp: Optional[float] = None         # epoch seconds

    @property
    def speed_kmh(self) -> float:
        if self.speed is None or self.speed < 0:
            return 0.0
        return self.speed * 3.6


class PositionState(BaseModel):
    fix: Optional[PositionFix] = None
    error: Optional[str] = None
    loading: bool = False
