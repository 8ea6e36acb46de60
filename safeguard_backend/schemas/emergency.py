from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from schemas.incident import Incident, RiskLevel


class SessionState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class TriggerSource(str, Enum):
    MANUAL = "manual"
    SHAKE = "shake"
    DROP = "drop"


class Outcome(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"          # incident saved, notification failed
    FAILURE = "failure"          # incident not saved
    SUPPRESSED = "suppressed"    # duplicate or concurrent submission, nothing done


class SubmissionResult(BaseModel):
    outcome: Outcome
    message: str
    incident: Optional[Incident] = None
    risk_level: Optional[RiskLevel] = None
    classification_note: Optional[str] = None
    notification_note: Optional[str] = None


class TriggerRequest(BaseModel):
    countdown_seconds: Optional[float] = Field(default=None, gt=0, le=120)


class SessionSnapshot(BaseModel):
    state: SessionState
    source: Optional[TriggerSource] = None
    remaining: float = 0.0                   # seconds
    progress: float = 0.0                    # 0..100
    is_loading: bool = False
    can_confirm: bool = False
    can_cancel: bool = False
    last_result: Optional[SubmissionResult] = None
