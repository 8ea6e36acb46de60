from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class IncidentStatus(str, Enum):
    PENDING = "pending"
    RESPONDED = "responded"
    RESOLVED = "resolved"

    @property
    def rank(self) -> int:
        return _STATUS_ORDER.index(self)


_STATUS_ORDER = [IncidentStatus.PENDING, IncidentStatus.RESPONDED, IncidentStatus.RESOLVED]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Incident(BaseModel):
    """One row of the `accidents` table."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    speed: float = Field(default=0.0, ge=0)   # km/h
    risk_level: RiskLevel
    status: IncidentStatus = IncidentStatus.PENDING
    detected_at: datetime = Field(default_factory=_utcnow)
    responded_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    notes: Optional[str] = None


class IncidentUpdate(BaseModel):
    """Operator triage request: advance status and/or attach notes."""

    status: Optional[IncidentStatus] = None
    notes: Optional[str] = Field(default=None, max_length=2000)


class IncidentStats(BaseModel):
    total: int = 0
    pending: int = 0
    responded: int = 0
    resolved: int = 0
    high_risk: int = 0
    medium_risk: int = 0
    low_risk: int = 0


class AlertLog(BaseModel):
    """One contact delivery attempt for an incident (`alert_logs` table)."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    accident_id: str
    contact_id: str
    channel: str                    # email | sms
    status: str                     # sent | failed
    sent_at: datetime = Field(default_factory=_utcnow)
