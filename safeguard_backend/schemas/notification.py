from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class NotificationRequest(BaseModel):
    user_id: str
    message: str = "Emergency Alert"
    latitude: float
    longitude: float
    accident_id: Optional[str] = None         # links alert log rows when set


class ContactDelivery(BaseModel):
    contact_id: str
    contact: str                              # display name
    channel: str                              # email | sms
    status: str                               # sent | failed
    error: Optional[str] = None


class NotificationReport(BaseModel):
    success: bool
    message: str
    results: list[ContactDelivery] = Field(default_factory=list)

    @property
    def sent(self) -> int:
        return sum(1 for r in self.results if r.status == "sent")
