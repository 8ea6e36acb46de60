from __future__ import annotations

from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator


class ContactCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    phone: Optional[str] = None
    email: Optional[EmailStr] = None
    relationship: Optional[str] = None

    @field_validator("phone", "relationship", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @field_validator("email", mode="before")
    @classmethod
    def _blank_email_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode="after")
    def _needs_a_channel(self) -> "ContactCreate":
        if not self.phone and not self.email:
            raise ValueError("a contact needs at least a phone number or an email")
        return self


class EmergencyContact(ContactCreate):
    """One row of the `emergency_contacts` table."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str

    @property
    def reachable(self) -> bool:
        return bool(self.phone or self.email)


class Profile(BaseModel):
    user_id: str
    full_name: str = ""
    phone: Optional[str] = None
    email: Optional[EmailStr] = None


class ProfileUpdate(BaseModel):
    full_name: str = ""
    phone: Optional[str] = None
