from pydantic import BaseModel, EmailStr, Field, field_validator
from typing import Optional
from datetime import datetime, timezone
from enum import Enum

class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    CANCELLED = "cancelled"
    # Written by older clients, never produced here
    EXPIRED = "expired"

class InvitationCreate(BaseModel):
    invited_email: Optional[EmailStr] = None
    expiry_days: Optional[int] = Field(None, gt=0, le=90)

class Invitation(BaseModel):
    id: str
    project_id: str
    project_name: str
    invited_by: str
    invited_by_name: str
    invited_email: Optional[EmailStr] = None
    status: InvitationStatus = InvitationStatus.PENDING
    created_at: datetime
    expires_at: datetime
    accepted_by: Optional[str] = None
    accepted_at: Optional[datetime] = None

    @field_validator("created_at", "expires_at", "accepted_at")
    @classmethod
    def assume_utc(cls, v):
        # Expiry is compared against an aware "now"
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v
