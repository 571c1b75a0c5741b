# signup_service/schemas/signup.py
from pydantic import BaseModel, Field, field_validator
from typing import Optional, List
from datetime import datetime

from signup_service.constants.signup import ParticipantRole
from signup_service.utils.dates import ensure_utc


class Participant(BaseModel):
    """The acting user, resolved from the access token."""
    user_id: str
    role: str = ParticipantRole.STUDENT
    is_admin: bool = False

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: str) -> str:
        if not ParticipantRole.is_valid(v):
            raise ValueError(f"Role must be one of: {', '.join(ParticipantRole.all_values())}")
        return v


class SignupRead(BaseModel):
    id: str
    instance_id: str
    event_id: str
    user_id: str
    role: str
    status: str
    signup_date: datetime
    waitlist_notified_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}

    @field_validator("signup_date", "waitlist_notified_at", "cancelled_at")
    @classmethod
    def as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class SignupCreate(BaseModel):
    instance_id: str = Field(..., json_schema_extra={"example": "inst_1a2b3c4d5e6f"})


class CreateSignupResult(BaseModel):
    signup: SignupRead
    status: str
    message: str


class CancelSignupResult(BaseModel):
    signup: SignupRead
    promoted: List[SignupRead] = []


class DeleteSignupResult(BaseModel):
    signup_id: str
    promoted: List[SignupRead] = []


class AcceptOfferResult(BaseModel):
    signup: SignupRead
    message: str


class DeclineOfferResult(BaseModel):
    declined_signup_id: str
    next_promoted: Optional[SignupRead] = None
    message: str


class ExpireOfferResult(BaseModel):
    expired_signup_id: str
    user_id: str
    instance_id: str
    next_promoted: Optional[SignupRead] = None


class BulkRemoveRequest(BaseModel):
    signup_ids: List[str] = Field(..., min_length=1)


class BulkRemovalItem(BaseModel):
    signup_id: str
    success: bool
    error_code: Optional[str] = None
    message: Optional[str] = None
    promoted: List[str] = []


class WaitlistPosition(BaseModel):
    instance_id: str
    role: str
    status: str
    position: int
    total: int
    waitlist_notified_at: Optional[datetime] = None

    @field_validator("waitlist_notified_at")
    @classmethod
    def as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class ScheduleConflict(BaseModel):
    signup_id: str
    instance_id: str
    event_id: str
    event_title: Optional[str] = None
    start_date: datetime
    end_date: datetime
    status: str

    @field_validator("start_date", "end_date")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)
