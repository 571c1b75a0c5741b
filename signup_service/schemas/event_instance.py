# signup_service/schemas/event_instance.py
from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional
from datetime import datetime

from signup_service.constants.signup import InstanceStatus
from signup_service.utils.dates import ensure_utc


class EventInstanceRead(BaseModel):
    id: str
    event_id: str
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[str] = None
    student_capacity: int
    parent_capacity: int
    enabled: bool
    waitlist_enabled: bool
    status: str
    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[str] = None

    model_config = {"from_attributes": True}

    @field_validator("start_date", "end_date", "cancelled_at")
    @classmethod
    def as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class EventInstanceUpdate(BaseModel):
    """
    Partial update; omitted fields are untouched. Dates and location can be
    cleared with null, capacities and flags cannot.
    """
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    location: Optional[str] = Field(None, max_length=255)
    student_capacity: Optional[int] = Field(None, ge=0)
    parent_capacity: Optional[int] = Field(None, ge=0)
    enabled: Optional[bool] = None
    waitlist_enabled: Optional[bool] = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.start_date and self.end_date and ensure_utc(self.end_date) <= ensure_utc(self.start_date):
            raise ValueError("end_date must be after start_date")
        return self


class InstanceStatusUpdate(BaseModel):
    status: str
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if not InstanceStatus.is_valid(v):
            raise ValueError(f"Status must be one of: {', '.join(InstanceStatus.all_values())}")
        return v
