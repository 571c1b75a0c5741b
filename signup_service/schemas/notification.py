# signup_service/schemas/notification.py
from pydantic import BaseModel, field_validator
from typing import Optional, List
from datetime import datetime

from signup_service.utils.dates import ensure_utc


class NotificationRead(BaseModel):
    id: str
    user_id: str
    title: str
    description: str
    type: str
    instance_id: Optional[str] = None
    event_id: Optional[str] = None
    is_read: bool
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("created_at")
    @classmethod
    def as_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class NotificationPage(BaseModel):
    notifications: List[NotificationRead]
    page: int
    limit: int
    total: int
    pages: int


class MarkAllReadResult(BaseModel):
    updated: int
    message: str
