# signup_service/models/notification.py
import uuid
from sqlalchemy import Column, String, Text, DateTime, Boolean, ForeignKey

from sqlalchemy.sql import false

from signup_service.db.base_class import Base
from signup_service.utils.dates import utcnow


class Notification(Base):
    """In-app notification addressed to one participant. Never mutates signup state."""
    __tablename__ = "notifications"

    id = Column(String, primary_key=True, default=lambda: f"ntf_{uuid.uuid4().hex[:12]}")
    user_id = Column(String, nullable=False, index=True)
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=False)
    type = Column(String(20), nullable=False, server_default="INFO")  # INFO, SUCCESS, WARNING
    instance_id = Column(String, ForeignKey("event_instances.id", ondelete="SET NULL"), nullable=True, index=True)
    event_id = Column(String, ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False, server_default=false())
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
