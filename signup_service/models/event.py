# signup_service/models/event.py
import uuid
from sqlalchemy import Column, String, Text, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from signup_service.db.base_class import Base


class Event(Base):
    """
    An event offered to participants. Signups attach to its instances.

    Status lifecycle: DRAFT -> SCHEDULED -> PUBLISHED (-> ARCHIVED).
    A SCHEDULED event is published by the sweeper once
    ``scheduled_publish_date`` has passed.
    """
    __tablename__ = "events"

    id = Column(String, primary_key=True, default=lambda: f"evt_{uuid.uuid4().hex[:12]}")
    title = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(80), nullable=True)
    status = Column(String(20), nullable=False, default="DRAFT", server_default="DRAFT")
    scheduled_publish_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    instances = relationship(
        "EventInstance", back_populates="event", cascade="all, delete-orphan"
    )
