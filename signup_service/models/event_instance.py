# signup_service/models/event_instance.py
import uuid
from sqlalchemy import (
    Column, String, ForeignKey, DateTime, Integer, Boolean, CheckConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import true

from signup_service.constants.signup import ParticipantRole
from signup_service.db.base_class import Base


class EventInstance(Base):
    """
    One scheduled occurrence of an event with independent per-role capacity.

    Features:
    - Separate STUDENT and PARENT capacity pools
    - Optional waitlist
    - Lifecycle status (ACTIVE, COMPLETED, CANCELLED)
    """
    __tablename__ = "event_instances"

    id = Column(String, primary_key=True, default=lambda: f"inst_{uuid.uuid4().hex[:12]}")
    event_id = Column(String, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)

    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)
    location = Column(String(255), nullable=True)

    student_capacity = Column(Integer, nullable=False, default=0, server_default="0")
    parent_capacity = Column(Integer, nullable=False, default=0, server_default="0")

    enabled = Column(Boolean, nullable=False, default=True, server_default=true())
    waitlist_enabled = Column(Boolean, nullable=False, default=True, server_default=true())

    status = Column(String(20), nullable=False, default="ACTIVE", server_default="ACTIVE")
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String, nullable=True)

    event = relationship("Event", back_populates="instances")

    __table_args__ = (
        CheckConstraint('student_capacity >= 0', name='check_student_capacity_positive'),
        CheckConstraint('parent_capacity >= 0', name='check_parent_capacity_positive'),
    )

    def capacity_for(self, role: str) -> int:
        if role == ParticipantRole.STUDENT:
            return self.student_capacity
        return self.parent_capacity
