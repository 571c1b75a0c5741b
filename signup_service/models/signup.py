# signup_service/models/signup.py
"""
Signup model: the relationship between a participant and an event instance.

Status flow:
    (new) -> CONFIRMED | WAITLIST
    WAITLIST -> WAITLIST_PENDING          (promotion, offer issued)
    WAITLIST_PENDING -> CONFIRMED         (offer accepted)
    WAITLIST_PENDING -> WAITLIST          (instance closed)
    WAITLIST_PENDING -> (deleted)         (offer declined or expired)
    any -> CANCELLED                      (explicit cancel, row can be revived)
"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.orm import relationship

from signup_service.db.base_class import Base
from signup_service.utils.dates import utcnow


class Signup(Base):
    __tablename__ = "signups"

    id = Column(String, primary_key=True, default=lambda: f"sgn_{uuid.uuid4().hex[:12]}")
    instance_id = Column(String, ForeignKey("event_instances.id", ondelete="CASCADE"), nullable=False, index=True)
    event_id = Column(String, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)  # No FK - users live in the auth service
    role = Column(String(20), nullable=False)  # STUDENT, PARENT

    status = Column(String(20), nullable=False, server_default="CONFIRMED")
    # Waitlist ordering key; reset when a row is revived or an offer accepted.
    # Set client-side so ordering keeps sub-second precision on every backend.
    signup_date = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    waitlist_notified_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    instance = relationship("EventInstance")
    event = relationship("Event")

    __table_args__ = (
        UniqueConstraint('instance_id', 'user_id', name='unique_instance_signup_user'),
        Index('idx_signups_instance_role_status', 'instance_id', 'role', 'status'),
    )
