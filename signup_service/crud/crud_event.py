# signup_service/crud/crud_event.py
from datetime import datetime
from typing import Optional, List
from sqlalchemy.orm import Session
from sqlalchemy import and_

from signup_service.models.event import Event
from signup_service.constants.signup import EventStatus


class CRUDEvent:
    """CRUD operations for events."""

    def get(self, db: Session, event_id: str) -> Optional[Event]:
        return db.query(Event).filter(Event.id == event_id).first()

    def get_due_for_publish(self, db: Session, *, now: datetime) -> List[Event]:
        """SCHEDULED events whose publish date has passed."""
        return db.query(Event).filter(
            and_(
                Event.status == EventStatus.SCHEDULED,
                Event.scheduled_publish_date.isnot(None),
                Event.scheduled_publish_date <= now,
            )
        ).all()

    def publish(self, db: Session, *, event: Event) -> Event:
        event.status = EventStatus.PUBLISHED
        event.scheduled_publish_date = None
        db.flush()
        return event


# Singleton instance
event = CRUDEvent()
