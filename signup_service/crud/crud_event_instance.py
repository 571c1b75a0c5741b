# signup_service/crud/crud_event_instance.py
from datetime import datetime
from typing import Optional, List
from sqlalchemy.orm import Session
from sqlalchemy import and_

from signup_service.models.event_instance import EventInstance
from signup_service.constants.signup import InstanceStatus


class CRUDEventInstance:
    """CRUD operations for event instances."""

    def get(self, db: Session, instance_id: str) -> Optional[EventInstance]:
        return db.query(EventInstance).filter(EventInstance.id == instance_id).first()

    def get_for_update(self, db: Session, instance_id: str) -> Optional[EventInstance]:
        """
        Load the instance with SELECT FOR UPDATE.

        Serialises capacity-affecting writers on backends with row locks.
        Backends without row locks ignore the clause; the post-write
        recount in the signup manager covers them.
        """
        return db.query(EventInstance).filter(
            EventInstance.id == instance_id
        ).with_for_update().first()

    def get_started_active(self, db: Session, *, now: datetime) -> List[EventInstance]:
        """ACTIVE, enabled instances whose start date has passed."""
        return db.query(EventInstance).filter(
            and_(
                EventInstance.enabled.is_(True),
                EventInstance.status == InstanceStatus.ACTIVE,
                EventInstance.start_date.isnot(None),
                EventInstance.start_date <= now,
            )
        ).all()

    def get_starting_between(
        self,
        db: Session,
        *,
        start: datetime,
        end: datetime,
    ) -> List[EventInstance]:
        """ACTIVE, enabled instances starting inside [start, end]."""
        return db.query(EventInstance).filter(
            and_(
                EventInstance.enabled.is_(True),
                EventInstance.status == InstanceStatus.ACTIVE,
                EventInstance.start_date.isnot(None),
                EventInstance.start_date >= start,
                EventInstance.start_date <= end,
            )
        ).all()


# Singleton instance
event_instance = CRUDEventInstance()
