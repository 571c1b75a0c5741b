# signup_service/crud/crud_signup.py
"""
Query helpers for signups.

These methods never commit. Capacity-affecting operations compose several of
them inside one transaction owned by the signup services.
"""

from datetime import datetime
from typing import Optional, List
from sqlalchemy.orm import Session
from sqlalchemy import and_, func

from signup_service.models.signup import Signup
from signup_service.constants.signup import SignupStatus


class CRUDSignup:
    """Signup lookups, counts and mutations (flush only)."""

    def get(self, db: Session, signup_id: str, *, refresh: bool = False) -> Optional[Signup]:
        """Get a signup by id; ``refresh`` overwrites any stale copy held by the session."""
        query = db.query(Signup)
        if refresh:
            query = query.populate_existing()
        return query.filter(Signup.id == signup_id).first()

    def get_by_participant(
        self,
        db: Session,
        *,
        instance_id: str,
        user_id: str,
    ) -> Optional[Signup]:
        """Get a user's signup for an instance (any status)."""
        return db.query(Signup).filter(
            and_(
                Signup.instance_id == instance_id,
                Signup.user_id == user_id,
            )
        ).first()

    def get_pending(
        self,
        db: Session,
        *,
        instance_id: str,
        user_id: str,
    ) -> Optional[Signup]:
        """Get a user's open offer (WAITLIST_PENDING) for an instance."""
        return db.query(Signup).filter(
            and_(
                Signup.instance_id == instance_id,
                Signup.user_id == user_id,
                Signup.status == SignupStatus.WAITLIST_PENDING,
            )
        ).first()

    def has_recent_signup(
        self,
        db: Session,
        *,
        instance_id: str,
        user_id: str,
        since: datetime,
    ) -> bool:
        """True if the user (re)signed up for the instance after ``since``."""
        return db.query(Signup.id).filter(
            and_(
                Signup.instance_id == instance_id,
                Signup.user_id == user_id,
                Signup.signup_date > since,
            )
        ).first() is not None

    def count_by_status(
        self,
        db: Session,
        *,
        instance_id: str,
        role: str,
        statuses: tuple[str, ...],
    ) -> int:
        return db.query(func.count(Signup.id)).filter(
            and_(
                Signup.instance_id == instance_id,
                Signup.role == role,
                Signup.status.in_(statuses),
            )
        ).scalar() or 0

    def count_reserved(self, db: Session, *, instance_id: str, role: str) -> int:
        """CONFIRMED + WAITLIST_PENDING for a role pool."""
        return self.count_by_status(
            db, instance_id=instance_id, role=role, statuses=SignupStatus.RESERVED
        )

    def count_confirmed(self, db: Session, *, instance_id: str, role: str) -> int:
        return self.count_by_status(
            db, instance_id=instance_id, role=role, statuses=(SignupStatus.CONFIRMED,)
        )

    def count_waitlisted(self, db: Session, *, instance_id: str) -> int:
        """WAITLIST + WAITLIST_PENDING across every role."""
        return db.query(func.count(Signup.id)).filter(
            and_(
                Signup.instance_id == instance_id,
                Signup.status.in_(SignupStatus.WAITLISTED),
            )
        ).scalar() or 0

    def get_waitlist_queue(
        self,
        db: Session,
        *,
        instance_id: str,
        role: str,
        statuses: tuple[str, ...] = (SignupStatus.WAITLIST,),
        limit: Optional[int] = None,
    ) -> List[Signup]:
        """Waitlist rows of one role pool in FIFO order (earliest signup first)."""
        query = db.query(Signup).filter(
            and_(
                Signup.instance_id == instance_id,
                Signup.role == role,
                Signup.status.in_(statuses),
            )
        ).order_by(Signup.signup_date.asc(), Signup.id.asc())

        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def get_by_instance(
        self,
        db: Session,
        *,
        instance_id: str,
        status: Optional[str] = None,
    ) -> List[Signup]:
        query = db.query(Signup).filter(Signup.instance_id == instance_id)
        if status:
            query = query.filter(Signup.status == status)
        return query.order_by(Signup.signup_date.asc()).all()

    def get_expired_offer_ids(self, db: Session, *, notified_before: datetime) -> List[str]:
        """Ids of WAITLIST_PENDING signups whose offer was issued before the cutoff."""
        rows = db.query(Signup.id).filter(
            and_(
                Signup.status == SignupStatus.WAITLIST_PENDING,
                Signup.waitlist_notified_at.isnot(None),
                Signup.waitlist_notified_at <= notified_before,
            )
        ).order_by(Signup.waitlist_notified_at.asc()).all()
        return [row.id for row in rows]

    def get_reserved_for_user(
        self,
        db: Session,
        *,
        user_id: str,
        exclude_instance_id: Optional[str] = None,
    ) -> List[Signup]:
        """A user's CONFIRMED and WAITLIST_PENDING signups (their schedule)."""
        query = db.query(Signup).filter(
            and_(
                Signup.user_id == user_id,
                Signup.status.in_(SignupStatus.RESERVED),
            )
        )
        if exclude_instance_id:
            query = query.filter(Signup.instance_id != exclude_instance_id)
        return query.order_by(Signup.signup_date.asc()).all()

    def create(
        self,
        db: Session,
        *,
        instance_id: str,
        event_id: str,
        user_id: str,
        role: str,
        status: str,
        signup_date: datetime,
    ) -> Signup:
        signup = Signup(
            instance_id=instance_id,
            event_id=event_id,
            user_id=user_id,
            role=role,
            status=status,
            signup_date=signup_date,
        )
        db.add(signup)
        db.flush()
        return signup

    def revive(
        self,
        db: Session,
        *,
        signup: Signup,
        role: str,
        status: str,
        signup_date: datetime,
    ) -> Signup:
        """Reuse a CANCELLED row in place; it re-enters the queue at the back."""
        signup.role = role
        signup.status = status
        signup.signup_date = signup_date
        signup.cancelled_at = None
        signup.waitlist_notified_at = None
        db.flush()
        return signup

    def set_status(
        self,
        db: Session,
        *,
        signup: Signup,
        status: str,
        notified_at: Optional[datetime] = None,
    ) -> Signup:
        """Update status keeping ``waitlist_notified_at`` set only for open offers."""
        signup.status = status
        signup.waitlist_notified_at = notified_at if status == SignupStatus.WAITLIST_PENDING else None
        db.flush()
        return signup

    def delete(self, db: Session, *, signup: Signup) -> None:
        db.delete(signup)
        db.flush()


# Singleton instance
signup = CRUDSignup()
