# signup_service/crud/crud_notification.py
from typing import List, Optional, Tuple
from sqlalchemy.orm import Session
from sqlalchemy import and_, or_

from signup_service.models.notification import Notification
from signup_service.constants.signup import NotificationType


class CRUDNotification:
    """CRUD operations for in-app notifications."""

    def create(
        self,
        db: Session,
        *,
        user_id: str,
        title: str,
        description: str,
        type: str = NotificationType.INFO,
        instance_id: Optional[str] = None,
        event_id: Optional[str] = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            title=title,
            description=description,
            type=type,
            instance_id=instance_id,
            event_id=event_id,
        )
        db.add(notification)
        db.flush()
        return notification

    def get(self, db: Session, notification_id: str) -> Optional[Notification]:
        return db.query(Notification).filter(Notification.id == notification_id).first()

    def get_for_user(
        self,
        db: Session,
        *,
        user_id: str,
        unread_only: bool = False,
        search: Optional[str] = None,
        skip: int = 0,
        limit: int = 20,
    ) -> Tuple[List[Notification], int]:
        """
        One page of a user's inbox, newest first, plus the total match count.

        ``search`` matches title or description, case-insensitively.
        """
        query = db.query(Notification).filter(Notification.user_id == user_id)

        if unread_only:
            query = query.filter(Notification.is_read.is_(False))

        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.filter(
                or_(
                    Notification.title.ilike(pattern),
                    Notification.description.ilike(pattern),
                )
            )

        total = query.count()
        items = query.order_by(
            Notification.created_at.desc(), Notification.id.desc()
        ).offset(skip).limit(limit).all()
        return items, total

    def mark_read(self, db: Session, *, notification: Notification) -> Notification:
        notification.is_read = True
        db.flush()
        return notification

    def mark_all_read(self, db: Session, *, user_id: str) -> int:
        """Marks every unread notification of the user as read. Returns how many changed."""
        updated = db.query(Notification).filter(
            and_(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        ).update({Notification.is_read: True}, synchronize_session=False)
        db.flush()
        return updated

    def delete(self, db: Session, *, notification: Notification) -> None:
        db.delete(notification)
        db.flush()

    def exists_for_instance(self, db: Session, *, instance_id: str, title: str) -> bool:
        """Whether any notification with this title was already sent for the instance."""
        return db.query(Notification.id).filter(
            and_(
                Notification.instance_id == instance_id,
                Notification.title == title,
            )
        ).first() is not None


# Singleton instance
notification = CRUDNotification()
