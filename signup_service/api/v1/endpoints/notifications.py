# signup_service/api/v1/endpoints/notifications.py
"""
In-app notification inbox. Every route is scoped to the caller's own rows.
"""
import math
from typing import Optional
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from signup_service.api import deps
from signup_service.core.exceptions import ForbiddenError, NotFoundError
from signup_service.crud.crud_notification import notification as crud_notification
from signup_service.models.notification import Notification
from signup_service.schemas.notification import (
    MarkAllReadResult,
    NotificationPage,
    NotificationRead,
)
from signup_service.schemas.token import TokenPayload

router = APIRouter(tags=["Notifications"])


def _get_own_notification(db: Session, notification_id: str, user_id: str) -> Notification:
    notification = crud_notification.get(db, notification_id)
    if not notification:
        raise NotFoundError("Notification not found")
    if notification.user_id != user_id:
        raise ForbiddenError("You can only manage your own notifications")
    return notification


@router.get("/notifications", response_model=NotificationPage)
def list_notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    unread_only: bool = Query(default=False),
    search: Optional[str] = Query(default=None, max_length=200),
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    """The caller's notifications, newest first."""
    items, total = crud_notification.get_for_user(
        db,
        user_id=current_user.sub,
        unread_only=unread_only,
        search=search,
        skip=(page - 1) * limit,
        limit=limit,
    )
    return NotificationPage(
        notifications=[NotificationRead.model_validate(n) for n in items],
        page=page,
        limit=limit,
        total=total,
        pages=math.ceil(total / limit),
    )


@router.patch("/notifications/read-all", response_model=MarkAllReadResult)
def mark_all_notifications_read(
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    updated = crud_notification.mark_all_read(db, user_id=current_user.sub)
    db.commit()
    return MarkAllReadResult(updated=updated, message="All notifications marked as read")


@router.patch("/notifications/{notification_id}/read", response_model=NotificationRead)
def mark_notification_read(
    notification_id: str,
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    notification = _get_own_notification(db, notification_id, current_user.sub)
    crud_notification.mark_read(db, notification=notification)
    db.commit()
    db.refresh(notification)
    return notification


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: str,
    db: Session = Depends(deps.get_db),
    current_user: TokenPayload = Depends(deps.get_current_user),
):
    notification = _get_own_notification(db, notification_id, current_user.sub)
    crud_notification.delete(db, notification=notification)
    db.commit()
