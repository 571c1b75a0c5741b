# signup_service/services/waitlist_promoter.py
"""
Waitlist cascade: turn freed slots into time-boxed offers.

When a reserved slot frees up, the earliest WAITLIST entries of the same role
pool are moved to WAITLIST_PENDING and told they have OFFER_WINDOW_HOURS to
accept. A pending offer holds its slot, so the offered user is never beaten
to it by a fresh signup. Runs inside the caller's transaction.
"""
import logging
from typing import List

from sqlalchemy.orm import Session

from signup_service.constants.signup import InstanceStatus, NotificationType, SignupStatus
from signup_service.core.config import settings
from signup_service.crud.crud_signup import signup as crud_signup
from signup_service.models.event_instance import EventInstance
from signup_service.models.signup import Signup
from signup_service.services.notifier import (
    NotificationOutbox,
    instance_email_payload,
    notify_user,
    session_scope,
    signup_payload,
)
from signup_service.utils.dates import utcnow

logger = logging.getLogger(__name__)


class WaitlistPromoter:
    """Issues waitlist offers for freed slots of one role pool."""

    def promote(
        self,
        db: Session,
        *,
        instance: EventInstance,
        role: str,
        slots: int,
        outbox: NotificationOutbox,
    ) -> List[Signup]:
        """
        Offer up to ``slots`` places to the head of the role's waitlist.

        Closed or disabled instances never issue offers.

        Returns:
            The signups moved to WAITLIST_PENDING, in queue order.
        """
        if slots <= 0:
            return []

        if not instance.enabled or instance.status != InstanceStatus.ACTIVE:
            logger.info(f"Skipping promotion for closed instance {instance.id}")
            return []

        queue = crud_signup.get_waitlist_queue(
            db, instance_id=instance.id, role=role, limit=slots
        )
        if not queue:
            return []

        now = utcnow()
        event_title = instance.event.title if instance.event else "this session"

        for signup in queue:
            crud_signup.set_status(
                db, signup=signup, status=SignupStatus.WAITLIST_PENDING, notified_at=now
            )

            notify_user(
                db,
                outbox,
                user_id=signup.user_id,
                title="Waitlist Spot Available!",
                description=(
                    f'A spot has opened up for "{event_title}". You have '
                    f"{settings.OFFER_WINDOW_HOURS} hours to accept or decline this spot. "
                    "Go to the session details page to respond."
                ),
                type=NotificationType.SUCCESS,
                instance_id=instance.id,
                event_id=instance.event_id,
            )
            outbox.publish(
                "waitlist-promoted",
                {"signup": signup_payload(signup)},
                session_scope(instance.id),
            )
            outbox.email(
                "WAITLIST_OFFER",
                signup.user_id,
                {**instance_email_payload(instance), "offerWindowHours": settings.OFFER_WINDOW_HOURS},
            )

        logger.info(
            f"Promoted {len(queue)} {role} waitlist entr{'y' if len(queue) == 1 else 'ies'} "
            f"for instance {instance.id}"
        )
        return queue


# Singleton instance
waitlist_promoter = WaitlistPromoter()
