# signup_service/services/instance_lifecycle.py
"""
Administrative changes to event instances and their effect on signups.

- Capacity changes never drop below what is already reserved; increases
  are handed to the waitlist promoter.
- Turning ``enabled`` off, or closing an instance (CANCELLED / COMPLETED),
  pulls open offers back to WAITLIST so a dead instance never produces
  expiry notifications.
- Closing notifies every CONFIRMED participant except the actor.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from signup_service.constants.signup import (
    InstanceStatus,
    NotificationType,
    ParticipantRole,
    SignupStatus,
)
from signup_service.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    SignupValidationError,
)
from signup_service.crud.crud_event_instance import event_instance as crud_event_instance
from signup_service.crud.crud_signup import signup as crud_signup
from signup_service.models.event_instance import EventInstance
from signup_service.schemas.event_instance import EventInstanceRead, EventInstanceUpdate
from signup_service.schemas.signup import Participant
from signup_service.services.capacity import available_slots
from signup_service.services.notifier import (
    NotificationOutbox,
    Notifier,
    instance_email_payload,
    notifier as default_notifier,
    notify_user,
    session_scope,
)
from signup_service.services.transaction import run_in_transaction
from signup_service.services.waitlist_promoter import (
    WaitlistPromoter,
    waitlist_promoter as default_promoter,
)
from signup_service.utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)

CAPACITY_FIELDS = (
    (ParticipantRole.STUDENT, "student_capacity"),
    (ParticipantRole.PARENT, "parent_capacity"),
)

# Columns that cannot be cleared; a null in the request leaves them untouched.
REQUIRED_FIELDS = ("student_capacity", "parent_capacity", "enabled", "waitlist_enabled")


def demote_pending_offers(db: Session, *, instance: EventInstance) -> int:
    """Move every WAITLIST_PENDING row of the instance back to WAITLIST."""
    pending = crud_signup.get_by_instance(
        db, instance_id=instance.id, status=SignupStatus.WAITLIST_PENDING
    )
    for signup in pending:
        crud_signup.set_status(db, signup=signup, status=SignupStatus.WAITLIST)

    if pending:
        logger.info(f"Demoted {len(pending)} pending offer(s) on instance {instance.id}")
    return len(pending)


def close_instance(
    db: Session,
    outbox: NotificationOutbox,
    *,
    instance: EventInstance,
    status: str,
    actor_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> None:
    """Mark the instance CANCELLED or COMPLETED and settle its signups."""
    instance.status = status
    if status == InstanceStatus.CANCELLED:
        instance.cancelled_at = utcnow()
        instance.cancelled_by = actor_id
    db.flush()

    demote_pending_offers(db, instance=instance)

    title = instance.event.title if instance.event else "this session"
    if status == InstanceStatus.CANCELLED:
        heading = "Session Cancelled"
        description = f'The session for "{title}" has been cancelled.'
        template = "SESSION_CANCELLED"
        event_type = "session-cancelled"
    else:
        heading = "Session Completed"
        description = f'The session for "{title}" has been marked as completed.'
        template = "SESSION_COMPLETED"
        event_type = "session-completed"
    if reason:
        description = f"{description} Reason: {reason}"

    confirmed = crud_signup.get_by_instance(
        db, instance_id=instance.id, status=SignupStatus.CONFIRMED
    )
    notified = 0
    for signup in confirmed:
        if signup.user_id == actor_id:
            continue
        notify_user(
            db,
            outbox,
            user_id=signup.user_id,
            title=heading,
            description=description,
            type=NotificationType.WARNING,
            instance_id=instance.id,
            event_id=instance.event_id,
        )
        outbox.email(
            template,
            signup.user_id,
            {**instance_email_payload(instance), "reason": reason},
        )
        notified += 1

    outbox.publish(
        event_type,
        {"instanceId": instance.id, "status": status, "reason": reason},
        session_scope(instance.id),
    )
    logger.info(f"Instance {instance.id} closed as {status}; notified {notified} participant(s)")


class InstanceLifecycle:
    """Admin updates, status changes and sweeper completion for instances."""

    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        promoter: Optional[WaitlistPromoter] = None,
    ):
        self.notifier = notifier or default_notifier
        self.promoter = promoter or default_promoter

    def update_instance(
        self,
        db: Session,
        *,
        instance_id: str,
        changes: EventInstanceUpdate,
        actor: Participant,
    ) -> EventInstanceRead:
        """
        Apply a partial update.

        Raises:
            ForbiddenError: actor is not an admin.
            NotFoundError: unknown instance.
            SignupValidationError: capacity below reserved seats, or waitlist
                disabled while people are waiting.
        """
        if not actor.is_admin:
            raise ForbiddenError("Only administrators can update event instances")

        return run_in_transaction(
            db,
            self._update_instance,
            notifier=self.notifier,
            instance_id=instance_id,
            changes=changes,
            actor=actor,
        )

    def _update_instance(
        self,
        db: Session,
        outbox: NotificationOutbox,
        *,
        instance_id: str,
        changes: EventInstanceUpdate,
        actor: Participant,
    ) -> EventInstanceRead:
        instance = crud_event_instance.get_for_update(db, instance_id)
        if not instance:
            raise NotFoundError("Event instance not found")

        update_data = {
            field: value
            for field, value in changes.model_dump(exclude_unset=True).items()
            if value is not None or field not in REQUIRED_FIELDS
        }

        old_capacity = {}
        for role, field in CAPACITY_FIELDS:
            old_capacity[role] = getattr(instance, field)
            new_value = update_data.get(field)
            if new_value is None:
                continue
            reserved = crud_signup.count_reserved(db, instance_id=instance.id, role=role)
            if new_value < reserved:
                raise SignupValidationError(
                    f"Cannot set {role.lower()} capacity to {new_value}: "
                    f"{reserved} {role.lower()} spot(s) are already confirmed or offered",
                    details={"role": role, "reserved": reserved, "requested": new_value},
                )

        if update_data.get("waitlist_enabled") is False and instance.waitlist_enabled:
            waiting = crud_signup.count_waitlisted(db, instance_id=instance.id)
            if waiting:
                raise SignupValidationError(
                    f"Cannot disable the waitlist while {waiting} participant(s) are on it",
                    details={"waitlisted": waiting},
                )

        start = ensure_utc(update_data.get("start_date", instance.start_date))
        end = ensure_utc(update_data.get("end_date", instance.end_date))
        if start and end and end <= start:
            raise SignupValidationError("end_date must be after start_date")

        was_enabled = instance.enabled
        for field, value in update_data.items():
            setattr(instance, field, value)
        db.flush()

        if was_enabled and not instance.enabled:
            demote_pending_offers(db, instance=instance)

        promoted = []
        for role, field in CAPACITY_FIELDS:
            capacity = getattr(instance, field)
            if capacity > old_capacity[role]:
                reserved = crud_signup.count_reserved(db, instance_id=instance.id, role=role)
                promoted.extend(
                    self.promoter.promote(
                        db,
                        instance=instance,
                        role=role,
                        slots=available_slots(reserved, capacity),
                        outbox=outbox,
                    )
                )

        outbox.publish(
            "instance-updated",
            {"instanceId": instance.id, "changes": list(update_data), "promoted": [s.id for s in promoted]},
            session_scope(instance.id),
        )

        logger.info(f"Instance {instance.id} updated by {actor.user_id}: {sorted(update_data)}")
        return EventInstanceRead.model_validate(instance)

    def set_instance_status(
        self,
        db: Session,
        *,
        instance_id: str,
        status: str,
        actor: Participant,
        reason: Optional[str] = None,
    ) -> EventInstanceRead:
        """
        Change lifecycle status. CANCELLED and COMPLETED are final.

        Raises:
            ForbiddenError: actor is not an admin.
            NotFoundError: unknown instance.
            SignupValidationError: unknown status.
            ConflictError: the instance is already closed.
        """
        if not actor.is_admin:
            raise ForbiddenError("Only administrators can change session status")
        if not InstanceStatus.is_valid(status):
            raise SignupValidationError(f"Invalid session status: {status}")

        return run_in_transaction(
            db,
            self._set_instance_status,
            notifier=self.notifier,
            instance_id=instance_id,
            status=status,
            actor=actor,
            reason=reason,
        )

    def _set_instance_status(
        self,
        db: Session,
        outbox: NotificationOutbox,
        *,
        instance_id: str,
        status: str,
        actor: Participant,
        reason: Optional[str],
    ) -> EventInstanceRead:
        instance = crud_event_instance.get_for_update(db, instance_id)
        if not instance:
            raise NotFoundError("Event instance not found")

        if instance.status in InstanceStatus.CLOSED:
            raise ConflictError(f"Session is already {instance.status.lower()}")

        if status == instance.status:
            return EventInstanceRead.model_validate(instance)

        close_instance(
            db,
            outbox,
            instance=instance,
            status=status,
            actor_id=actor.user_id,
            reason=reason,
        )
        return EventInstanceRead.model_validate(instance)

    def complete_started_instance(self, db: Session, *, instance_id: str) -> bool:
        """Sweeper step: disable and complete one instance whose start has passed."""
        return run_in_transaction(
            db, self._complete_started_instance, notifier=self.notifier, instance_id=instance_id
        )

    def _complete_started_instance(
        self, db: Session, outbox: NotificationOutbox, *, instance_id: str
    ) -> bool:
        instance = crud_event_instance.get_for_update(db, instance_id)
        if (
            not instance
            or not instance.enabled
            or instance.status != InstanceStatus.ACTIVE
            or instance.start_date is None
            or ensure_utc(instance.start_date) > utcnow()
        ):
            return False

        instance.enabled = False
        close_instance(db, outbox, instance=instance, status=InstanceStatus.COMPLETED)
        return True


# Singleton instance
instance_lifecycle = InstanceLifecycle()
