# signup_service/services/signup_manager.py
"""
Signup manager: create, cancel, delete and waitlist-offer transitions.

Every capacity-affecting operation runs through ``run_in_transaction``: the
instance row is locked, the role pool is counted, the write is made and, for
new CONFIRMED rows, the pool is recounted before commit. If a concurrent
writer slipped in, the late row is demoted to WAITLIST (or the attempt is
rolled back when the waitlist is disabled), so an instance never ends up
with more CONFIRMED rows than its role capacity.
"""
import logging
from datetime import timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from signup_service.constants.signup import (
    EventStatus,
    InstanceStatus,
    NotificationType,
    SignupStatus,
)
from signup_service.core.config import settings
from signup_service.core.exceptions import (
    CapacityRaceError,
    ConflictError,
    ForbiddenError,
    NotFoundError,
    OfferExpiredError,
    RateLimitedError,
    SignupError,
)
from signup_service.crud.crud_event_instance import event_instance as crud_event_instance
from signup_service.crud.crud_signup import signup as crud_signup
from signup_service.models.event_instance import EventInstance
from signup_service.models.signup import Signup
from signup_service.schemas.signup import (
    AcceptOfferResult,
    BulkRemovalItem,
    CancelSignupResult,
    CreateSignupResult,
    DeclineOfferResult,
    DeleteSignupResult,
    ExpireOfferResult,
    Participant,
    ScheduleConflict,
    SignupRead,
    WaitlistPosition,
)
from signup_service.services.capacity import SignupDecision, decide
from signup_service.services.notifier import (
    NotificationOutbox,
    Notifier,
    instance_email_payload,
    notifier as default_notifier,
    notify_user,
    session_scope,
    signup_payload,
)
from signup_service.services.transaction import run_in_transaction
from signup_service.services.waitlist_promoter import (
    WaitlistPromoter,
    waitlist_promoter as default_promoter,
)
from signup_service.utils.dates import ensure_utc, ranges_overlap, utcnow

logger = logging.getLogger(__name__)


def _event_title(instance: EventInstance) -> str:
    return instance.event.title if instance.event else "this session"


class SignupManager:
    """Entry point for every signup state transition."""

    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        promoter: Optional[WaitlistPromoter] = None,
    ):
        self.notifier = notifier or default_notifier
        self.promoter = promoter or default_promoter

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #

    def create_signup(
        self, db: Session, *, participant: Participant, instance_id: str
    ) -> CreateSignupResult:
        """
        Sign a participant up for an instance.

        Lands CONFIRMED while the role pool has room, WAITLIST when it is
        full and the waitlist is on. A CANCELLED row for the same user is
        revived in place at the back of the queue.

        Raises:
            RateLimitedError: the user signed up for this instance moments ago.
            NotFoundError: unknown instance.
            ForbiddenError: event unpublished, instance disabled or cancelled.
            ConflictError: already signed up, or full with the waitlist off.
        """
        return run_in_transaction(
            db,
            self._create_signup,
            notifier=self.notifier,
            participant=participant,
            instance_id=instance_id,
        )

    def _create_signup(
        self,
        db: Session,
        outbox: NotificationOutbox,
        *,
        participant: Participant,
        instance_id: str,
    ) -> CreateSignupResult:
        now = utcnow()
        since = now - timedelta(seconds=settings.RESIGNUP_DEBOUNCE_SECONDS)
        if crud_signup.has_recent_signup(
            db, instance_id=instance_id, user_id=participant.user_id, since=since
        ):
            raise RateLimitedError(
                f"Please wait {settings.RESIGNUP_DEBOUNCE_SECONDS} seconds before trying to sign up again"
            )

        instance = crud_event_instance.get_for_update(db, instance_id)
        if not instance:
            raise NotFoundError("Event instance not found")

        event = instance.event
        if event is None:
            raise NotFoundError("Event not found")
        if event.status != EventStatus.PUBLISHED and not participant.is_admin:
            raise ForbiddenError("Event is not open for signups")
        if instance.status == InstanceStatus.CANCELLED:
            raise ForbiddenError("This session has been cancelled")
        if not instance.enabled or instance.status != InstanceStatus.ACTIVE:
            raise ForbiddenError("This session is not open for signups")

        existing = crud_signup.get_by_participant(
            db, instance_id=instance_id, user_id=participant.user_id
        )
        if existing and existing.status != SignupStatus.CANCELLED:
            raise ConflictError("Already signed up for this event instance")

        role = participant.role
        capacity = instance.capacity_for(role)
        reserved = crud_signup.count_reserved(db, instance_id=instance_id, role=role)
        decision = decide(reserved, capacity, instance.waitlist_enabled)

        logger.info(
            f"Signup decision for user {participant.user_id} on {instance_id}: "
            f"{decision} ({role} {reserved}/{capacity})"
        )

        if decision == SignupDecision.REJECTED:
            raise ConflictError("Session is full and waitlist is disabled")

        if existing:
            signup = crud_signup.revive(
                db, signup=existing, role=role, status=decision, signup_date=now
            )
        else:
            signup = crud_signup.create(
                db,
                instance_id=instance_id,
                event_id=instance.event_id,
                user_id=participant.user_id,
                role=role,
                status=decision,
                signup_date=now,
            )

        if signup.status == SignupStatus.CONFIRMED:
            confirmed = crud_signup.count_confirmed(db, instance_id=instance_id, role=role)
            if confirmed > capacity:
                logger.warning(
                    f"Capacity race on {instance_id}: {confirmed} {role} confirmed for {capacity} seats"
                )
                if not instance.waitlist_enabled:
                    raise CapacityRaceError("Session is full and waitlist is disabled")
                crud_signup.set_status(db, signup=signup, status=SignupStatus.WAITLIST)

        outbox.publish(
            "signup-created",
            {"signup": signup_payload(signup)},
            session_scope(instance_id),
        )
        outbox.email(
            "SIGNUP_CONFIRMATION",
            participant.user_id,
            {**instance_email_payload(instance), "status": signup.status},
        )

        if signup.status == SignupStatus.CONFIRMED:
            message = "Signed up successfully"
        else:
            message = "Session is full, you have been added to the waitlist"

        return CreateSignupResult(
            signup=SignupRead.model_validate(signup),
            status=signup.status,
            message=message,
        )

    # ------------------------------------------------------------------ #
    # Cancel / delete
    # ------------------------------------------------------------------ #

    def _lock_signup(self, db: Session, signup_id: str) -> Tuple[Signup, EventInstance]:
        """Lock the signup's instance, then reload the signup under that lock."""
        signup = crud_signup.get(db, signup_id)
        if not signup:
            raise NotFoundError("Signup not found")

        instance = crud_event_instance.get_for_update(db, signup.instance_id)
        signup = crud_signup.get(db, signup_id, refresh=True)
        if not signup or not instance:
            raise NotFoundError("Signup not found")
        return signup, instance

    @staticmethod
    def _check_owner_or_admin(signup: Signup, actor: Participant) -> bool:
        """Returns True when the actor is acting on someone else's signup as admin."""
        if signup.user_id == actor.user_id:
            return False
        if not actor.is_admin:
            raise ForbiddenError("You can only modify your own signups")
        return True

    def _notify_removed(
        self, db: Session, outbox: NotificationOutbox, signup: Signup, instance: EventInstance
    ) -> None:
        notify_user(
            db,
            outbox,
            user_id=signup.user_id,
            title="Removed from Event",
            description=f'You have been removed from "{_event_title(instance)}" by an administrator.',
            type=NotificationType.WARNING,
            instance_id=instance.id,
            event_id=instance.event_id,
        )
        outbox.email("SIGNUP_REMOVED", signup.user_id, instance_email_payload(instance))

    def cancel_signup(
        self, db: Session, *, signup_id: str, actor: Participant
    ) -> CancelSignupResult:
        """
        Mark a signup CANCELLED (the row is kept and can be revived).

        A freed CONFIRMED or WAITLIST_PENDING slot is offered to the next
        person in the same role's queue.
        """
        return run_in_transaction(
            db, self._cancel_signup, notifier=self.notifier, signup_id=signup_id, actor=actor
        )

    def _cancel_signup(
        self, db: Session, outbox: NotificationOutbox, *, signup_id: str, actor: Participant
    ) -> CancelSignupResult:
        signup, instance = self._lock_signup(db, signup_id)
        by_admin = self._check_owner_or_admin(signup, actor)

        if signup.status == SignupStatus.CANCELLED:
            raise ConflictError("Signup is already cancelled")

        freed = signup.status in SignupStatus.RESERVED
        crud_signup.set_status(db, signup=signup, status=SignupStatus.CANCELLED)
        signup.cancelled_at = utcnow()
        db.flush()

        if by_admin:
            self._notify_removed(db, outbox, signup, instance)

        outbox.publish(
            "signup-updated",
            {"signup": signup_payload(signup)},
            session_scope(instance.id),
        )

        promoted = []
        if freed:
            promoted = self.promoter.promote(
                db, instance=instance, role=signup.role, slots=1, outbox=outbox
            )

        logger.info(f"Signup {signup_id} cancelled by {actor.user_id}")
        return CancelSignupResult(
            signup=SignupRead.model_validate(signup),
            promoted=[SignupRead.model_validate(s) for s in promoted],
        )

    def delete_signup(
        self, db: Session, *, signup_id: str, actor: Participant
    ) -> DeleteSignupResult:
        """Hard-delete a signup and cascade any freed slot to the waitlist."""
        return run_in_transaction(
            db, self._delete_signup, notifier=self.notifier, signup_id=signup_id, actor=actor
        )

    def _delete_signup(
        self, db: Session, outbox: NotificationOutbox, *, signup_id: str, actor: Participant
    ) -> DeleteSignupResult:
        signup, instance = self._lock_signup(db, signup_id)
        by_admin = self._check_owner_or_admin(signup, actor)

        freed = signup.status in SignupStatus.RESERVED
        role = signup.role
        user_id = signup.user_id

        if by_admin:
            self._notify_removed(db, outbox, signup, instance)

        crud_signup.delete(db, signup=signup)

        outbox.publish(
            "signup-updated",
            {"signup": {"id": signup_id, "userId": user_id, "status": "DELETED"}},
            session_scope(instance.id),
        )

        promoted = []
        if freed:
            promoted = self.promoter.promote(
                db, instance=instance, role=role, slots=1, outbox=outbox
            )

        logger.info(f"Signup {signup_id} deleted by {actor.user_id}")
        return DeleteSignupResult(
            signup_id=signup_id,
            promoted=[SignupRead.model_validate(s) for s in promoted],
        )

    def bulk_remove(
        self, db: Session, *, signup_ids: List[str], actor: Participant
    ) -> List[BulkRemovalItem]:
        """
        Remove several signups, each in its own transaction.

        Best effort: a failing item is reported and the rest still run.
        """
        if not actor.is_admin:
            raise ForbiddenError("Only administrators can remove signups in bulk")

        results = []
        for signup_id in signup_ids:
            try:
                outcome = self.delete_signup(db, signup_id=signup_id, actor=actor)
                results.append(
                    BulkRemovalItem(
                        signup_id=signup_id,
                        success=True,
                        promoted=[s.id for s in outcome.promoted],
                    )
                )
            except SignupError as e:
                logger.warning(f"Bulk removal of {signup_id} failed: {e.message}")
                results.append(
                    BulkRemovalItem(
                        signup_id=signup_id,
                        success=False,
                        error_code=e.code,
                        message=e.message,
                    )
                )
            except Exception as e:
                db.rollback()
                logger.error(f"Bulk removal of {signup_id} failed: {e}", exc_info=True)
                results.append(
                    BulkRemovalItem(
                        signup_id=signup_id,
                        success=False,
                        error_code="INTERNAL",
                        message="Unexpected error while removing signup",
                    )
                )

        removed = sum(1 for r in results if r.success)
        logger.info(f"Bulk removal by {actor.user_id}: {removed}/{len(signup_ids)} removed")
        return results

    # ------------------------------------------------------------------ #
    # Waitlist offers
    # ------------------------------------------------------------------ #

    def accept_offer(
        self, db: Session, *, participant: Participant, instance_id: str
    ) -> AcceptOfferResult:
        """
        Accept an open waitlist offer.

        Raises:
            NotFoundError: no WAITLIST_PENDING row for this user and instance.
            OfferExpiredError: the offer window has passed.
            ConflictError: capacity was reduced and the pool is full.
        """
        return run_in_transaction(
            db,
            self._accept_offer,
            notifier=self.notifier,
            participant=participant,
            instance_id=instance_id,
        )

    def _accept_offer(
        self,
        db: Session,
        outbox: NotificationOutbox,
        *,
        participant: Participant,
        instance_id: str,
    ) -> AcceptOfferResult:
        instance = crud_event_instance.get_for_update(db, instance_id)
        if not instance:
            raise NotFoundError("Event instance not found")

        pending = crud_signup.get_pending(
            db, instance_id=instance_id, user_id=participant.user_id
        )
        if not pending:
            raise NotFoundError("No pending waitlist spot found")

        now = utcnow()
        notified_at = ensure_utc(pending.waitlist_notified_at)
        if notified_at and notified_at < now - timedelta(hours=settings.OFFER_WINDOW_HOURS):
            raise OfferExpiredError(
                f"The {settings.OFFER_WINDOW_HOURS}-hour acceptance period has expired"
            )

        capacity = instance.capacity_for(pending.role)
        confirmed = crud_signup.count_confirmed(db, instance_id=instance_id, role=pending.role)
        if confirmed >= capacity:
            raise ConflictError("Session capacity was changed and there is no longer room available")

        crud_signup.set_status(db, signup=pending, status=SignupStatus.CONFIRMED)
        pending.signup_date = now
        db.flush()

        notify_user(
            db,
            outbox,
            user_id=pending.user_id,
            title="Waitlist Spot Accepted",
            description=f'You have successfully accepted your spot for "{_event_title(instance)}".',
            type=NotificationType.SUCCESS,
            instance_id=instance.id,
            event_id=instance.event_id,
        )
        outbox.publish(
            "waitlist-accepted",
            {"signup": signup_payload(pending)},
            session_scope(instance.id),
        )
        outbox.email(
            "SIGNUP_CONFIRMATION",
            pending.user_id,
            {**instance_email_payload(instance), "status": SignupStatus.CONFIRMED},
        )

        logger.info(f"User {participant.user_id} accepted waitlist offer for {instance_id}")
        return AcceptOfferResult(
            signup=SignupRead.model_validate(pending),
            message="Successfully accepted waitlist spot",
        )

    def decline_offer(
        self, db: Session, *, participant: Participant, instance_id: str
    ) -> DeclineOfferResult:
        """Decline an open offer; the row is deleted and the next person is offered the slot."""
        return run_in_transaction(
            db,
            self._decline_offer,
            notifier=self.notifier,
            participant=participant,
            instance_id=instance_id,
        )

    def _decline_offer(
        self,
        db: Session,
        outbox: NotificationOutbox,
        *,
        participant: Participant,
        instance_id: str,
    ) -> DeclineOfferResult:
        instance = crud_event_instance.get_for_update(db, instance_id)
        if not instance:
            raise NotFoundError("Event instance not found")

        pending = crud_signup.get_pending(
            db, instance_id=instance_id, user_id=participant.user_id
        )
        if not pending:
            raise NotFoundError("No pending waitlist spot found")

        declined_id = pending.id
        role = pending.role
        crud_signup.delete(db, signup=pending)

        notify_user(
            db,
            outbox,
            user_id=participant.user_id,
            title="Waitlist Spot Declined",
            description=f'You have declined your waitlist spot for "{_event_title(instance)}".',
            type=NotificationType.INFO,
            instance_id=instance.id,
            event_id=instance.event_id,
        )

        promoted = self.promoter.promote(db, instance=instance, role=role, slots=1, outbox=outbox)
        next_promoted = promoted[0] if promoted else None

        outbox.publish(
            "waitlist-declined",
            {
                "signupId": declined_id,
                "userId": participant.user_id,
                "nextPromotedId": next_promoted.id if next_promoted else None,
            },
            session_scope(instance.id),
        )

        logger.info(f"User {participant.user_id} declined waitlist offer for {instance_id}")
        return DeclineOfferResult(
            declined_signup_id=declined_id,
            next_promoted=SignupRead.model_validate(next_promoted) if next_promoted else None,
            message="Declined waitlist spot",
        )

    def expire_offer(self, db: Session, *, signup_id: str) -> Optional[ExpireOfferResult]:
        """
        Expire one stale offer and hand the slot to the next in line.

        Returns None (no-op) when the offer was accepted, declined or is not
        yet past its window by the time the lock is held.
        """
        return run_in_transaction(
            db, self._expire_offer, notifier=self.notifier, signup_id=signup_id
        )

    def _expire_offer(
        self, db: Session, outbox: NotificationOutbox, *, signup_id: str
    ) -> Optional[ExpireOfferResult]:
        signup = crud_signup.get(db, signup_id)
        if not signup:
            return None

        instance = crud_event_instance.get_for_update(db, signup.instance_id)
        signup = crud_signup.get(db, signup_id, refresh=True)
        if not signup or not instance or signup.status != SignupStatus.WAITLIST_PENDING:
            return None

        notified_at = ensure_utc(signup.waitlist_notified_at)
        cutoff = utcnow() - timedelta(hours=settings.OFFER_WINDOW_HOURS)
        if notified_at is None or notified_at > cutoff:
            return None

        user_id = signup.user_id
        role = signup.role
        crud_signup.delete(db, signup=signup)

        notify_user(
            db,
            outbox,
            user_id=user_id,
            title="Waitlist Period Expired",
            description=(
                f"Your {settings.OFFER_WINDOW_HOURS}-hour waitlist acceptance period for "
                f'"{_event_title(instance)}" has expired. The spot has been offered to the next person.'
            ),
            type=NotificationType.WARNING,
            instance_id=instance.id,
            event_id=instance.event_id,
        )
        outbox.publish(
            "waitlist-expired",
            {"signupId": signup_id, "userId": user_id},
            session_scope(instance.id),
        )

        promoted = self.promoter.promote(db, instance=instance, role=role, slots=1, outbox=outbox)
        next_promoted = promoted[0] if promoted else None

        logger.info(f"Waitlist offer {signup_id} for user {user_id} expired")
        return ExpireOfferResult(
            expired_signup_id=signup_id,
            user_id=user_id,
            instance_id=instance.id,
            next_promoted=SignupRead.model_validate(next_promoted) if next_promoted else None,
        )

    # ------------------------------------------------------------------ #
    # Read-only queries
    # ------------------------------------------------------------------ #

    def get_waitlist_position(
        self, db: Session, *, participant: Participant, instance_id: str
    ) -> WaitlistPosition:
        """1-based place in the participant's role queue (WAITLIST and WAITLIST_PENDING)."""
        own = crud_signup.get_by_participant(
            db, instance_id=instance_id, user_id=participant.user_id
        )
        if not own or own.status not in SignupStatus.WAITLISTED:
            raise NotFoundError("You are not on the waitlist for this session")

        queue = crud_signup.get_waitlist_queue(
            db,
            instance_id=instance_id,
            role=own.role,
            statuses=SignupStatus.WAITLISTED,
        )
        position = next(i for i, entry in enumerate(queue, start=1) if entry.id == own.id)

        return WaitlistPosition(
            instance_id=instance_id,
            role=own.role,
            status=own.status,
            position=position,
            total=len(queue),
            waitlist_notified_at=own.waitlist_notified_at,
        )

    def check_conflicts(
        self, db: Session, *, participant: Participant, instance_id: str
    ) -> List[ScheduleConflict]:
        """The participant's reserved instances whose time range overlaps the target."""
        target = crud_event_instance.get(db, instance_id)
        if not target:
            raise NotFoundError("Event instance not found")
        if not target.start_date or not target.end_date:
            return []

        conflicts = []
        for other in crud_signup.get_reserved_for_user(
            db, user_id=participant.user_id, exclude_instance_id=instance_id
        ):
            inst = other.instance
            if not inst or not inst.start_date or not inst.end_date:
                continue
            if ranges_overlap(target.start_date, target.end_date, inst.start_date, inst.end_date):
                conflicts.append(
                    ScheduleConflict(
                        signup_id=other.id,
                        instance_id=inst.id,
                        event_id=inst.event_id,
                        event_title=inst.event.title if inst.event else None,
                        start_date=inst.start_date,
                        end_date=inst.end_date,
                        status=other.status,
                    )
                )
        return conflicts


# Singleton instance
signup_manager = SignupManager()
