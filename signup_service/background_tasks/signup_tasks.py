# signup_service/background_tasks/signup_tasks.py
"""
Sweeper jobs. Stateless: each tick re-derives its work from persisted
timestamps, so nothing is lost across a restart.

- expire_waitlist_offers(): every tick
- complete_started_instances(): every tick
- publish_due_events(): every tick
- send_event_reminders(): every tick

Each row is handled in its own transaction; one failing row is logged and
the rest of the batch still runs.
"""

import logging
from datetime import timedelta
from typing import Callable, Optional

from sqlalchemy.orm import Session

from signup_service.constants.signup import NotificationType, SignupStatus
from signup_service.core.config import settings
from signup_service.core.exceptions import SignupError
from signup_service.crud.crud_event import event as crud_event
from signup_service.crud.crud_event_instance import event_instance as crud_event_instance
from signup_service.crud.crud_notification import notification as crud_notification
from signup_service.crud.crud_signup import signup as crud_signup
from signup_service.db.session import SessionLocal
from signup_service.services.instance_lifecycle import InstanceLifecycle, instance_lifecycle
from signup_service.services.notifier import (
    NotificationOutbox,
    Notifier,
    instance_email_payload,
    notifier as default_notifier,
    notify_user,
)
from signup_service.services.signup_manager import SignupManager, signup_manager
from signup_service.utils.dates import ensure_utc, utcnow

logger = logging.getLogger(__name__)

REMINDER_TITLE = "Event Reminder - 24 hours"


def expire_waitlist_offers(
    session_factory: Callable[[], Session] = SessionLocal,
    manager: Optional[SignupManager] = None,
) -> int:
    """
    Background task: delete offers older than the acceptance window and
    cascade each freed slot to the next person in the same role queue.
    """
    manager = manager or signup_manager
    db = session_factory()
    expired = 0

    try:
        cutoff = utcnow() - timedelta(hours=settings.OFFER_WINDOW_HOURS)
        signup_ids = crud_signup.get_expired_offer_ids(db, notified_before=cutoff)
        db.rollback()  # release the read snapshot before per-row transactions

        for signup_id in signup_ids:
            try:
                if manager.expire_offer(db, signup_id=signup_id):
                    expired += 1
            except SignupError as e:
                logger.error(f"Failed to expire waitlist offer {signup_id}: {e.message}")
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to expire waitlist offer {signup_id}: {e}", exc_info=True)

        if expired:
            logger.info(f"Expired {expired} waitlist offer(s)")
        return expired

    except Exception as e:
        logger.error(f"Error expiring waitlist offers: {e}", exc_info=True)
        db.rollback()
        return expired

    finally:
        db.close()


def complete_started_instances(
    session_factory: Callable[[], Session] = SessionLocal,
    lifecycle: Optional[InstanceLifecycle] = None,
) -> int:
    """Background task: disable and complete ACTIVE instances whose start has passed."""
    lifecycle = lifecycle or instance_lifecycle
    db = session_factory()
    completed = 0

    try:
        instance_ids = [i.id for i in crud_event_instance.get_started_active(db, now=utcnow())]
        db.rollback()

        for instance_id in instance_ids:
            try:
                if lifecycle.complete_started_instance(db, instance_id=instance_id):
                    completed += 1
            except SignupError as e:
                logger.error(f"Failed to auto-complete instance {instance_id}: {e.message}")
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to auto-complete instance {instance_id}: {e}", exc_info=True)

        if completed:
            logger.info(f"Auto-completed {completed} started instance(s)")
        return completed

    except Exception as e:
        logger.error(f"Error auto-completing instances: {e}", exc_info=True)
        db.rollback()
        return completed

    finally:
        db.close()


def publish_due_events(session_factory: Callable[[], Session] = SessionLocal) -> int:
    """Background task: flip SCHEDULED events whose publish date has passed to PUBLISHED."""
    db = session_factory()
    published = 0

    try:
        for event in crud_event.get_due_for_publish(db, now=utcnow()):
            try:
                crud_event.publish(db, event=event)
                db.commit()
                published += 1
                logger.info(f"Published scheduled event {event.id}")
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to publish scheduled event {event.id}: {e}", exc_info=True)

        return published

    except Exception as e:
        logger.error(f"Error publishing scheduled events: {e}", exc_info=True)
        db.rollback()
        return published

    finally:
        db.close()


def send_event_reminders(
    session_factory: Callable[[], Session] = SessionLocal,
    notifier: Optional[Notifier] = None,
) -> int:
    """
    Background task: remind CONFIRMED participants of instances starting
    within the reminder lead time.

    An instance is reminded once. Participants who signed up after the
    reminder cutoff (start minus lead time) are skipped.
    """
    notifier = notifier or default_notifier
    db = session_factory()
    reminded = 0

    try:
        now = utcnow()
        lead = timedelta(hours=settings.REMINDER_LEAD_HOURS)
        instances = crud_event_instance.get_starting_between(db, start=now, end=now + lead)

        for instance in instances:
            if crud_notification.exists_for_instance(db, instance_id=instance.id, title=REMINDER_TITLE):
                continue

            outbox = NotificationOutbox()
            try:
                cutoff = ensure_utc(instance.start_date) - lead
                title = instance.event.title if instance.event else "your session"
                count = 0

                for signup in crud_signup.get_by_instance(
                    db, instance_id=instance.id, status=SignupStatus.CONFIRMED
                ):
                    if ensure_utc(signup.signup_date) >= cutoff:
                        continue
                    notify_user(
                        db,
                        outbox,
                        user_id=signup.user_id,
                        title=REMINDER_TITLE,
                        description=(
                            f'Your event "{title}" starts in {settings.REMINDER_LEAD_HOURS} hours. '
                            f"Location: {instance.location}"
                        ),
                        type=NotificationType.INFO,
                        instance_id=instance.id,
                        event_id=instance.event_id,
                    )
                    outbox.email("EVENT_REMINDER", signup.user_id, instance_email_payload(instance))
                    count += 1

                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to send reminders for instance {instance.id}: {e}", exc_info=True)
                continue

            outbox.dispatch(notifier)
            reminded += count
            if count:
                logger.info(f"Sent {count} reminder(s) for instance {instance.id}")

        return reminded

    except Exception as e:
        logger.error(f"Error sending event reminders: {e}", exc_info=True)
        db.rollback()
        return reminded

    finally:
        db.close()


def run_sweeper_tick(session_factory: Callable[[], Session] = SessionLocal) -> dict:
    """Run every sweeper job once, in order."""
    return {
        "expired_offers": expire_waitlist_offers(session_factory),
        "completed_instances": complete_started_instances(session_factory),
        "published_events": publish_due_events(session_factory),
        "reminders_sent": send_event_reminders(session_factory),
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    logger.info(f"Sweeper tick result: {run_sweeper_tick()}")
