# signup_service/services/notifier.py
"""
Outbound notifications for signup state transitions.

Two sinks, both fire-and-forget over Kafka:
- live UI events (``signups.events.v1``) keyed by target scope
  (``session-<instanceId>`` or ``user-<userId>``), bridged to WebSockets
  by the real-time service;
- email requests (``signups.emails.v1``) consumed by the email service,
  which resolves the recipient address from the user id.

Operations collect their side effects in a ``NotificationOutbox`` while the
transaction runs and dispatch it only after commit, so a slow or broken
notifier never blocks or rolls back a capacity-affecting transaction.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Callable, Optional

from sqlalchemy.orm import Session

from signup_service.core.config import settings
from signup_service.core.kafka_producer import get_kafka_singleton
from signup_service.crud.crud_notification import notification as crud_notification
from signup_service.utils.dates import ensure_utc

logger = logging.getLogger(__name__)

# Kafka Topics
TOPIC_SIGNUP_EVENTS = "signups.events.v1"
TOPIC_SIGNUP_EMAILS = "signups.emails.v1"


def session_scope(instance_id: str) -> str:
    return f"session-{instance_id}"


def user_scope(user_id: str) -> str:
    return f"user-{user_id}"


class Notifier:
    """Kafka-backed publish/subscribe sink. Never raises."""

    def __init__(self, producer_factory: Callable[[], Any] = get_kafka_singleton):
        self._producer_factory = producer_factory

    def publish(self, event_type: str, payload: dict, target_scope: str) -> bool:
        """Publish a live-update event. Returns True if handed to the producer."""
        return self._send(
            TOPIC_SIGNUP_EVENTS,
            key=target_scope,
            value={"type": event_type, "scope": target_scope, "payload": payload},
        )

    def send_email(self, template: str, user_id: str, payload: dict) -> bool:
        """Request a transactional email for a participant."""
        return self._send(
            TOPIC_SIGNUP_EMAILS,
            key=user_id,
            value={"type": template, "userId": user_id, **payload},
        )

    def _send(self, topic: str, *, key: str, value: dict) -> bool:
        try:
            producer = self._producer_factory()
            if producer is None:
                logger.debug(f"Kafka producer unavailable, skipping {value.get('type')} on {topic}")
                return False

            producer.send(topic, key=key, value=value)
            return True

        except Exception as e:
            logger.error(f"Failed to publish {value.get('type')} to {topic}: {e}", exc_info=True)
            return False


@dataclass
class OutboundEvent:
    event_type: str
    payload: dict
    target_scope: str


@dataclass
class OutboundEmail:
    template: str
    user_id: str
    payload: dict


@dataclass
class NotificationOutbox:
    """Side effects queued by one transaction attempt."""

    events: list[OutboundEvent] = field(default_factory=list)
    emails: list[OutboundEmail] = field(default_factory=list)

    def publish(self, event_type: str, payload: dict, target_scope: str) -> None:
        self.events.append(OutboundEvent(event_type, payload, target_scope))

    def email(self, template: str, user_id: str, payload: dict) -> None:
        self.emails.append(OutboundEmail(template, user_id, payload))

    def dispatch(self, notifier: Notifier) -> None:
        """Send everything queued. Called only after the transaction committed."""
        for event in self.events:
            try:
                notifier.publish(event.event_type, event.payload, event.target_scope)
            except Exception:
                logger.error(f"Notifier failed for event {event.event_type}", exc_info=True)

        for message in self.emails:
            try:
                notifier.send_email(message.template, message.user_id, message.payload)
            except Exception:
                logger.error(
                    f"Notifier failed for email {message.template} to user {message.user_id}",
                    exc_info=True,
                )


def notify_user(
    db: Session,
    outbox: NotificationOutbox,
    *,
    user_id: str,
    title: str,
    description: str,
    type: str,
    instance_id: Optional[str] = None,
    event_id: Optional[str] = None,
) -> None:
    """Write an in-app notification and queue its ``notification-created`` event."""
    record = crud_notification.create(
        db,
        user_id=user_id,
        title=title,
        description=description,
        type=type,
        instance_id=instance_id,
        event_id=event_id,
    )
    outbox.publish(
        "notification-created",
        {
            "notification": {
                "id": record.id,
                "title": title,
                "description": description,
                "type": type,
                "sessionId": instance_id,
            }
        },
        user_scope(user_id),
    )


def signup_payload(signup) -> dict:
    """Serializable view of a signup for live updates."""
    notified_at = ensure_utc(signup.waitlist_notified_at)
    return {
        "id": signup.id,
        "userId": signup.user_id,
        "instanceId": signup.instance_id,
        "eventId": signup.event_id,
        "role": signup.role,
        "status": signup.status,
        "signupDate": ensure_utc(signup.signup_date),
        "waitlistNotifiedAt": notified_at,
        "offerExpiresAt": (
            notified_at + timedelta(hours=settings.OFFER_WINDOW_HOURS) if notified_at else None
        ),
    }


def instance_email_payload(instance) -> dict:
    """Instance details the email templates need."""
    return {
        "instanceId": instance.id,
        "eventId": instance.event_id,
        "eventTitle": instance.event.title if instance.event else None,
        "eventDescription": instance.event.description if instance.event else None,
        "startDate": ensure_utc(instance.start_date),
        "endDate": ensure_utc(instance.end_date),
        "location": instance.location,
    }


# Singleton instance
notifier = Notifier()
