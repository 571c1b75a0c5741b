# signup_service/services/transaction.py
"""
Transaction runner for capacity-affecting operations.

Each attempt runs the whole read-evaluate-write sequence in one transaction
and commits it. Transient store failures (lost uniqueness race, post-write
recount over capacity, lock timeouts, dropped connections) roll back and
retry with an incrementing backoff. Side effects queued in the outbox are
dispatched only after a successful commit.
"""
import logging
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError, DBAPIError
from sqlalchemy.orm import Session
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from signup_service.core.config import settings
from signup_service.core.exceptions import (
    ConflictError,
    SignupRaceError,
    CapacityRaceError,
    TransientStoreError,
)
from signup_service.services.notifier import NotificationOutbox, Notifier

logger = logging.getLogger(__name__)

T = TypeVar("T")

# How a duplicate (instance_id, user_id) insert is reported: PostgreSQL names the
# constraint, SQLite lists its columns.
DUPLICATE_SIGNUP_MARKERS = (
    "unique_instance_signup_user",
    "UNIQUE constraint failed: signups.instance_id, signups.user_id",
)


def _is_duplicate_signup(e: IntegrityError) -> bool:
    message = str(e.orig)
    return any(marker in message for marker in DUPLICATE_SIGNUP_MARKERS)


def _attempt(db: Session, operation: Callable[..., T], outbox: NotificationOutbox, kwargs: dict) -> T:
    try:
        result = operation(db, outbox, **kwargs)
        db.commit()
        return result
    except IntegrityError as e:
        db.rollback()
        if _is_duplicate_signup(e):
            raise SignupRaceError("Already signed up for this event instance") from e
        logger.warning(f"Integrity error in {operation.__name__}: {e.orig}")
        raise TransientStoreError("Temporary database error, please retry") from e
    except (OperationalError, DBAPIError) as e:
        db.rollback()
        logger.warning(f"Transient store error in {operation.__name__}: {e}")
        raise TransientStoreError("Temporary database error, please retry") from e
    except Exception:
        db.rollback()
        raise


def run_in_transaction(
    db: Session,
    operation: Callable[..., T],
    *,
    notifier: Notifier,
    max_attempts: Optional[int] = None,
    **kwargs,
) -> T:
    """
    Run ``operation(db, outbox, **kwargs)`` atomically with bounded retries.

    Raises:
        ConflictError: a race was lost on every attempt.
        TransientStoreError: the store kept failing.
        SignupError: any domain error raised by the operation (not retried).
    """
    backoff = settings.SIGNUP_RETRY_BACKOFF_SECONDS
    retrying = Retrying(
        stop=stop_after_attempt(max_attempts or settings.SIGNUP_MAX_ATTEMPTS),
        wait=wait_incrementing(start=backoff, increment=backoff),
        retry=retry_if_exception_type(TransientStoreError),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )

    try:
        for attempt in retrying:
            with attempt:
                outbox = NotificationOutbox()
                result = _attempt(db, operation, outbox, kwargs)
    except (SignupRaceError, CapacityRaceError) as e:
        logger.warning(f"{operation.__name__} lost a race on every attempt: {e.message}")
        raise ConflictError(e.message) from e

    outbox.dispatch(notifier)
    return result
