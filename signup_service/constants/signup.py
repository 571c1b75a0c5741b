# signup_service/constants/signup.py
"""
Constants for signup, instance and event status values.

Provides type-safe constants to replace hardcoded strings throughout the codebase.
"""


class SignupStatus:
    """Signup status values."""
    CONFIRMED = "CONFIRMED"
    WAITLIST = "WAITLIST"
    WAITLIST_PENDING = "WAITLIST_PENDING"
    CANCELLED = "CANCELLED"

    # Statuses that consume a slot of the role pool
    RESERVED = (CONFIRMED, WAITLIST_PENDING)
    # Statuses that count as "on the waitlist" for position queries
    WAITLISTED = (WAITLIST, WAITLIST_PENDING)

    @classmethod
    def all_values(cls) -> list[str]:
        """Return all valid status values."""
        return [cls.CONFIRMED, cls.WAITLIST, cls.WAITLIST_PENDING, cls.CANCELLED]

    @classmethod
    def is_valid(cls, status: str) -> bool:
        """Check if a status value is valid."""
        return status in cls.all_values()


class ParticipantRole:
    """Role pools. Each role has its own capacity and its own waitlist."""
    STUDENT = "STUDENT"
    PARENT = "PARENT"

    @classmethod
    def all_values(cls) -> list[str]:
        return [cls.STUDENT, cls.PARENT]

    @classmethod
    def is_valid(cls, role: str) -> bool:
        return role in cls.all_values()


class InstanceStatus:
    """Event instance lifecycle values."""
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    CLOSED = (COMPLETED, CANCELLED)

    @classmethod
    def all_values(cls) -> list[str]:
        return [cls.ACTIVE, cls.COMPLETED, cls.CANCELLED]

    @classmethod
    def is_valid(cls, status: str) -> bool:
        return status in cls.all_values()


class EventStatus:
    """Event publication values."""
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    PUBLISHED = "PUBLISHED"
    ARCHIVED = "ARCHIVED"


class NotificationType:
    """In-app notification severity."""
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
