# signup_service/core/exceptions.py
"""
Typed errors raised by the signup core.

Every error carries a stable ``code`` and an HTTP-ish ``status_code`` so the
calling layer can render a message without parsing free text.
"""
from typing import Any, Optional


class SignupError(Exception):
    code = "SIGNUP_ERROR"
    status_code = 400

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class NotFoundError(SignupError):
    code = "NOT_FOUND"
    status_code = 404


class ForbiddenError(SignupError):
    code = "FORBIDDEN"
    status_code = 403


class ConflictError(SignupError):
    code = "CONFLICT"
    status_code = 409


class RateLimitedError(SignupError):
    code = "RATE_LIMITED"
    status_code = 429


class OfferExpiredError(SignupError):
    code = "EXPIRED"
    status_code = 410


class SignupValidationError(SignupError):
    code = "VALIDATION_ERROR"
    status_code = 400


class TransientStoreError(SignupError):
    """Store failure that is safe to retry (lock timeout, dropped connection...)."""

    code = "TRANSIENT"
    status_code = 503


class SignupRaceError(TransientStoreError):
    """A concurrent writer won the (instance, user) uniqueness race."""


class CapacityRaceError(TransientStoreError):
    """Post-write recount found the role pool over capacity with waitlist disabled."""
