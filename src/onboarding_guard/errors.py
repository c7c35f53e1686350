"""Typed rejections raised by the guard.

Each carries an HTTP-equivalent status code and a client-facing message.
"""

from __future__ import annotations

EMAIL_REQUIRED_FOR_GERMANY = "Email is mandatory for customers in Germany"
ONBOARDING_NOT_FOUND = "Customer onboarding request not found"
ALREADY_SUBMITTED = "Request already submitted"


class GuardError(Exception):
    """Base class for expected, user-facing rejections."""

    status_code: int = 400

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {"error": self.message, "status": self.status_code}


class ValidationError(GuardError):
    """Input violates a domain rule -> 400."""

    status_code = 400


class NotFoundError(GuardError):
    """Referenced record does not exist -> 404."""

    status_code = 404


class ConflictError(GuardError):
    """Transition is illegal from the current state -> 400."""

    status_code = 400
