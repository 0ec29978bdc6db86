"""
Domain errors raised by the booking, ledger, shift and report services.

Each error carries the HTTP status it maps to, a stable machine code and a
human-readable message that is safe to show to the caller. The API layer
renders them through a single exception handler (see tutorbook.api.errors).
"""

from typing import Any, Dict, Optional

from fastapi import status


class DomainError(Exception):
    """Base class for every error the services raise on purpose."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request could not be processed"

    def __init__(
        self,
        message: Optional[str] = None,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(DomainError):
    default_message = "Invalid request"


class Unauthenticated(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Not authenticated"


class PermissionDenied(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "Not allowed to act on this resource"


class NotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found"


# Business-rule violations: always 400, never retried automatically.

class InsufficientBalance(DomainError):
    default_message = "Not enough tickets"


class ShiftNotAvailable(DomainError):
    default_message = "Shift is no longer available"


class ShiftInUse(DomainError):
    default_message = "Shift is booked and cannot be withdrawn"


class PastDateImmutable(DomainError):
    default_message = "Shifts before yesterday can no longer be changed"


class PastCancelDeadline(DomainError):
    default_message = "The cancellation deadline for this lesson has passed"


class AlreadyTerminal(DomainError):
    default_message = "Booking is no longer active"


class LessonNotFinished(DomainError):
    default_message = "Reports can only be written after the lesson date"


class PersistenceFailure(DomainError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"
