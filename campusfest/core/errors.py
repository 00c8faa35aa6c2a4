"""
Rejection taxonomy for admission, purchase and team operations.

Every expected failure is an AdmissionError carrying a category (what kind
of failure), a machine-readable reason code and a human-readable message.
Callers branch on ``reason``; the message is for people.

Integrity violations (ticket collision, counter underflow) are defects, not
rejections. A ticket collision is raised, logged at error severity by the
exception handler and rendered without internal detail. A counter underflow
is floored at zero and logged under its reason code; the release completes.
"""

from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    VALIDATION = "validation"
    PRECONDITION = "precondition"
    CONFLICT = "conflict"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    INTEGRITY = "integrity"


class RejectionReason(str, Enum):
    # precondition
    EVENT_NOT_OPEN = "EVENT_NOT_OPEN"
    DEADLINE_PASSED = "DEADLINE_PASSED"
    WRONG_EVENT_TYPE = "WRONG_EVENT_TYPE"
    NOT_ELIGIBLE = "NOT_ELIGIBLE"
    WAITLIST_NOT_NEEDED = "WAITLIST_NOT_NEEDED"
    TEAM_NOT_READY = "TEAM_NOT_READY"
    TEAM_FROZEN = "TEAM_FROZEN"
    NOT_A_MEMBER = "NOT_A_MEMBER"
    ALREADY_RESPONDED = "ALREADY_RESPONDED"
    ALREADY_ATTENDED = "ALREADY_ATTENDED"
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    ORDER_NOT_PENDING = "ORDER_NOT_PENDING"
    CANCELLATION_NOT_ALLOWED = "CANCELLATION_NOT_ALLOWED"

    # validation
    INVALID_FORM_RESPONSE = "INVALID_FORM_RESPONSE"
    INVALID_TEAM_ROSTER = "INVALID_TEAM_ROSTER"
    INVALID_EVENT = "INVALID_EVENT"

    # conflict
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    ALREADY_REGISTERED = "ALREADY_REGISTERED"
    ALREADY_WAITLISTED = "ALREADY_WAITLISTED"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    PURCHASE_LIMIT_EXCEEDED = "PURCHASE_LIMIT_EXCEEDED"
    ALREADY_IN_ANOTHER_TEAM = "ALREADY_IN_ANOTHER_TEAM"
    TEAM_FULL = "TEAM_FULL"
    ALREADY_INVITED = "ALREADY_INVITED"
    TEAM_EXISTS = "TEAM_EXISTS"
    ORDER_ALREADY_APPROVED = "ORDER_ALREADY_APPROVED"

    # not found
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    ITEM_NOT_FOUND = "ITEM_NOT_FOUND"
    TEAM_NOT_FOUND = "TEAM_NOT_FOUND"
    MEMBER_NOT_FOUND = "MEMBER_NOT_FOUND"
    REGISTRATION_NOT_FOUND = "REGISTRATION_NOT_FOUND"
    TICKET_NOT_FOUND = "TICKET_NOT_FOUND"

    # forbidden
    NOT_TEAM_LEADER = "NOT_TEAM_LEADER"
    NOT_EVENT_ORGANIZER = "NOT_EVENT_ORGANIZER"
    ROLE_REQUIRED = "ROLE_REQUIRED"

    # integrity
    TICKET_COLLISION = "TICKET_COLLISION"
    COUNTER_UNDERFLOW = "COUNTER_UNDERFLOW"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AdmissionError(Exception):
    """Base class for structured rejections."""

    category: ErrorCategory = ErrorCategory.PRECONDITION
    status_code: int = 400

    def __init__(self, reason: RejectionReason, message: str, **extra: Any) -> None:
        self.reason = reason
        self.message = message
        self.extra = extra
        super().__init__(message)

    def __str__(self) -> str:
        return f"{self.reason.value}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "reason": self.reason.value,
            "message": self.message,
            **self.extra,
        }


class ValidationFailed(AdmissionError):
    category = ErrorCategory.VALIDATION
    status_code = 422


class PreconditionFailed(AdmissionError):
    category = ErrorCategory.PRECONDITION
    status_code = 400


class ConflictError(AdmissionError):
    category = ErrorCategory.CONFLICT
    status_code = 409


class NotFoundError(AdmissionError):
    category = ErrorCategory.NOT_FOUND
    status_code = 404


class ForbiddenError(AdmissionError):
    category = ErrorCategory.FORBIDDEN
    status_code = 403


class IntegrityViolation(AdmissionError):
    category = ErrorCategory.INTEGRITY
    status_code = 500

    def to_dict(self) -> dict[str, Any]:
        # never expose internal state to the caller
        return {
            "category": self.category.value,
            "reason": RejectionReason.INTERNAL_ERROR.value,
            "message": "The operation could not be completed. Please try again.",
        }
