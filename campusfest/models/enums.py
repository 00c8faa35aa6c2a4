"""
Status and type vocabularies shared by models, schemas and services.
Stored as plain strings; CHECK constraints in the models keep them honest.
"""

from enum import Enum


class UserRole(str, Enum):
    PARTICIPANT = "participant"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class ParticipantType(str, Enum):
    INTERNAL = "internal"
    EXTERNAL = "external"


class EventType(str, Enum):
    STANDARD = "standard"
    MERCHANDISE = "merchandise"


class EventStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ONGOING = "ongoing"
    COMPLETED = "completed"
    CLOSED = "closed"


class Eligibility(str, Enum):
    ALL = "all"
    INTERNAL = "internal"


class RegistrationStatus(str, Enum):
    REGISTERED = "registered"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


class TeamStatus(str, Enum):
    FORMING = "forming"
    READY = "ready"
    REGISTERED = "registered"


class MemberStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


# Phases in which registrations and purchases are accepted
OPEN_STATUSES = frozenset({EventStatus.PUBLISHED, EventStatus.ONGOING})

# Registration states that occupy the participant's slot for the event
INACTIVE_REGISTRATION_STATUSES = frozenset({RegistrationStatus.CANCELLED, RegistrationStatus.REJECTED})


def sql_in(enum_cls) -> str:
    """Render an enum as the body of a SQL IN (...) list for CHECK constraints."""
    return ", ".join(f"'{member.value}'" for member in enum_cls)
