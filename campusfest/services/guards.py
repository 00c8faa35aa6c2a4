"""
Preconditions and transaction helpers shared by the admission, inventory
and team services.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from campusfest.core.errors import (
    AdmissionError, ForbiddenError, IntegrityViolation, NotFoundError,
    PreconditionFailed, RejectionReason,
)
from campusfest.core.logging import get_logger
from campusfest.db.base import utcnow
from campusfest.models.enums import OPEN_STATUSES, Eligibility, ParticipantType, UserRole
from campusfest.models.event import Event
from campusfest.models.registration import Registration
from campusfest.models.user import User
from campusfest.services.status_service import derive_status

logger = get_logger(__name__)


async def load_event(db: AsyncSession, event_id: int, *, for_update: bool = False) -> Event:
    """
    Fetch an event or raise EVENT_NOT_FOUND.

    With for_update the row is locked (PostgreSQL) and re-read even if the
    session already holds a copy.
    """
    stmt = select(Event).where(Event.id == event_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    event = (await db.execute(stmt)).scalar_one_or_none()
    if event is None:
        raise NotFoundError(RejectionReason.EVENT_NOT_FOUND, f"Event {event_id} not found")
    return event


def ensure_open(event: Event, now: Optional[datetime] = None, *, action: str = "Registration") -> None:
    """Registration/purchase phase check against the time-derived status and deadline."""
    now = now or utcnow()
    status = derive_status(event, now)
    if status not in OPEN_STATUSES:
        raise PreconditionFailed(
            RejectionReason.EVENT_NOT_OPEN,
            f"{action} for this event is not open.",
            event_status=status.value,
        )
    if event.registration_deadline and now > event.registration_deadline:
        raise PreconditionFailed(
            RejectionReason.DEADLINE_PASSED,
            f"{action} deadline has passed.",
            deadline=event.registration_deadline.isoformat(),
        )


def ensure_eligible(event: Event, user: User) -> None:
    if event.eligibility == Eligibility.INTERNAL.value and user.participant_type != ParticipantType.INTERNAL.value:
        raise PreconditionFailed(
            RejectionReason.NOT_ELIGIBLE,
            "This event is restricted to internal participants.",
        )


def ensure_event_organizer(event: Event, user: User) -> None:
    if user.role == UserRole.ADMIN.value:
        return
    if event.organizer_id != user.id:
        raise ForbiddenError(RejectionReason.NOT_EVENT_ORGANIZER, "You do not manage this event.")


async def find_registration(
    db: AsyncSession,
    event_id: int,
    participant_id: int,
    *,
    for_update: bool = False,
) -> Optional[Registration]:
    stmt = select(Registration).where(
        Registration.event_id == event_id,
        Registration.participant_id == participant_id,
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    return (await db.execute(stmt)).scalar_one_or_none()


async def load_registration(db: AsyncSession, registration_id: int, *, for_update: bool = False) -> Registration:
    stmt = select(Registration).where(Registration.id == registration_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    registration = (await db.execute(stmt)).scalar_one_or_none()
    if registration is None:
        raise NotFoundError(RejectionReason.REGISTRATION_NOT_FOUND, "Registration not found")
    return registration


def _is_ticket_collision(exc: IntegrityError) -> bool:
    return "ticket_id" in str(exc.orig)


@asynccontextmanager
async def unit_of_work(db: AsyncSession, conflict: Optional[AdmissionError] = None) -> AsyncIterator[None]:
    """
    Commit everything written inside the block, or nothing.

    A unique-constraint race lost to another process surfaces as `conflict`
    when given. Any other integrity failure is a defect: logged at error
    severity and raised as IntegrityViolation.
    """
    try:
        yield
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if conflict is not None and not _is_ticket_collision(e):
            raise conflict from e
        logger.error("integrity_violation", error=str(e.orig))
        raise IntegrityViolation(
            RejectionReason.TICKET_COLLISION if _is_ticket_collision(e) else RejectionReason.INTERNAL_ERROR,
            "Storage rejected the write",
        ) from e
    except BaseException:
        await db.rollback()
        raise
