"""
Event service: organizer tooling and participant reads.

Every read that returns events runs the status reconciler first, so callers
always see the effective lifecycle status.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from campusfest.core.errors import (
    NotFoundError, PreconditionFailed, RejectionReason, ValidationFailed,
)
from campusfest.core.locks import entity_locks, event_key
from campusfest.core.logging import get_logger
from campusfest.db.base import utcnow
from campusfest.models.enums import EventStatus, EventType, OPEN_STATUSES, RegistrationStatus
from campusfest.models.event import Event, MerchandiseItem
from campusfest.models.registration import Registration
from campusfest.models.user import User
from campusfest.schemas.event import EventCreate
from campusfest.services.admission_service import get_waitlist_entry, waitlist_position
from campusfest.services.guards import (
    ensure_event_organizer, find_registration, load_event, unit_of_work,
)
from campusfest.services.status_service import (
    apply_transition, derive_status, reconcile_event_status, reconcile_many,
)

logger = get_logger(__name__)

ATTENDABLE_STATUSES = frozenset({
    RegistrationStatus.REGISTERED.value,
    RegistrationStatus.APPROVED.value,
    RegistrationStatus.COMPLETED.value,
})


@dataclass
class MyStatus:
    registration: Optional[Registration]
    waitlist_position: Optional[int]


@dataclass
class AttendanceRecord:
    registration: Registration
    event: Event
    participant_email: str


async def create_event(db: AsyncSession, event_data: EventCreate, organizer: User) -> Event:
    """Create an event in draft, or published straight away with publish_now."""
    if event_data.registration_deadline and event_data.end_date \
            and event_data.registration_deadline > event_data.end_date:
        raise ValidationFailed(
            RejectionReason.INVALID_EVENT,
            "Registration deadline must not be after the event ends.",
        )

    event = Event(
        name=event_data.name,
        description=event_data.description,
        event_type=event_data.event_type.value,
        status=(EventStatus.PUBLISHED if event_data.publish_now else EventStatus.DRAFT).value,
        eligibility=event_data.eligibility.value,
        start_date=event_data.start_date,
        end_date=event_data.end_date,
        registration_deadline=event_data.registration_deadline,
        registration_limit=event_data.registration_limit,
        registration_count=0,
        registration_fee=event_data.registration_fee,
        purchase_limit_per_user=event_data.purchase_limit_per_user,
        custom_form=[field.model_dump(mode="json") for field in event_data.custom_form],
        form_locked=False,
        organizer_id=organizer.id,
        items=[
            MerchandiseItem(
                name=item.name.strip(),
                size=item.size.strip(),
                color=item.color.strip(),
                variant=item.variant.strip(),
                stock=item.stock,
                price=item.price,
            )
            for item in event_data.items
        ],
    )
    async with unit_of_work(db):
        db.add(event)
        await db.flush()

    logger.info(
        "event_created",
        event_id=event.id,
        name=event.name,
        event_type=event.event_type,
        status=event.status,
        limit=event.registration_limit,
    )
    return event


async def get_event(db: AsyncSession, event_id: int, now: Optional[datetime] = None) -> Event:
    """Single event with its status reconciled."""
    event = await load_event(db, event_id)
    await reconcile_event_status(db, event, now)
    return event


async def list_events(
    db: AsyncSession,
    page: int = 1,
    page_size: int = 20,
    event_type: Optional[EventType] = None,
    search: Optional[str] = None,
    now: Optional[datetime] = None,
) -> tuple[list[Event], int]:
    """
    Browse events open for registration or purchase, soonest first.
    Uses the ix_events_status_start index.
    """
    now = now or utcnow()
    query = select(Event).where(Event.status.in_([s.value for s in OPEN_STATUSES]))
    if event_type is not None:
        query = query.where(Event.event_type == event_type.value)
    if search:
        query = query.where(Event.name.ilike(f"%{search.strip()}%"))

    total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()

    result = await db.execute(
        query
        .order_by(Event.start_date.asc().nulls_last(), Event.id.asc())
        .offset((page - 1) * page_size)
        .limit(page_size)
    )
    events = list(result.scalars().all())
    await reconcile_many(db, events, now)

    still_open = [e for e in events if EventStatus(e.status) in OPEN_STATUSES]
    return still_open, total - (len(events) - len(still_open))


async def change_status(
    db: AsyncSession,
    event_id: int,
    organizer: User,
    target: EventStatus,
) -> Event:
    """Organizer-driven lifecycle transition."""
    async with entity_locks.hold(event_key(event_id)):
        event = await load_event(db, event_id, for_update=True)
        ensure_event_organizer(event, organizer)
        previous = derive_status(event)
        async with unit_of_work(db):
            await apply_transition(db, event, target)

    logger.info("event_status_changed", event_id=event_id, from_status=previous.value, to_status=target.value)
    return event


async def my_status(db: AsyncSession, event_id: int, user: User) -> MyStatus:
    """The caller's registration and waitlist place for one event."""
    await get_event(db, event_id)
    registration = await find_registration(db, event_id, user.id)
    entry = await get_waitlist_entry(db, event_id, user.id)
    position = await waitlist_position(db, entry) if entry is not None else None
    return MyStatus(registration=registration, waitlist_position=position)


async def list_my_registrations(db: AsyncSession, user: User) -> list[Registration]:
    """All registrations and orders of a participant, newest first."""
    result = await db.execute(
        select(Registration)
        .where(Registration.participant_id == user.id)
        .order_by(Registration.registered_at.desc(), Registration.id.desc())
    )
    registrations = list(result.scalars().all())

    event_ids = {r.event_id for r in registrations}
    if event_ids:
        events = (await db.execute(select(Event).where(Event.id.in_(event_ids)))).scalars().all()
        await reconcile_many(db, list(events))
    return registrations


async def mark_attendance(
    db: AsyncSession,
    ticket_id: str,
    organizer: User,
    now: Optional[datetime] = None,
) -> AttendanceRecord:
    """Check a participant in by scanning their ticket. A ticket scans once."""
    now = now or utcnow()
    registration = (
        await db.execute(select(Registration).where(Registration.ticket_id == ticket_id.strip()))
    ).scalar_one_or_none()
    if registration is None:
        raise NotFoundError(RejectionReason.TICKET_NOT_FOUND, "No registration carries this ticket.")

    event = await load_event(db, registration.event_id)
    ensure_event_organizer(event, organizer)
    if registration.status not in ATTENDABLE_STATUSES:
        raise PreconditionFailed(
            RejectionReason.INVALID_STATUS_TRANSITION,
            f"Registration is {registration.status} and cannot be checked in.",
            status=registration.status,
        )

    async with unit_of_work(db):
        result = await db.execute(
            update(Registration)
            .where(Registration.id == registration.id, Registration.attended.is_(False))
            .values(attended=True, attended_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise PreconditionFailed(
                RejectionReason.ALREADY_ATTENDED,
                "This ticket has already been scanned.",
                attended_at=registration.attended_at.isoformat() if registration.attended_at else None,
            )
    set_committed_value(registration, "attended", True)
    set_committed_value(registration, "attended_at", now)

    participant = await db.get(User, registration.participant_id)
    logger.info("attendance_marked", event_id=event.id, registration_id=registration.id, ticket_id=ticket_id)
    return AttendanceRecord(registration=registration, event=event, participant_email=participant.email)
