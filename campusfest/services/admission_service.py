"""
Capacity admission with a FIFO waitlist.

CONCURRENCY STRATEGY: Conditional Increment under a Per-Event Lock
==================================================================

Problem:
  Two participants try to take the last slot simultaneously.
  Both read registration_count = limit - 1, both increment, both succeed.
  Result: Over-admission.

Solution:
  1. Acquire the in-process lock for the event (see core/locks.py) and load
     the event row FOR UPDATE (PostgreSQL)
  2. UPDATE events SET registration_count = registration_count + N
     WHERE id = :event_id AND (registration_limit = 0
                               OR registration_count + N <= registration_limit)
     RETURNING registration_count
  3. No row returned -> CAPACITY_EXCEEDED, nothing written
  4. Create or repurpose the Registration, issue the ticket and commit the
     whole unit, still holding the lock

  The CHECK constraint on events is the final safety net.

Releasing a slot decrements the counter (floored at zero) and pops the head
of the waitlist. Promotion is advisory: the popped participant is notified,
not admitted, and the freed slot goes to whoever registers first.

The optional admission gate (services/admission_gate.py) is consulted before
the database and resynchronised after every change; it never overrides the
database outcome.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from campusfest.core.errors import (
    AdmissionError, ConflictError, ForbiddenError, PreconditionFailed, RejectionReason,
)
from campusfest.core.locks import entity_locks, event_key
from campusfest.core.logging import get_logger
from campusfest.core.metrics import admission_latency, record_admission, record_waitlist
from campusfest.db.base import utcnow
from campusfest.models.enums import EventType, PaymentStatus, RegistrationStatus
from campusfest.models.event import Event, WaitlistEntry
from campusfest.models.registration import Registration
from campusfest.models.user import User
from campusfest.schemas.forms import validate_form_responses
from campusfest.services.guards import (
    ensure_eligible, ensure_event_organizer, ensure_open, find_registration,
    load_event, load_registration, unit_of_work,
)
from campusfest.services.notifier import Notification, NotificationKind, Notifier, dispatch
from campusfest.services.strategy_factory import get_admission
from campusfest.services.ticket_service import issue_ticket

logger = get_logger(__name__)


@dataclass
class WaitlistPlacement:
    entry: WaitlistEntry
    position: int


# ---------------------------------------------------------------------------
# Counter primitives. Callers hold the event lock and commit.
# ---------------------------------------------------------------------------

async def reserve_slots(db: AsyncSession, event: Event, count: int = 1) -> bool:
    """Atomically take `count` slots. False when the event cannot fit them all."""
    new_count = (
        await db.execute(
            update(Event)
            .where(
                Event.id == event.id,
                or_(
                    Event.registration_limit == 0,
                    Event.registration_count + count <= Event.registration_limit,
                ),
            )
            .values(registration_count=Event.registration_count + count)
            .returning(Event.registration_count)
            .execution_options(synchronize_session=False)
        )
    ).scalar_one_or_none()

    if new_count is None:
        return False
    set_committed_value(event, "registration_count", new_count)
    return True


async def release_slots(db: AsyncSession, event: Event, count: int = 1) -> None:
    """Give back `count` slots, never going below zero."""
    new_count = (
        await db.execute(
            update(Event)
            .where(Event.id == event.id, Event.registration_count >= count)
            .values(registration_count=Event.registration_count - count)
            .returning(Event.registration_count)
            .execution_options(synchronize_session=False)
        )
    ).scalar_one_or_none()

    if new_count is None:
        logger.error(
            "integrity_violation",
            reason=RejectionReason.COUNTER_UNDERFLOW.value,
            event_id=event.id,
            released=count,
            stored=event.registration_count,
        )
        await db.execute(
            update(Event)
            .where(Event.id == event.id)
            .values(registration_count=0)
            .execution_options(synchronize_session=False)
        )
        new_count = 0
    set_committed_value(event, "registration_count", new_count)


async def sync_gate(db: AsyncSession, event_id: int) -> None:
    """Push the stored remaining capacity to a stateful admission gate."""
    gate = get_admission()
    if not gate.stateful:
        return
    row = (
        await db.execute(
            select(Event.registration_limit, Event.registration_count).where(Event.id == event_id)
        )
    ).first()
    if row is not None and row.registration_limit > 0:
        await gate.sync(event_id, row.registration_limit - row.registration_count)


def capacity_exceeded(event: Event, required: int = 1) -> ConflictError:
    return ConflictError(
        RejectionReason.CAPACITY_EXCEEDED,
        "Event is at full capacity. You can join the waitlist.",
        waitlist_available=True,
        required=required,
        remaining=max(event.registration_limit - event.registration_count, 0),
    )


def initial_payment_status(event: Event) -> str:
    return PaymentStatus.PAID.value if not event.registration_fee else PaymentStatus.PENDING.value


def reset_registration(registration: Registration, event: Event, now: datetime) -> None:
    """Reopen a cancelled or rejected registration for a new admission."""
    registration.status = RegistrationStatus.REGISTERED.value
    registration.payment_status = initial_payment_status(event)
    registration.registered_at = now
    registration.attended = False
    registration.attended_at = None
    registration.team_id = None
    registration.selections.clear()


async def _pop_waitlist_head(db: AsyncSession, event: Event) -> Optional[Notification]:
    head = (
        await db.execute(
            select(WaitlistEntry, User.email)
            .join(User, User.id == WaitlistEntry.user_id)
            .where(WaitlistEntry.event_id == event.id)
            .order_by(WaitlistEntry.requested_at, WaitlistEntry.id)
            .limit(1)
        )
    ).first()
    if head is None:
        return None

    entry, email = head
    await db.delete(entry)
    record_waitlist("promoted")
    logger.info("waitlist_promoted", event_id=event.id, user_id=entry.user_id)
    return Notification(
        email=email,
        kind=NotificationKind.WAITLIST_SLOT_AVAILABLE,
        context={"event_id": event.id, "event_name": event.name},
    )


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

async def try_admit(
    db: AsyncSession,
    event_id: int,
    user: User,
    form_responses: Optional[dict] = None,
    *,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> Registration:
    """
    Admit a participant to a standard event and issue their ticket.

    Checks, in order: event open and deadline, event type, eligibility,
    existing active registration, form answers, capacity.
    """
    now = now or utcnow()
    user_id, user_email = user.id, user.email

    try:
        with admission_latency.time():
            async with entity_locks.hold(event_key(event_id)):
                try:
                    event = await load_event(db, event_id, for_update=True)
                    async with unit_of_work(
                        db,
                        conflict=ConflictError(
                            RejectionReason.ALREADY_REGISTERED, "You are already registered for this event."
                        ),
                    ):
                        registration = await _admit_locked(db, event, user, form_responses, now)
                    event_name, ticket_id = event.name, registration.ticket_id
                finally:
                    await sync_gate(db, event_id)
    except AdmissionError as e:
        record_admission(e.reason.value)
        logger.info("admission_rejected", event_id=event_id, user_id=user_id, reason=e.reason.value)
        raise

    record_admission("admitted")
    logger.info(
        "registration_admitted",
        event_id=event_id,
        user_id=user_id,
        registration_id=registration.id,
        registration_count=event.registration_count,
    )
    if notifier is not None:
        await dispatch(notifier, [
            Notification(
                email=user_email,
                kind=NotificationKind.TICKET_ISSUED,
                context={"event_id": event_id, "event_name": event_name, "ticket_id": ticket_id},
            )
        ])
    return registration


async def _admit_locked(
    db: AsyncSession,
    event: Event,
    user: User,
    form_responses: Optional[dict],
    now: datetime,
) -> Registration:
    ensure_open(event, now)
    if event.is_merchandise:
        raise PreconditionFailed(
            RejectionReason.WRONG_EVENT_TYPE,
            "Merchandise events take purchases, not registrations.",
            event_type=EventType.MERCHANDISE.value,
        )
    ensure_eligible(event, user)

    registration = await find_registration(db, event.id, user.id, for_update=True)
    if registration is not None and registration.is_active:
        raise ConflictError(
            RejectionReason.ALREADY_REGISTERED,
            "You are already registered for this event.",
            registration_id=registration.id,
        )

    answers = validate_form_responses(event.custom_form, form_responses)

    if not await get_admission().admit(event.id):
        raise capacity_exceeded(event)
    if not await reserve_slots(db, event):
        raise capacity_exceeded(event)

    if registration is None:
        registration = Registration(
            event_id=event.id,
            participant_id=user.id,
            status=RegistrationStatus.REGISTERED.value,
            payment_status=initial_payment_status(event),
            registered_at=now,
            selections=[],
        )
        db.add(registration)
    else:
        reset_registration(registration, event, now)
    registration.form_responses = answers

    await issue_ticket(db, registration, event.name, user.email)

    if not event.form_locked:
        event.form_locked = True
    await db.execute(
        delete(WaitlistEntry).where(WaitlistEntry.event_id == event.id, WaitlistEntry.user_id == user.id)
    )
    await db.flush()
    return registration


async def waitlist_position(db: AsyncSession, entry: WaitlistEntry) -> int:
    """1-based place in line."""
    ahead = await db.scalar(
        select(func.count(WaitlistEntry.id)).where(
            WaitlistEntry.event_id == entry.event_id,
            or_(
                WaitlistEntry.requested_at < entry.requested_at,
                and_(WaitlistEntry.requested_at == entry.requested_at, WaitlistEntry.id < entry.id),
            ),
        )
    )
    return (ahead or 0) + 1


async def get_waitlist_entry(db: AsyncSession, event_id: int, user_id: int) -> Optional[WaitlistEntry]:
    return (
        await db.execute(
            select(WaitlistEntry).where(WaitlistEntry.event_id == event_id, WaitlistEntry.user_id == user_id)
        )
    ).scalar_one_or_none()


async def join_waitlist(
    db: AsyncSession,
    event_id: int,
    user: User,
    *,
    now: Optional[datetime] = None,
) -> WaitlistPlacement:
    """Queue a participant for a full standard event."""
    now = now or utcnow()
    user_id = user.id

    async with entity_locks.hold(event_key(event_id)):
        event = await load_event(db, event_id, for_update=True)
        ensure_open(event, now)
        if event.is_merchandise:
            raise PreconditionFailed(
                RejectionReason.WRONG_EVENT_TYPE,
                "Merchandise events have no waitlist.",
                event_type=EventType.MERCHANDISE.value,
            )
        ensure_eligible(event, user)

        registration = await find_registration(db, event.id, user_id)
        if registration is not None and registration.is_active:
            raise ConflictError(
                RejectionReason.ALREADY_REGISTERED,
                "You are already registered for this event.",
                registration_id=registration.id,
            )
        if await get_waitlist_entry(db, event.id, user_id) is not None:
            raise ConflictError(RejectionReason.ALREADY_WAITLISTED, "You are already on the waitlist.")
        if not event.is_full:
            raise PreconditionFailed(
                RejectionReason.WAITLIST_NOT_NEEDED,
                "The event still has open slots. Register directly.",
                remaining=(event.registration_limit - event.registration_count) if event.registration_limit else None,
            )

        entry = WaitlistEntry(event_id=event.id, user_id=user_id, requested_at=now)
        async with unit_of_work(
            db,
            conflict=ConflictError(RejectionReason.ALREADY_WAITLISTED, "You are already on the waitlist."),
        ):
            db.add(entry)
            await db.flush()
        position = await waitlist_position(db, entry)

    record_waitlist("joined")
    logger.info("waitlist_joined", event_id=event_id, user_id=user_id, position=position)
    return WaitlistPlacement(entry=entry, position=position)


async def release_locked(
    db: AsyncSession,
    event: Event,
    registration: Registration,
    status: RegistrationStatus,
) -> Optional[Notification]:
    """
    Retire an active registration and free its slot. Returns the waitlist
    notification to send after commit, if any. Caller holds the event lock
    and commits. Inactive registrations are left untouched.
    """
    if not registration.is_active:
        return None

    registration.status = status.value
    await release_slots(db, event)
    logger.info(
        "registration_released",
        event_id=event.id,
        registration_id=registration.id,
        status=status.value,
        registration_count=event.registration_count,
    )
    return await _pop_waitlist_head(db, event)


async def release(
    db: AsyncSession,
    registration: Registration,
    *,
    status: RegistrationStatus = RegistrationStatus.CANCELLED,
    notifier: Optional[Notifier] = None,
) -> Registration:
    """Free a standard registration's slot and notify the head of the waitlist."""
    event_id, registration_id = registration.event_id, registration.id
    async with entity_locks.hold(event_key(event_id)):
        event = await load_event(db, event_id, for_update=True)
        registration = await load_registration(db, registration_id, for_update=True)
        async with unit_of_work(db):
            promoted = await release_locked(db, event, registration, status)
        await sync_gate(db, event_id)

    if promoted is not None and notifier is not None:
        await dispatch(notifier, [promoted])
    return registration


async def cancel_registration(
    db: AsyncSession,
    registration_id: int,
    user: User,
    *,
    notifier: Optional[Notifier] = None,
) -> Registration:
    """Participant cancels their own registration. Repeating it is a no-op."""
    registration = await load_registration(db, registration_id)
    if registration.participant_id != user.id:
        raise ForbiddenError(RejectionReason.ROLE_REQUIRED, "You can only cancel your own registration.")

    event = await load_event(db, registration.event_id)
    if event.is_merchandise:
        raise PreconditionFailed(
            RejectionReason.CANCELLATION_NOT_ALLOWED,
            "Merchandise orders cannot be cancelled by the participant.",
        )
    return await release(db, registration, status=RegistrationStatus.CANCELLED, notifier=notifier)


async def reject_registration(
    db: AsyncSession,
    registration_id: int,
    organizer: User,
    *,
    notifier: Optional[Notifier] = None,
) -> Registration:
    """Organizer removes an admitted participant from a standard event."""
    registration = await load_registration(db, registration_id)
    event = await load_event(db, registration.event_id)
    ensure_event_organizer(event, organizer)
    if event.is_merchandise:
        raise PreconditionFailed(
            RejectionReason.WRONG_EVENT_TYPE,
            "Use order rejection for merchandise events.",
        )
    if not registration.is_active:
        raise PreconditionFailed(
            RejectionReason.INVALID_STATUS_TRANSITION,
            f"Registration is already {registration.status}.",
        )
    return await release(db, registration, status=RegistrationStatus.REJECTED, notifier=notifier)
