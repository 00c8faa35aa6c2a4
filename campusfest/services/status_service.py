"""
Event lifecycle: time-driven reconciliation and organizer transitions.

Stored status can lag behind the clock: a published event whose start date
has passed is really ongoing, an ongoing event whose end date has passed is
really completed. Reads reconcile the stored value, writing at most one
status change per event per call. The write is a conditional UPDATE on the
old status, so concurrent readers reconciling the same event converge on a
single transition.

Reconciliation never blocks the read that triggered it. The write runs in
its own short session on the same engine, so a failed write (even a lost
connection) leaves the reader's session and its loaded objects untouched,
and the caller still gets the derived status.
"""

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import update, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from campusfest.core.errors import PreconditionFailed, RejectionReason
from campusfest.core.logging import get_logger
from campusfest.core.metrics import status_transitions
from campusfest.db.base import utcnow
from campusfest.models.enums import EventStatus
from campusfest.models.event import Event

logger = get_logger(__name__)

# Organizer-driven transitions
VALID_TRANSITIONS: dict[EventStatus, frozenset[EventStatus]] = {
    EventStatus.DRAFT: frozenset({EventStatus.PUBLISHED}),
    EventStatus.PUBLISHED: frozenset({EventStatus.ONGOING, EventStatus.CLOSED}),
    EventStatus.ONGOING: frozenset({EventStatus.COMPLETED, EventStatus.CLOSED}),
    EventStatus.COMPLETED: frozenset(),
    EventStatus.CLOSED: frozenset(),
}


def derive_status(event: Event, now: Optional[datetime] = None) -> EventStatus:
    """Effective status of an event at `now`, without touching storage."""
    now = now or utcnow()
    status = EventStatus(event.status)
    if status == EventStatus.PUBLISHED and event.start_date and event.start_date <= now:
        status = EventStatus.ONGOING
    if status == EventStatus.ONGOING and event.end_date and event.end_date <= now:
        status = EventStatus.COMPLETED
    return status


def can_transition(current: EventStatus, target: EventStatus) -> bool:
    return target in VALID_TRANSITIONS[current]


async def _write_status(db: AsyncSession, event: Event, target: EventStatus) -> EventStatus:
    """Conditional status write. Returns the status actually stored afterwards."""
    result = await db.execute(
        update(Event)
        .where(Event.id == event.id, Event.status == event.status)
        .values(status=target.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 1:
        status_transitions.labels(to_status=target.value).inc()
        logger.info("event_status_reconciled", event_id=event.id, from_status=event.status, to_status=target.value)
        return target

    # another request moved it first
    stored = await db.scalar(select(Event.status).where(Event.id == event.id))
    return EventStatus(stored)


async def _persist(db: AsyncSession, pending: Sequence[tuple[Event, EventStatus]]) -> list[EventStatus]:
    """Write derived statuses in a separate unit of work; the reader's session is not touched."""
    async with AsyncSession(bind=db.bind, expire_on_commit=False) as writer:
        stored = [await _write_status(writer, event, target) for event, target in pending]
        await writer.commit()
    return stored


async def reconcile_event_status(
    db: AsyncSession,
    event: Event,
    now: Optional[datetime] = None,
) -> EventStatus:
    """Persist the derived status of one event and return it."""
    target = derive_status(event, now)
    if target == event.status:
        return target

    try:
        [stored] = await _persist(db, [(event, target)])
    except SQLAlchemyError as e:
        logger.warning("event_status_reconcile_failed", event_id=event.id, error=str(e))
        stored = target

    set_committed_value(event, "status", stored.value)
    return stored


async def reconcile_many(
    db: AsyncSession,
    events: Sequence[Event],
    now: Optional[datetime] = None,
) -> Sequence[Event]:
    """Batch variant for listings: one commit for every event that moved."""
    now = now or utcnow()
    pending = [(event, derive_status(event, now)) for event in events]
    pending = [(event, target) for event, target in pending if target != event.status]
    if not pending:
        return events

    try:
        stored = await _persist(db, pending)
    except SQLAlchemyError as e:
        logger.warning("event_status_reconcile_failed", event_ids=[event.id for event, _ in pending], error=str(e))
        stored = [target for _, target in pending]

    for (event, _), status in zip(pending, stored):
        set_committed_value(event, "status", status.value)
    return events


async def apply_transition(db: AsyncSession, event: Event, target: EventStatus) -> EventStatus:
    """
    Organizer-driven transition from the event's effective status.
    Caller commits. Raises INVALID_STATUS_TRANSITION for anything outside
    VALID_TRANSITIONS.
    """
    current = derive_status(event)
    if not can_transition(current, target):
        raise PreconditionFailed(
            RejectionReason.INVALID_STATUS_TRANSITION,
            f"Cannot move an event from {current.value} to {target.value}.",
            current_status=current.value,
            allowed=sorted(s.value for s in VALID_TRANSITIONS[current]),
        )

    if current.value != event.status:
        # persist the time-driven step first so the conditional write matches
        current = await _write_status(db, event, current)
        set_committed_value(event, "status", current.value)

    stored = await _write_status(db, event, target)
    if stored != target:
        raise PreconditionFailed(
            RejectionReason.INVALID_STATUS_TRANSITION,
            "The event status changed concurrently. Reload and try again.",
            current_status=stored.value,
        )
    set_committed_value(event, "status", stored.value)
    return stored
