"""
Event endpoints: browse, organizer tooling, and the admission entry points
(register, waitlist, purchase).
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from campusfest.core.security import get_current_user, require_organizer, require_participant
from campusfest.db.session import get_db
from campusfest.models.enums import EventType
from campusfest.models.user import User
from campusfest.schemas.event import (
    EventAnalyticsResponse, EventCreate, EventListResponse, EventResponse, EventStatusUpdate,
)
from campusfest.schemas.registration import (
    MyStatusResponse, PurchaseCreate, RegistrationCreate, RegistrationResponse, WaitlistResponse,
)
from campusfest.services import admission_service, analytics_service, event_service, inventory_service
from campusfest.services.notifier import Notifier, get_notifier

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("/", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    organizer: User = Depends(require_organizer),
    db: AsyncSession = Depends(get_db),
):
    """Create an event. Starts in draft unless publish_now is set."""
    return await event_service.create_event(db, event_data, organizer)


@router.get("/", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    event_type: Optional[EventType] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    db: AsyncSession = Depends(get_db),
):
    """Events currently open for registration or purchase."""
    events, total = await event_service.list_events(db, page, page_size, event_type, search)
    return EventListResponse(events=[EventResponse.model_validate(e) for e in events], total=total)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(event_id: int, db: AsyncSession = Depends(get_db)):
    return await event_service.get_event(db, event_id)


@router.patch("/{event_id}/status", response_model=EventResponse)
async def change_status_endpoint(
    event_id: int,
    body: EventStatusUpdate,
    organizer: User = Depends(require_organizer),
    db: AsyncSession = Depends(get_db),
):
    """Organizer lifecycle transition (publish, start, complete, close)."""
    return await event_service.change_status(db, event_id, organizer, body.status)


@router.get("/{event_id}/my-status", response_model=MyStatusResponse)
async def my_status_endpoint(
    event_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    result = await event_service.my_status(db, event_id, user)
    registration = result.registration
    return MyStatusResponse(
        registered=registration is not None and registration.is_active,
        registration=RegistrationResponse.model_validate(registration) if registration is not None else None,
        waitlisted=result.waitlist_position is not None,
        waitlist_position=result.waitlist_position,
    )


@router.get("/{event_id}/analytics", response_model=EventAnalyticsResponse)
async def analytics_endpoint(
    event_id: int,
    organizer: User = Depends(require_organizer),
    db: AsyncSession = Depends(get_db),
):
    return await analytics_service.event_analytics(db, event_id, organizer)


@router.post("/{event_id}/register", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def register_endpoint(
    event_id: int,
    body: Optional[RegistrationCreate] = None,
    user: User = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Register for a standard event and receive a ticket.

    A full event answers 409 CAPACITY_EXCEEDED with waitlist_available=true;
    the caller may then join the waitlist.
    """
    answers = body.form_responses if body is not None else None
    return await admission_service.try_admit(db, event_id, user, answers, notifier=notifier)


@router.post("/{event_id}/waitlist", response_model=WaitlistResponse, status_code=status.HTTP_201_CREATED)
async def waitlist_endpoint(
    event_id: int,
    user: User = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    placement = await admission_service.join_waitlist(db, event_id, user)
    return WaitlistResponse(
        message="Added to the waitlist. You will be notified when a slot opens.",
        event_id=event_id,
        position=placement.position,
        requested_at=placement.entry.requested_at,
    )


@router.post("/{event_id}/purchase", response_model=RegistrationResponse, status_code=status.HTTP_201_CREATED)
async def purchase_endpoint(
    event_id: int,
    body: PurchaseCreate,
    user: User = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Buy merchandise. The order waits for organizer approval."""
    return await inventory_service.purchase(
        db,
        event_id,
        user,
        body.item_name,
        body.quantity,
        size=body.size,
        color=body.color,
        variant=body.variant,
        notifier=notifier,
    )
