"""
Registration endpoints: the caller's registrations, cancellation, and
organizer approval or rejection.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from campusfest.core.security import get_current_user, require_organizer
from campusfest.db.session import get_db
from campusfest.models.user import User
from campusfest.schemas.registration import RegistrationActionResponse, RegistrationResponse
from campusfest.services import admission_service, event_service, inventory_service
from campusfest.services.guards import load_event, load_registration
from campusfest.services.notifier import Notifier, get_notifier

router = APIRouter(prefix="/registrations", tags=["Registrations"])


@router.get("/", response_model=list[RegistrationResponse])
async def my_registrations(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """Registrations and merchandise orders of the caller, newest first."""
    return await event_service.list_my_registrations(db, user)


@router.post("/{registration_id}/cancel", response_model=RegistrationActionResponse)
async def cancel_endpoint(
    registration_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Cancel a registration. The freed slot is offered to the waitlist head."""
    registration = await admission_service.cancel_registration(db, registration_id, user, notifier=notifier)
    return RegistrationActionResponse(
        message="Registration cancelled",
        registration_id=registration.id,
        status=registration.status,
    )


@router.post("/{registration_id}/approve", response_model=RegistrationActionResponse)
async def approve_endpoint(
    registration_id: int,
    organizer: User = Depends(require_organizer),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Approve a pending merchandise order."""
    registration = await inventory_service.approve_order(db, registration_id, organizer, notifier=notifier)
    return RegistrationActionResponse(
        message="Order approved",
        registration_id=registration.id,
        status=registration.status,
    )


@router.post("/{registration_id}/reject", response_model=RegistrationActionResponse)
async def reject_endpoint(
    registration_id: int,
    organizer: User = Depends(require_organizer),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """
    Reject a registration. Merchandise orders get their stock back;
    standard registrations free their slot.
    """
    registration = await load_registration(db, registration_id)
    event = await load_event(db, registration.event_id)
    if event.is_merchandise:
        registration = await inventory_service.reject_order(db, registration_id, organizer, notifier=notifier)
        message = "Order rejected and stock restored"
    else:
        registration = await admission_service.reject_registration(db, registration_id, organizer, notifier=notifier)
        message = "Registration rejected"
    return RegistrationActionResponse(
        message=message,
        registration_id=registration.id,
        status=registration.status,
    )
