"""
Read-only per-event numbers for organizers.
"""

from collections import defaultdict
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from campusfest.models.enums import PaymentStatus, TeamStatus
from campusfest.models.event import Event, WaitlistEntry
from campusfest.models.registration import Registration
from campusfest.models.team import Team
from campusfest.models.user import User
from campusfest.schemas.event import EventAnalyticsResponse, ItemSales
from campusfest.services.guards import ensure_event_organizer
from campusfest.services.event_service import get_event


def _revenue(event: Event, registrations: list[Registration]) -> Decimal:
    total = Decimal("0")
    for registration in registrations:
        if registration.payment_status != PaymentStatus.PAID.value:
            continue
        if event.is_merchandise:
            total += sum((s.unit_price * s.quantity for s in registration.selections), Decimal("0"))
        else:
            total += event.registration_fee or Decimal("0")
    return total


def _item_sales(event: Event, registrations: list[Registration]) -> list[ItemSales]:
    sold: dict[tuple, int] = defaultdict(int)
    for registration in registrations:
        for selection in registration.selections:
            sold[selection.key] += selection.quantity
    return [
        ItemSales(
            name=item.name,
            size=item.size,
            color=item.color,
            variant=item.variant,
            quantity_sold=sold.get(item.key, 0),
            stock_remaining=item.stock,
        )
        for item in event.items
    ]


def _completed_teams(team_ids: list[int], registrations: list[Registration]) -> int:
    """Registered teams whose every registered member attended."""
    by_team: dict[int, list[Registration]] = defaultdict(list)
    for registration in registrations:
        if registration.team_id is not None:
            by_team[registration.team_id].append(registration)
    return sum(
        1 for team_id in team_ids
        if by_team.get(team_id) and all(r.attended for r in by_team[team_id])
    )


async def event_analytics(db: AsyncSession, event_id: int, organizer: User) -> EventAnalyticsResponse:
    event = await get_event(db, event_id)
    ensure_event_organizer(event, organizer)

    registrations = [
        r for r in (
            await db.execute(select(Registration).where(Registration.event_id == event_id))
        ).scalars().all()
        if r.is_active
    ]
    attended = sum(1 for r in registrations if r.attended)
    waitlist_length = await db.scalar(
        select(func.count(WaitlistEntry.id)).where(WaitlistEntry.event_id == event_id)
    )
    registered_teams = list(
        (
            await db.execute(
                select(Team.id).where(Team.event_id == event_id, Team.status == TeamStatus.REGISTERED.value)
            )
        ).scalars().all()
    )

    return EventAnalyticsResponse(
        event_id=event.id,
        event_name=event.name,
        status=event.status,
        registration_limit=event.registration_limit,
        registrations=len(registrations),
        attendance=attended,
        attendance_rate=round(attended / len(registrations), 4) if registrations else 0.0,
        revenue=float(_revenue(event, registrations)),
        waitlist_length=waitlist_length or 0,
        team_completion=_completed_teams(registered_teams, registrations),
        item_sales=_item_sales(event, registrations) if event.is_merchandise else [],
    )
