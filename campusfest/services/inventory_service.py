"""
Merchandise inventory: per-variant stock and per-participant purchase caps.

A variant is identified by its full key (name, size, color, variant).
Stock is taken with a conditional UPDATE (stock >= quantity) while holding
the event lock, so two buyers can never both take the last unit. Purchases
do not touch the event's registration counter.

Order lifecycle:
  purchase  -> pending_approval, payment pending, ticket issued
  approve   -> approved, paid, ticket re-issued
  reject    -> rejected, every selection's stock restored by full key
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from campusfest.core.errors import (
    AdmissionError, ConflictError, NotFoundError, PreconditionFailed, RejectionReason,
)
from campusfest.core.locks import entity_locks, event_key
from campusfest.core.logging import get_logger
from campusfest.core.metrics import record_purchase, stock_restored_units
from campusfest.db.base import utcnow
from campusfest.models.enums import EventType, PaymentStatus, RegistrationStatus
from campusfest.models.event import Event, MerchandiseItem
from campusfest.models.registration import MerchandiseSelection, Registration
from campusfest.models.user import User
from campusfest.services.guards import (
    ensure_eligible, ensure_event_organizer, ensure_open, find_registration,
    load_event, load_registration, unit_of_work,
)
from campusfest.services.notifier import Notification, NotificationKind, Notifier, dispatch
from campusfest.services.ticket_service import issue_ticket

logger = get_logger(__name__)


def _norm(value: Optional[str]) -> str:
    return (value or "").strip()


def match_variant(
    event: Event,
    item_name: str,
    size: Optional[str] = None,
    color: Optional[str] = None,
    variant: Optional[str] = None,
) -> MerchandiseItem:
    """
    First item whose name matches and whose attributes match every attribute
    the buyer specified. Unspecified attributes match anything.
    """
    wanted = {"size": _norm(size), "color": _norm(color), "variant": _norm(variant)}
    name = _norm(item_name)
    for item in event.items:
        if item.name != name:
            continue
        if all(not value or getattr(item, attr) == value for attr, value in wanted.items()):
            return item
    raise NotFoundError(
        RejectionReason.ITEM_NOT_FOUND,
        "We could not find that item configuration.",
        item_name=name,
        **{k: v for k, v in wanted.items() if v},
    )


async def take_stock(db: AsyncSession, item: MerchandiseItem, quantity: int) -> bool:
    """Atomically remove `quantity` units. False when not enough are left."""
    new_stock = (
        await db.execute(
            update(MerchandiseItem)
            .where(MerchandiseItem.id == item.id, MerchandiseItem.stock >= quantity)
            .values(stock=MerchandiseItem.stock - quantity)
            .returning(MerchandiseItem.stock)
            .execution_options(synchronize_session=False)
        )
    ).scalar_one_or_none()
    if new_stock is None:
        return False
    set_committed_value(item, "stock", new_stock)
    return True


async def restore(db: AsyncSession, event: Event, selections: Iterable[MerchandiseSelection]) -> int:
    """
    Return each selection's quantity to the variant with the same full key.
    Caller holds the event lock and commits. Returns the units restored.
    """
    by_key = {item.key: item for item in event.items}
    restored = 0
    for selection in selections:
        name, size, color, variant = selection.key
        new_stock = (
            await db.execute(
                update(MerchandiseItem)
                .where(
                    MerchandiseItem.event_id == event.id,
                    MerchandiseItem.name == name,
                    MerchandiseItem.size == size,
                    MerchandiseItem.color == color,
                    MerchandiseItem.variant == variant,
                )
                .values(stock=MerchandiseItem.stock + selection.quantity)
                .returning(MerchandiseItem.stock)
                .execution_options(synchronize_session=False)
            )
        ).scalar_one_or_none()

        if new_stock is None:
            logger.error("stock_restore_variant_missing", event_id=event.id, key=selection.key)
            continue
        if selection.key in by_key:
            set_committed_value(by_key[selection.key], "stock", new_stock)
        restored += selection.quantity

    stock_restored_units.inc(restored)
    logger.info("stock_restored", event_id=event.id, units=restored)
    return restored


def _wrong_type() -> PreconditionFailed:
    return PreconditionFailed(
        RejectionReason.WRONG_EVENT_TYPE,
        "This event is not selling merchandise.",
        event_type=EventType.STANDARD.value,
    )


async def purchase(
    db: AsyncSession,
    event_id: int,
    user: User,
    item_name: str,
    quantity: int = 1,
    *,
    size: Optional[str] = None,
    color: Optional[str] = None,
    variant: Optional[str] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> Registration:
    """
    Buy `quantity` units of one variant.

    Checks, in order: event type, purchase window, eligibility, variant,
    stock, per-participant limit. A participant holds a single order per
    event; further purchases extend it while it awaits approval and are
    refused once it is approved.
    """
    now = now or utcnow()
    user_id, user_email = user.id, user.email

    try:
        async with entity_locks.hold(event_key(event_id)):
            event = await load_event(db, event_id, for_update=True)
            async with unit_of_work(
                db,
                conflict=ConflictError(
                    RejectionReason.ALREADY_REGISTERED, "Another order for this event was placed at the same time."
                ),
            ):
                registration, item = await _purchase_locked(
                    db, event, user, item_name, quantity, size, color, variant, now
                )
            event_name, ticket_id, item_key = event.name, registration.ticket_id, item.key
    except AdmissionError as e:
        record_purchase(e.reason.value)
        logger.info("purchase_rejected", event_id=event_id, user_id=user_id, reason=e.reason.value)
        raise

    record_purchase("completed")
    logger.info(
        "purchase_completed",
        event_id=event_id,
        user_id=user_id,
        registration_id=registration.id,
        item=item_key,
        quantity=quantity,
    )
    if notifier is not None:
        await dispatch(notifier, [
            Notification(
                email=user_email,
                kind=NotificationKind.ORDER_PLACED,
                context={
                    "event_id": event_id,
                    "event_name": event_name,
                    "ticket_id": ticket_id,
                    "item": "/".join(part for part in item_key if part),
                    "quantity": quantity,
                },
            )
        ])
    return registration


async def _purchase_locked(
    db: AsyncSession,
    event: Event,
    user: User,
    item_name: str,
    quantity: int,
    size: Optional[str],
    color: Optional[str],
    variant: Optional[str],
    now: datetime,
) -> tuple[Registration, MerchandiseItem]:
    if not event.is_merchandise:
        raise _wrong_type()
    ensure_open(event, now, action="Purchasing")
    ensure_eligible(event, user)

    item = match_variant(event, item_name, size, color, variant)
    if quantity > item.stock:
        raise ConflictError(
            RejectionReason.OUT_OF_STOCK,
            f"Sorry, only {item.stock} left in stock.",
            available=item.stock,
            requested=quantity,
        )

    registration = await find_registration(db, event.id, user.id, for_update=True)
    if registration is not None and registration.is_active \
            and registration.status != RegistrationStatus.PENDING_APPROVAL.value:
        raise ConflictError(
            RejectionReason.ORDER_ALREADY_APPROVED,
            "Your order for this event is already approved. Contact the organizer to change it.",
            registration_id=registration.id,
            status=registration.status,
        )
    already = registration.purchased_quantity if registration is not None and registration.is_active else 0
    limit = event.purchase_limit_per_user
    if limit and already + quantity > limit:
        raise ConflictError(
            RejectionReason.PURCHASE_LIMIT_EXCEEDED,
            f"You have reached the purchase limit of {limit} items for this event.",
            limit=limit,
            already_purchased=already,
            requested=quantity,
        )

    if not await take_stock(db, item, quantity):
        raise ConflictError(
            RejectionReason.OUT_OF_STOCK,
            "Sorry, this item just sold out.",
            available=0,
            requested=quantity,
        )

    if registration is None:
        registration = Registration(event_id=event.id, participant_id=user.id, registered_at=now, selections=[])
        db.add(registration)
    elif not registration.is_active:
        registration.selections.clear()
        registration.registered_at = now
        registration.attended = False
        registration.attended_at = None
    registration.status = RegistrationStatus.PENDING_APPROVAL.value
    registration.payment_status = PaymentStatus.PENDING.value

    name, item_size, item_color, item_variant = item.key
    existing = next((s for s in registration.selections if s.key == item.key), None)
    if existing is not None:
        existing.quantity += quantity
    else:
        registration.selections.append(
            MerchandiseSelection(
                item_id=item.id,
                item_name=name,
                size=item_size,
                color=item_color,
                variant=item_variant,
                quantity=quantity,
                unit_price=item.price,
            )
        )

    await issue_ticket(db, registration, event.name, user.email)
    await db.flush()
    return registration, item


async def _load_order(db: AsyncSession, registration_id: int, organizer: User) -> tuple[Registration, Event]:
    registration = await load_registration(db, registration_id)
    event = await load_event(db, registration.event_id)
    ensure_event_organizer(event, organizer)
    if not event.is_merchandise:
        raise _wrong_type()
    return registration, event


def _ensure_pending(registration: Registration) -> None:
    if registration.status != RegistrationStatus.PENDING_APPROVAL.value:
        raise PreconditionFailed(
            RejectionReason.ORDER_NOT_PENDING,
            f"Order is {registration.status}, not awaiting approval.",
            status=registration.status,
        )


async def approve_order(
    db: AsyncSession,
    registration_id: int,
    organizer: User,
    *,
    notifier: Optional[Notifier] = None,
) -> Registration:
    """Confirm payment for a pending order and issue the final ticket."""
    registration, event = await _load_order(db, registration_id, organizer)
    event_id = event.id

    async with entity_locks.hold(event_key(event_id)):
        event = await load_event(db, event_id, for_update=True)
        registration = await load_registration(db, registration_id, for_update=True)
        _ensure_pending(registration)
        participant = await db.get(User, registration.participant_id)

        async with unit_of_work(db):
            registration.status = RegistrationStatus.APPROVED.value
            registration.payment_status = PaymentStatus.PAID.value
            await issue_ticket(db, registration, event.name, participant.email)

    logger.info("order_approved", event_id=event_id, registration_id=registration_id)
    if notifier is not None:
        await dispatch(notifier, [
            Notification(
                email=participant.email,
                kind=NotificationKind.ORDER_APPROVED,
                context={"event_id": event_id, "event_name": event.name, "ticket_id": registration.ticket_id},
            )
        ])
    return registration


async def reject_order(
    db: AsyncSession,
    registration_id: int,
    organizer: User,
    *,
    notifier: Optional[Notifier] = None,
) -> Registration:
    """Turn down a pending order and put its units back on the shelf."""
    registration, event = await _load_order(db, registration_id, organizer)
    event_id = event.id

    async with entity_locks.hold(event_key(event_id)):
        event = await load_event(db, event_id, for_update=True)
        registration = await load_registration(db, registration_id, for_update=True)
        _ensure_pending(registration)
        participant = await db.get(User, registration.participant_id)

        async with unit_of_work(db):
            restored = await restore(db, event, registration.selections)
            registration.status = RegistrationStatus.REJECTED.value

    logger.info("order_rejected", event_id=event_id, registration_id=registration_id, units_restored=restored)
    if notifier is not None:
        await dispatch(notifier, [
            Notification(
                email=participant.email,
                kind=NotificationKind.ORDER_REJECTED,
                context={"event_id": event_id, "event_name": event.name},
            )
        ])
    return registration
