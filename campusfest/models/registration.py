"""
Registration model: one participant's admission to (or order from) an event.

Key design decisions:
- Unique constraint on (event_id, participant_id): a cancelled or rejected
  registration is repurposed on re-registration instead of duplicated
- `ticket_id` is unique system-wide; the issuer regenerates on collision and
  the constraint is the final guard
- Merchandise selections are child rows that snapshot the variant key, so a
  rejected order restores stock to exactly the SKU it was taken from
"""

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Numeric, JSON,
    ForeignKey, Index, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from campusfest.db.base import Base, TimestampMixin, UTCDateTime, utcnow
from campusfest.models.enums import INACTIVE_REGISTRATION_STATUSES, RegistrationStatus, PaymentStatus, sql_in

_INACTIVE_VALUES = frozenset(s.value for s in INACTIVE_REGISTRATION_STATUSES)


class Registration(Base, TimestampMixin):
    __tablename__ = "registrations"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    participant_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=RegistrationStatus.REGISTERED.value)
    payment_status = Column(String(20), nullable=False, default=PaymentStatus.PENDING.value)

    ticket_id = Column(String(64), nullable=True, unique=True)
    qr_code = Column(Text, nullable=True)  # base64 PNG data URL

    team_id = Column(Integer, ForeignKey("teams.id", ondelete="SET NULL"), nullable=True, index=True)
    form_responses = Column(JSON, nullable=False, default=dict)

    registered_at = Column(UTCDateTime(), nullable=False, default=utcnow)
    attended = Column(Boolean, nullable=False, default=False)
    attended_at = Column(UTCDateTime(), nullable=True)

    selections = relationship(
        "MerchandiseSelection",
        back_populates="registration",
        lazy="selectin",
        order_by="MerchandiseSelection.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("event_id", "participant_id", name="uq_registration_event_participant"),
        CheckConstraint(f"status IN ({sql_in(RegistrationStatus)})", name="check_registration_status"),
        CheckConstraint(f"payment_status IN ({sql_in(PaymentStatus)})", name="check_payment_status"),
        Index("ix_registrations_event_status", "event_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status not in _INACTIVE_VALUES

    @property
    def purchased_quantity(self) -> int:
        return sum(s.quantity for s in self.selections)

    def __repr__(self) -> str:
        return (
            f"<Registration(id={self.id}, event={self.event_id}, "
            f"participant={self.participant_id}, status={self.status})>"
        )


class MerchandiseSelection(Base):
    __tablename__ = "merchandise_selections"

    id = Column(Integer, primary_key=True, index=True)
    registration_id = Column(
        Integer, ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False, index=True
    )
    item_id = Column(Integer, ForeignKey("merchandise_items.id", ondelete="SET NULL"), nullable=True)
    item_name = Column(String(120), nullable=False)
    size = Column(String(40), nullable=False, default="")
    color = Column(String(40), nullable=False, default="")
    variant = Column(String(80), nullable=False, default="")
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False, default=0)

    registration = relationship("Registration", back_populates="selections")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_selection_quantity_positive"),
    )

    @property
    def key(self) -> tuple[str, str, str, str]:
        return (self.item_name, self.size, self.color, self.variant)

    def __repr__(self) -> str:
        return f"<MerchandiseSelection(registration={self.registration_id}, key={self.key}, qty={self.quantity})>"
