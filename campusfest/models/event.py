"""
Event model with admission counters, merchandise inventory and waitlist.

Key design decisions:
- `registration_count` is a denormalized counter written only through
  conditional UPDATEs in the admission service; the CHECK constraints are the
  final safety net against over-admission and underflow
- Merchandise variants live in their own table so stock can be decremented
  with a single atomic statement per variant
- The variant key (name, size, color, variant) is unique per event; missing
  attributes are stored as empty strings so the key never contains NULL
- Waitlist entries are ordered by `requested_at`, with the id as tiebreaker
"""

from sqlalchemy import (
    Column, Integer, String, Text, Numeric, Boolean, JSON,
    ForeignKey, Index, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from campusfest.db.base import Base, TimestampMixin, UTCDateTime, utcnow
from campusfest.models.enums import EventType, EventStatus, Eligibility, sql_in


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    event_type = Column(String(20), nullable=False, default=EventType.STANDARD.value)
    status = Column(String(20), nullable=False, default=EventStatus.DRAFT.value)
    eligibility = Column(String(20), nullable=False, default=Eligibility.ALL.value)

    start_date = Column(UTCDateTime(), nullable=True)
    end_date = Column(UTCDateTime(), nullable=True)
    registration_deadline = Column(UTCDateTime(), nullable=True)

    # 0 means no cap
    registration_limit = Column(Integer, nullable=False, default=0)
    registration_count = Column(Integer, nullable=False, default=0)
    registration_fee = Column(Numeric(10, 2), nullable=False, default=0)

    # 0 means no per-user cap
    purchase_limit_per_user = Column(Integer, nullable=False, default=1)

    custom_form = Column(JSON, nullable=False, default=list)
    form_locked = Column(Boolean, nullable=False, default=False)

    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    items = relationship(
        "MerchandiseItem",
        back_populates="event",
        lazy="selectin",
        order_by="MerchandiseItem.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint(f"event_type IN ({sql_in(EventType)})", name="check_event_type"),
        CheckConstraint(f"status IN ({sql_in(EventStatus)})", name="check_event_status"),
        CheckConstraint(f"eligibility IN ({sql_in(Eligibility)})", name="check_event_eligibility"),
        CheckConstraint("registration_limit >= 0", name="check_registration_limit_non_negative"),
        CheckConstraint("registration_count >= 0", name="check_registration_count_non_negative"),
        CheckConstraint(
            "registration_limit = 0 OR registration_count <= registration_limit",
            name="check_registration_count_within_limit",
        ),
        CheckConstraint("purchase_limit_per_user >= 0", name="check_purchase_limit_non_negative"),
        Index("ix_events_status_start", "status", "start_date"),
    )

    @property
    def is_merchandise(self) -> bool:
        return self.event_type == EventType.MERCHANDISE.value

    @property
    def is_full(self) -> bool:
        return self.registration_limit > 0 and self.registration_count >= self.registration_limit

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, name={self.name}, status={self.status}, "
            f"admitted={self.registration_count}/{self.registration_limit or 'unlimited'})>"
        )


class MerchandiseItem(Base):
    __tablename__ = "merchandise_items"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    size = Column(String(40), nullable=False, default="")
    color = Column(String(40), nullable=False, default="")
    variant = Column(String(80), nullable=False, default="")
    stock = Column(Integer, nullable=False, default=0)
    price = Column(Numeric(10, 2), nullable=False, default=0)

    event = relationship("Event", back_populates="items")

    __table_args__ = (
        CheckConstraint("stock >= 0", name="check_item_stock_non_negative"),
        CheckConstraint("price >= 0", name="check_item_price_non_negative"),
        UniqueConstraint("event_id", "name", "size", "color", "variant", name="uq_event_item_variant"),
    )

    @property
    def key(self) -> tuple[str, str, str, str]:
        return (self.name, self.size, self.color, self.variant)

    def __repr__(self) -> str:
        return f"<MerchandiseItem(id={self.id}, key={'/'.join(p for p in self.key if p)}, stock={self.stock})>"


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    requested_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_waitlist_event_user"),
        # FIFO promotion reads the head of this index
        Index("ix_waitlist_event_requested", "event_id", "requested_at", "id"),
    )

    def __repr__(self) -> str:
        return f"<WaitlistEntry(event={self.event_id}, user={self.user_id}, at={self.requested_at})>"
