"""
Pydantic schemas for event-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional
from pydantic import BaseModel, Field, model_validator

from campusfest.models.enums import EventType, EventStatus, Eligibility
from campusfest.schemas.forms import FormField


class MerchandiseItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    size: str = Field("", max_length=40)
    color: str = Field("", max_length=40)
    variant: str = Field("", max_length=80)
    stock: int = Field(..., ge=0)
    price: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)


class MerchandiseItemResponse(BaseModel):
    id: int
    name: str
    size: str
    color: str
    variant: str
    stock: int
    price: Decimal

    model_config = {"from_attributes": True}


class EventCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=5000)
    event_type: EventType = EventType.STANDARD
    eligibility: Eligibility = Eligibility.ALL
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    registration_deadline: Optional[datetime] = None
    registration_limit: int = Field(0, ge=0, le=100000)
    registration_fee: Decimal = Field(Decimal("0"), ge=0, max_digits=10, decimal_places=2)
    purchase_limit_per_user: int = Field(1, ge=0, le=1000)
    custom_form: list[FormField] = Field(default_factory=list)
    items: list[MerchandiseItemCreate] = Field(default_factory=list)
    publish_now: bool = False

    @model_validator(mode="after")
    def check_consistency(self):
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if self.event_type == EventType.MERCHANDISE and not self.items:
            raise ValueError("merchandise events need at least one item")
        if self.event_type == EventType.STANDARD and self.items:
            raise ValueError("only merchandise events can list items")
        keys = [(i.name, i.size, i.color, i.variant) for i in self.items]
        if len(set(keys)) != len(keys):
            raise ValueError("each item variant (name, size, color, variant) must be unique")
        labels = [f.label for f in self.custom_form]
        if len(set(labels)) != len(labels):
            raise ValueError("form field labels must be unique")
        return self


class EventResponse(BaseModel):
    id: int
    name: str
    description: str
    event_type: EventType
    status: EventStatus
    eligibility: Eligibility
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    registration_deadline: Optional[datetime]
    registration_limit: int
    registration_count: int
    registration_fee: Decimal
    purchase_limit_per_user: int
    custom_form: list[dict]
    form_locked: bool
    organizer_id: int
    items: list[MerchandiseItemResponse]
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int


class EventStatusUpdate(BaseModel):
    status: EventStatus


class ItemSales(BaseModel):
    name: str
    size: str
    color: str
    variant: str
    quantity_sold: int
    stock_remaining: int


class EventAnalyticsResponse(BaseModel):
    event_id: int
    event_name: str
    status: EventStatus
    registration_limit: int
    registrations: int
    attendance: int
    attendance_rate: float
    revenue: float
    waitlist_length: int
    team_completion: int
    item_sales: list[ItemSales] = Field(default_factory=list)
