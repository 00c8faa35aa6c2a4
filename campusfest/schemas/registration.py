"""
Pydantic schemas for registrations, purchases, waitlist and attendance.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from pydantic import BaseModel, Field

from campusfest.models.enums import RegistrationStatus, PaymentStatus


class RegistrationCreate(BaseModel):
    form_responses: dict[str, Any] = Field(default_factory=dict)


class PurchaseCreate(BaseModel):
    item_name: str = Field(..., min_length=1, max_length=120)
    size: str = Field("", max_length=40)
    color: str = Field("", max_length=40)
    variant: str = Field("", max_length=80)
    quantity: int = Field(1, gt=0, le=100)


class SelectionResponse(BaseModel):
    id: int
    item_name: str
    size: str
    color: str
    variant: str
    quantity: int
    unit_price: Decimal

    model_config = {"from_attributes": True}


class RegistrationResponse(BaseModel):
    id: int
    event_id: int
    participant_id: int
    status: RegistrationStatus
    payment_status: PaymentStatus
    ticket_id: Optional[str]
    qr_code: Optional[str]
    team_id: Optional[int]
    form_responses: dict[str, Any]
    registered_at: datetime
    attended: bool
    attended_at: Optional[datetime]
    selections: list[SelectionResponse]

    model_config = {"from_attributes": True}


class MyStatusResponse(BaseModel):
    registered: bool
    registration: Optional[RegistrationResponse] = None
    waitlisted: bool = False
    waitlist_position: Optional[int] = None


class WaitlistResponse(BaseModel):
    message: str
    event_id: int
    position: int
    requested_at: datetime


class RegistrationActionResponse(BaseModel):
    message: str
    registration_id: int
    status: RegistrationStatus


class AttendanceMark(BaseModel):
    ticket_id: str = Field(..., min_length=1, max_length=64)


class AttendanceResponse(BaseModel):
    message: str
    ticket_id: str
    event_id: int
    event_name: str
    participant_email: str
    attended_at: datetime
