from campusfest.schemas.event import (
    EventCreate, EventResponse, EventListResponse, EventStatusUpdate, EventAnalyticsResponse,
)
from campusfest.schemas.registration import (
    RegistrationCreate, PurchaseCreate, RegistrationResponse, WaitlistResponse,
)
from campusfest.schemas.team import TeamCreate, TeamInvite, TeamRespond, TeamResponse

__all__ = [
    "EventCreate", "EventResponse", "EventListResponse", "EventStatusUpdate", "EventAnalyticsResponse",
    "RegistrationCreate", "PurchaseCreate", "RegistrationResponse", "WaitlistResponse",
    "TeamCreate", "TeamInvite", "TeamRespond", "TeamResponse",
]
