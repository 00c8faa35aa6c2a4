from campusfest.models.user import User
from campusfest.models.event import Event, MerchandiseItem, WaitlistEntry
from campusfest.models.registration import Registration, MerchandiseSelection
from campusfest.models.team import Team, TeamMember, TeamMembership

__all__ = [
    "User",
    "Event", "MerchandiseItem", "WaitlistEntry",
    "Registration", "MerchandiseSelection",
    "Team", "TeamMember", "TeamMembership",
]
