"""
Pydantic schemas for team formation.
"""

from datetime import datetime
from typing import Any, Literal, Optional
from pydantic import BaseModel, EmailStr, Field

from campusfest.models.enums import TeamStatus, MemberStatus


class TeamCreate(BaseModel):
    event_id: int
    name: str = Field(..., min_length=1, max_length=120)
    member_emails: list[EmailStr] = Field(default_factory=list)
    max_size: Optional[int] = Field(None, ge=1, le=20)
    form_responses: dict[str, Any] = Field(default_factory=dict)


class TeamInvite(BaseModel):
    email: EmailStr


class TeamRespond(BaseModel):
    action: Literal["accept", "decline"]
    form_responses: dict[str, Any] = Field(default_factory=dict)


class TeamMemberResponse(BaseModel):
    id: int
    user_id: Optional[int]
    email: str
    status: MemberStatus
    responded_at: Optional[datetime]

    model_config = {"from_attributes": True}


class TeamResponse(BaseModel):
    id: int
    event_id: int
    name: str
    leader_id: int
    status: TeamStatus
    max_size: int
    members: list[TeamMemberResponse]
    created_at: datetime

    model_config = {"from_attributes": True}


class TeamRegistrationResponse(BaseModel):
    message: str
    team: TeamResponse
    registrations_created: int
    members_skipped: int
