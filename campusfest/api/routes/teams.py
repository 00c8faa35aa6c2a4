"""
Team formation endpoints. Leader-only operations are enforced in the
service so the rejection carries NOT_TEAM_LEADER.
"""

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from campusfest.core.security import get_current_user, require_participant
from campusfest.db.session import get_db
from campusfest.models.user import User
from campusfest.schemas.team import (
    TeamCreate, TeamInvite, TeamRegistrationResponse, TeamRespond, TeamResponse,
)
from campusfest.services import team_service
from campusfest.services.notifier import Notifier, get_notifier

router = APIRouter(prefix="/teams", tags=["Teams"])


@router.post("/", response_model=TeamResponse, status_code=status.HTTP_201_CREATED)
async def create_team_endpoint(
    body: TeamCreate,
    user: User = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Create a team for an event and invite members by email."""
    return await team_service.create_team(
        db,
        body.event_id,
        user,
        body.name,
        [str(e) for e in body.member_emails],
        max_size=body.max_size,
        form_responses=body.form_responses,
        notifier=notifier,
    )


@router.get("/mine", response_model=list[TeamResponse])
async def my_teams_endpoint(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await team_service.list_my_teams(db, user)


@router.get("/{team_id}", response_model=TeamResponse)
async def get_team_endpoint(
    team_id: int,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await team_service.get_team(db, team_id, user)


@router.post("/{team_id}/invite", response_model=TeamResponse)
async def invite_endpoint(
    team_id: int,
    body: TeamInvite,
    user: User = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    return await team_service.invite(db, team_id, user, str(body.email), notifier=notifier)


@router.delete("/{team_id}/members/{member_id}", response_model=TeamResponse)
async def remove_member_endpoint(
    team_id: int,
    member_id: int,
    user: User = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    return await team_service.remove_member(db, team_id, user, member_id)


@router.post("/{team_id}/respond", response_model=TeamResponse)
async def respond_endpoint(
    team_id: int,
    body: TeamRespond,
    user: User = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    """Accept or decline an invitation."""
    return await team_service.respond(db, team_id, user, body.action == "accept", body.form_responses)


@router.post("/{team_id}/register", response_model=TeamRegistrationResponse)
async def register_team_endpoint(
    team_id: int,
    user: User = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
):
    """Register the whole team. Either every member is admitted or nobody is."""
    result = await team_service.register_team(db, team_id, user, notifier=notifier)
    return TeamRegistrationResponse(
        message="Team registered",
        team=TeamResponse.model_validate(result.team),
        registrations_created=len(result.created),
        members_skipped=result.skipped,
    )


@router.delete("/{team_id}", status_code=status.HTTP_204_NO_CONTENT)
async def disband_endpoint(
    team_id: int,
    user: User = Depends(require_participant),
    db: AsyncSession = Depends(get_db),
):
    await team_service.disband(db, team_id, user)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
