"""
Team formation: invite, respond, and all-or-nothing team registration.

State machine:
  forming    -> ready       every roster member has accepted
  ready      -> forming     a new invite or a removal leaves someone pending
  ready      -> registered  leader registers the team (terminal, roster frozen)

"One active team per participant per event" is held by the
team_memberships table: one row per (event, participant) for every leader
and accepted member, written in the same transaction as the roster change.
Its unique constraint turns a lost race into ALREADY_IN_ANOTHER_TEAM.

Team registration reserves capacity for every newly admitted member with a
single conditional increment, so either the whole roster gets in or nobody
does. Members who already hold an active registration are linked to the
team and skipped.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from campusfest.core.config import get_settings
from campusfest.core.errors import (
    AdmissionError, ConflictError, ForbiddenError, NotFoundError,
    PreconditionFailed, RejectionReason, ValidationFailed,
)
from campusfest.core.locks import entity_locks, event_key, team_key
from campusfest.core.logging import get_logger
from campusfest.core.metrics import record_team_operation
from campusfest.db.base import utcnow
from campusfest.models.enums import MemberStatus, RegistrationStatus, TeamStatus, UserRole
from campusfest.models.event import Event, WaitlistEntry
from campusfest.models.registration import Registration
from campusfest.models.team import Team, TeamMember, TeamMembership
from campusfest.models.user import User
from campusfest.schemas.forms import validate_form_responses
from campusfest.services.admission_service import (
    capacity_exceeded, initial_payment_status, reset_registration, reserve_slots, sync_gate,
)
from campusfest.services.guards import ensure_eligible, ensure_open, load_event, unit_of_work
from campusfest.services.notifier import Notification, NotificationKind, Notifier, dispatch
from campusfest.services.strategy_factory import get_admission
from campusfest.services.ticket_service import issue_ticket

logger = get_logger(__name__)


@dataclass
class TeamRegistration:
    team: Team
    created: list[Registration] = field(default_factory=list)
    skipped: int = 0


def _normalize_email(email: str) -> str:
    return email.strip().lower()


async def load_team(db: AsyncSession, team_id: int, *, for_update: bool = False) -> Team:
    stmt = select(Team).where(Team.id == team_id)
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    team = (await db.execute(stmt)).scalar_one_or_none()
    if team is None:
        raise NotFoundError(RejectionReason.TEAM_NOT_FOUND, f"Team {team_id} not found")
    return team


def _ensure_leader(team: Team, user: User) -> None:
    if team.leader_id != user.id:
        raise ForbiddenError(RejectionReason.NOT_TEAM_LEADER, "Only the team leader can do that.")


def _ensure_not_frozen(team: Team) -> None:
    if team.is_frozen:
        raise PreconditionFailed(RejectionReason.TEAM_FROZEN, "The team is registered and can no longer change.")


def _ensure_standard(event: Event) -> None:
    if event.is_merchandise:
        raise PreconditionFailed(RejectionReason.WRONG_EVENT_TYPE, "Teams can only register for standard events.")


def _ensure_room(team: Team, adding: int = 1) -> None:
    # one seat is the leader's
    if len(team.members) + adding > team.max_size - 1:
        raise ConflictError(
            RejectionReason.TEAM_FULL,
            f"Team is full ({team.max_size} including the leader).",
            max_size=team.max_size,
        )


def _recompute_status(team: Team) -> None:
    if team.is_frozen:
        return
    team.status = TeamStatus.READY.value if team.all_accepted else TeamStatus.FORMING.value


async def _membership(db: AsyncSession, event_id: int, user_id: int) -> Optional[TeamMembership]:
    return (
        await db.execute(
            select(TeamMembership).where(TeamMembership.event_id == event_id, TeamMembership.user_id == user_id)
        )
    ).scalar_one_or_none()


async def _users_by_email(db: AsyncSession, emails: list[str]) -> dict[str, User]:
    if not emails:
        return {}
    users = (await db.execute(select(User).where(User.email.in_(emails)))).scalars().all()
    return {u.email.lower(): u for u in users}


def _invite_notice(email: str, team: Team, event: Event, leader: User) -> Notification:
    return Notification(
        email=email,
        kind=NotificationKind.TEAM_INVITE,
        context={
            "team_id": team.id,
            "team_name": team.name,
            "event_id": event.id,
            "event_name": event.name,
            "leader": leader.full_name,
        },
    )


async def _team_event_id(db: AsyncSession, team_id: int) -> int:
    """Event of a team, read before taking the locks that need it."""
    team = await load_team(db, team_id)
    return team.event_id


async def create_team(
    db: AsyncSession,
    event_id: int,
    leader: User,
    name: str,
    member_emails: Optional[list[str]] = None,
    *,
    max_size: Optional[int] = None,
    form_responses: Optional[dict] = None,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> Team:
    """Create a team led by `leader` and invite the listed emails."""
    now = now or utcnow()
    leader_id = leader.id
    invitees = [_normalize_email(e) for e in (member_emails or [])]
    max_size = max_size or get_settings().DEFAULT_TEAM_MAX_SIZE

    if len(set(invitees)) != len(invitees):
        raise ValidationFailed(RejectionReason.INVALID_TEAM_ROSTER, "Each member can only be invited once.")
    if _normalize_email(leader.email) in invitees:
        raise ValidationFailed(RejectionReason.INVALID_TEAM_ROSTER, "The leader cannot invite themselves.")

    try:
        async with entity_locks.hold(event_key(event_id)):
            event = await load_event(db, event_id, for_update=True)
            _ensure_standard(event)
            ensure_open(event, now)
            ensure_eligible(event, leader)

            existing = await _membership(db, event_id, leader_id)
            if existing is not None:
                owned = await db.get(Team, existing.team_id)
                if owned is not None and owned.leader_id == leader_id:
                    raise ConflictError(
                        RejectionReason.TEAM_EXISTS,
                        "You already lead a team for this event.",
                        team_id=existing.team_id,
                    )
                raise ConflictError(
                    RejectionReason.ALREADY_IN_ANOTHER_TEAM,
                    "You are already in a team for this event.",
                    team_id=existing.team_id,
                )

            answers = validate_form_responses(event.custom_form, form_responses)
            users = await _users_by_email(db, invitees)

            team = Team(
                event_id=event_id,
                name=name.strip(),
                leader_id=leader_id,
                max_size=max_size,
                form_responses=answers,
                members=[
                    TeamMember(
                        email=email,
                        user_id=users[email].id if email in users else None,
                        status=MemberStatus.PENDING.value,
                    )
                    for email in invitees
                ],
            )
            _ensure_room(team, adding=0)
            _recompute_status(team)

            async with unit_of_work(
                db,
                conflict=ConflictError(
                    RejectionReason.ALREADY_IN_ANOTHER_TEAM, "You are already in a team for this event."
                ),
            ):
                db.add(team)
                await db.flush()
                db.add(TeamMembership(event_id=event_id, user_id=leader_id, team_id=team.id))
                await db.flush()
    except AdmissionError as e:
        record_team_operation("create", e.reason.value)
        raise

    record_team_operation("create", "ok")
    logger.info("team_created", team_id=team.id, event_id=event_id, leader_id=leader_id, invited=len(invitees))
    if notifier is not None:
        await dispatch(notifier, [_invite_notice(email, team, event, leader) for email in invitees])
    return team


async def invite(
    db: AsyncSession,
    team_id: int,
    leader: User,
    email: str,
    *,
    notifier: Optional[Notifier] = None,
) -> Team:
    """Add one invitee to a forming or ready team."""
    email = _normalize_email(email)
    event_id = await _team_event_id(db, team_id)

    try:
        async with entity_locks.hold(event_key(event_id), team_key(team_id)):
            team = await load_team(db, team_id, for_update=True)
            _ensure_leader(team, leader)
            _ensure_not_frozen(team)
            if email == _normalize_email(leader.email):
                raise ValidationFailed(RejectionReason.INVALID_TEAM_ROSTER, "The leader cannot invite themselves.")
            if any(m.email == email for m in team.members):
                raise ConflictError(RejectionReason.ALREADY_INVITED, f"{email} is already on the roster.")
            _ensure_room(team)

            users = await _users_by_email(db, [email])
            event = await load_event(db, event_id)
            async with unit_of_work(
                db,
                conflict=ConflictError(RejectionReason.ALREADY_INVITED, f"{email} is already on the roster."),
            ):
                team.members.append(
                    TeamMember(
                        email=email,
                        user_id=users[email].id if email in users else None,
                        status=MemberStatus.PENDING.value,
                    )
                )
                _recompute_status(team)
                await db.flush()
    except AdmissionError as e:
        record_team_operation("invite", e.reason.value)
        raise

    record_team_operation("invite", "ok")
    logger.info("team_member_invited", team_id=team_id, email=email, status=team.status)
    if notifier is not None:
        await dispatch(notifier, [_invite_notice(email, team, event, leader)])
    return team


async def respond(
    db: AsyncSession,
    team_id: int,
    user: User,
    accept: bool,
    form_responses: Optional[dict] = None,
    *,
    now: Optional[datetime] = None,
) -> Team:
    """Accept or decline an invitation. Each member answers once."""
    now = now or utcnow()
    user_id, user_email = user.id, user.email
    event_id = await _team_event_id(db, team_id)
    operation = "accept" if accept else "decline"

    try:
        async with entity_locks.hold(event_key(event_id), team_key(team_id)):
            team = await load_team(db, team_id, for_update=True)
            member = team.find_member(user_id, user_email)
            if member is None:
                raise ForbiddenError(RejectionReason.NOT_A_MEMBER, "You were not invited to this team.")
            _ensure_not_frozen(team)
            if member.status != MemberStatus.PENDING.value:
                raise PreconditionFailed(
                    RejectionReason.ALREADY_RESPONDED,
                    f"You already {member.status} this invitation.",
                    member_status=member.status,
                )

            answers: dict = {}
            if accept:
                existing = await _membership(db, event_id, user_id)
                if existing is not None and existing.team_id != team_id:
                    raise ConflictError(
                        RejectionReason.ALREADY_IN_ANOTHER_TEAM,
                        "You are already in another team for this event.",
                        team_id=existing.team_id,
                    )
                event = await load_event(db, event_id)
                answers = validate_form_responses(event.custom_form, form_responses)

            async with unit_of_work(
                db,
                conflict=ConflictError(
                    RejectionReason.ALREADY_IN_ANOTHER_TEAM, "You are already in another team for this event."
                ),
            ):
                member.user_id = user_id
                member.responded_at = now
                if accept:
                    member.status = MemberStatus.ACCEPTED.value
                    member.form_responses = answers
                    db.add(TeamMembership(event_id=event_id, user_id=user_id, team_id=team_id))
                else:
                    member.status = MemberStatus.DECLINED.value
                _recompute_status(team)
                await db.flush()
    except AdmissionError as e:
        record_team_operation(operation, e.reason.value)
        raise

    record_team_operation(operation, "ok")
    logger.info("team_invite_answered", team_id=team_id, user_id=user_id, accepted=accept, team_status=team.status)
    return team


async def remove_member(db: AsyncSession, team_id: int, leader: User, member_id: int) -> Team:
    """Leader drops a roster entry, freeing its seat."""
    event_id = await _team_event_id(db, team_id)

    try:
        async with entity_locks.hold(event_key(event_id), team_key(team_id)):
            team = await load_team(db, team_id, for_update=True)
            _ensure_leader(team, leader)
            _ensure_not_frozen(team)
            member = next((m for m in team.members if m.id == member_id), None)
            if member is None:
                raise NotFoundError(RejectionReason.MEMBER_NOT_FOUND, "No such member in this team.")

            async with unit_of_work(db):
                if member.status == MemberStatus.ACCEPTED.value and member.user_id is not None:
                    await db.execute(
                        delete(TeamMembership).where(
                            TeamMembership.team_id == team_id, TeamMembership.user_id == member.user_id
                        )
                    )
                team.members.remove(member)
                _recompute_status(team)
                await db.flush()
    except AdmissionError as e:
        record_team_operation("remove_member", e.reason.value)
        raise

    record_team_operation("remove_member", "ok")
    logger.info("team_member_removed", team_id=team_id, member_id=member_id, team_status=team.status)
    return team


async def register_team(
    db: AsyncSession,
    team_id: int,
    leader: User,
    *,
    notifier: Optional[Notifier] = None,
    now: Optional[datetime] = None,
) -> TeamRegistration:
    """
    Admit the leader and every accepted member in one unit.

    Rejects without side effects when any member is not accepted, the event
    is closed, anyone is ineligible, or the event cannot fit everyone.
    """
    now = now or utcnow()
    event_id = await _team_event_id(db, team_id)
    notices: list[Notification] = []

    try:
        async with entity_locks.hold(event_key(event_id), team_key(team_id)):
            try:
                event = await load_event(db, event_id, for_update=True)
                team = await load_team(db, team_id, for_update=True)
                _ensure_leader(team, leader)
                _ensure_not_frozen(team)
                if not team.all_accepted:
                    waiting = [m.email for m in team.members if m.status != MemberStatus.ACCEPTED.value]
                    raise PreconditionFailed(
                        RejectionReason.TEAM_NOT_READY,
                        "Every invited member must accept before the team can register.",
                        waiting_on=waiting,
                    )
                _ensure_standard(event)
                ensure_open(event, now)

                async with unit_of_work(
                    db,
                    conflict=ConflictError(
                        RejectionReason.ALREADY_REGISTERED, "A team member registered at the same time."
                    ),
                ):
                    created, skipped, emails = await _register_locked(db, event, team, now)
                notices = [
                    Notification(
                        email=email,
                        kind=NotificationKind.TEAM_REGISTERED,
                        context={
                            "team_id": team.id,
                            "team_name": team.name,
                            "event_id": event.id,
                            "event_name": event.name,
                            "ticket_id": registration.ticket_id,
                        },
                    )
                    for registration, email in emails
                ]
                result = TeamRegistration(team=team, created=created, skipped=skipped)
            finally:
                await sync_gate(db, event_id)
    except AdmissionError as e:
        record_team_operation("register", e.reason.value)
        logger.info("team_registration_rejected", team_id=team_id, reason=e.reason.value)
        raise

    record_team_operation("register", "ok")
    logger.info(
        "team_registered",
        team_id=team_id,
        event_id=event_id,
        admitted=len(result.created),
        skipped=result.skipped,
        registration_count=event.registration_count,
    )
    if notifier is not None:
        await dispatch(notifier, notices)
    return result


async def _register_locked(
    db: AsyncSession,
    event: Event,
    team: Team,
    now: datetime,
) -> tuple[list[Registration], int, list[tuple[Registration, str]]]:
    accepted = [m for m in team.members if m.status == MemberStatus.ACCEPTED.value]
    answers = {team.leader_id: team.form_responses}
    answers.update({m.user_id: m.form_responses for m in accepted})

    roster_ids = [team.leader_id] + [m.user_id for m in accepted]
    users = {
        u.id: u for u in (await db.execute(select(User).where(User.id.in_(roster_ids)))).scalars().all()
    }
    for user_id in roster_ids:
        try:
            ensure_eligible(event, users[user_id])
        except PreconditionFailed as e:
            e.extra["email"] = users[user_id].email
            raise

    existing = {
        r.participant_id: r
        for r in (
            await db.execute(
                select(Registration)
                .where(Registration.event_id == event.id, Registration.participant_id.in_(roster_ids))
                .execution_options(populate_existing=True)
            )
        ).scalars().all()
    }
    skipped = [uid for uid in roster_ids if uid in existing and existing[uid].is_active]
    admitted = [uid for uid in roster_ids if uid not in skipped]

    if admitted:
        if not await get_admission().admit(event.id, len(admitted)):
            raise capacity_exceeded(event, len(admitted))
        if not await reserve_slots(db, event, len(admitted)):
            raise capacity_exceeded(event, len(admitted))

    for uid in skipped:
        existing[uid].team_id = team.id

    created: list[Registration] = []
    emails: list[tuple[Registration, str]] = []
    for uid in admitted:
        registration = existing.get(uid)
        if registration is None:
            registration = Registration(
                event_id=event.id,
                participant_id=uid,
                status=RegistrationStatus.REGISTERED.value,
                payment_status=initial_payment_status(event),
                registered_at=now,
                selections=[],
            )
            db.add(registration)
        else:
            reset_registration(registration, event, now)
        registration.team_id = team.id
        registration.form_responses = answers.get(uid) or {}
        await issue_ticket(db, registration, event.name, users[uid].email)
        created.append(registration)
        emails.append((registration, users[uid].email))

    if admitted:
        await db.execute(
            delete(WaitlistEntry).where(WaitlistEntry.event_id == event.id, WaitlistEntry.user_id.in_(admitted))
        )
        if not event.form_locked:
            event.form_locked = True

    team.status = TeamStatus.REGISTERED.value
    await db.flush()
    return created, len(skipped), emails


async def disband(db: AsyncSession, team_id: int, leader: User) -> None:
    """Delete a team that has not registered yet."""
    event_id = await _team_event_id(db, team_id)

    try:
        async with entity_locks.hold(event_key(event_id), team_key(team_id)):
            team = await load_team(db, team_id, for_update=True)
            _ensure_leader(team, leader)
            _ensure_not_frozen(team)
            async with unit_of_work(db):
                await db.execute(delete(TeamMembership).where(TeamMembership.team_id == team_id))
                await db.delete(team)
    except AdmissionError as e:
        record_team_operation("disband", e.reason.value)
        raise

    record_team_operation("disband", "ok")
    logger.info("team_disbanded", team_id=team_id, event_id=event_id)


async def list_my_teams(db: AsyncSession, user: User) -> list[Team]:
    """Teams the user leads or is on the roster of."""
    rostered = select(TeamMember.team_id).where(
        or_(TeamMember.user_id == user.id, TeamMember.email == _normalize_email(user.email))
    )
    result = await db.execute(
        select(Team)
        .where(or_(Team.leader_id == user.id, Team.id.in_(rostered)))
        .order_by(Team.created_at.desc(), Team.id.desc())
    )
    return list(result.scalars().all())


async def get_team(db: AsyncSession, team_id: int, user: User) -> Team:
    """Team detail for its leader, roster members, the event organizer and admins."""
    team = await load_team(db, team_id)
    if team.leader_id == user.id or team.find_member(user.id, user.email) is not None:
        return team
    if user.role == UserRole.ADMIN.value:
        return team
    event = await load_event(db, team.event_id)
    if event.organizer_id == user.id:
        return team
    raise ForbiddenError(RejectionReason.NOT_A_MEMBER, "You are not part of this team.")
