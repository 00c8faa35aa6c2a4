"""
Team formation models.

Key design decisions:
- One team per (event, leader)
- Members are invited by email; `user_id` is filled once the invitee is
  matched to an account (at invite time or when they respond)
- `TeamMembership` is the derived (event, participant) -> team index.
  Its unique constraint makes "one active team per participant per event"
  a storage invariant instead of a scan over every roster. Rows exist for
  the leader and for accepted members only.
"""

from sqlalchemy import (
    Column, Integer, String, JSON,
    ForeignKey, CheckConstraint, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from campusfest.db.base import Base, TimestampMixin, UTCDateTime
from campusfest.models.enums import TeamStatus, MemberStatus, sql_in


class Team(Base, TimestampMixin):
    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(120), nullable=False)
    leader_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    status = Column(String(20), nullable=False, default=TeamStatus.FORMING.value)
    max_size = Column(Integer, nullable=False, default=4)
    form_responses = Column(JSON, nullable=False, default=dict)

    members = relationship(
        "TeamMember",
        back_populates="team",
        lazy="selectin",
        order_by="TeamMember.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        UniqueConstraint("event_id", "leader_id", name="uq_team_event_leader"),
        CheckConstraint(f"status IN ({sql_in(TeamStatus)})", name="check_team_status"),
        CheckConstraint("max_size >= 1", name="check_team_max_size_positive"),
    )

    @property
    def all_accepted(self) -> bool:
        return all(m.status == MemberStatus.ACCEPTED.value for m in self.members)

    @property
    def is_frozen(self) -> bool:
        return self.status == TeamStatus.REGISTERED.value

    def find_member(self, user_id: int, email: str):
        """Roster entry for a participant, matched by account or invited email."""
        normalized = email.strip().lower()
        for member in self.members:
            if member.user_id == user_id or member.email == normalized:
                return member
        return None

    def __repr__(self) -> str:
        return f"<Team(id={self.id}, event={self.event_id}, leader={self.leader_id}, status={self.status})>"


class TeamMember(Base):
    __tablename__ = "team_members"

    id = Column(Integer, primary_key=True, index=True)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    email = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default=MemberStatus.PENDING.value)
    form_responses = Column(JSON, nullable=False, default=dict)
    responded_at = Column(UTCDateTime(), nullable=True)

    team = relationship("Team", back_populates="members")

    __table_args__ = (
        UniqueConstraint("team_id", "email", name="uq_team_member_email"),
        CheckConstraint(f"status IN ({sql_in(MemberStatus)})", name="check_member_status"),
    )

    def __repr__(self) -> str:
        return f"<TeamMember(team={self.team_id}, email={self.email}, status={self.status})>"


class TeamMembership(Base):
    __tablename__ = "team_memberships"

    id = Column(Integer, primary_key=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id", ondelete="CASCADE"), nullable=False, index=True)

    __table_args__ = (
        UniqueConstraint("event_id", "user_id", name="uq_team_membership_event_user"),
    )

    def __repr__(self) -> str:
        return f"<TeamMembership(event={self.event_id}, user={self.user_id}, team={self.team_id})>"
