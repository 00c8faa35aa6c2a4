"""
Principal directory.

Accounts are managed by the identity provider; the core keeps the fields it
needs: email for invites and notifications, role, and participant type for
eligibility checks.
"""

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint

from campusfest.db.base import Base, TimestampMixin
from campusfest.models.enums import UserRole, ParticipantType, sql_in


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=False, default="")
    role = Column(String(20), nullable=False, default=UserRole.PARTICIPANT.value)
    participant_type = Column(String(20), nullable=False, default=ParticipantType.EXTERNAL.value)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint(f"role IN ({sql_in(UserRole)})", name="check_user_role"),
        CheckConstraint(f"participant_type IN ({sql_in(ParticipantType)})", name="check_participant_type"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"
