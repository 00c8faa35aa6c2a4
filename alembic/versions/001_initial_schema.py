"""Initial schema: users, events, inventory, waitlist, registrations and teams.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Users table (directory copy of identity-provider accounts)
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False, server_default=sa.text("''")),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'participant'")),
        sa.Column("participant_type", sa.String(20), nullable=False, server_default=sa.text("'external'")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("role IN ('participant', 'organizer', 'admin')", name="check_user_role"),
        sa.CheckConstraint("participant_type IN ('internal', 'external')", name="check_participant_type"),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Events table
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("event_type", sa.String(20), nullable=False, server_default=sa.text("'standard'")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("eligibility", sa.String(20), nullable=False, server_default=sa.text("'all'")),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("registration_deadline", sa.DateTime(timezone=True), nullable=True),
        sa.Column("registration_limit", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("registration_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("registration_fee", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("purchase_limit_per_user", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.Column("custom_form", sa.JSON(), nullable=False, server_default=sa.text("'[]'")),
        sa.Column("form_locked", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("organizer_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("event_type IN ('standard', 'merchandise')", name="check_event_type"),
        sa.CheckConstraint(
            "status IN ('draft', 'published', 'ongoing', 'completed', 'closed')", name="check_event_status"
        ),
        sa.CheckConstraint("eligibility IN ('all', 'internal')", name="check_event_eligibility"),
        sa.CheckConstraint("registration_limit >= 0", name="check_registration_limit_non_negative"),
        sa.CheckConstraint("registration_count >= 0", name="check_registration_count_non_negative"),
        # Final guard against over-admission
        sa.CheckConstraint(
            "registration_limit = 0 OR registration_count <= registration_limit",
            name="check_registration_count_within_limit",
        ),
        sa.CheckConstraint("purchase_limit_per_user >= 0", name="check_purchase_limit_non_negative"),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_organizer_id", "events", ["organizer_id"])
    # Browse query: WHERE status IN (published, ongoing) ORDER BY start_date
    op.create_index("ix_events_status_start", "events", ["status", "start_date"])

    # Merchandise variants, one row per (name, size, color, variant)
    op.create_table(
        "merchandise_items",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("size", sa.String(40), nullable=False, server_default=sa.text("''")),
        sa.Column("color", sa.String(40), nullable=False, server_default=sa.text("''")),
        sa.Column("variant", sa.String(80), nullable=False, server_default=sa.text("''")),
        sa.Column("stock", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("stock >= 0", name="check_item_stock_non_negative"),
        sa.CheckConstraint("price >= 0", name="check_item_price_non_negative"),
        sa.UniqueConstraint("event_id", "name", "size", "color", "variant", name="uq_event_item_variant"),
    )
    op.create_index("ix_merchandise_items_id", "merchandise_items", ["id"])
    op.create_index("ix_merchandise_items_event_id", "merchandise_items", ["event_id"])

    # Waitlist, FIFO by requested_at then id
    op.create_table(
        "waitlist_entries",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("requested_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "user_id", name="uq_waitlist_event_user"),
    )
    op.create_index("ix_waitlist_entries_id", "waitlist_entries", ["id"])
    op.create_index("ix_waitlist_event_requested", "waitlist_entries", ["event_id", "requested_at", "id"])

    # Teams
    op.create_table(
        "teams",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(120), nullable=False),
        sa.Column("leader_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'forming'")),
        sa.Column("max_size", sa.Integer(), nullable=False, server_default=sa.text("4")),
        sa.Column("form_responses", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        *_timestamps(),
        sa.UniqueConstraint("event_id", "leader_id", name="uq_team_event_leader"),
        sa.CheckConstraint("status IN ('forming', 'ready', 'registered')", name="check_team_status"),
        sa.CheckConstraint("max_size >= 1", name="check_team_max_size_positive"),
    )
    op.create_index("ix_teams_id", "teams", ["id"])
    op.create_index("ix_teams_event_id", "teams", ["event_id"])
    op.create_index("ix_teams_leader_id", "teams", ["leader_id"])

    op.create_table(
        "team_members",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("form_responses", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("team_id", "email", name="uq_team_member_email"),
        sa.CheckConstraint("status IN ('pending', 'accepted', 'declined')", name="check_member_status"),
    )
    op.create_index("ix_team_members_id", "team_members", ["id"])
    op.create_index("ix_team_members_team_id", "team_members", ["team_id"])
    op.create_index("ix_team_members_user_id", "team_members", ["user_id"])

    # One active team per participant per event
    op.create_table(
        "team_memberships",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="CASCADE"), nullable=False),
        sa.UniqueConstraint("event_id", "user_id", name="uq_team_membership_event_user"),
    )
    op.create_index("ix_team_memberships_team_id", "team_memberships", ["team_id"])

    # Registrations
    op.create_table(
        "registrations",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("event_id", sa.Integer(), sa.ForeignKey("events.id", ondelete="CASCADE"), nullable=False),
        sa.Column("participant_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'registered'")),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("ticket_id", sa.String(64), nullable=True),
        sa.Column("qr_code", sa.Text(), nullable=True),
        sa.Column("team_id", sa.Integer(), sa.ForeignKey("teams.id", ondelete="SET NULL"), nullable=True),
        sa.Column("form_responses", sa.JSON(), nullable=False, server_default=sa.text("'{}'")),
        sa.Column("registered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("attended", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("attended_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        # One registration row per participant per event; re-registration reuses it
        sa.UniqueConstraint("event_id", "participant_id", name="uq_registration_event_participant"),
        sa.UniqueConstraint("ticket_id", name="uq_registrations_ticket_id"),
        sa.CheckConstraint(
            "status IN ('registered', 'pending_approval', 'approved', 'rejected', 'cancelled', 'completed')",
            name="check_registration_status",
        ),
        sa.CheckConstraint("payment_status IN ('pending', 'paid')", name="check_payment_status"),
    )
    op.create_index("ix_registrations_id", "registrations", ["id"])
    op.create_index("ix_registrations_event_id", "registrations", ["event_id"])
    op.create_index("ix_registrations_participant_id", "registrations", ["participant_id"])
    op.create_index("ix_registrations_team_id", "registrations", ["team_id"])
    op.create_index("ix_registrations_event_status", "registrations", ["event_id", "status"])

    op.create_table(
        "merchandise_selections",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "registration_id", sa.Integer(), sa.ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "item_id", sa.Integer(), sa.ForeignKey("merchandise_items.id", ondelete="SET NULL"), nullable=True
        ),
        sa.Column("item_name", sa.String(120), nullable=False),
        sa.Column("size", sa.String(40), nullable=False, server_default=sa.text("''")),
        sa.Column("color", sa.String(40), nullable=False, server_default=sa.text("''")),
        sa.Column("variant", sa.String(80), nullable=False, server_default=sa.text("''")),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False, server_default=sa.text("0")),
        sa.CheckConstraint("quantity > 0", name="check_selection_quantity_positive"),
    )
    op.create_index("ix_merchandise_selections_id", "merchandise_selections", ["id"])
    op.create_index("ix_merchandise_selections_registration_id", "merchandise_selections", ["registration_id"])


def downgrade() -> None:
    op.drop_table("merchandise_selections")
    op.drop_table("registrations")
    op.drop_table("team_memberships")
    op.drop_table("team_members")
    op.drop_table("teams")
    op.drop_table("waitlist_entries")
    op.drop_table("merchandise_items")
    op.drop_table("events")
    op.drop_table("users")
