"""Initial database schema.

Revision ID: 001
Revises:
Create Date: 2026-10-16

Complete schema for CareCal including:
- Users with email verification
- Appointments and their activity log
- Appointment-scoped grants (appointment_assignees)
- Account-wide grants (dashboard_access)
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

appointment_status = postgresql.ENUM(
    "pending", "done", "alert", name="appointmentstatus", create_type=False
)
grant_status = postgresql.ENUM(
    "pending", "accepted", "declined", name="grantstatus", create_type=False
)
grant_permission = postgresql.ENUM(
    "read", "write", "full", name="grantpermission", create_type=False
)


def _grant_columns() -> list[sa.Column]:
    """Columns shared by both grant tables."""
    return [
        sa.Column("id", sa.CHAR(36), primary_key=True),
        sa.Column(
            "invited_user_id",
            sa.CHAR(36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("invited_email", sa.String(255), nullable=True),
        sa.Column(
            "invited_by_id",
            sa.CHAR(36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("status", grant_status, nullable=False, server_default="pending"),
        sa.Column("permission", grant_permission, nullable=False, server_default="read"),
        sa.Column("token", sa.String(64), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    """Create all tables."""
    bind = op.get_bind()
    # Shared by both grant tables, so created once up front
    appointment_status.create(bind, checkfirst=True)
    grant_status.create(bind, checkfirst=True)
    grant_permission.create(bind, checkfirst=True)

    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.CHAR(36), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(50), nullable=True),
        sa.Column("is_email_verified", sa.Boolean(), server_default=sa.false()),
        sa.Column("email_verification_token", sa.String(64), nullable=True, unique=True),
        sa.Column("email_verification_sent_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("last_login", sa.DateTime(), nullable=True),
    )

    # Appointments table
    op.create_table(
        "appointments",
        sa.Column("id", sa.CHAR(36), primary_key=True),
        sa.Column(
            "owner_id",
            sa.CHAR(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("start", sa.DateTime(), nullable=False),
        sa.Column("end", sa.DateTime(), nullable=False),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", appointment_status, nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint('"end" > start', name="ck_appointments_end_after_start"),
    )
    op.create_index("ix_appointments_owner_id", "appointments", ["owner_id"])
    op.create_index("ix_appointments_start", "appointments", ["start"])
    op.create_index("ix_appointments_end", "appointments", ["end"])

    # Activity log
    op.create_table(
        "activities",
        sa.Column("id", sa.CHAR(36), primary_key=True),
        sa.Column(
            "appointment_id",
            sa.CHAR(36),
            sa.ForeignKey("appointments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "created_by_id",
            sa.CHAR(36),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("type", sa.String(50), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index("ix_activities_appointment_id", "activities", ["appointment_id"])

    # Appointment-scoped grants. No unique (appointment, invitee) constraint:
    # duplicates are merged when read.
    op.create_table(
        "appointment_assignees",
        sa.Column(
            "appointment_id",
            sa.CHAR(36),
            sa.ForeignKey("appointments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        *_grant_columns(),
    )
    op.create_index(
        "ix_appointment_assignees_appointment_id", "appointment_assignees", ["appointment_id"]
    )
    op.create_index(
        "ix_appointment_assignees_invited_user_id", "appointment_assignees", ["invited_user_id"]
    )
    op.create_index(
        "ix_appointment_assignees_invited_email", "appointment_assignees", ["invited_email"]
    )

    # Account-wide grants
    op.create_table(
        "dashboard_access",
        sa.Column(
            "owner_user_id",
            sa.CHAR(36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        *_grant_columns(),
    )
    op.create_index("ix_dashboard_access_owner_user_id", "dashboard_access", ["owner_user_id"])
    op.create_index(
        "ix_dashboard_access_invited_user_id", "dashboard_access", ["invited_user_id"]
    )
    op.create_index("ix_dashboard_access_invited_email", "dashboard_access", ["invited_email"])


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("dashboard_access")
    op.drop_table("appointment_assignees")
    op.drop_table("activities")
    op.drop_table("appointments")
    op.drop_table("users")

    bind = op.get_bind()
    grant_permission.drop(bind, checkfirst=True)
    grant_status.drop(bind, checkfirst=True)
    appointment_status.drop(bind, checkfirst=True)
