"""SQLAlchemy database models."""

import enum
import secrets
from datetime import datetime
from typing import ClassVar, Optional
from uuid import uuid4

from sqlalchemy import (
    CHAR,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column, relationship
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def generate_uuid() -> str:
    """Generate a UUID string for primary keys.

    Returns:
        str: UUID as 36-character string.
    """
    return str(uuid4())


def generate_token() -> str:
    """Generate an unguessable invitation token.

    Returns:
        str: 64-character hex token (256 bits of entropy).
    """
    return secrets.token_hex(32)


class AppointmentStatus(str, enum.Enum):
    """Appointment status enumeration."""

    PENDING = "pending"
    DONE = "done"
    ALERT = "alert"


class GrantStatus(str, enum.Enum):
    """Invitation grant status enumeration."""

    PENDING = "pending"  # Sent, not yet answered
    ACCEPTED = "accepted"  # Redeemed by the invitee
    DECLINED = "declined"  # Refused by the invitee


class GrantPermission(str, enum.Enum):
    """Access level conferred by a grant."""

    READ = "read"  # View only
    WRITE = "write"  # View and modify
    FULL = "full"  # View, modify and delete


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [e.value for e in enum_cls]


class User(Base):
    """User account model.

    Attributes:
        id: Primary key UUID.
        email: Unique, lower-cased email address.
        password_hash: Bcrypt password hash.
        display_name: Optional display name.
        role: Optional free-form role label.
        is_email_verified: Whether the email address has been confirmed.
        email_verification_token: Pending verification token.
        email_verification_sent_at: When the verification email was sent.
        created_at: Account creation timestamp.
        last_login: Last successful login.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    display_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_email_verified: Mapped[bool] = mapped_column(Boolean, default=False)
    email_verification_token: Mapped[str | None] = mapped_column(
        String(64), unique=True, nullable=True
    )
    email_verification_sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    last_login: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    appointments: Mapped[list["Appointment"]] = relationship(
        "Appointment", back_populates="owner", cascade="all, delete-orphan"
    )


class Appointment(Base):
    """Appointment model.

    The creator is the owner; ownership never transfers.

    Attributes:
        id: Primary key UUID.
        owner_id: FK to the user who created the appointment.
        title: Appointment title.
        start: Start timestamp.
        end: End timestamp, strictly after start.
        location: Optional location.
        notes: Optional free text notes.
        status: pending, done or alert.
        created_at: Record creation timestamp.
        updated_at: Last modification timestamp.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_owner_id", "owner_id"),
        Index("ix_appointments_start", "start"),
        Index("ix_appointments_end", "end"),
    )

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    owner_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[AppointmentStatus | None] = mapped_column(
        Enum(AppointmentStatus, values_callable=_enum_values), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Relationships
    owner: Mapped["User"] = relationship("User", back_populates="appointments")
    activities: Mapped[list["Activity"]] = relationship(
        "Activity",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="Activity.created_at.desc()",
    )
    assignees: Mapped[list["AppointmentAssignee"]] = relationship(
        "AppointmentAssignee", back_populates="appointment", cascade="all, delete-orphan"
    )


class Activity(Base):
    """Appointment activity log entry.

    Attributes:
        id: Primary key UUID.
        appointment_id: FK to the appointment.
        created_by_id: FK to the user who wrote the entry.
        type: Activity type label (e.g. "note", "call").
        content: Entry text.
        created_at: Record creation timestamp.
    """

    __tablename__ = "activities"
    __table_args__ = (Index("ix_activities_appointment_id", "appointment_id"),)

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    appointment_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False
    )
    created_by_id: Mapped[str | None] = mapped_column(
        CHAR(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())

    # Relationships
    appointment: Mapped["Appointment"] = relationship("Appointment", back_populates="activities")
    created_by: Mapped[Optional["User"]] = relationship("User")


class GrantMixin:
    """Columns shared by appointment-scoped and account-wide grants.

    A grant authorizes one invitee (by user id, by email, or both once
    linked) to access one resource at one permission level. Duplicate
    grants for the same invitee are allowed and merged at read time.
    """

    resource_field: ClassVar[str]

    id: Mapped[str] = mapped_column(CHAR(36), primary_key=True, default=generate_uuid)
    invited_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    token: Mapped[str] = mapped_column(
        String(64), unique=True, nullable=False, default=generate_token
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    responded_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    @declared_attr
    def invited_user_id(cls) -> Mapped[str | None]:
        return mapped_column(CHAR(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @declared_attr
    def invited_by_id(cls) -> Mapped[str | None]:
        return mapped_column(CHAR(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @declared_attr
    def status(cls) -> Mapped[GrantStatus]:
        return mapped_column(
            Enum(GrantStatus, values_callable=_enum_values, name="grantstatus"),
            default=GrantStatus.PENDING,
            nullable=False,
        )

    @declared_attr
    def permission(cls) -> Mapped[GrantPermission]:
        return mapped_column(
            Enum(GrantPermission, values_callable=_enum_values, name="grantpermission"),
            default=GrantPermission.READ,
            nullable=False,
        )

    @property
    def resource_id(self) -> str:
        """ID of the resource this grant targets."""
        return getattr(self, self.resource_field)


class AppointmentAssignee(GrantMixin, Base):
    """Appointment-scoped grant (invitation to a single appointment)."""

    __tablename__ = "appointment_assignees"
    __table_args__ = (
        Index("ix_appointment_assignees_appointment_id", "appointment_id"),
        Index("ix_appointment_assignees_invited_user_id", "invited_user_id"),
        Index("ix_appointment_assignees_invited_email", "invited_email"),
    )

    resource_field = "appointment_id"

    appointment_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("appointments.id", ondelete="CASCADE"), nullable=False
    )

    # Relationships
    appointment: Mapped["Appointment"] = relationship("Appointment", back_populates="assignees")


class DashboardAccess(GrantMixin, Base):
    """Account-wide grant (invitation to all appointments of a user)."""

    __tablename__ = "dashboard_access"
    __table_args__ = (
        Index("ix_dashboard_access_owner_user_id", "owner_user_id"),
        Index("ix_dashboard_access_invited_user_id", "invited_user_id"),
        Index("ix_dashboard_access_invited_email", "invited_email"),
    )

    resource_field = "owner_user_id"

    owner_user_id: Mapped[str] = mapped_column(
        CHAR(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )

    # Relationships
    owner: Mapped["User"] = relationship("User", foreign_keys=[owner_user_id])
