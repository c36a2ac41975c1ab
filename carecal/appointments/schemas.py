"""Pydantic schemas for appointments and their activity log."""

from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from carecal.db.models import AppointmentStatus
from carecal.permissions.resolver import PermissionLevel


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Convert an aware timestamp to naive UTC, the form stored in the database."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


class AppointmentBase(BaseModel):
    """Base schema for appointments."""

    title: str = Field(..., min_length=1, max_length=200)
    start: datetime
    end: datetime
    location: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=1000)
    status: AppointmentStatus | None = None


class AppointmentCreate(AppointmentBase):
    """Schema for creating an appointment."""

    @field_validator("start", "end")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    @model_validator(mode="after")
    def end_after_start(self) -> "AppointmentCreate":
        if self.end <= self.start:
            raise ValueError("end must be after start")
        return self


class AppointmentUpdate(BaseModel):
    """Schema for updating an appointment.

    Only fields present in the request are changed. The end-after-start
    rule is checked by the service against the merged values.
    """

    title: str | None = Field(None, min_length=1, max_length=200)
    start: datetime | None = None
    end: datetime | None = None
    location: str | None = Field(None, max_length=255)
    notes: str | None = Field(None, max_length=1000)
    status: AppointmentStatus | None = None

    @field_validator("start", "end")
    @classmethod
    def normalize_timestamp(cls, v: datetime | None) -> datetime | None:
        return to_naive_utc(v)


class AppointmentResponse(AppointmentBase):
    """Schema for appointment response, with the caller's effective permission."""

    id: str
    owner_id: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    permission: PermissionLevel | None = None

    model_config = ConfigDict(from_attributes=True)


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    items: list[AppointmentResponse]
    total: int
    limit: int
    offset: int


class AppointmentSearchParams(BaseModel):
    """Schema for appointment list filters."""

    status: AppointmentStatus | None = None
    start_from: datetime | None = None
    end_before: datetime | None = None
    limit: int = Field(20, ge=1, le=1000)
    offset: int = Field(0, ge=0)

    @field_validator("start_from", "end_before")
    @classmethod
    def normalize_timestamp(cls, v: datetime | None) -> datetime | None:
        return to_naive_utc(v)


class AppointmentPermissionResponse(BaseModel):
    """Effective permission of the caller on an appointment (null for none)."""

    appointment_id: str
    permission: PermissionLevel | None = None


class ActivityCreate(BaseModel):
    """Schema for one activity log entry."""

    type: str = Field(..., min_length=1, max_length=50)
    content: str = Field(..., min_length=1, max_length=5000)


class ActivitiesCreate(BaseModel):
    """Schema for adding one or more activity entries at once."""

    activities: list[ActivityCreate] = Field(..., min_length=1, max_length=100)


class ActivityResponse(BaseModel):
    """Schema for activity response."""

    id: str
    appointment_id: str
    created_by_id: str | None = None
    type: str
    content: str
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)
