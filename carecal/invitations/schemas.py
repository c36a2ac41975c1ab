"""Pydantic schemas for sharing invitations."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from carecal.db.models import GrantPermission, GrantStatus


class InvitationCreate(BaseModel):
    """Schema for sharing an appointment or a dashboard.

    ``kind`` and ``permission`` are validated by the service so that an
    unknown value is reported as a bad request. For dashboards
    ``resource_id`` defaults to the caller's own dashboard.
    """

    kind: str = "appointment"
    resource_id: str | None = None
    email: EmailStr | None = None
    invited_user_id: str | None = None
    permission: str = "read"


class InvitationCreated(BaseModel):
    """Schema returned after creating an invitation."""

    id: str
    kind: str
    resource_id: str
    permission: GrantPermission
    status: GrantStatus
    token: str
    accept_url: str


class GrantResponse(BaseModel):
    """Schema for a grant as seen by the owner or the invitee."""

    id: str
    resource_id: str
    invited_user_id: str | None = None
    invited_email: str | None = None
    invited_by_id: str | None = None
    status: GrantStatus
    permission: GrantPermission
    created_at: datetime | None = None
    responded_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class InvitationResponse(GrantResponse):
    """Schema for an invitation list item."""

    kind: str
    direction: Literal["received", "sent"]
    appointment_title: str | None = None
    token: str | None = None


class InvitationList(BaseModel):
    """Invitations received or sent by the current user."""

    appointment_invitations: list[InvitationResponse]
    dashboard_invitations: list[InvitationResponse]


class TokenRequest(BaseModel):
    """Schema carrying an invitation token."""

    token: str = Field(..., min_length=1, max_length=255)


class InvitationAccepted(BaseModel):
    """Schema returned after redeeming or declining an invitation."""

    kind: str
    grant_id: str
    resource_id: str
    permission: GrantPermission
    status: GrantStatus


class InvitationPreview(BaseModel):
    """Details shown on the accept page before redeeming."""

    kind: str
    permission: GrantPermission
    invited_email: str | None = None
    inviter_email: str | None = None
    inviter_name: str | None = None
    resource_title: str | None = None
