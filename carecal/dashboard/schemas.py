"""Pydantic schemas for account-wide sharing."""

from pydantic import BaseModel

from carecal.invitations.schemas import GrantResponse
from carecal.permissions.resolver import PermissionLevel


class DashboardAccessList(BaseModel):
    """Dashboard grants the current user owns or received."""

    dashboard_access: list[GrantResponse]


class DashboardPermissionResponse(BaseModel):
    """Effective permission of the caller on a user's dashboard (null for none)."""

    owner_id: str
    permission: PermissionLevel | None = None
