"""Dashboard sharing API routes."""

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from carecal.dashboard.schemas import DashboardAccessList, DashboardPermissionResponse
from carecal.dashboard.service import DashboardService, get_dashboard_service
from carecal.db.models import GrantStatus
from carecal.dependencies import CurrentUser, DbSession
from carecal.invitations.schemas import GrantResponse

access_router = APIRouter()
router = APIRouter()


def get_service(
    db: DbSession,
    current_user: CurrentUser,
) -> DashboardService:
    """Get dashboard service dependency."""
    return get_dashboard_service(db, current_user.id, current_user.email)


@access_router.get("", response_model=DashboardAccessList)
async def list_dashboard_access(
    service: Annotated[DashboardService, Depends(get_service)],
    status_filter: GrantStatus | None = Query(None, alias="status"),
):
    """List dashboard grants the current user owns or received.

    Args:
        service: Dashboard service.
        status_filter: Optional grant status filter.

    Returns:
        DashboardAccessList: Matching grants, newest first.
    """
    grants = service.list_access(status_filter)
    return DashboardAccessList(
        dashboard_access=[GrantResponse.model_validate(g) for g in grants]
    )


@router.get("/{owner_id}/permissions", response_model=DashboardPermissionResponse)
async def get_dashboard_permission(
    owner_id: str,
    service: Annotated[DashboardService, Depends(get_service)],
):
    """Get the current user's effective permission on a user's dashboard."""
    return DashboardPermissionResponse(
        owner_id=owner_id,
        permission=service.get_effective_permission(owner_id),
    )
