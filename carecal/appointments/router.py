"""Appointment API routes."""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from carecal.appointments.schemas import (
    ActivitiesCreate,
    ActivityResponse,
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentPermissionResponse,
    AppointmentResponse,
    AppointmentSearchParams,
    AppointmentUpdate,
)
from carecal.appointments.service import AppointmentService, get_appointment_service
from carecal.db.models import AppointmentStatus
from carecal.dependencies import CurrentUser, DbSession
from carecal.invitations.schemas import GrantResponse

router = APIRouter()


def get_service(
    db: DbSession,
    current_user: CurrentUser,
) -> AppointmentService:
    """Get appointment service dependency."""
    return get_appointment_service(db, current_user.id, current_user.email)


@router.get("", response_model=AppointmentListResponse)
async def list_appointments(
    service: Annotated[AppointmentService, Depends(get_service)],
    status_filter: AppointmentStatus | None = Query(None, alias="status"),
    start_from: datetime | None = Query(None, description="Lower bound on start"),
    end_before: datetime | None = Query(None, description="Upper bound on end"),
    limit: int = Query(20, ge=1, le=1000),
    offset: int = Query(0, ge=0),
):
    """List owned appointments and those shared with the current user.

    Args:
        service: Appointment service.
        status_filter: Filter by appointment status.
        start_from: ISO timestamp lower bound on start.
        end_before: ISO timestamp upper bound on end.
        limit: Page size.
        offset: Number of items to skip.

    Returns:
        AppointmentListResponse: Paginated appointments with the caller's permission.
    """
    params = AppointmentSearchParams(
        status=status_filter,
        start_from=start_from,
        end_before=end_before,
        limit=limit,
        offset=offset,
    )
    return service.list_appointments(params)


@router.post("", response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
async def create_appointment(
    data: AppointmentCreate,
    service: Annotated[AppointmentService, Depends(get_service)],
):
    """Create an appointment owned by the current user."""
    return service.create_appointment(data)


@router.get("/{appointment_id}", response_model=AppointmentResponse)
async def get_appointment(
    appointment_id: str,
    service: Annotated[AppointmentService, Depends(get_service)],
):
    """Get an appointment.

    Args:
        appointment_id: Appointment UUID.
        service: Appointment service.

    Returns:
        AppointmentResponse: Appointment with the caller's permission.

    Raises:
        NotFound: If the appointment does not exist.
        Forbidden: If the caller cannot read it.
    """
    return service.get_appointment(appointment_id)


@router.patch("/{appointment_id}", response_model=AppointmentResponse)
async def update_appointment(
    appointment_id: str,
    data: AppointmentUpdate,
    service: Annotated[AppointmentService, Depends(get_service)],
):
    """Update an appointment (write permission or higher)."""
    return service.update_appointment(appointment_id, data)


@router.delete("/{appointment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_appointment(
    appointment_id: str,
    service: Annotated[AppointmentService, Depends(get_service)],
):
    """Delete an appointment (full permission or higher)."""
    service.delete_appointment(appointment_id)


@router.get("/{appointment_id}/permissions", response_model=AppointmentPermissionResponse)
async def get_appointment_permission(
    appointment_id: str,
    service: Annotated[AppointmentService, Depends(get_service)],
):
    """Get the current user's effective permission on an appointment.

    A user without access gets ``null``, not an error.
    """
    return AppointmentPermissionResponse(
        appointment_id=appointment_id,
        permission=service.get_effective_permission(appointment_id),
    )


@router.get("/{appointment_id}/assignees", response_model=list[GrantResponse])
async def list_assignees(
    appointment_id: str,
    service: Annotated[AppointmentService, Depends(get_service)],
    dedupe: bool = Query(False, description="One entry per invitee"),
):
    """List the grants on an appointment.

    Args:
        appointment_id: Appointment UUID.
        service: Appointment service.
        dedupe: Collapse duplicate grants for the same invitee.

    Returns:
        list[GrantResponse]: Grants, newest first.
    """
    return service.list_assignees(appointment_id, dedupe=dedupe)


@router.get("/{appointment_id}/activities", response_model=list[ActivityResponse])
async def list_activities(
    appointment_id: str,
    service: Annotated[AppointmentService, Depends(get_service)],
):
    """List an appointment's activity log."""
    return service.list_activities(appointment_id)


@router.post(
    "/{appointment_id}/activities",
    response_model=list[ActivityResponse],
    status_code=status.HTTP_201_CREATED,
)
async def add_activities(
    appointment_id: str,
    data: ActivitiesCreate,
    service: Annotated[AppointmentService, Depends(get_service)],
):
    """Add entries to an appointment's activity log (write permission or higher)."""
    return service.add_activities(appointment_id, data)
