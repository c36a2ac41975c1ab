"""Invitation API routes."""

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from carecal.dependencies import BaseUrl, CurrentUser, DbSession
from carecal.invitations.schemas import (
    InvitationAccepted,
    InvitationCreate,
    InvitationCreated,
    InvitationList,
    InvitationPreview,
    TokenRequest,
)
from carecal.invitations.service import InvitationService, get_invitation_service

router = APIRouter()


def get_service(
    db: DbSession,
    current_user: CurrentUser,
) -> InvitationService:
    """Get invitation service dependency."""
    return get_invitation_service(db, current_user.id, current_user.email)


@router.post("", response_model=InvitationCreated, status_code=status.HTTP_201_CREATED)
async def create_invitation(
    data: InvitationCreate,
    base_url: BaseUrl,
    background_tasks: BackgroundTasks,
    service: Annotated[InvitationService, Depends(get_service)],
):
    """Share an appointment or the current user's dashboard.

    The invitation email is sent after the response; a delivery failure
    does not affect the created invitation.

    Args:
        data: Invitation data.
        base_url: Base URL for the redemption link.
        background_tasks: FastAPI background tasks.
        service: Invitation service.

    Returns:
        InvitationCreated: Grant id, token and redemption link.

    Raises:
        InvalidArgument: Unknown kind or permission.
        NotFound: Resource or invited user does not exist.
        Forbidden: The current user does not own the resource.
    """
    return service.create_invitation(data, base_url, background_tasks)


@router.get("", response_model=InvitationList)
async def list_invitations(
    service: Annotated[InvitationService, Depends(get_service)],
):
    """List invitations the current user received or sent."""
    return service.list_invitations()


@router.get("/preview", response_model=InvitationPreview)
async def preview_invitation(
    db: DbSession,
    token: str = Query(..., min_length=1),
):
    """Describe a pending invitation (public, for the accept page).

    Args:
        db: Database session.
        token: Invitation token.

    Returns:
        InvitationPreview: Invitation details.

    Raises:
        NotFound: If the token is not a pending invitation.
    """
    return InvitationService.get_invitation_preview(db, token)


@router.post("/accept", response_model=InvitationAccepted)
async def accept_invitation(
    data: TokenRequest,
    service: Annotated[InvitationService, Depends(get_service)],
):
    """Redeem an invitation token for the current user.

    Args:
        data: Request carrying the token.
        service: Invitation service.

    Returns:
        InvitationAccepted: The accepted grant.

    Raises:
        NotFound: Invalid or already-used token.
    """
    return service.redeem(data.token)


@router.post("/decline", response_model=InvitationAccepted)
async def decline_invitation(
    data: TokenRequest,
    service: Annotated[InvitationService, Depends(get_service)],
):
    """Decline an invitation token."""
    return service.decline(data.token)


@router.post("/{kind}/{grant_id}/resend", status_code=status.HTTP_202_ACCEPTED)
async def resend_invitation(
    kind: str,
    grant_id: str,
    base_url: BaseUrl,
    background_tasks: BackgroundTasks,
    service: Annotated[InvitationService, Depends(get_service)],
):
    """Send a pending invitation email again (inviter only)."""
    service.resend(kind, grant_id, base_url, background_tasks)
    return {"message": "Invitation resent"}


@router.delete("/{kind}/{grant_id}", status_code=status.HTTP_204_NO_CONTENT)
async def discard_invitation(
    kind: str,
    grant_id: str,
    service: Annotated[InvitationService, Depends(get_service)],
):
    """Delete an invitation in any status (inviter or invitee only).

    Args:
        kind: "appointment" or "dashboard".
        grant_id: Grant UUID.
        service: Invitation service.

    Raises:
        NotFound: If the invitation does not exist.
        Forbidden: If the current user is not a party to it.
    """
    service.discard(kind, grant_id)
