"""Invitation lifecycle: create, redeem, decline, discard and resend grants."""

import logging
import secrets
from datetime import datetime

from fastapi import BackgroundTasks
from sqlalchemy.orm import Session

from carecal.db.models import (
    Appointment,
    AppointmentAssignee,
    DashboardAccess,
    GrantPermission,
    GrantStatus,
    User,
)
from carecal.exceptions import Forbidden, InvalidArgument, NotFound, Unauthenticated
from carecal.invitations.repository import Grant, GrantRepository, InvitationKind
from carecal.invitations.schemas import (
    InvitationAccepted,
    InvitationCreate,
    InvitationCreated,
    InvitationList,
    InvitationPreview,
    InvitationResponse,
)
from carecal.permissions.resolver import grant_matches, invitee_refs, normalize_email

logger = logging.getLogger(__name__)

INVALID_TOKEN_MESSAGE = "Invalid or already-used invitation"
NOT_OWNER_MESSAGE = "You do not have permission to share this resource"
LIST_LIMIT = 100


def parse_kind(value: str) -> InvitationKind:
    try:
        return InvitationKind(value)
    except ValueError:
        raise InvalidArgument(f"Invalid invitation kind: {value}") from None


def parse_permission(value: str) -> GrantPermission:
    try:
        return GrantPermission(value)
    except ValueError:
        raise InvalidArgument(
            f"Invalid permission: {value}. Must be one of: read, write, full"
        ) from None


def accept_url(base_url: str, token: str) -> str:
    return f"{base_url}/accept-invitation?token={token}"


class InvitationService:
    """Service class for the invitation lifecycle.

    The caller identity comes from the session layer and is trusted as is.
    """

    def __init__(self, db: Session, user_id: str | None, email: str | None = None):
        self.db = db
        self.user_id = user_id
        self.email = email
        self.grants = GrantRepository(db)

    def _require_user(self) -> str:
        if not self.user_id:
            raise Unauthenticated("Not authenticated")
        return self.user_id

    def _is_invitee(self, grant: Grant) -> bool:
        return grant_matches(grant, invitee_refs(self.user_id, self.email))

    def create_invitation(
        self,
        data: InvitationCreate,
        base_url: str,
        background_tasks: BackgroundTasks | None = None,
    ) -> InvitationCreated:
        """Share a resource by inserting a pending grant and notifying the invitee.

        Only the resource owner may share. The notification is best-effort:
        the grant is committed before the email is attempted and is kept
        whatever happens to the email.

        Args:
            data: Invitation data (kind, resource, invitee, permission).
            base_url: Base URL for building the redemption link.
            background_tasks: Schedules the email after the response when given.

        Returns:
            InvitationCreated: Grant id, token and redemption link.

        Raises:
            InvalidArgument: Unknown kind or permission, or no invitee given.
            NotFound: Resource or invited user does not exist.
            Forbidden: Caller does not own the resource.
        """
        inviter_id = self._require_user()
        kind = parse_kind(data.kind)
        permission = parse_permission(data.permission)

        if kind == InvitationKind.APPOINTMENT:
            if not data.resource_id:
                raise InvalidArgument("resource_id is required for appointment invitations")
            appointment = (
                self.db.query(Appointment).filter(Appointment.id == data.resource_id).first()
            )
            if not appointment:
                raise NotFound("Appointment not found")
            owner_id = appointment.owner_id
            resource_label = appointment.title
        else:
            owner_id = data.resource_id or inviter_id
            owner = self.db.query(User).filter(User.id == owner_id).first()
            if not owner:
                raise NotFound("Dashboard not found")
            resource_label = owner.display_name or owner.email

        if owner_id != inviter_id:
            logger.info(f"User {inviter_id} refused sharing {kind.value} {owner_id}: not owner")
            raise Forbidden(NOT_OWNER_MESSAGE)

        invited_email = normalize_email(data.email) if data.email else None
        if data.invited_user_id:
            invitee = self.db.query(User).filter(User.id == data.invited_user_id).first()
            if not invitee:
                raise NotFound("Invited user not found")
            invited_email = invited_email or invitee.email
        elif not invited_email:
            raise InvalidArgument("Either email or invited_user_id is required")

        model = GrantRepository.model_for(kind)
        grant = model(
            invited_user_id=data.invited_user_id,
            invited_email=invited_email,
            invited_by_id=inviter_id,
            status=GrantStatus.PENDING,
            permission=permission,
            token=secrets.token_hex(32),
        )
        resource_id = owner_id if kind == InvitationKind.DASHBOARD else data.resource_id
        setattr(grant, model.resource_field, resource_id)
        grant = self.grants.add(grant)

        logger.info(
            f"Created {kind.value} invitation {grant.id} for {invited_email} "
            f"({permission.value}) by {inviter_id}"
        )

        link = accept_url(base_url, grant.token)
        notify_args = (invited_email, kind, permission, self._inviter_name(), resource_label, link)
        if background_tasks is not None:
            background_tasks.add_task(_send_invitation_email, *notify_args)
        else:
            _send_invitation_email(*notify_args)

        return InvitationCreated(
            id=grant.id,
            kind=kind.value,
            resource_id=grant.resource_id,
            permission=grant.permission,
            status=grant.status,
            token=grant.token,
            accept_url=link,
        )

    def _inviter_name(self) -> str:
        inviter = self.db.query(User).filter(User.id == self.user_id).first()
        if inviter is None:
            return self.email or "Someone"
        return inviter.display_name or inviter.email

    def list_invitations(self) -> InvitationList:
        """List invitations the current user received or sent.

        Returns:
            InvitationList: Appointment and dashboard invitations, newest first.
        """
        user_id = self._require_user()
        result = {}
        for kind in InvitationKind:
            received = self.grants.for_invitee(kind, user_id, self.email, limit=LIST_LIMIT)
            sent = self.grants.sent_by(kind, user_id, limit=LIST_LIMIT)

            merged: dict[str, Grant] = {g.id: g for g in sent}
            merged.update({g.id: g for g in received})
            grants = sorted(
                merged.values(),
                key=lambda g: g.created_at or datetime.min,
                reverse=True,
            )[:LIST_LIMIT]

            titles = self._appointment_titles(grants) if kind == InvitationKind.APPOINTMENT else {}
            result[kind] = [
                InvitationResponse(
                    id=g.id,
                    kind=kind.value,
                    resource_id=g.resource_id,
                    invited_user_id=g.invited_user_id,
                    invited_email=g.invited_email,
                    invited_by_id=g.invited_by_id,
                    status=g.status,
                    permission=g.permission,
                    created_at=g.created_at,
                    responded_at=g.responded_at,
                    direction="received" if self._is_invitee(g) else "sent",
                    appointment_title=titles.get(g.resource_id),
                    token=g.token if g.status == GrantStatus.PENDING else None,
                )
                for g in grants
            ]

        return InvitationList(
            appointment_invitations=result[InvitationKind.APPOINTMENT],
            dashboard_invitations=result[InvitationKind.DASHBOARD],
        )

    def _appointment_titles(self, grants: list[Grant]) -> dict[str, str]:
        ids = {g.resource_id for g in grants}
        if not ids:
            return {}
        rows = (
            self.db.query(Appointment.id, Appointment.title)
            .filter(Appointment.id.in_(list(ids)))
            .all()
        )
        return {row.id: row.title for row in rows}

    def _transition(
        self, token: str, new_status: GrantStatus, bind_user: bool
    ) -> InvitationAccepted:
        user_id = self._require_user()
        if not token:
            raise InvalidArgument("Token is required")

        # Tokens of both kinds share one space; appointment grants are checked first.
        for kind in (InvitationKind.APPOINTMENT, InvitationKind.DASHBOARD):
            changed = self.grants.transition_pending(
                kind, token, new_status, user_id=user_id if bind_user else None
            )
            if changed:
                grant = self.grants.get_by_token(kind, token)
                logger.info(f"Invitation {grant.id} ({kind.value}) {new_status.value} by {user_id}")
                return InvitationAccepted(
                    kind=kind.value,
                    grant_id=grant.id,
                    resource_id=grant.resource_id,
                    permission=grant.permission,
                    status=grant.status,
                )

        logger.info(f"Rejected {new_status.value} attempt by {user_id}: token not actionable")
        raise NotFound(INVALID_TOKEN_MESSAGE)

    def redeem(self, token: str) -> InvitationAccepted:
        """Accept an invitation and bind it to the current user.

        Never-issued, already-accepted and already-declined tokens all fail
        the same way.

        Raises:
            Unauthenticated: No current user.
            NotFound: Token is not a pending invitation.
        """
        return self._transition(token, GrantStatus.ACCEPTED, bind_user=True)

    def decline(self, token: str) -> InvitationAccepted:
        """Decline a pending invitation.

        Raises:
            Unauthenticated: No current user.
            NotFound: Token is not a pending invitation.
        """
        return self._transition(token, GrantStatus.DECLINED, bind_user=False)

    def _get_grant(self, kind: str, grant_id: str) -> tuple[InvitationKind, Grant]:
        parsed = parse_kind(kind)
        grant = self.grants.get(parsed, grant_id)
        if not grant:
            raise NotFound("Invitation not found")
        return parsed, grant

    def discard(self, kind: str, grant_id: str) -> None:
        """Delete a grant in any status. Only the inviter or the invitee may.

        Raises:
            InvalidArgument: Unknown kind.
            NotFound: Grant does not exist.
            Forbidden: Caller is not a party to the grant.
        """
        user_id = self._require_user()
        parsed, grant = self._get_grant(kind, grant_id)

        if grant.invited_by_id != user_id and not self._is_invitee(grant):
            raise Forbidden("You are not a party to this invitation")

        self.grants.delete(grant)
        logger.info(f"Discarded {parsed.value} invitation {grant_id} by {user_id}")

    def resend(
        self,
        kind: str,
        grant_id: str,
        base_url: str,
        background_tasks: BackgroundTasks | None = None,
    ) -> None:
        """Send the invitation email again with the same token.

        Raises:
            NotFound: Grant does not exist.
            Forbidden: Caller did not send the invitation.
            InvalidArgument: Invitation is no longer pending.
        """
        user_id = self._require_user()
        parsed, grant = self._get_grant(kind, grant_id)

        if grant.invited_by_id != user_id:
            raise Forbidden("Only the inviter can resend an invitation")
        if grant.status != GrantStatus.PENDING:
            raise InvalidArgument("Only pending invitations can be resent")

        to_email = grant.invited_email
        if not to_email and grant.invited_user_id:
            invitee = self.db.query(User).filter(User.id == grant.invited_user_id).first()
            to_email = invitee.email if invitee else None
        if not to_email:
            raise InvalidArgument("Invitation has no email address")

        notify_args = (
            to_email,
            parsed,
            grant.permission,
            self._inviter_name(),
            _resource_label(self.db, grant),
            accept_url(base_url, grant.token),
        )
        if background_tasks is not None:
            background_tasks.add_task(_send_invitation_email, *notify_args)
        else:
            _send_invitation_email(*notify_args)

        logger.info(f"Resent {parsed.value} invitation {grant_id} to {to_email}")

    @staticmethod
    def get_invitation_preview(db: Session, token: str) -> InvitationPreview:
        """Describe a pending invitation for the accept page.

        Args:
            db: Database session.
            token: Invitation token.

        Returns:
            InvitationPreview: Invitation details.

        Raises:
            NotFound: Token is not a pending invitation.
        """
        repo = GrantRepository(db)
        for kind in (InvitationKind.APPOINTMENT, InvitationKind.DASHBOARD):
            grant = repo.get_by_token(kind, token)
            if grant is None:
                continue
            if grant.status != GrantStatus.PENDING:
                break

            inviter = db.query(User).filter(User.id == grant.invited_by_id).first()
            return InvitationPreview(
                kind=kind.value,
                permission=grant.permission,
                invited_email=grant.invited_email,
                inviter_email=inviter.email if inviter else None,
                inviter_name=inviter.display_name if inviter else None,
                resource_title=_resource_label(db, grant),
            )

        raise NotFound(INVALID_TOKEN_MESSAGE)


def _resource_label(db: Session, grant: Grant) -> str:
    if isinstance(grant, AppointmentAssignee):
        appointment = db.query(Appointment).filter(Appointment.id == grant.appointment_id).first()
        return appointment.title if appointment else ""
    if isinstance(grant, DashboardAccess):
        owner = db.query(User).filter(User.id == grant.owner_user_id).first()
        return (owner.display_name or owner.email) if owner else ""
    return ""


def _send_invitation_email(
    to_email: str,
    kind: InvitationKind,
    permission: GrantPermission,
    inviter_name: str,
    resource_label: str,
    link: str,
) -> None:
    try:
        from carecal.email.service import get_email_service

        email_service = get_email_service()
        sent = email_service.send_invitation_email(
            to_email=to_email,
            kind=kind.value,
            permission=permission.value,
            inviter_name=inviter_name,
            resource_label=resource_label,
            accept_url=link,
        )
        if not sent:
            logger.warning(f"Invitation email to {to_email} was not delivered")
    except Exception as e:
        logger.warning(f"Failed to send invitation email to {to_email}: {e}")


def get_invitation_service(
    db: Session, user_id: str | None, email: str | None = None
) -> InvitationService:
    """Factory function for InvitationService."""
    return InvitationService(db, user_id, email)
