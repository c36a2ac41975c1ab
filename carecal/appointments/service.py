"""Appointment service layer.

Every read or write goes through the permission resolver. The caller's
effective level on an appointment is the better of what its appointment
grants and the owner's dashboard grants confer.
"""

import logging
from collections import defaultdict
from datetime import UTC, datetime

from sqlalchemy import or_
from sqlalchemy.orm import Session

from carecal.appointments.schemas import (
    ActivitiesCreate,
    AppointmentCreate,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentSearchParams,
    AppointmentUpdate,
)
from carecal.db.models import Activity, Appointment, GrantStatus
from carecal.exceptions import Forbidden, InvalidArgument, NotFound, Unauthenticated
from carecal.invitations.repository import Grant, GrantRepository, InvitationKind
from carecal.permissions.resolver import (
    PermissionLevel,
    SharedDashboard,
    best_permission,
    dedupe_grants,
    has_permission,
    resolve_permission,
)

logger = logging.getLogger(__name__)


class AppointmentService:
    """Service class for appointment operations on behalf of one user."""

    def __init__(self, db: Session, user_id: str | None, email: str | None = None):
        self.db = db
        self.user_id = user_id
        self.email = email
        self.grants = GrantRepository(db)

    def _require_user(self) -> str:
        if not self.user_id:
            raise Unauthenticated("Not authenticated")
        return self.user_id

    def _resolve(
        self,
        appointment: Appointment,
        appointment_grants: list[Grant] | None = None,
        dashboard_grants: list[Grant] | None = None,
    ) -> PermissionLevel | None:
        if appointment_grants is None:
            appointment_grants = self.grants.for_resource(
                InvitationKind.APPOINTMENT, appointment.id
            )
        if dashboard_grants is None:
            dashboard_grants = self.grants.for_resource(
                InvitationKind.DASHBOARD, appointment.owner_id
            )
        return best_permission(
            resolve_permission(appointment, appointment_grants, self.user_id, self.email),
            resolve_permission(
                SharedDashboard(appointment.owner_id), dashboard_grants, self.user_id, self.email
            ),
        )

    def _to_response(
        self, appointment: Appointment, permission: PermissionLevel | None
    ) -> AppointmentResponse:
        response = AppointmentResponse.model_validate(appointment)
        response.permission = permission
        return response

    def _get_appointment(self, appointment_id: str) -> Appointment:
        appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFound("Appointment not found")
        return appointment

    def _authorize(
        self, appointment_id: str, required: PermissionLevel
    ) -> tuple[Appointment, PermissionLevel]:
        """Load an appointment and check the caller holds at least ``required``.

        Raises:
            Unauthenticated: No current user.
            NotFound: Appointment does not exist.
            Forbidden: Caller's effective permission is too low.
        """
        self._require_user()
        appointment = self._get_appointment(appointment_id)
        level = self._resolve(appointment)
        if level is None:
            raise Forbidden("You do not have access to this appointment")
        if not has_permission(level, required):
            raise Forbidden(f"This action requires {required.value} permission")
        return appointment, level

    def list_appointments(self, params: AppointmentSearchParams) -> AppointmentListResponse:
        """List owned appointments plus those shared with the caller.

        Shared means an accepted appointment grant, or an accepted dashboard
        grant from the appointment's owner.

        Args:
            params: Filters and pagination.

        Returns:
            AppointmentListResponse: Page of appointments ordered by start.
        """
        user_id = self._require_user()
        appointment_grants = self.grants.for_invitee(
            InvitationKind.APPOINTMENT, user_id, self.email, status=GrantStatus.ACCEPTED
        )
        dashboard_grants = self.grants.for_invitee(
            InvitationKind.DASHBOARD, user_id, self.email, status=GrantStatus.ACCEPTED
        )

        by_appointment: dict[str, list[Grant]] = defaultdict(list)
        for grant in appointment_grants:
            by_appointment[grant.resource_id].append(grant)
        by_owner: dict[str, list[Grant]] = defaultdict(list)
        for grant in dashboard_grants:
            by_owner[grant.resource_id].append(grant)

        visible = [Appointment.owner_id == user_id]
        if by_appointment:
            visible.append(Appointment.id.in_(list(by_appointment)))
        if by_owner:
            visible.append(Appointment.owner_id.in_(list(by_owner)))

        query = self.db.query(Appointment).filter(or_(*visible))
        if params.status:
            query = query.filter(Appointment.status == params.status)
        if params.start_from:
            query = query.filter(Appointment.start >= params.start_from)
        if params.end_before:
            query = query.filter(Appointment.end <= params.end_before)

        total = query.count()
        appointments = (
            query.order_by(Appointment.start.asc(), Appointment.id)
            .offset(params.offset)
            .limit(params.limit)
            .all()
        )

        items = [
            self._to_response(
                a,
                self._resolve(a, by_appointment.get(a.id, []), by_owner.get(a.owner_id, [])),
            )
            for a in appointments
        ]
        return AppointmentListResponse(
            items=items, total=total, limit=params.limit, offset=params.offset
        )

    def create_appointment(self, data: AppointmentCreate) -> AppointmentResponse:
        """Create an appointment owned by the caller."""
        user_id = self._require_user()
        appointment = Appointment(owner_id=user_id, **data.model_dump())
        self.db.add(appointment)
        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"Created appointment {appointment.id} for {user_id}")
        return self._to_response(appointment, PermissionLevel.OWNER)

    def get_appointment(self, appointment_id: str) -> AppointmentResponse:
        """Get an appointment the caller can read."""
        appointment, level = self._authorize(appointment_id, PermissionLevel.READ)
        return self._to_response(appointment, level)

    def update_appointment(
        self, appointment_id: str, data: AppointmentUpdate
    ) -> AppointmentResponse:
        """Update an appointment. Requires write permission.

        Raises:
            InvalidArgument: If the resulting end is not after the start.
        """
        appointment, level = self._authorize(appointment_id, PermissionLevel.WRITE)
        changes = data.model_dump(exclude_unset=True)

        for field in ("title", "start", "end"):
            if field in changes and changes[field] is None:
                raise InvalidArgument(f"{field} cannot be empty")

        start = changes.get("start", appointment.start)
        end = changes.get("end", appointment.end)
        if end <= start:
            raise InvalidArgument("end must be after start")

        for field, value in changes.items():
            setattr(appointment, field, value)
        appointment.updated_at = datetime.now(UTC)

        self.db.commit()
        self.db.refresh(appointment)
        logger.info(f"Updated appointment {appointment_id} by {self.user_id}")
        return self._to_response(appointment, level)

    def delete_appointment(self, appointment_id: str) -> None:
        """Delete an appointment with its grants and activities. Requires full permission."""
        appointment, _ = self._authorize(appointment_id, PermissionLevel.FULL)
        self.db.delete(appointment)
        self.db.commit()
        logger.info(f"Deleted appointment {appointment_id} by {self.user_id}")

    def get_effective_permission(self, appointment_id: str) -> PermissionLevel | None:
        """Effective permission of the caller; None when the caller has no access.

        Raises:
            NotFound: Appointment does not exist.
        """
        appointment = self._get_appointment(appointment_id)
        return self._resolve(appointment)

    def list_assignees(self, appointment_id: str, dedupe: bool = False) -> list[Grant]:
        """Grants on an appointment, optionally merged to one per invitee."""
        self._authorize(appointment_id, PermissionLevel.READ)
        grants = self.grants.for_resource(InvitationKind.APPOINTMENT, appointment_id)
        return dedupe_grants(grants) if dedupe else grants

    def list_activities(self, appointment_id: str) -> list[Activity]:
        """Activity log of an appointment, newest first."""
        self._authorize(appointment_id, PermissionLevel.READ)
        return (
            self.db.query(Activity)
            .filter(Activity.appointment_id == appointment_id)
            .order_by(Activity.created_at.desc())
            .all()
        )

    def add_activities(self, appointment_id: str, data: ActivitiesCreate) -> list[Activity]:
        """Append entries to an appointment's activity log. Requires write permission."""
        self._authorize(appointment_id, PermissionLevel.WRITE)
        activities = [
            Activity(
                appointment_id=appointment_id,
                created_by_id=self.user_id,
                type=item.type,
                content=item.content,
            )
            for item in data.activities
        ]
        self.db.add_all(activities)
        self.db.commit()
        for activity in activities:
            self.db.refresh(activity)
        return activities


def get_appointment_service(
    db: Session, user_id: str | None, email: str | None = None
) -> AppointmentService:
    """Factory function for AppointmentService."""
    return AppointmentService(db, user_id, email)
