"""Grant storage: the queries the invitation lifecycle needs from the database."""

import enum
from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import func, or_, update
from sqlalchemy.orm import Session

from carecal.db.models import AppointmentAssignee, DashboardAccess, GrantStatus
from carecal.permissions.resolver import normalize_email

Grant = AppointmentAssignee | DashboardAccess


class InvitationKind(str, enum.Enum):
    """What a grant gives access to."""

    APPOINTMENT = "appointment"  # A single appointment
    DASHBOARD = "dashboard"  # Every appointment of one owner


GRANT_MODELS: dict[InvitationKind, type[Grant]] = {
    InvitationKind.APPOINTMENT: AppointmentAssignee,
    InvitationKind.DASHBOARD: DashboardAccess,
}


class GrantRepository:
    """Database access for appointment and dashboard grants.

    Every method takes the grant kind explicitly; both kinds share the same
    columns apart from the resource reference.
    """

    def __init__(self, db: Session):
        self.db = db

    @staticmethod
    def model_for(kind: InvitationKind) -> type[Grant]:
        return GRANT_MODELS[kind]

    def add(self, grant: Grant) -> Grant:
        """Insert a grant and return it refreshed from the database."""
        self.db.add(grant)
        self.db.commit()
        self.db.refresh(grant)
        return grant

    def get(self, kind: InvitationKind, grant_id: str) -> Grant | None:
        model = self.model_for(kind)
        return self.db.query(model).filter(model.id == grant_id).first()

    def get_by_token(self, kind: InvitationKind, token: str) -> Grant | None:
        model = self.model_for(kind)
        return self.db.query(model).filter(model.token == token).first()

    def for_resource(self, kind: InvitationKind, resource_id: str) -> list[Grant]:
        """All grants targeting one appointment or one owner's dashboard."""
        model = self.model_for(kind)
        column = getattr(model, model.resource_field)
        return (
            self.db.query(model)
            .filter(column == resource_id)
            .order_by(model.created_at.desc())
            .all()
        )

    def for_resources(self, kind: InvitationKind, resource_ids: Sequence[str]) -> list[Grant]:
        """Grants targeting any of several resources, for batch resolution."""
        if not resource_ids:
            return []
        model = self.model_for(kind)
        column = getattr(model, model.resource_field)
        return self.db.query(model).filter(column.in_(list(resource_ids))).all()

    def for_invitee(
        self,
        kind: InvitationKind,
        user_id: str | None,
        email: str | None,
        status: GrantStatus | None = None,
        limit: int | None = None,
    ) -> list[Grant]:
        """Grants addressed to a user by account id or by email.

        Args:
            kind: Grant kind.
            user_id: Invitee account id.
            email: Invitee email, matched case-insensitively.
            status: Optional status filter.
            limit: Optional maximum number of rows.

        Returns:
            list: Matching grants, newest first.
        """
        model = self.model_for(kind)
        conditions = []
        if user_id:
            conditions.append(model.invited_user_id == user_id)
        if email:
            conditions.append(func.lower(model.invited_email) == normalize_email(email))
        if not conditions:
            return []

        query = self.db.query(model).filter(or_(*conditions))
        if status is not None:
            query = query.filter(model.status == status)
        query = query.order_by(model.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def sent_by(
        self,
        kind: InvitationKind,
        user_id: str,
        status: GrantStatus | None = None,
        limit: int | None = None,
    ) -> list[Grant]:
        """Grants created by an inviter, newest first."""
        model = self.model_for(kind)
        query = self.db.query(model).filter(model.invited_by_id == user_id)
        if status is not None:
            query = query.filter(model.status == status)
        query = query.order_by(model.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def delete(self, grant: Grant) -> None:
        self.db.delete(grant)
        self.db.commit()

    def transition_pending(
        self,
        kind: InvitationKind,
        token: str,
        new_status: GrantStatus,
        user_id: str | None = None,
    ) -> bool:
        """Move a pending grant to a terminal status in one conditional update.

        The ``status = pending`` guard in the WHERE clause is what makes
        redemption exactly-once: of several concurrent callers presenting
        the same token, one updates a row and the others update none.

        Args:
            kind: Grant kind to look in.
            token: Invitation token.
            new_status: ``accepted`` or ``declined``.
            user_id: Account to bind as the invitee, if any.

        Returns:
            bool: True if exactly one grant was transitioned.
        """
        model = self.model_for(kind)
        values = {"status": new_status, "responded_at": datetime.now(UTC)}
        if user_id is not None:
            values["invited_user_id"] = user_id

        stmt = (
            update(model)
            .where(model.token == token, model.status == GrantStatus.PENDING)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = self.db.execute(stmt)
        if result.rowcount != 1:
            self.db.rollback()
            return False

        self.db.commit()
        return True
