"""Dashboard (account-wide) sharing service."""

from datetime import datetime

from sqlalchemy.orm import Session

from carecal.db.models import GrantStatus, User
from carecal.exceptions import NotFound, Unauthenticated
from carecal.invitations.repository import Grant, GrantRepository, InvitationKind
from carecal.permissions.resolver import PermissionLevel, SharedDashboard, resolve_permission


class DashboardService:
    """Service class for dashboard grants of one user."""

    def __init__(self, db: Session, user_id: str | None, email: str | None = None):
        self.db = db
        self.user_id = user_id
        self.email = email
        self.grants = GrantRepository(db)

    def list_access(self, status: GrantStatus | None = None) -> list[Grant]:
        """Dashboard grants where the current user is the owner or the invitee.

        Args:
            status: Optional status filter.

        Returns:
            list: Grants, newest first.
        """
        if not self.user_id:
            raise Unauthenticated("Not authenticated")

        owned = self.grants.for_resource(InvitationKind.DASHBOARD, self.user_id)
        received = self.grants.for_invitee(InvitationKind.DASHBOARD, self.user_id, self.email)

        merged = {g.id: g for g in owned}
        merged.update({g.id: g for g in received})
        grants = [g for g in merged.values() if status is None or g.status == status]
        return sorted(grants, key=lambda g: g.created_at or datetime.min, reverse=True)

    def get_effective_permission(self, owner_id: str) -> PermissionLevel | None:
        """Effective permission of the current user on another user's dashboard.

        Raises:
            NotFound: If the dashboard owner does not exist.
        """
        owner = self.db.query(User).filter(User.id == owner_id).first()
        if not owner:
            raise NotFound("Dashboard not found")

        grants = self.grants.for_resource(InvitationKind.DASHBOARD, owner_id)
        return resolve_permission(SharedDashboard(owner_id), grants, self.user_id, self.email)


def get_dashboard_service(
    db: Session, user_id: str | None, email: str | None = None
) -> DashboardService:
    """Factory function for DashboardService."""
    return DashboardService(db, user_id, email)
