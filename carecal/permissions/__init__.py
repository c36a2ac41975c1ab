"""Permission resolution."""

from carecal.permissions.resolver import (
    ByEmail,
    ById,
    InviteeRef,
    PermissionLevel,
    SharedDashboard,
    best_permission,
    dedupe_grants,
    has_permission,
    invitee_refs,
    normalize_email,
    resolve_permission,
)

__all__ = [
    "ByEmail",
    "ById",
    "InviteeRef",
    "PermissionLevel",
    "SharedDashboard",
    "best_permission",
    "dedupe_grants",
    "has_permission",
    "invitee_refs",
    "normalize_email",
    "resolve_permission",
]
