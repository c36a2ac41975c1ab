"""Effective permission resolution for appointments and shared dashboards.

Permission checks never touch the database. Callers load the resource and
its grants, then ask this module which single level the candidate holds.
Absence of access is ``None``; nothing in here raises.
"""

import enum
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from carecal.db.models import GrantPermission, GrantStatus


class PermissionLevel(str, enum.Enum):
    """Effective permission vocabulary exposed to endpoints and clients."""

    OWNER = "owner"
    FULL = "full"
    WRITE = "write"
    READ = "read"


LEVEL_RANK: dict[str, int] = {
    PermissionLevel.OWNER.value: 4,
    PermissionLevel.FULL.value: 3,
    PermissionLevel.WRITE.value: 2,
    PermissionLevel.READ.value: 1,
}

STATUS_RANK: dict[str, int] = {
    GrantStatus.ACCEPTED.value: 2,
    GrantStatus.PENDING.value: 1,
    GrantStatus.DECLINED.value: 0,
}


class OwnedResource(Protocol):
    """Anything with an owner: an appointment or a shared dashboard."""

    owner_id: str | None


@dataclass(frozen=True)
class SharedDashboard:
    """Account-wide resource targeted by dashboard grants.

    A dashboard has no row of its own; its owner is the user whose
    appointments are shared.
    """

    owner_id: str


@dataclass(frozen=True)
class ById:
    """Invitee identified by account id."""

    user_id: str

    def matches(self, grant: Any) -> bool:
        invited = getattr(grant, "invited_user_id", None)
        return invited is not None and str(invited) == str(self.user_id)


@dataclass(frozen=True)
class ByEmail:
    """Invitee identified by email address, compared case-insensitively."""

    address: str

    def matches(self, grant: Any) -> bool:
        invited = getattr(grant, "invited_email", None)
        if not isinstance(invited, str) or not invited:
            return False
        return normalize_email(invited) == normalize_email(self.address)


InviteeRef = ById | ByEmail


def normalize_email(address: str) -> str:
    """Canonical form used for every email comparison."""
    return address.strip().casefold()


def _value(raw: Any) -> str | None:
    """Plain string value of an enum member or string, ``None`` otherwise."""
    value = getattr(raw, "value", raw)
    return value if isinstance(value, str) else None


def invitee_refs(user_id: str | None, email: str | None = None) -> list[InviteeRef]:
    """Build the identity references a candidate can be matched by.

    Args:
        user_id: Candidate account id.
        email: Candidate email address.

    Returns:
        list[InviteeRef]: Zero, one or two references.
    """
    refs: list[InviteeRef] = []
    if user_id:
        refs.append(ById(str(user_id)))
    if email:
        refs.append(ByEmail(email))
    return refs


def grant_matches(grant: Any, refs: Iterable[InviteeRef]) -> bool:
    """Check whether a grant is addressed to any of the given references."""
    return any(ref.matches(grant) for ref in refs)


def resolve_permission(
    resource: Any,
    grants: Iterable[Any],
    user_id: str | None,
    email: str | None = None,
) -> PermissionLevel | None:
    """Compute the effective permission of a candidate on a resource.

    Ownership outranks every grant. Otherwise the best permission among the
    candidate's accepted grants wins; pending and declined grants never
    confer access.

    Args:
        resource: Object exposing ``owner_id``.
        grants: Grants targeting the resource.
        user_id: Candidate account id (``None`` when unauthenticated).
        email: Candidate email address.

    Returns:
        PermissionLevel | None: Effective level, or None for no access.
    """
    if not user_id:
        return None

    owner_id = getattr(resource, "owner_id", None)
    if owner_id is not None and str(owner_id) == str(user_id):
        return PermissionLevel.OWNER

    refs = invitee_refs(user_id, email)
    best: PermissionLevel | None = None
    for grant in grants or ():
        if _value(getattr(grant, "status", None)) != GrantStatus.ACCEPTED.value:
            continue
        if not grant_matches(grant, refs):
            continue
        permission = _value(getattr(grant, "permission", None))
        if permission not in (p.value for p in GrantPermission):
            continue
        level = PermissionLevel(permission)
        if best is None or LEVEL_RANK[level.value] > LEVEL_RANK[best.value]:
            best = level
    return best


def best_permission(*levels: PermissionLevel | None) -> PermissionLevel | None:
    """Return the highest-ranked of several resolved levels."""
    best: PermissionLevel | None = None
    for level in levels:
        if level is None:
            continue
        if best is None or LEVEL_RANK[level.value] > LEVEL_RANK[best.value]:
            best = level
    return best


def has_permission(level: PermissionLevel | str | None, required: PermissionLevel | str) -> bool:
    """Check a resolved level against the minimum level an action needs.

    Args:
        level: Resolved level (``None`` never satisfies).
        required: Minimum level.

    Returns:
        bool: True if ``level`` is at least ``required``.
    """
    have = LEVEL_RANK.get(_value(level) or "", 0)
    need = LEVEL_RANK.get(_value(required) or "", 0)
    return have > 0 and have >= need


def _dedupe_key(grant: Any) -> tuple[str, str]:
    user_id = getattr(grant, "invited_user_id", None)
    email = getattr(grant, "invited_email", None)
    return (
        str(user_id) if user_id else "",
        normalize_email(email) if isinstance(email, str) else "",
    )


def _dedupe_rank(grant: Any) -> tuple[int, int]:
    status = STATUS_RANK.get(_value(getattr(grant, "status", None)) or "", -1)
    permission = LEVEL_RANK.get(_value(getattr(grant, "permission", None)) or "", 0)
    return status, permission


def dedupe_grants(grants: Iterable[Any]) -> list[Any]:
    """Collapse duplicate grants for the same invitee into one per invitee.

    Used when displaying the current relationship of each invitee with a
    resource. For every (user id, email) pair the grant with the highest
    status rank is kept, then the one with the highest permission. Order of
    first appearance is preserved.

    Args:
        grants: Raw grants for a single resource.

    Returns:
        list: One grant per invitee.
    """
    best: dict[tuple[str, str], Any] = {}
    for grant in grants or ():
        key = _dedupe_key(grant)
        current = best.get(key)
        if current is None or _dedupe_rank(grant) > _dedupe_rank(current):
            best[key] = grant
    return list(best.values())
