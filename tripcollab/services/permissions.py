from __future__ import annotations

from sqlmodel import Session, select

from tripcollab.core.errors import ForbiddenError, InvalidRoleError
from tripcollab.models import Trip, TripCollaborator
from tripcollab.schemas import TripPermissions

_ROLE_PERMISSIONS = {
    "owner": TripPermissions(
        can_edit=True,
        can_invite=True,
        can_delete=True,
        can_manage_tasks=True,
        can_book_activities=True,
        can_view_budget=True,
        can_manage_family=True,
    ),
    "collaborator": TripPermissions(
        can_edit=True,
        can_invite=False,
        can_delete=False,
        can_manage_tasks=True,
        can_book_activities=True,
        can_view_budget=True,
        can_manage_family=False,
    ),
    "viewer": TripPermissions(
        can_edit=False,
        can_invite=False,
        can_delete=False,
        can_manage_tasks=False,
        can_book_activities=False,
        can_view_budget=True,
        can_manage_family=False,
    ),
}


def permissions_for_role(role: str) -> TripPermissions:
    """Static role -> capability table. Pure; models are frozen so sharing is safe."""
    try:
        return _ROLE_PERMISSIONS[role]
    except KeyError:
        raise InvalidRoleError(f"Unknown role: {role}") from None


def get_user_trip_role(session: Session, trip: Trip, user_id: str) -> str | None:
    if trip.owner_id == user_id:
        return "owner"

    membership = session.exec(
        select(TripCollaborator).where(
            TripCollaborator.trip_id == trip.id,
            TripCollaborator.user_id == user_id,
        )
    ).one_or_none()
    return membership.role if membership else None


def get_user_permissions(session: Session, trip: Trip, user_id: str) -> TripPermissions | None:
    role = get_user_trip_role(session, trip, user_id)
    return permissions_for_role(role) if role else None


def ensure_trip_permission(
    session: Session,
    trip: Trip,
    user_id: str,
    capability: str | None = None,
) -> TripPermissions:
    """Raise ``ForbiddenError`` unless ``user_id`` is a member holding ``capability``.

    With ``capability=None`` plain membership is enough.
    """
    permissions = get_user_permissions(session, trip, user_id)
    if permissions is None:
        raise ForbiddenError("Access to trip denied")

    if capability and not getattr(permissions, capability):
        raise ForbiddenError(f"Insufficient permissions: {capability} required")

    return permissions
