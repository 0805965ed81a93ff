from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, status

from tripcollab.api.deps import CollaboratorRegistryDep, CurrentUserDep, TripSynchronizerDep
from tripcollab.core.errors import ForbiddenError, NotFoundError
from tripcollab.schemas import TripCreate, TripDocument, TripPermissions, TripUpdate

router = APIRouter()


@router.post("", response_model=TripDocument, status_code=status.HTTP_201_CREATED)
async def create_trip(
    payload: TripCreate,
    trips: TripSynchronizerDep,
    current_user: CurrentUserDep,
) -> TripDocument:
    """Create a trip owned by the current user."""
    return await trips.create_trip(
        owner_id=current_user.id,
        owner_name=current_user.name,
        data=payload,
        owner_email=current_user.email,
    )


@router.get("", response_model=List[TripDocument])
def list_my_trips(
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> List[TripDocument]:
    return registry.list_user_trips(current_user.id)


@router.get("/{trip_id}", response_model=TripDocument)
def get_trip(
    trip_id: UUID,
    trips: TripSynchronizerDep,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> TripDocument:
    document = trips.get_trip(trip_id)
    if document is None:
        raise NotFoundError("Trip not found")
    if registry.get_permissions(trip_id, current_user.id) is None:
        raise ForbiddenError("Access to trip denied")
    return document


@router.patch("/{trip_id}", response_model=TripDocument)
async def update_trip(
    trip_id: UUID,
    payload: TripUpdate,
    trips: TripSynchronizerDep,
    current_user: CurrentUserDep,
) -> TripDocument:
    """Merge changes into the trip; the latest write wins on overlapping fields."""
    return await trips.update_trip(trip_id, payload, current_user.id)


@router.get("/{trip_id}/permissions", response_model=TripPermissions)
def get_my_permissions(
    trip_id: UUID,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> TripPermissions:
    permissions = registry.get_permissions(trip_id, current_user.id)
    if permissions is None:
        raise ForbiddenError("Access to trip denied")
    return permissions
