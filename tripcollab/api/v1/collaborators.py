from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Response, status

from tripcollab.api.deps import CollaboratorRegistryDep, CurrentUserDep
from tripcollab.core.errors import ForbiddenError
from tripcollab.schemas import CollaboratorCreate, CollaboratorRead

router = APIRouter()


@router.get("/trips/{trip_id}/collaborators", response_model=List[CollaboratorRead])
def list_collaborators(
    trip_id: UUID,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> List[CollaboratorRead]:
    if registry.get_permissions(trip_id, current_user.id) is None:
        raise ForbiddenError("Access to trip denied")
    return registry.list_collaborators(trip_id)


@router.post(
    "/trips/{trip_id}/collaborators",
    response_model=CollaboratorRead,
    status_code=status.HTTP_201_CREATED,
)
async def add_collaborator(
    trip_id: UUID,
    payload: CollaboratorCreate,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> CollaboratorRead:
    """Add or update a member without an invite. Requires the invite permission."""
    return await registry.add_collaborator(trip_id, payload, current_user.id)


@router.delete(
    "/trips/{trip_id}/collaborators/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_collaborator(
    trip_id: UUID,
    user_id: str,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> Response:
    """Remove a member (owner only). Their task assignments are kept."""
    await registry.remove_collaborator(trip_id, user_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
