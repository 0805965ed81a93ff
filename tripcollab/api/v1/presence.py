from __future__ import annotations

from typing import List
from uuid import UUID

from fastapi import APIRouter, Response, status

from tripcollab.api.deps import CollaboratorRegistryDep, CurrentUserDep, PresenceDep
from tripcollab.core.errors import ForbiddenError, StoreUnavailableError
from tripcollab.schemas import PresenceData, PresenceUpdate, TypingUpdate

router = APIRouter()


def _require_member(registry, trip_id: UUID, user_id: str) -> None:
    if registry.get_permissions(trip_id, user_id) is None:
        raise ForbiddenError("Access to trip denied")


@router.get("/presence", response_model=List[PresenceData])
async def get_presence(
    trip_id: UUID,
    presence: PresenceDep,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> List[PresenceData]:
    _require_member(registry, trip_id, current_user.id)
    return await presence.get_presence(trip_id)


@router.post("/presence", response_model=PresenceData)
async def heartbeat(
    trip_id: UUID,
    payload: PresenceUpdate,
    presence: PresenceDep,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> PresenceData:
    """HTTP heartbeat for clients without a WebSocket. Records go stale without one."""
    _require_member(registry, trip_id, current_user.id)
    if "name" not in payload.model_fields_set:
        payload.name = current_user.name
    record = await presence.update_presence(trip_id, current_user.id, payload)
    if record is None:
        raise StoreUnavailableError("Presence is temporarily unavailable")
    return record


@router.delete("/presence", status_code=status.HTTP_204_NO_CONTENT)
async def leave_trip(
    trip_id: UUID,
    presence: PresenceDep,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> Response:
    _require_member(registry, trip_id, current_user.id)
    await presence.leave(trip_id, current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/typing", response_model=List[str])
async def get_typing(
    trip_id: UUID,
    presence: PresenceDep,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> List[str]:
    """Users currently typing, without the caller."""
    _require_member(registry, trip_id, current_user.id)
    return [user_id for user_id in await presence.get_typing(trip_id) if user_id != current_user.id]


@router.post("/typing", status_code=status.HTTP_204_NO_CONTENT)
async def set_typing(
    trip_id: UUID,
    payload: TypingUpdate,
    presence: PresenceDep,
    registry: CollaboratorRegistryDep,
    current_user: CurrentUserDep,
) -> Response:
    _require_member(registry, trip_id, current_user.id)
    await presence.set_typing(trip_id, current_user.id, payload.is_typing)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
