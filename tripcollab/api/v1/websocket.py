"""WebSocket endpoint for real-time trip collaboration."""

import json
import logging
import uuid
from uuid import UUID

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError

from tripcollab.api.deps import CurrentUser, PresenceDep, user_from_token
from tripcollab.core.errors import CollaborationError
from tripcollab.db import SessionDep
from tripcollab.schemas import PresenceUpdate
from tripcollab.services.collaborators import CollaboratorRegistry
from tripcollab.services.presence import PresenceBroadcaster
from tripcollab.services.websocket_manager import ConnectionManager, manager

logger = logging.getLogger(__name__)

router = APIRouter()


def get_connection_manager() -> ConnectionManager:
    return manager


async def handle_frame(
    raw: str,
    websocket: WebSocket,
    trip_id: UUID,
    user: CurrentUser,
    connection_id: str,
    registry: CollaboratorRegistry,
    presence: PresenceBroadcaster,
) -> None:
    """
    Handle one client frame.

    Frames:
        "ping"                                   -> {"type": "pong"}
        {"type": "presence", "data": {...}}      -> presence update
        {"type": "typing", "is_typing": true}    -> typing indicator
    """
    if raw == "ping":
        await websocket.send_json({"type": "pong"})
        return

    try:
        frame = json.loads(raw)
        kind = frame.get("type")
    except (ValueError, AttributeError):
        await websocket.send_json({"type": "error", "detail": "Frames must be JSON objects"})
        return

    if kind == "ping":
        await websocket.send_json({"type": "pong"})
    elif kind == "presence":
        try:
            update = PresenceUpdate.model_validate(frame.get("data") or {})
        except ValidationError as e:
            await websocket.send_json({"type": "error", "detail": e.errors(include_url=False)})
            return
        if "name" not in update.model_fields_set:
            update.name = user.name
        await presence.update_presence(trip_id, user.id, update, connection_id=connection_id)
        try:
            registry.touch_last_active(trip_id, user.id)
        except CollaborationError as e:
            logger.warning(f"Could not record activity for {user.id} on trip {trip_id}: {e.detail}")
    elif kind == "typing":
        await presence.set_typing(trip_id, user.id, bool(frame.get("is_typing")))
    else:
        await websocket.send_json({"type": "error", "detail": f"Unknown frame type: {kind}"})


@router.websocket("/trips/{trip_id}")
async def websocket_trip(
    websocket: WebSocket,
    trip_id: UUID,
    session: SessionDep,
    presence: PresenceDep,
    connections: ConnectionManager = Depends(get_connection_manager),
    token: str = Query(...),
):
    """
    WebSocket endpoint for a trip's live updates.

    Client connects with: ws://host/api/v1/ws/trips/{trip_id}?token=JWT_TOKEN

    Messages format:
    {
        "type": "trip" | "collaborators" | "presence" | "typing" | "tasks" | "events",
        "data": ...
    }
    """
    try:
        user = user_from_token(token)
    except ValueError as e:
        logger.error(f"WebSocket auth error: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    registry = CollaboratorRegistry(session)
    try:
        permissions = registry.get_permissions(trip_id, user.id)
    except CollaborationError:
        permissions = None
    if permissions is None:
        logger.warning(f"WebSocket refused: {user.id} is not a member of trip {trip_id}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    connection_id = uuid.uuid4().hex

    await connections.connect(websocket, trip_id)

    try:
        await websocket.send_json({
            "type": "connected",
            "message": "WebSocket connected successfully",
            "user_id": user.id,
            "trip_id": str(trip_id),
        })

        logger.info(f"WebSocket connection established for user {user.id} on trip {trip_id}")

        while True:
            try:
                data = await websocket.receive_text()
                await handle_frame(data, websocket, trip_id, user, connection_id, registry, presence)

            except WebSocketDisconnect:
                logger.info(f"WebSocket disconnected gracefully for user {user.id}")
                break
            except Exception as e:
                logger.error(f"Error in WebSocket receive loop for user {user.id}: {e}")
                break

    except Exception as e:
        logger.error(f"WebSocket error for user {user.id}: {e}", exc_info=True)

    finally:
        await presence.connection_closed(connection_id)
        await connections.disconnect(websocket, trip_id)
        logger.info(f"WebSocket connection closed for user {user.id} on trip {trip_id}")
