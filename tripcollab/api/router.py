from fastapi import APIRouter

from tripcollab.api.v1 import collaborators, events, health, invites, presence, tasks, trips, websocket


api_router = APIRouter()
api_router.include_router(health.router, prefix="/health", tags=["health"])
api_router.include_router(trips.router, prefix="/trips", tags=["trips"])
api_router.include_router(collaborators.router, prefix="", tags=["collaborators"])
api_router.include_router(invites.router, prefix="", tags=["invites"])
api_router.include_router(tasks.router, prefix="/trips/{trip_id}/tasks", tags=["tasks"])
api_router.include_router(presence.router, prefix="/trips/{trip_id}", tags=["presence"])
api_router.include_router(events.router, prefix="", tags=["events"])
api_router.include_router(websocket.router, prefix="/ws", tags=["websocket"])
