from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from tripcollab.core.config import settings
from tripcollab.db import engine
from tripcollab.services.redis_pubsub import redis_pubsub
from tripcollab.services.websocket_manager import manager

router = APIRouter()


@router.get("/", summary="Health check", tags=["health"])
def read_health() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/ready", summary="Readiness check", tags=["health"])
def read_ready():
    """
    Readiness probe.

    Only the document store is required; without the Redis relay events are
    dispatched in-process and the service still works on a single node.
    """
    components = {
        "relay": "redis" if redis_pubsub.is_connected else "local",
        "presence": settings.PRESENCE_BACKEND,
        "live_trips": len(manager.get_active_trips()),
    }
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        detail = str(e) if settings.ENVIRONMENT != "production" else "Trip store unreachable"
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "database": "disconnected", "error": detail, **components},
        )
    return {"status": "ready", "database": "connected", **components}
