import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from tripcollab.api.router import api_router
from tripcollab.core.config import settings
from tripcollab.core.errors import CollaborationError
from tripcollab.db import init_db
from tripcollab.services.presence import presence_broadcaster
from tripcollab.services.redis_pubsub import redis_pubsub

logger = logging.getLogger(__name__)


def create_application() -> FastAPI:
    app = FastAPI(title=settings.PROJECT_NAME, version="0.1.0")

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.BACKEND_CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CollaborationError)
    async def collaboration_exception_handler(request: Request, exc: CollaborationError):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail, "code": exc.code},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": jsonable_errors(exc)},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.method} {request.url.path}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )

    app.include_router(api_router, prefix=settings.API_V1_STR)

    @app.on_event("startup")
    async def _startup() -> None:
        init_db()
        if settings.REDIS_RELAY_ENABLED:
            try:
                await redis_pubsub.connect()
            except Exception as e:
                logger.warning(f"Redis relay unavailable, dispatching events in-process only: {e}")

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        await presence_broadcaster.shutdown()
        if redis_pubsub.is_connected:
            await redis_pubsub.disconnect()

    return app


def jsonable_errors(exc: RequestValidationError) -> list:
    # ctx may hold the raw exception object
    return [{key: value for key, value in error.items() if key != "ctx"} for error in exc.errors()]


app = create_application()
