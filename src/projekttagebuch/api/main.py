"""
Projekttagebuch API Server - FastAPI application.

Design Pattern:
1. create_app() builds store, room adapter and actions (or takes them as arguments)
2. lifespan connects PostgreSQL, logs the Matrix service account in and, when a
   directory file is configured, runs the directory resync next to the server
3. Request logging middleware
4. Exception handlers translate action errors into responses
5. Routers for /api/v1/projects and /api/v1/persons

Error mapping:
- ProjectNotFound / PersonNotFound -> 404
- Forbidden                        -> 403
- InvalidProjectName               -> 422
- StoreError / RemoteError         -> 500 {"detail": "internal error", "error_id": ...}

Running:
    ptb serve
    uvicorn projekttagebuch.api.main:create_app --factory
"""

import asyncio
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware

from ..errors import (
    Forbidden,
    InternalActionError,
    InvalidProjectName,
    PersonNotFound,
    ProjectNotFound,
)
from ..services.actions import ProjectActions
from ..services.directory import YamlDirectorySource
from ..services.matrix import MatrixClient
from ..services.postgres import DatabaseError, ProjectStore, get_project_store
from ..settings import settings
from ..workers.directory_sync import run_directory_sync

VERSION = "0.1.0"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log method, path, status and duration of every request."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()

        client_host = request.client.host if request.client else "unknown"
        logger.info(f"→ REQUEST: {request.method} {request.url.path} | Client: {client_host}")

        response = await call_next(request)

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"← RESPONSE: {request.method} {request.url.path} | "
            f"Status: {response.status_code} | "
            f"Duration: {duration_ms:.2f}ms"
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Connects the store and the room service on startup, closes both on
    shutdown. The directory resync runs as a background task while the
    server is up.
    """
    logger.info(f"Starting projekttagebuch API ({settings.environment})")
    store: ProjectStore = app.state.store
    rooms: MatrixClient = app.state.rooms

    await store.connect()
    await rooms.login()

    stop = asyncio.Event()
    resync = None
    if settings.directory.source_file:
        resync = asyncio.create_task(
            run_directory_sync(
                store,
                YamlDirectorySource(settings.directory.source_file),
                interval=settings.directory.resync_interval_minutes * 60,
                stop=stop,
            )
        )

    yield

    logger.info("Shutting down projekttagebuch API")
    stop.set()
    if resync is not None:
        await resync
    await rooms.close()
    await store.disconnect()


def _error(status_code: int, detail: str, error_id: str | None = None) -> JSONResponse:
    content = {"detail": detail}
    if error_id:
        content["error_id"] = error_id
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ProjectNotFound)
    @app.exception_handler(PersonNotFound)
    async def not_found(request: Request, exc: Exception) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(Forbidden)
    async def forbidden(request: Request, exc: Forbidden) -> JSONResponse:
        return _error(403, str(exc))

    @app.exception_handler(InvalidProjectName)
    async def invalid_name(request: Request, exc: InvalidProjectName) -> JSONResponse:
        return _error(422, str(exc))

    @app.exception_handler(InternalActionError)
    async def internal(request: Request, exc: InternalActionError) -> JSONResponse:
        return _error(500, "internal error", exc.error_id)

    @app.exception_handler(DatabaseError)
    async def database(request: Request, exc: DatabaseError) -> JSONResponse:
        # Read paths hit the store directly, outside of any action
        error_id = uuid4().hex
        logger.bind(event="store_failed", error_id=error_id).error(
            f"Store failure on {request.method} {request.url.path}: {exc}"
        )
        return _error(500, "internal error", error_id)


def create_app(
    store: ProjectStore | None = None,
    rooms: MatrixClient | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        store: Store adapter, built from settings when omitted
        rooms: Room adapter, built from settings when omitted

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Projekttagebuch API",
        description="Projects with members, mirrored into Matrix rooms",
        version=VERSION,
        lifespan=lifespan,
    )

    app.state.store = store or get_project_store()
    app.state.rooms = rooms or MatrixClient.from_settings()
    app.state.actions = ProjectActions(app.state.store, app.state.rooms)

    app.add_middleware(RequestLoggingMiddleware)
    register_exception_handlers(app)

    @app.get("/health")
    async def health():
        """Health check endpoint; also checks that the store answers."""
        try:
            await app.state.store.ping()
        except DatabaseError as e:
            logger.warning(f"Health check failed: {e}")
            return JSONResponse(
                status_code=503, content={"status": "unhealthy", "version": VERSION}
            )
        return {"status": "healthy", "version": VERSION}

    from .routers.persons import router as persons_router
    from .routers.projects import router as projects_router

    app.include_router(projects_router)
    app.include_router(persons_router)

    return app
