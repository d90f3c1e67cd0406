from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional

import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .errors import TaskError
from .lifecycle import ShutdownCoordinator
from .logging_setup import setup_logging
from .repositories import Repository, get_repository
from .routers import tasks as tasks_router
from .services import TaskService
from .settings import Settings, get_settings
from .sweeper import OverdueSweeper

logger = logging.getLogger(__name__)

openapi_tags = [
    {"name": "health", "description": "Service health and status endpoints."},
    {
        "name": "tasks",
        "description": "Create, replace, partially update and delete tasks; overdue flags are kept current.",
    },
]


# PUBLIC_INTERFACE
def create_app(settings: Optional[Settings] = None, repository: Optional[Repository] = None) -> FastAPI:
    """
    Build the FastAPI application.

    The record store, task service, overdue sweeper and shutdown coordinator are
    constructed once here and live on `app.state`. The sweeper starts with the
    app's lifespan (when enabled) and the coordinator drains it and closes the
    store on shutdown.
    """
    settings = settings or get_settings()
    repository = repository or get_repository(settings)
    service = TaskService(repository)
    sweeper = OverdueSweeper(service)
    coordinator = ShutdownCoordinator(sweeper, repository)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        # Served as `uvicorn taskapi.main:app`, main() never ran; configure logging here
        if not logging.getLogger().handlers:
            setup_logging(settings.log_level)
        if settings.sweeper_enabled:
            sweeper.start(settings.sweep_interval_seconds)
        logger.info("task service started backend=%s", settings.persistence_backend)
        try:
            yield
        finally:
            # Blocks until the in-flight sweep finishes; keep it off the event loop
            await run_in_threadpool(coordinator.shutdown)

    app = FastAPI(
        title="Task Backend",
        description="Task tracking API with due dates and automatic overdue flagging.",
        version="0.1.0",
        openapi_tags=openapi_tags,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.repository = repository
    app.state.task_service = service
    app.state.sweeper = sweeper
    app.state.coordinator = coordinator

    # Configure CORS based on settings (.env -> CORS_ALLOW_ORIGINS), with '*' fallback
    allow_all = (settings.cors_allow_origins == ["*"]) or (len(settings.cors_allow_origins) == 0)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_all else settings.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Callable[[Request], Awaitable[Response]]) -> Response:
        started = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "request method=%s path=%s status=%d duration_ms=%.1f",
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
        )
        return response

    # Global exception handlers for consistent JSON on validation errors
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """
        Return a consistent JSON structure for request validation errors.

        Response format:
            {
                "error": "ValidationError",
                "detail": [... pydantic/fastapi error details ...],
                "message": "Request validation failed"
            }
        """
        return JSONResponse(
            status_code=422,
            content={
                "error": "ValidationError",
                "message": "Request validation failed",
                "detail": jsonable_encoder(exc.errors()),
            },
        )

    @app.exception_handler(TaskError)
    async def task_error_handler(request: Request, exc: TaskError) -> JSONResponse:
        """
        Map domain errors onto HTTP: NotFound 404, DuplicateIdentifier 409,
        MissingRequiredField 400, StorageFailure 500.
        """
        message = exc.message if exc.status_code < 500 else "internal storage failure"
        return JSONResponse(status_code=exc.status_code, content={"error": exc.kind, "message": message})

    # PUBLIC_INTERFACE
    @app.get("/", summary="Health Check", tags=["health"])
    def health_check():
        """
        Health check endpoint.

        Returns:
            A JSON object indicating service health.
        """
        return {"message": "Healthy", "backend": settings.persistence_backend}

    # Include routers
    app.include_router(tasks_router.router)
    return app


app = create_app()


# PUBLIC_INTERFACE
def main() -> None:
    """Configure logging and serve the app with uvicorn using HOST/PORT from settings."""
    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
