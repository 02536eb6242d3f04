"""FastAPI main application with app factory and route configuration."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .deps import get_settings
from .errors import TaskPersistenceError, TaskValidationError
from .routes import tasks, trash
from .schemas import HealthResponse
from .services.task_service import get_task_service, initialize_task_service
from .utils.logging import (
    configure_request_logging,
    log_shutdown_info,
    log_startup_info,
    setup_logging,
)

logger = logging.getLogger(__name__)

VERSION = "1.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events.

    Args:
        app: FastAPI application instance
    """
    try:
        settings = get_settings()

        setup_logging(settings)
        log_startup_info(settings)

        if get_task_service() is None:
            initialize_task_service(settings)
        logger.info("Task service initialized")

        logger.info("Application startup completed successfully")

    except Exception as e:
        logger.error(f"Error during application startup: {str(e)}")
        raise

    yield

    log_shutdown_info()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    app = FastAPI(
        title="Taskloop",
        description="Recurring task scheduling and lifecycle engine with a trash bin",
        version=VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.middleware("http")(configure_request_logging())
    register_exception_handlers(app)

    @app.get("/healthz", tags=["health"], response_model=HealthResponse)
    async def health_check() -> HealthResponse:
        """Health check endpoint for monitoring and load balancers."""
        settings = get_settings()
        health = HealthResponse(version=VERSION, storage_backend=settings.storage_backend)
        if get_task_service() is None:
            health.status = "degraded"
        return health

    @app.get("/", tags=["root"])
    async def root():
        """Root endpoint with API information."""
        return {
            "name": "Taskloop API",
            "version": VERSION,
            "docs_url": "/docs",
            "health_check": "/healthz",
            "endpoints": {
                "tasks": "/tasks",
                "trash": "/trash",
            },
        }

    app.include_router(tasks.router)
    app.include_router(trash.router)

    logger.info("FastAPI application created and configured")

    return app


def error_response(request: Request, status_code: int, error, **extra) -> JSONResponse:
    """Build the JSON error body shared by every handler."""
    content = {"error": error, "status_code": status_code, "path": request.url.path}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without non-serializable context objects."""
    return [
        {"loc": list(error.get("loc", ())), "msg": error.get("msg"), "type": error.get("type")}
        for error in exc.errors()
    ]


def register_exception_handlers(app: FastAPI) -> None:
    """Attach handlers mapping errors to the JSON error body.

    Routes translate task errors themselves; the task error handlers catch
    anything that escapes them so validation and persistence failures keep
    their own status codes.
    """

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        logger.warning(f"HTTP {exc.status_code} on {request.method} {request.url.path}: {exc.detail}")
        return error_response(request, exc.status_code, exc.detail)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Rejected {request.method} {request.url.path}: {exc.errors()}")
        return error_response(request, 422, "Validation error", details=jsonable_errors(exc))

    @app.exception_handler(TaskValidationError)
    async def task_validation_handler(request: Request, exc: TaskValidationError):
        logger.warning(f"Invalid task data on {request.method} {request.url.path}: {str(exc)}")
        return error_response(request, status.HTTP_400_BAD_REQUEST, str(exc))

    @app.exception_handler(TaskPersistenceError)
    async def task_persistence_handler(request: Request, exc: TaskPersistenceError):
        logger.error(f"Storage failure on {request.method} {request.url.path}: {str(exc)}")
        return error_response(request, status.HTTP_503_SERVICE_UNAVAILABLE, str(exc))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.error(
            f"Unexpected error on {request.method} {request.url.path}: {str(exc)}",
            exc_info=True,
        )
        return error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


# Create the app instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.app_host, port=settings.app_port)
