"""
Main FastAPI application.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.error_responses import ErrorMessages, build_error_body
from app.core.lifecycle.errors import LifecycleError
from app.core.logging_config import setup_logging
from app.middleware import RequestLoggingMiddleware
from app.models import async_engine
from app.observability import error_tracker

# Initialize logging configuration at startup
setup_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan event handler.

    - On startup: initializes error tracking
    - On shutdown: flushes pending error events and disposes the engine pool
    """
    error_tracker.init()
    logger.info(f"{settings.APP_NAME} {settings.APP_VERSION} starting ({settings.ENV})")

    yield

    error_tracker.flush()
    await async_engine.dispose()
    logger.info("Application shutting down")


# OpenAPI tags metadata
tags_metadata = [
    {
        "name": "health",
        "description": "Health check endpoints for monitoring application status",
    },
    {
        "name": "tests",
        "description": "Test scheduling, lifecycle transitions and bulk actions",
    },
    {
        "name": "questions",
        "description": "Question management; every write keeps the test's question count exact",
    },
    {
        "name": "results",
        "description": "Test sessions recorded for a test, and resetting them",
    },
]


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    """
    Render a domain error as ``{"detail", "error", ...}`` with its HTTP status.
    """
    if exc.status_code >= 500:
        logger.error(
            f"{exc.kind} on {request.method} {request.url.path}: {exc.message}",
            exc_info=exc,
        )
        error_tracker.capture_error(
            exc,
            context={"path": str(request.url.path), "method": request.method},
            tags={"error_type": exc.kind},
        )
    else:
        logger.info(
            f"{exc.kind} on {request.method} {request.url.path}: {exc.message}",
            extra={"status_code": exc.status_code},
        )

    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}

    return JSONResponse(
        status_code=exc.status_code,
        content=build_error_body(exc.message, exc.kind, **exc.extra()),
        headers=headers,
    )


def create_application() -> FastAPI:
    """
    Create and configure the FastAPI application.
    """
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        lifespan=lifespan,
        description=(
            "**TestDesk API** - scheduling tests, managing their questions and "
            "tracking submissions for groups of users.\n\n"
            "## Authentication\n\n"
            "Every endpoint except health checks requires a JWT Bearer token "
            "issued by the session service, carrying `sub` and `role` claims."
        ),
        docs_url=f"{settings.API_V1_PREFIX}/docs",
        redoc_url=f"{settings.API_V1_PREFIX}/redoc",
        openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
        openapi_tags=tags_metadata,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    )

    # Configure Request Logging
    app.add_middleware(RequestLoggingMiddleware)

    # Include API router
    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    app.add_exception_handler(LifecycleError, lifecycle_error_handler)  # type: ignore[arg-type]

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        Handle HTTP exceptions raised by routing (404 for unknown paths, 405).
        """
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ):
        """
        Handle request validation errors.
        """
        errors = []
        for error in exc.errors():
            errors.append(
                {
                    "loc": list(error.get("loc", [])),
                    "msg": str(error.get("msg", "")),
                    "type": str(error.get("type", "")),
                }
            )

        logger.info(
            f"Request validation failed on {request.method} {request.url.path}",
            extra={"status_code": status.HTTP_422_UNPROCESSABLE_ENTITY},
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"detail": errors},
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        """
        Handle unexpected exceptions.

        Generates a unique error_id (UUID) for each exception so support can
        find the matching log entry. The error_id is included in the response
        body and logged with the full exception.
        """
        error_id = str(uuid.uuid4())

        logger.exception(
            f"Unhandled exception [error_id={error_id}]: {exc}",
            extra={"error_id": error_id},
        )
        error_tracker.capture_error(
            exc,
            context={
                "path": str(request.url.path),
                "method": request.method,
                "error_id": error_id,
            },
            tags={"error_type": exc.__class__.__name__},
        )

        # Don't leak internal details
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=build_error_body(
                ErrorMessages.INTERNAL_ERROR, "internal_error", error_id=error_id
            ),
        )

    return app


app = create_application()


@app.get("/")
async def root():
    """
    Root endpoint.
    """
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": f"{settings.API_V1_PREFIX}/docs",
    }
