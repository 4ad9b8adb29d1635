"""FastAPI application setup for the ByteHub API.

This module creates and configures the FastAPI application with lifespan
management, exception handlers and routing.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from bytehub import __version__
from bytehub.shared.config import get_settings
from bytehub.shared.database import init_database, close_database
from bytehub.shared.logging import configure_logging
from bytehub.web.api.routers.projects import router as projects_router
from bytehub.web.api.routers.server_config import router as server_config_router
from bytehub.web.api.routers.webhooks import router as webhooks_router
from bytehub.web.api.schemas import (
    ErrorResponse,
    ValidationErrorResponse,
    ErrorDetail,
)
from bytehub.web.crud import DatabaseOperationError, NotFoundError, ConflictError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage FastAPI application lifespan.

    Initializes the database on startup and disposes of it on shutdown.
    A chat notifier can be attached to ``app.state.notifier`` by the process
    that runs the API alongside the bot.

    Args:
        app: FastAPI application instance

    Yields:
        None: Control to the application
    """
    settings = get_settings()
    configure_logging(settings)

    try:
        await init_database(create_tables=True)
        app.state.settings = settings
        yield
    finally:
        await close_database()


settings = get_settings()

api = FastAPI(
    title="ByteHub API",
    description="GitHub event routing and project governance for Discord",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs" if settings.api_docs_enabled else None,
    redoc_url="/redoc" if settings.api_docs_enabled else None,
    openapi_url="/openapi.json" if settings.api_docs_enabled else None,
)


@api.middleware("http")
async def add_request_id_middleware(request: Request, call_next):
    """Add request ID to request state for tracking."""
    request_id = request.headers.get("x-request-id", str(uuid.uuid4()))
    request.state.request_id = request_id

    response = await call_next(request)

    response.headers["x-request-id"] = request_id
    return response


def _error_response(request: Request, status_code: int, detail: str, type: str) -> JSONResponse:
    response = ErrorResponse(
        detail=detail,
        type=type,
        timestamp=datetime.now(timezone.utc),
        request_id=getattr(request.state, "request_id", None),
    )
    return JSONResponse(status_code=status_code, content=response.model_dump(mode="json"))


def _log_extra(request: Request, exc: Exception) -> dict:
    return {
        "request_id": getattr(request.state, "request_id", None),
        "url": str(request.url),
        "method": request.method,
        "error": str(exc),
    }


# Exception handlers
@api.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors.

    Args:
        request: FastAPI request object
        exc: Validation exception

    Returns:
        JSONResponse: Formatted validation error response
    """
    errors = []
    for error in exc.errors():
        field_path = " -> ".join(str(loc) for loc in error["loc"])
        errors.append(
            ErrorDetail(code=error["type"], message=error["msg"], field=field_path)
        )

    logger.warning("Validation error", extra=_log_extra(request, exc))

    response = ValidationErrorResponse(
        detail="Request validation failed",
        errors=errors,
        timestamp=datetime.now(timezone.utc),
        request_id=getattr(request.state, "request_id", None),
    )

    return JSONResponse(status_code=422, content=response.model_dump(mode="json"))


@api.exception_handler(NotFoundError)
async def not_found_exception_handler(
    request: Request, exc: NotFoundError
) -> JSONResponse:
    """Handle NotFoundError exceptions with a 404."""
    logger.info("Resource not found", extra=_log_extra(request, exc))
    return _error_response(request, 404, str(exc), "not_found_error")


@api.exception_handler(ConflictError)
async def conflict_exception_handler(
    request: Request, exc: ConflictError
) -> JSONResponse:
    """Handle ConflictError exceptions with a 409."""
    logger.warning("Conflict error", extra=_log_extra(request, exc))
    return _error_response(request, 409, str(exc), "conflict_error")


@api.exception_handler(DatabaseOperationError)
async def database_exception_handler(
    request: Request, exc: DatabaseOperationError
) -> JSONResponse:
    """Handle DatabaseOperationError exceptions.

    Internal details are only exposed in development with verbose errors
    enabled.
    """
    logger.error(f"Database operation error: {exc}", extra=_log_extra(request, exc))

    if settings.verbose_errors_enabled and settings.is_development:
        detail = f"Database error: {exc}"
    else:
        detail = "Internal server error"

    return _error_response(request, 500, detail, "database_error")


api.include_router(projects_router, tags=["Projects"])
api.include_router(server_config_router, tags=["Server Configuration"])
api.include_router(webhooks_router, tags=["Webhooks"])


@api.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint for monitoring.

    Returns:
        dict: Health status
    """
    return {"status": "healthy", "service": "bytehub", "version": __version__}


def main() -> None:
    """Serve the API without the bot; webhook events are evaluated but not posted."""
    import uvicorn

    uvicorn.run(api, host=settings.host, port=settings.port)
