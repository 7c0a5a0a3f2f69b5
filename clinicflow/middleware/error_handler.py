"""Exception handlers rendering every failure as one JSON error shape.

Body: ``{"error", "category", "message", "path"}`` plus ``code`` for
identity failures and ``details`` for request validation failures.
"""

from typing import Any

import structlog
from fastapi import Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError, IntegrityError
from starlette.exceptions import HTTPException as StarletteHTTPException

from clinicflow.core.exceptions import AppException, IdentityException

logger = structlog.get_logger(__name__)


def error_response(
    request: Request,
    status_code: int,
    error: str,
    category: str,
    message: Any,
    headers: dict[str, str] | None = None,
    **extra: Any,
) -> JSONResponse:
    content = {
        "error": error,
        "category": category,
        "message": message,
        "path": str(request.url),
        **extra,
    }
    return JSONResponse(status_code=status_code, content=content, headers=headers)


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Domain errors carry their own status code and category."""
    extra = {"code": exc.code} if isinstance(exc, IdentityException) else {}
    return error_response(
        request, exc.status_code, type(exc).__name__, exc.category, exc.message, **extra
    )


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    category = "identity" if exc.status_code == status.HTTP_401_UNAUTHORIZED else "http"
    return error_response(
        request,
        exc.status_code,
        "HTTPException",
        category,
        exc.detail,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """Malformed bodies and parameters, rejected before any store call."""
    return error_response(
        request,
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "ValidationError",
        "validation",
        "Request validation failed",
        details=jsonable_encoder(exc.errors()),
    )


async def store_exception_handler(request: Request, exc: DBAPIError) -> JSONResponse:
    logger.error("store_unavailable", path=request.url.path, error=str(exc))
    return error_response(
        request,
        status.HTTP_503_SERVICE_UNAVAILABLE,
        "StoreUnavailableException",
        "transient",
        "Data store unavailable, try again",
    )


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    """Uniqueness and check constraint violations that slipped past the services."""
    logger.warning("store_conflict", path=request.url.path, error=str(exc.orig))
    return error_response(
        request,
        status.HTTP_409_CONFLICT,
        "ConflictException",
        "conflict",
        "The change conflicts with existing data",
    )


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_exception", path=request.url.path, error=str(exc))
    return error_response(
        request,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "InternalServerError",
        "internal",
        "An unexpected error occurred",
    )
