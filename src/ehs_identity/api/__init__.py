"""FastAPI routes for EHS Identity administration.

Provides common response models, error handlers, and utilities.
"""

from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..errors import (
    InvalidInput,
    MergeTransactionFailed,
    NotFound,
    ResolutionError,
    ValidationFailed,
)
from ..logging import get_logger

# =========================
# Response Models
# =========================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    code: str
    message: str
    field: str | None = None
    details: dict[str, Any] | None = None


class ErrorResponse(BaseModel):
    """Standard error response."""

    success: bool = False
    error: str
    error_code: str
    retryable: bool = False
    details: list[ErrorDetail] | None = None


# Resolution errors not listed here map to 500
RESOLUTION_ERROR_STATUS: dict[type[ResolutionError], int] = {
    InvalidInput: 400,
    NotFound: 404,
    ValidationFailed: 409,
    MergeTransactionFailed: 503,
}


def status_for(exc: ResolutionError) -> int:
    for error_type, status_code in RESOLUTION_ERROR_STATUS.items():
        if isinstance(exc, error_type):
            return status_code
    return 500


# =========================
# Exception Handlers
# =========================


async def resolution_error_handler(request: Request, exc: ResolutionError) -> JSONResponse:
    """Map the resolution error taxonomy onto HTTP status codes."""
    status_code = status_for(exc)
    if status_code == 500:
        get_logger(__name__).error(f"Resolution failure: {exc.message}")

    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=exc.message,
            error_code=exc.code,
            retryable=exc.retryable,
            details=[ErrorDetail(code=exc.code, message=exc.message, details=exc.details)],
        ).model_dump(mode="json"),
        headers={"X-Error-Code": exc.code},
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle generic HTTPException."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=str(exc.detail),
            error_code="HTTP_ERROR",
        ).model_dump(mode="json"),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    get_logger(__name__).exception(f"Unhandled exception: {exc}")

    return JSONResponse(
        status_code=500,
        content=ErrorResponse(
            error="An unexpected error occurred",
            error_code="INTERNAL_ERROR",
        ).model_dump(mode="json"),
    )


def register_exception_handlers(app):
    """Register exception handlers with the FastAPI app."""
    app.add_exception_handler(ResolutionError, resolution_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
