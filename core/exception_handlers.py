"""
Exception handlers for the FastAPI application.

Translates coordination errors into HTTP responses with a consistent
body: {"error": <kind>, "message": ..., "details": {...}}.
"""

import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .errors import CoordinationError, ErrorKind

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES = {
    ErrorKind.INELIGIBLE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.PRECONDITION_FAILED: status.HTTP_412_PRECONDITION_FAILED,
    ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.TRANSIENT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorKind.INTERNAL_CONSISTENCY: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# Seconds a client should wait before retrying a transient failure
RETRY_AFTER_SECONDS = 5


async def coordination_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map a CoordinationError to its status code."""
    if not isinstance(exc, CoordinationError):
        return await global_exception_handler(request, exc)

    status_code = ERROR_STATUS_CODES.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    headers = None

    if exc.kind == ErrorKind.TRANSIENT:
        headers = {"Retry-After": str(RETRY_AFTER_SECONDS)}
        logger.warning(f"Transient failure on {request.method} {request.url.path}: {exc.message}")
    elif exc.kind == ErrorKind.INTERNAL_CONSISTENCY:
        logger.error(f"Consistency fault on {request.method} {request.url.path}: {exc.message}", exc_info=exc)
    else:
        logger.info(f"{exc.kind.value} on {request.method} {request.url.path}: {exc.message}")

    return JSONResponse(status_code=status_code, content=exc.to_dict(), headers=headers)


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle HTTPException with the same response format."""
    http_exc = exc if isinstance(exc, HTTPException) else HTTPException(status_code=500, detail=str(exc))
    error = "VALIDATION" if http_exc.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY else "HTTP_ERROR"
    return JSONResponse(
        status_code=http_exc.status_code,
        content={"error": error, "message": http_exc.detail, "details": {}},
        headers=http_exc.headers,
    )


async def validation_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle request validation errors with per-field messages."""
    errors = []
    if isinstance(exc, RequestValidationError):
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

    logger.warning(f"Validation error on {request.url.path}: {errors}")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={"error": "VALIDATION", "message": "Validation error", "details": {"errors": errors}},
    )


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all unhandled exceptions.

    Logs the full exception with traceback and returns a safe error response.
    """
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}: {exc!s}",
        exc_info=exc,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "INTERNAL", "message": "Internal server error", "details": {}},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application."""
    app.add_exception_handler(CoordinationError, coordination_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)
