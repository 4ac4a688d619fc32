"""Error Handlers — render every failure as the {"error": {...}} envelope.

Invariants:
    - RemessaError -> its own http_status and to_response() body
    - RequestValidationError -> 400 VALIDATION_ERROR with one detail per offending field
    - Starlette HTTPException (unknown route, wrong method) -> same envelope, original status
    - Anything else -> 500 INTERNAL_ERROR without internal details

Design Decisions:
    - 4xx logged at warning, 5xx at error: a refused transition is not an outage
    - Validation failures are 400, not FastAPI's default 422; 422 is reserved for
      VALIDATION_BLOCKED and TRANSFORM_FAILED
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from remessa.core.errors import ErrorCategory, ErrorSeverity, RemessaError

logger = logging.getLogger(__name__)


def _envelope(code: str, message: str, category: ErrorCategory, severity: ErrorSeverity, **extra) -> dict:
    return {
        "error": {
            "code": code,
            "message": message,
            "category": category.value,
            "severity": severity.value,
            **extra,
        },
    }


async def handle_remessa_error(request: Request, exc: RemessaError) -> JSONResponse:
    log = logger.error if exc.http_status >= 500 else logger.warning
    log(
        f"{exc.code}: {exc.message}",
        extra={
            "error_code": exc.code,
            "status_code": exc.http_status,
            "path": request.url.path,
            "user_id": exc.context.user_id,
            "remittance_id": exc.context.remittance_id,
            "source_record_id": exc.context.source_record_id,
        },
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_response())


async def handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    logger.warning(
        f"Invalid request on {request.url.path}: {[d['field'] for d in details]}",
        extra={"error_code": "VALIDATION_ERROR", "path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=_envelope(
            "VALIDATION_ERROR", "Invalid request data",
            ErrorCategory.VALIDATION, ErrorSeverity.ERROR, details=details,
        ),
    )


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    category = (
        ErrorCategory.RESOURCE_NOT_FOUND if exc.status_code == 404 else ErrorCategory.VALIDATION
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope("HTTP_ERROR", str(exc.detail), category, ErrorSeverity.WARNING),
        headers=getattr(exc, "headers", None),
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception on {request.url.path}: {exc}",
        exc_info=True,
        extra={"path": request.url.path},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_envelope(
            "INTERNAL_ERROR", "An unexpected error occurred",
            ErrorCategory.INTERNAL, ErrorSeverity.CRITICAL,
        ),
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RemessaError, handle_remessa_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(Exception, handle_unexpected)
