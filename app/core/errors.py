"""
Sweetlease - Exception Handlers
Maps lease pipeline errors to HTTP responses with JSON bodies of the form
{"error": {"code": ..., "type": ..., "message": ...}}.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from app.services.lease.errors import (
    EmptyInputError,
    ExtractionError,
    InvalidReminderError,
    LeaseAnalysisError,
    ModelError,
    QuotaExceededError,
    RunStateError,
    SchemaViolationError,
)

logger = logging.getLogger(__name__)

# Most specific first; RunInProgressError is a RunStateError
STATUS_CODES: list[tuple[type[LeaseAnalysisError], int]] = [
    (QuotaExceededError, status.HTTP_402_PAYMENT_REQUIRED),
    (RunStateError, status.HTTP_409_CONFLICT),
    (InvalidReminderError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (EmptyInputError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (ExtractionError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (SchemaViolationError, status.HTTP_502_BAD_GATEWAY),
    (ModelError, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_for(exc: LeaseAnalysisError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_400_BAD_REQUEST


async def lease_error_handler(request: Request, exc: LeaseAnalysisError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info("%s %s -> %d %s: %s", request.method, request.url.path, status_code, exc.code, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.to_dict()})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": {
                "code": "internal_error",
                "type": "InternalError",
                "message": "An unexpected error occurred. Please try again later.",
            }
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the lease error handlers on the application."""
    app.add_exception_handler(LeaseAnalysisError, lease_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
