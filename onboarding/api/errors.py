"""
Exception handlers - map domain faults onto HTTP responses.

Caller mistakes become 400 with the violated rule; downstream failures
become a generic 500 and are logged in full.
"""

import logging

import psycopg
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from onboarding.domain.exceptions import DownstreamFailure, UnknownRole, ValidationError

logger = logging.getLogger(__name__)


async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    message = "Invalid role." if isinstance(exc, UnknownRole) else str(exc)
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"success": False, "error": message},
    )


async def downstream_failure_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Request to %s failed: %s", request.url.path, exc, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "error": "Server error. Please try again later."},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ValidationError, validation_error_handler)
    app.add_exception_handler(DownstreamFailure, downstream_failure_handler)
    app.add_exception_handler(psycopg.Error, downstream_failure_handler)
