"""
Custom exception handlers for FastAPI.
Provides clear, actionable error messages for validation and server errors.
"""

import logging

import sentry_sdk
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from rewards.core.config import settings

logger = logging.getLogger(__name__)


def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "error": "Validation error",
            "details": jsonable_encoder(exc.errors()),
        },
    )


def generic_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    if settings.SENTRY_DSN:
        sentry_sdk.capture_exception(exc)
    details = str(exc) if (settings.ENVIRONMENT or "development").lower() == "development" else None
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "details": details,
        },
    )
