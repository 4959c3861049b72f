"""
Exception handlers that turn BillingError into the ``{"error": {...}}`` body.
"""

import logging

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.errors import BillingError
from app.core.errors.registry import error_registry

logger = logging.getLogger(__name__)

VALIDATION_ERROR_CODE = "BIL-API-001"

_LOG_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def unregistered_error_body(code: str) -> dict:
    return {
        "error": {
            "code": code,
            "title": "Internal error",
            "message": "An unexpected error occurred.",
            "retryable": False,
            "user_action_required": False,
            "remediation": [],
        }
    }


async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    entry = error_registry.get(exc.code)
    if entry is None:
        logger.error("Unregistered error code %s raised on %s: %s", exc.code, request.url.path, exc.detail)
        return JSONResponse(status_code=500, content=unregistered_error_body(exc.code))

    logger.log(
        _LOG_LEVELS.get(entry.severity, logging.ERROR),
        "%s [%s] on %s %s: %s",
        entry.title, exc.code, request.method, request.url.path, exc.detail or entry.safe_message,
        extra={"error.code": exc.code, **{f"error.ctx.{k}": v for k, v in exc.context.items()}},
    )
    return JSONResponse(status_code=entry.http_status, content=entry.body(exc.detail))


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies and query strings are reported as BIL-API-001 (400), not 422."""
    fields = [".".join(str(part) for part in err.get("loc", ())) for err in exc.errors()]
    detail = "Invalid request fields: " + ", ".join(fields) if fields else None
    return await billing_error_handler(
        request,
        BillingError(VALIDATION_ERROR_CODE, detail=detail, context={"fields": fields}),
    )
