"""Error handling: taxonomy mapping plus a last-resort safety net."""

import logging
import traceback

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from fleetpush.exceptions import FleetPushError, NoRecipientError, ValidationError
from fleetpush.middleware.logging import redact_pii

logger = logging.getLogger(__name__)


async def fleetpush_error_handler(request: Request, exc: FleetPushError) -> JSONResponse:
    """Map FleetPushError subclasses to their HTTP status."""
    if isinstance(exc, (ValidationError, NoRecipientError)):
        logger.info("%s on %s: %s", type(exc).__name__, request.url.path, redact_pii(exc.message))
    else:
        logger.warning("%s on %s: %s", type(exc).__name__, request.url.path, redact_pii(exc.message))
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": False,
            "error": exc.message,
            "error_type": type(exc).__name__,
        },
    )


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch unhandled exceptions and return safe error responses."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception as exc:
            # Redact PII from error messages before logging
            error_msg = redact_pii(str(exc))
            tb = traceback.format_exc()

            logger.error(
                "Unhandled exception: %s\n%s",
                error_msg,
                redact_pii(tb),
            )

            return JSONResponse(
                status_code=500,
                content={
                    "success": False,
                    "error": "An internal error occurred. Please try again later.",
                    "error_type": type(exc).__name__,
                },
            )
