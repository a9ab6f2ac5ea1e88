"""Structured logging middleware with PII redaction."""

import logging
import re
import time
import uuid
from typing import Callable

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

# Identities are e-mail addresses; keep them out of logs
EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")


def redact_pii(text: str) -> str:
    """Redact email addresses from text."""
    return EMAIL_PATTERN.sub("[REDACTED_EMAIL]", text)


def setup_logging(debug: bool = False) -> None:
    """Configure structlog for JSON output."""
    log_level = logging.DEBUG if debug else logging.INFO

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Also configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        level=log_level,
    )


REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_RE = re.compile(r"^[A-Za-z0-9._-]{1,64}$")


def request_id_for(request: Request) -> str:
    """Reuse a well-formed upstream request id, otherwise mint a short one."""
    incoming = request.headers.get(REQUEST_ID_HEADER, "")
    if _REQUEST_ID_RE.match(incoming):
        return incoming
    return str(uuid.uuid4())[:8]


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log each request and response; e-mails in paths and queries are redacted."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request_id_for(request)
        start_time = time.monotonic()
        path = redact_pii(str(request.url.path))

        logger = structlog.get_logger()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        await logger.ainfo(
            "request_started",
            method=request.method,
            path=path,
            query=redact_pii(str(request.url.query)),
            client=request.client.host if request.client else "unknown",
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            await logger.aerror(
                "request_failed",
                method=request.method,
                path=path,
                error_type=type(exc).__name__,
                duration_ms=round((time.monotonic() - start_time) * 1000, 2),
            )
            raise
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        await logger.ainfo(
            "request_completed",
            request_id=request_id,
            method=request.method,
            path=path,
            status_code=response.status_code,
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
