"""Request context middleware: request IDs, caller context, summary log line.

Every request gets an ID (the client's X-Request-ID, or a fresh UUID) kept
in a ContextVar, so any log line emitted while serving the request can be
correlated.  Context variables are used rather than thread-locals because
concurrent requests share one event-loop thread.

``user_id_var`` and ``org_id_var`` are filled in by the auth dependency
once the bearer token has been decoded; log lines from the gate and the
services then carry the tenant they acted for.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
user_id_var: ContextVar[str] = ContextVar("user_id", default="-")
org_id_var: ContextVar[str] = ContextVar("org_id", default="-")


class _RequestContextFilter(logging.Filter):
    """Copies the context variables onto every LogRecord.

    A filter, not a formatter, because only filters can add attributes to
    the record before it is formatted.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        if not hasattr(record, "user_id"):
            record.user_id = user_id_var.get("-")  # type: ignore[attr-defined]
        if not hasattr(record, "org_id"):
            record.org_id = org_id_var.get("-")  # type: ignore[attr-defined]
        return True


def install_context_filter(target: logging.Logger | logging.Handler) -> None:
    if not any(isinstance(f, _RequestContextFilter) for f in target.filters):
        target.addFilter(_RequestContextFilter())


# Root logger filters only see records logged on the root logger itself,
# so setup_logging() also installs the filter on each handler.
install_context_filter(logging.getLogger())


def bind_caller(user_id: str, org_id: str | None) -> None:
    user_id_var.set(user_id)
    org_id_var.set(org_id or "-")


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assigns the request ID, times the request and logs one summary line."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)
        user_id_var.set("-")
        org_id_var.set("-")

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "%s %s → %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
