"""
Request middleware for correlation, access logging and request latency.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from eventhub.core.logging import get_logger
from eventhub.core.metrics import observe_request

logger = get_logger(__name__)


def _route_template(request: Request) -> str:
    """Path pattern of the matched route, so /events/17 and /events/18 share a label."""
    route = request.scope.get("route")
    return getattr(route, "path", "unmatched")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that:
    1. Reuses the gateway's X-Request-ID or assigns a new one
    2. Binds request ID and caller ID to structlog so every reservation log line correlates
    3. Logs the outcome at a level matching the status class and records latency per route
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:8]
        started = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            caller_id=request.headers.get("X-User-Id"),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            observe_request(request.method, _route_template(request), 500, elapsed)
            logger.error("request_failed", error=str(e), duration_ms=round(elapsed * 1000, 2))
            raise

        elapsed = time.perf_counter() - started
        duration_ms = round(elapsed * 1000, 2)
        observe_request(request.method, _route_template(request), response.status_code, elapsed)

        if response.status_code >= 500:
            log = logger.error
        elif response.status_code >= 400:
            # Rejected reservations are normal traffic under contention
            log = logger.info
        else:
            log = logger.debug if request.url.path in ("/health", "/metrics") else logger.info
        log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
