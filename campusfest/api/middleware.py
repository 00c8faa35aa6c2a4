"""
Request middleware: request id, access logging and latency metrics.
"""

import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from campusfest.core.logging import get_logger
from campusfest.core.metrics import http_request_duration

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _route_template(request: Request) -> str:
    """`/api/v1/events/{event_id}/register` rather than the concrete path."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Honours an incoming X-Request-ID (or mints one) and binds it to the
    structlog context. Rejections (4xx) are logged at info by the exception
    handlers, so only server errors are logged at error here.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        started = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method)

        try:
            response = await call_next(request)
        except Exception as e:
            elapsed = time.perf_counter() - started
            http_request_duration.labels(request.method, _route_template(request), "5xx").observe(elapsed)
            logger.error(
                "request_failed",
                path=request.url.path,
                error=str(e),
                duration_ms=round(elapsed * 1000, 2),
            )
            raise

        elapsed = time.perf_counter() - started
        route = _route_template(request)
        http_request_duration.labels(request.method, route, f"{response.status_code // 100}xx").observe(elapsed)

        log = logger.error if response.status_code >= 500 else logger.info
        log(
            "request_completed",
            route=route,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=round(elapsed * 1000, 2),
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{round(elapsed * 1000, 2)}ms"
        return response
