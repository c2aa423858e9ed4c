"""
Request logging middleware.

Logs every HTTP request with timing and records the Prometheus
request metrics.
"""
import time
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from hookrelay.logging_config import get_logger
from hookrelay.routes.metrics import track_request


class LoggingMiddleware(BaseHTTPMiddleware):
    """Adds route, method, status and duration_ms to every request log."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        request_logger = get_logger(route=request.url.path, method=request.method)

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            track_request(request.method, _route_label(request), 500, duration)
            request_logger.error(
                "request_failed",
                status_code=500,
                duration_ms=round(duration * 1000, 2),
                error=str(e)
            )
            raise

        duration = time.perf_counter() - start_time
        track_request(request.method, _route_label(request), response.status_code, duration)

        # Prometheus scrapes stay out of info logs
        log = request_logger.debug if request.url.path == "/metrics" else request_logger.info
        log(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2)
        )

        return response


def _route_label(request: Request) -> str:
    """Route template (``/api/webhooks/{endpoint_id}``) to keep label cardinality bounded."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path
