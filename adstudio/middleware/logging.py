"""
Request logging middleware.

Assigns each request an id (X-Request-ID, generated when absent), binds it
to the structlog context for everything logged while serving the request,
and records one request_completed / request_failed line plus HTTP metrics.
"""
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from adstudio.logging_config import bind_request_context, clear_request_context, get_logger
from adstudio.routes.metrics import track_request


REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Per-request id, timing log and metrics."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        clear_request_context()
        bind_request_context(request_id=request_id)
        log = get_logger(route=request.url.path, method=request.method)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception as e:
            duration = time.perf_counter() - start_time
            log.error(
                "request_failed",
                user_id=_user_id(request),
                status_code=500,
                duration_ms=round(duration * 1000, 2),
                error=str(e),
            )
            track_request(request.method, request.url.path, 500, duration)
            raise
        finally:
            clear_request_context()

        duration = time.perf_counter() - start_time
        # user_id is set on request.state by the auth dependency
        log.info(
            "request_completed",
            request_id=request_id,
            user_id=_user_id(request),
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        track_request(request.method, request.url.path, response.status_code, duration)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _user_id(request: Request) -> str | None:
    user_id = getattr(request.state, "user_id", None)
    return str(user_id) if user_id else None
