"""
Logging middleware for request/response logging.

Logs all HTTP requests with timing, tenant context and Prometheus metrics.
"""
import time
import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.routes.metrics import track_request

logger = structlog.get_logger()


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware to log all HTTP requests with timing and context.

    Adds: client_code, user_id, route, duration_ms, status to every log.
    """

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            route=request.url.path,
            method=request.method,
        )

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.error(
                "request_failed",
                status_code=500,
                duration_ms=round(duration_ms, 2),
                error=str(e)
            )
            track_request(request.method, request.url.path, 500, duration_ms / 1000)
            raise

        duration_ms = (time.time() - start_time) * 1000

        # Set by the auth dependency once the token is decoded
        client_code = getattr(request.state, "client_code", None)
        user_id = getattr(request.state, "user_id", None)

        logger.info(
            "request_completed",
            client_code=client_code,
            user_id=user_id,
            status_code=response.status_code,
            duration_ms=round(duration_ms, 2)
        )
        track_request(request.method, request.url.path, response.status_code, duration_ms / 1000)

        return response
