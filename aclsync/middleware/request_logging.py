"""
Request logging middleware with per-request trace ids.
"""
import time
import uuid
import logging
from typing import Callable
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware to log all requests with trace_id and latency."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = str(uuid.uuid4())
        request.state.trace_id = trace_id

        start_time = time.time()

        try:
            response = await call_next(request)
        except Exception as exc:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.error(
                f"[{trace_id}] {request.method} {request.url.path} -> EXCEPTION after {latency_ms}ms: {exc}",
                exc_info=True
            )
            # Re-raise to let global exception handler deal with it
            raise

        latency_ms = int((time.time() - start_time) * 1000)
        status_code = response.status_code
        log_level = logging.WARNING if status_code >= 400 else logging.INFO
        logger.log(
            log_level,
            f"[{trace_id}] {request.method} {request.url.path} -> {status_code} ({latency_ms}ms)"
        )

        response.headers["X-Trace-ID"] = trace_id
        return response
