"""
Request logging middleware.

Gives every request a request id (the caller's X-Request-ID when it is a
plain token, otherwise a short random one), logs start and completion with
timing, and returns the id in the X-Request-ID header. Query strings are
not logged: search terms and questions are medical data.
"""

import logging
import re
import time
import uuid
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from core.logging_config import set_request_id, clear_request_id

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def incoming_request_id(value: Optional[str]) -> str:
    """Reuse the caller's request id when it is a plain token, otherwise make one."""
    if value and _REQUEST_ID_PATTERN.match(value):
        return value
    return str(uuid.uuid4())[:8]


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Request/Response logging middleware with request_id propagation.

    Log Output (JSON):
    {
        "message": "Request completed",
        "request_id": "abc-123",
        "extra": {"method": "GET", "path": "/api/v1/records", "status_code": 200, "duration_ms": 45.2}
    }
    """

    EXCLUDED_PATHS = {"/health", "/ready", "/docs", "/redoc", "/openapi.json"}

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = incoming_request_id(request.headers.get(REQUEST_ID_HEADER))
        set_request_id(request_id)

        method = request.method
        path = request.url.path
        start_time = time.perf_counter()

        if path not in self.EXCLUDED_PATHS:
            logger.info("Request started", extra={"method": method, "path": path})

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "Request failed with exception",
                extra={"method": method, "path": path, "error": str(e)}
            )
            clear_request_id()
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000
        if path not in self.EXCLUDED_PATHS:
            log_level = logging.WARNING if response.status_code >= 400 else logging.INFO
            logger.log(
                log_level,
                "Request completed",
                extra={
                    "method": method,
                    "path": path,
                    "status_code": response.status_code,
                    "duration_ms": round(duration_ms, 2),
                }
            )
        clear_request_id()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
