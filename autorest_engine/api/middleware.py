"""
Request middleware.

Every request is served inside a logging request scope. Its id comes from
``X-Request-ID`` when the caller sends a usable one and is echoed back on
the response.
"""

import logging
import time
from typing import Awaitable, Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..constants import REQUEST_ID_HEADER
from ..observability import record_operation, request_scope

logger = logging.getLogger(__name__)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Bind a request id for logging and return it in the response headers."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        with request_scope(request.headers.get(REQUEST_ID_HEADER)) as request_id:
            request.state.request_id = request_id
            start = time.perf_counter()
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000

            record_operation(
                "http.request",
                duration_ms,
                success=response.status_code < 500,
                method=request.method,
            )
            logger.debug(
                f"{request.method} {request.url.path} -> {response.status_code} "
                f"({duration_ms:.2f}ms, request_id={request_id})"
            )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
