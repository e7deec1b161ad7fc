"""
API Middleware

Correlates HTTP requests with the engine logs they produce.
"""

import time
from collections.abc import Callable
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from autonomy.observability.logging import StructuredLogger, get_logger

REQUEST_ID_HEADER = "X-Request-Id"


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Tags each request with an id.

    The id is echoed in the response and added to the log scope, so every
    engine record written while serving the request carries `request_id`.
    """

    def __init__(self, app, logger: StructuredLogger | None = None):
        super().__init__(app)
        self._logger = logger or get_logger("autonomy.api")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or f"req-{uuid4().hex[:12]}"
        request.state.request_id = request_id

        started = time.perf_counter()
        with StructuredLogger.context(request_id=request_id):
            response = await call_next(request)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 2)
            self._logger.debug(
                "Request handled",
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                duration_ms=elapsed_ms,
            )

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"
        return response
