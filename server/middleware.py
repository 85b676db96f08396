"""HTTP middleware: request ids and access logging."""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging_config import request_id_var

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Slower requests are logged as warnings, except on LONG_POLL_PATHS
SLOW_REQUEST_MS = 1000

# Endpoints that stream or block until a human answers
LONG_POLL_PATHS = ("/events", "/permission/request")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log its outcome.

    The id comes from the caller's ``X-Request-ID`` header (the runner sends
    its own) or is generated, and is echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        token = request_id_var.set(request_id)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = request_id
        self._log(request, response.status_code, (time.perf_counter() - start) * 1000, request_id)
        return response

    def _log(self, request: Request, status: int, duration_ms: float, request_id: str) -> None:
        path = request.url.path
        extra = {"request_id": request_id}

        if status >= 500:
            level = logging.ERROR
        elif status >= 400:
            level = logging.WARNING
        elif duration_ms > SLOW_REQUEST_MS and not path.startswith(LONG_POLL_PATHS):
            level = logging.WARNING
        else:
            level = logging.INFO
        logger.log(level, "%s %s -> %d (%.1fms)", request.method, path, status, duration_ms, extra=extra)
