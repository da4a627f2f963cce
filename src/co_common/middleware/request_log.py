"""Request logging middleware.

Every request gets a short request ID in request.state (routers and error
handlers copy it into ApiResponse) and in the X-Request-ID response header.
Cancellation requests can block for a few seconds while the gateway is
polled, so latency is logged at WARNING above SLOW_REQUEST_MS.

Log format:
    INFO [DELETE] /api/v1/bookings/b1/slots -> 200 (2714ms) req_a1b2c3d4e5f6
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("co.request")

SLOW_REQUEST_MS = 5000


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request.state.request_id = f"req_{uuid.uuid4().hex[:12]}"

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request.state.request_id

        level = logging.WARNING if elapsed_ms > SLOW_REQUEST_MS else logging.INFO
        logger.log(
            level,
            "[%s] %s -> %d (%.0fms) %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request.state.request_id,
        )
        return response
