"""Per-request access log and request id.

A client may send its own X-Request-ID (e.g. to correlate a bid with the
bid-placed event it receives); otherwise one is generated. The id is put
on request.state for the response envelope and echoed as a header.

    INFO [POST] /api/v1/sessions/42/bid -> 200 (23ms) req_a1b2c3d4e5f6
"""

import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("fc.request")

_CLIENT_ID = re.compile(r"^[A-Za-z0-9_\-]{8,64}$")
_QUIET_PATHS = frozenset({"/health", "/api/v1/time"})


def request_id_for(request: Request) -> str:
    supplied = request.headers.get("X-Request-ID", "")
    if _CLIENT_ID.match(supplied):
        return supplied
    return f"req_{uuid.uuid4().hex[:12]}"


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.state.request_id = request_id_for(request)
        started = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000

        level = logging.DEBUG if request.url.path in _QUIET_PATHS else logging.INFO
        logger.log(
            level,
            "[%s] %s -> %d (%.0fms) %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response
