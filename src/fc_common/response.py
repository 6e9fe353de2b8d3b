"""JSON envelope shared by every HTTP endpoint.

    {"code": 0, "message": "success", "data": {...},
     "server_time": "...", "server_time_ms": 1757000000000, "request_id": "req_..."}

``code`` is 0 on success and the AppError code otherwise. Every envelope
carries the server clock so auction clients can correct countdown skew
from any response, not only from /time.
"""

import uuid
from typing import Any

from fastapi import Request
from pydantic import BaseModel, Field

from src.fc_common.datetime_utils import epoch_ms, utc_now
from src.fc_common.errors import AppError


def _request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


class ApiResponse(BaseModel):
    code: int = 0
    message: str = "success"
    data: Any = None
    server_time: str = ""
    server_time_ms: int = 0
    request_id: str = Field(default_factory=_request_id)

    def model_post_init(self, __context: Any) -> None:
        if not self.server_time_ms:
            now = utc_now()
            self.server_time = now.isoformat()
            self.server_time_ms = epoch_ms(now)


def _bind(request: Request, resp: ApiResponse) -> ApiResponse:
    # RequestLogMiddleware assigns the id; keep the generated one outside HTTP requests
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp


def respond(request: Request, data: Any = None, message: str = "success") -> ApiResponse:
    return _bind(request, ApiResponse(data=data, message=message))


def error_response(request: Request, exc: AppError) -> ApiResponse:
    return _bind(request, ApiResponse(code=exc.code, message=exc.message))
