"""Response envelope shared by every endpoint.

Success:
    {"code": 0, "message": "success", "data": {...}, "timestamp": "...", "request_id": "req_..."}

Error (AppError subclasses, validation failures, unhandled errors):
    {"code": 4002, "message": "Refund not successful yet",
     "data": {"status": 409, "details": {"status": "PENDING", "refund_id": "..."}}, ...}

data.status is the HTTP status; data.details carries whatever the error
attached (gateway payload, validation errors) or null.
"""

import uuid
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


class ApiResponse(BaseModel):
    code: int = 0
    message: str = "success"
    data: Any = None
    timestamp: str = Field(default_factory=_now_iso)
    request_id: str = Field(default_factory=_request_id)


def success_response(data: Any = None) -> ApiResponse:
    return ApiResponse(data=data)


def error_response(
    code: int, message: str, status: int | None = None, details: Any = None
) -> ApiResponse:
    data = None
    if status is not None or details is not None:
        data = {"status": status, "details": details}
    return ApiResponse(code=code, message=message, data=data)
