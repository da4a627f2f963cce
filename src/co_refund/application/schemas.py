"""Pydantic schemas and cursor utilities for the refund ledger API.

Cursor format (VARCHAR PK, not sequential):
  {"ts": "<created_at ISO>", "id": "<refund record id>"}
  Encoded as Base64 JSON string.
"""

import base64
import json
from datetime import datetime
from typing import Any

from pydantic import BaseModel

from src.co_common.money import cents_to_display
from src.co_refund.domain.models import RefundRecord

# ---------------------------------------------------------------------------
# Cursor utilities
# ---------------------------------------------------------------------------


def cursor_encode(last: RefundRecord) -> str:
    """Encode composite cursor from last record in page."""
    payload = {
        "ts": last.created_at.isoformat() if last.created_at else None,
        "id": last.id,
    }
    return base64.b64encode(json.dumps(payload).encode()).decode()


def cursor_decode(cursor: str | None) -> tuple[datetime | None, str | None]:
    """Decode composite cursor -> (created_at, record_id), or (None, None) on error."""
    if cursor is None:
        return None, None
    try:
        data = json.loads(base64.b64decode(cursor.encode()).decode())
        return datetime.fromisoformat(data["ts"]), str(data["id"])
    except Exception:
        return None, None


# ---------------------------------------------------------------------------
# Responses
# ---------------------------------------------------------------------------


class RefundItem(BaseModel):
    id: str
    kind: str
    booking_id: str | None
    booking_variant: str | None
    registration_id: str | None
    user_email: str | None
    user_name: str | None
    amount_cents: int
    amount_display: str
    currency: str
    reason: str | None
    gateway: str
    order_id: str | None
    refund_id: str | None
    gateway_refund_id: str | None
    status: str
    status_description: str | None
    slot_signature: str | None
    membership_credit_restored: bool
    meta: dict[str, Any]
    created_at: str  # ISO8601 string

    @classmethod
    def from_record(cls, r: RefundRecord) -> "RefundItem":
        return cls(
            id=r.id,
            kind=r.kind.value,
            booking_id=r.booking_id,
            booking_variant=r.booking_variant,
            registration_id=r.registration_id,
            user_email=r.user_email,
            user_name=r.user_name,
            amount_cents=r.amount_cents,
            amount_display=cents_to_display(r.amount_cents, r.currency),
            currency=r.currency,
            reason=r.reason,
            gateway=r.gateway.value,
            order_id=r.order_id,
            refund_id=r.refund_id,
            gateway_refund_id=r.gateway_refund_id,
            status=r.status.value,
            status_description=r.status_description,
            slot_signature=r.slot_signature,
            membership_credit_restored=r.membership_credit_restored,
            meta=r.meta,
            created_at=r.created_at.isoformat() if r.created_at else "",
        )


class RefundListResponse(BaseModel):
    items: list[RefundItem]
    next_cursor: str | None
    has_more: bool
