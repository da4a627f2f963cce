"""Gateway refund result and status normalization."""

from dataclasses import dataclass, field
from typing import Any

from src.co_common.enums import RefundStatus


@dataclass
class GatewayRefund:
    refund_id: str               # our idempotency key, sent as refund_id
    status: RefundStatus
    gateway_refund_id: str = ""
    gateway_payment_id: str = ""
    status_description: str = ""
    raw_status: str = ""
    raw: Any = field(default=None, repr=False)


def normalize_status(raw: str | None) -> RefundStatus:
    """Gateway status string -> PENDING | SUCCESS | FAILED.

    Anything the gateway has not decided yet (ONHOLD, PENDING, unknown) is
    PENDING.
    """
    up = (raw or "").upper()
    if "SUCCESS" in up:
        return RefundStatus.SUCCESS
    if "FAIL" in up:
        return RefundStatus.FAILED
    return RefundStatus.PENDING
