"""RefundRecord: one append-only ledger row per cancellation outcome."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from src.co_common.enums import RefundGateway, RefundKind, RefundStatus


@dataclass
class RefundRecord:
    id: str
    kind: RefundKind
    amount_cents: int
    currency: str
    status: RefundStatus
    gateway: RefundGateway = RefundGateway.NONE
    booking_id: str | None = None
    # account | guest: booking ids are only unique per table
    booking_variant: str | None = None
    registration_id: str | None = None
    # Identity snapshot, copied at cancellation time
    user_id: str | None = None
    user_email: str | None = None
    user_name: str | None = None
    reason: str | None = None
    order_id: str | None = None
    # Gateway correlation
    refund_id: str | None = None
    gateway_refund_id: str | None = None
    gateway_payment_id: str | None = None
    status_description: str | None = None
    slot_signature: str | None = None
    membership_credit_restored: bool = False
    meta: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
