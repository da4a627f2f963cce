"""Event registration as seen by the refund flow."""

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Registration:
    id: str
    event_id: str
    currency: str
    admin_paid: bool
    event_title: str | None = None
    user_id: str | None = None
    user_email: str | None = None
    user_name: str | None = None
    order_id: str | None = None
    amount_cents: int | None = None       # captured at registration time
    entry_fee_cents: int | None = None    # joined from events
    created_at: datetime | None = None

    @property
    def refund_amount_cents(self) -> int:
        """Event entry fee, else the captured amount, else 0."""
        if self.entry_fee_cents is not None:
            return self.entry_fee_cents
        if self.amount_cents is not None:
            return self.amount_cents
        return 0
