"""Cancellation audit row and the exporter seam.

One row per cancelled slot, in the column order of the operations sheet:
Timestamp, Action, Date, Court, Start, End, Payer, Phone, Who, Booking Type,
Payment, Amount, Currency, Refund Status, Notes, Order Id.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol

from src.co_common.datetime_utils import iso_utc_ms, utc_now
from src.co_common.money import cents_to_major

HEADER = [
    "Timestamp", "Action", "Date", "Court", "Start", "End", "Payer", "Phone",
    "Who", "Booking Type", "Payment", "Amount", "Currency", "Refund Status",
    "Notes", "Order Id",
]


@dataclass
class CancellationRow:
    date: str
    court_id: int | None
    start: str
    end: str
    payer_name: str
    who: str = "user"                   # member | user | guest
    booking_type: str = "Normal"
    payment_ref: str = ""
    amount_cents: int | None = None     # per-slot amount if known
    currency: str = "INR"
    refund_status: str = ""
    phone: str = ""
    note: str = ""
    order_id: str = ""
    action: str = "CANCELLED"
    ts: datetime = field(default_factory=utc_now)

    def to_row(self) -> list[str | int | float]:
        return [
            iso_utc_ms(self.ts),
            self.action,
            self.date or "—",
            self.court_id if self.court_id is not None else "",
            self.start or "—",
            self.end or "—",
            self.payer_name or "—",
            self.phone,
            self.who,
            self.booking_type,
            self.payment_ref or "—",
            "" if self.amount_cents is None else float(cents_to_major(self.amount_cents)),
            self.currency,
            self.refund_status or "—",
            self.note,
            self.order_id,
        ]


class AuditExporter(Protocol):
    async def export(self, rows: list[CancellationRow]) -> None: ...
