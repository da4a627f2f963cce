"""Domain models for co_booking: pure dataclasses, no SQLAlchemy dependency."""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any

from src.co_booking.domain.payment_ref import format_payment_ref
from src.co_common.enums import BookingType, BookingVariant, PaymentMethod


@dataclass(frozen=True)
class Slot:
    court_id: int
    start: str  # "HH:MM", inclusive
    end: str    # "HH:MM", exclusive

    @property
    def signature(self) -> str:
        return f"{self.court_id}_{self.start}_{self.end}"

    def to_dict(self) -> dict[str, Any]:
        return {"court_id": self.court_id, "start": self.start, "end": self.end}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Slot":
        return cls(court_id=int(raw["court_id"]), start=str(raw["start"]), end=str(raw["end"]))


@dataclass
class Booking:
    """One booking row from either the account or the guest table."""

    id: str
    variant: BookingVariant
    date: date
    amount_cents: int
    currency: str
    payment_method: PaymentMethod
    admin_paid: bool
    slots: list[Slot] = field(default_factory=list)
    order_id: str | None = None
    # Account identity
    user_id: str | None = None
    user_email: str | None = None
    user_name: str | None = None
    # Guest identity
    guest_name: str | None = None
    guest_phone: str | None = None
    booking_type: BookingType = BookingType.NORMAL
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_guest(self) -> bool:
        return self.variant == BookingVariant.GUEST

    @property
    def payer_name(self) -> str:
        return (self.guest_name if self.is_guest else self.user_name) or "—"

    @property
    def payer_class(self) -> str:
        """member | user | guest: the audit sheet's "Who" column."""
        if self.is_guest:
            return "guest"
        if self.payment_method == PaymentMethod.MEMBERSHIP:
            return "member"
        return "user"

    @property
    def payment_ref(self) -> str:
        return format_payment_ref(self.payment_method, self.admin_paid)

    def find_slot(self, court_id: int, start: str, end: str) -> int:
        """Index of the matching slot, or -1."""
        for idx, slot in enumerate(self.slots):
            if slot.court_id == court_id and slot.start == start and slot.end == end:
                return idx
        return -1
