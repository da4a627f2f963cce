"""Slot selection and cancellation outcomes."""

from dataclasses import dataclass

from src.co_booking.domain.models import Booking, Slot
from src.co_common.enums import PaymentPath, RefundStatus
from src.co_common.errors import SlotNotFoundError, ValidationError


@dataclass(frozen=True)
class SlotSelector:
    """Either an index into the current slot list or the (court, start, end) triple."""

    slot_index: int | None = None
    court_id: int | None = None
    start: str | None = None
    end: str | None = None

    def __post_init__(self) -> None:
        has_index = self.slot_index is not None and self.slot_index >= 0
        has_triple = self.court_id is not None and bool(self.start) and bool(self.end)
        if not has_index and not has_triple:
            raise ValidationError("Provide slot_index or (court_id, start, end)")

    def resolve(self, booking: Booking) -> Slot:
        if self.slot_index is not None and self.slot_index >= 0:
            idx = self.slot_index
        elif self.court_id is not None and self.start and self.end:
            idx = booking.find_slot(self.court_id, self.start, self.end)
        else:
            idx = -1
        if idx < 0 or idx >= len(booking.slots):
            raise SlotNotFoundError(booking.id)
        return booking.slots[idx]


@dataclass
class CancellationOutcome:
    booking_id: str
    path: PaymentPath
    refunded_cents: int
    currency: str
    refund_status: RefundStatus
    booking_deleted: bool
    record_ids: list[str]


@dataclass
class RegistrationRefundOutcome:
    registration_id: str
    refunded_cents: int
    currency: str
    refund_status: RefundStatus
    gateway_refund_id: str | None = None
    gateway_payment_id: str | None = None
