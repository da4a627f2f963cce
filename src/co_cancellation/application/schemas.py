"""Pydantic schemas for cancellation endpoints."""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from src.co_cancellation.domain.models import (
    CancellationOutcome,
    RegistrationRefundOutcome,
    SlotSelector,
)
from src.co_common.money import cents_to_major

# Wire names are camelCase; snake_case is still accepted on input.
_CAMEL = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SlotCancelRequest(BaseModel):
    model_config = _CAMEL

    slot_index: int | None = Field(None, ge=0)
    court_id: int | None = None
    start: str | None = None
    end: str | None = None

    @field_validator("start", "end")
    @classmethod
    def strip_time(cls, v: str | None) -> str | None:
        return v.strip() if v is not None else None

    @model_validator(mode="after")
    def index_or_triple(self) -> "SlotCancelRequest":
        if self.slot_index is None and not (self.court_id is not None and self.start and self.end):
            raise ValueError("Provide slotIndex or (courtId, start, end)")
        return self

    def to_selector(self) -> SlotSelector:
        return SlotSelector(
            slot_index=self.slot_index,
            court_id=self.court_id,
            start=self.start,
            end=self.end,
        )


class SlotCancelResponse(BaseModel):
    model_config = _CAMEL

    ok: bool = True
    action: str = "slot_cancelled"
    booking_id: str
    refunded: float
    refunded_cents: int
    currency: str
    refund_status: str
    booking_deleted: bool

    @classmethod
    def from_outcome(cls, o: CancellationOutcome) -> "SlotCancelResponse":
        return cls(
            booking_id=o.booking_id,
            refunded=float(cents_to_major(o.refunded_cents)),
            refunded_cents=o.refunded_cents,
            currency=o.currency,
            refund_status=o.refund_status.value,
            booking_deleted=o.booking_deleted,
        )


class BookingCancelResponse(BaseModel):
    model_config = _CAMEL

    ok: bool = True
    deleted_id: str
    refunded: float
    refunded_cents: int
    currency: str
    refund_status: str

    @classmethod
    def from_outcome(cls, o: CancellationOutcome) -> "BookingCancelResponse":
        return cls(
            deleted_id=o.booking_id,
            refunded=float(cents_to_major(o.refunded_cents)),
            refunded_cents=o.refunded_cents,
            currency=o.currency,
            refund_status=o.refund_status.value,
        )


class RegistrationRefundResponse(BaseModel):
    model_config = _CAMEL

    ok: bool = True
    deleted_id: str
    refunded: float
    refunded_cents: int
    currency: str
    refund_status: str
    gateway_refund_id: str | None = None
    gateway_payment_id: str | None = None

    @classmethod
    def from_outcome(cls, o: RegistrationRefundOutcome) -> "RegistrationRefundResponse":
        return cls(
            deleted_id=o.registration_id,
            refunded=float(cents_to_major(o.refunded_cents)),
            refunded_cents=o.refunded_cents,
            currency=o.currency,
            refund_status=o.refund_status.value,
            gateway_refund_id=o.gateway_refund_id,
            gateway_payment_id=o.gateway_payment_id,
        )
