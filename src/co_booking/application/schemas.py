"""Pydantic schemas for co_booking API."""

from pydantic import BaseModel


class MarkPaidResponse(BaseModel):
    ok: bool = True
    already: bool = False
    booking_id: str
    variant: str
    payment_ref: str
