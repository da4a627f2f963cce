"""Repository Protocol: dependency inversion for testability.

Unit tests inject a mock that conforms to this Protocol.
Infrastructure layer provides the real implementation.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.co_booking.domain.models import Booking, Slot
from src.co_common.enums import BookingVariant


class BookingRepositoryProtocol(Protocol):
    async def find_booking_across_variants(
        self, db: AsyncSession, booking_id: str
    ) -> Booking | None: ...

    async def remove_slot(
        self,
        db: AsyncSession,
        booking_id: str,
        variant: BookingVariant,
        slot: Slot,
        amount_delta_cents: int = 0,
    ) -> int: ...

    async def decrement_amount(
        self,
        db: AsyncSession,
        booking_id: str,
        variant: BookingVariant,
        delta_cents: int,
    ) -> int | None: ...

    async def delete_if_empty(
        self, db: AsyncSession, booking_id: str, variant: BookingVariant
    ) -> bool: ...

    async def delete_booking(
        self, db: AsyncSession, booking_id: str, variant: BookingVariant
    ) -> bool: ...

    async def mark_paid(
        self, db: AsyncSession, booking_id: str, variant: BookingVariant
    ) -> bool: ...
