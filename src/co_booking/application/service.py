"""BookingApplicationService: admin bookkeeping on existing bookings.

Cancellation lives in co_cancellation; this service only flips the
admin-paid flag.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from src.co_booking.application.schemas import MarkPaidResponse
from src.co_booking.domain.payment_ref import format_payment_ref
from src.co_booking.domain.repository import BookingRepositoryProtocol
from src.co_booking.infrastructure.persistence import BookingRepository
from src.co_common.errors import BookingNotFoundError

logger = logging.getLogger(__name__)


class BookingApplicationService:
    def __init__(self, repo: BookingRepositoryProtocol | None = None) -> None:
        self._repo: BookingRepositoryProtocol = repo or BookingRepository()

    async def mark_paid(self, db: AsyncSession, booking_id: str) -> MarkPaidResponse:
        booking = await self._repo.find_booking_across_variants(db, booking_id)
        if booking is None:
            raise BookingNotFoundError(booking_id)

        if booking.admin_paid:
            return MarkPaidResponse(
                already=True,
                booking_id=booking.id,
                variant=booking.variant.value,
                payment_ref=booking.payment_ref,
            )

        try:
            changed = await self._repo.mark_paid(db, booking.id, booking.variant)
            await db.commit()
        except Exception:
            await db.rollback()
            raise

        # changed=False: a concurrent request flipped it first
        logger.info("Booking marked paid: id=%s variant=%s changed=%s",
                    booking.id, booking.variant.value, changed)
        return MarkPaidResponse(
            already=not changed,
            booking_id=booking.id,
            variant=booking.variant.value,
            payment_ref=format_payment_ref(booking.payment_method, True),
        )
