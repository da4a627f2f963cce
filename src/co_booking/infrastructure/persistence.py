"""BookingRepository: raw SQL over the two booking tables.

Account bookings live in `bookings`, guest bookings in `guest_bookings`.
Both share the slot-list/amount/payment shape; only identity columns differ.
Lookups try the account table first, then the guest table. Every write takes
the variant returned by the lookup so it hits the same table.

Slot-list mutations are single UPDATE statements over the JSONB array, so the
slot list and the amount never move independently.

Transaction ownership: The CALLER (application service) commits.
"""

import json
from typing import Any

from sqlalchemy import TextClause, text
from sqlalchemy.ext.asyncio import AsyncSession

from src.co_booking.domain.models import Booking, Slot
from src.co_common.enums import BookingType, BookingVariant, PaymentMethod

_TABLES: dict[BookingVariant, str] = {
    BookingVariant.ACCOUNT: "bookings",
    BookingVariant.GUEST: "guest_bookings",
}

# Identity columns differ per table; select NULLs so both map to one row shape.
_IDENTITY_COLUMNS: dict[BookingVariant, str] = {
    BookingVariant.ACCOUNT: (
        "user_id, user_email, user_name, "
        "CAST(NULL AS VARCHAR) AS guest_name, CAST(NULL AS VARCHAR) AS guest_phone"
    ),
    BookingVariant.GUEST: (
        "CAST(NULL AS VARCHAR) AS user_id, CAST(NULL AS VARCHAR) AS user_email, "
        "CAST(NULL AS VARCHAR) AS user_name, guest_name, guest_phone"
    ),
}

_COMMON_COLUMNS = """
    id, order_id, date, slots, amount_cents, currency,
    payment_method, admin_paid, booking_type, created_at, updated_at
"""


def _select_sql(variant: BookingVariant) -> TextClause:
    return text(f"""
        SELECT {_COMMON_COLUMNS}, {_IDENTITY_COLUMNS[variant]}
        FROM {_TABLES[variant]}
        WHERE id = :id
    """)


def _remove_slot_sql(variant: BookingVariant) -> TextClause:
    return text(f"""
        UPDATE {_TABLES[variant]}
        SET slots = COALESCE((
                SELECT jsonb_agg(e.s ORDER BY e.ord)
                FROM jsonb_array_elements(slots) WITH ORDINALITY AS e(s, ord)
                WHERE NOT (CAST(e.s->>'court_id' AS INTEGER) = :court_id
                           AND e.s->>'start' = :start
                           AND e.s->>'end' = :end)
            ), CAST('[]' AS JSONB)),
            amount_cents = GREATEST(0, amount_cents - :delta),
            updated_at = NOW()
        WHERE id = :id
        RETURNING jsonb_array_length(slots) AS slot_count
    """)


def _decrement_amount_sql(variant: BookingVariant) -> TextClause:
    return text(f"""
        UPDATE {_TABLES[variant]}
        SET amount_cents = GREATEST(0, amount_cents - :delta),
            updated_at = NOW()
        WHERE id = :id
        RETURNING amount_cents
    """)


def _delete_if_empty_sql(variant: BookingVariant) -> TextClause:
    return text(f"""
        DELETE FROM {_TABLES[variant]}
        WHERE id = :id AND jsonb_array_length(slots) = 0
        RETURNING id
    """)


def _delete_sql(variant: BookingVariant) -> TextClause:
    return text(f"DELETE FROM {_TABLES[variant]} WHERE id = :id RETURNING id")


def _mark_paid_sql(variant: BookingVariant) -> TextClause:
    return text(f"""
        UPDATE {_TABLES[variant]}
        SET admin_paid = TRUE, updated_at = NOW()
        WHERE id = :id AND admin_paid = FALSE
        RETURNING id
    """)


def _parse_slots(raw: Any) -> list[Slot]:
    # asyncpg hands JSONB back as str unless a codec is registered
    if isinstance(raw, str):
        raw = json.loads(raw)
    return [Slot.from_dict(item) for item in raw or []]


def _row_to_booking(row: Any, variant: BookingVariant) -> Booking:
    return Booking(
        id=str(row.id),
        variant=variant,
        order_id=row.order_id,
        date=row.date,
        slots=_parse_slots(row.slots),
        amount_cents=row.amount_cents,
        currency=row.currency,
        payment_method=PaymentMethod(row.payment_method),
        admin_paid=row.admin_paid,
        booking_type=BookingType(row.booking_type),
        user_id=row.user_id,
        user_email=row.user_email,
        user_name=row.user_name,
        guest_name=row.guest_name,
        guest_phone=row.guest_phone,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


class BookingRepository:
    """Concrete repository: every mutation is one atomic statement."""

    async def find_booking_across_variants(
        self, db: AsyncSession, booking_id: str
    ) -> Booking | None:
        for variant in (BookingVariant.ACCOUNT, BookingVariant.GUEST):
            result = await db.execute(_select_sql(variant), {"id": booking_id})
            row = result.fetchone()
            if row is not None:
                return _row_to_booking(row, variant)
        return None

    async def remove_slot(
        self,
        db: AsyncSession,
        booking_id: str,
        variant: BookingVariant,
        slot: Slot,
        amount_delta_cents: int = 0,
    ) -> int:
        """Pull one slot (and optionally its share of the amount).

        Returns the remaining slot count; 0 also when the booking is gone.
        """
        result = await db.execute(
            _remove_slot_sql(variant),
            {
                "id": booking_id,
                "court_id": slot.court_id,
                "start": slot.start,
                "end": slot.end,
                "delta": amount_delta_cents,
            },
        )
        row = result.fetchone()
        return int(row.slot_count) if row is not None else 0

    async def decrement_amount(
        self,
        db: AsyncSession,
        booking_id: str,
        variant: BookingVariant,
        delta_cents: int,
    ) -> int | None:
        result = await db.execute(
            _decrement_amount_sql(variant), {"id": booking_id, "delta": delta_cents}
        )
        row = result.fetchone()
        return row.amount_cents if row is not None else None

    async def delete_if_empty(
        self, db: AsyncSession, booking_id: str, variant: BookingVariant
    ) -> bool:
        result = await db.execute(_delete_if_empty_sql(variant), {"id": booking_id})
        return result.fetchone() is not None

    async def delete_booking(
        self, db: AsyncSession, booking_id: str, variant: BookingVariant
    ) -> bool:
        result = await db.execute(_delete_sql(variant), {"id": booking_id})
        return result.fetchone() is not None

    async def mark_paid(
        self, db: AsyncSession, booking_id: str, variant: BookingVariant
    ) -> bool:
        result = await db.execute(_mark_paid_sql(variant), {"id": booking_id})
        return result.fetchone() is not None
